"""Type definitions for the stack comment manifest."""

from typing import List
from pydantic import BaseModel, Field

# Manifest format written into stack comments
STACK_COMMENT_VERSION = 0

class StackEntry(BaseModel):
    """One PR in a stack, as recorded in the comment manifest."""
    bookmarkName: str
    prUrl: str
    prNumber: int

class StackCommentData(BaseModel):
    """Payload embedded in the first line of a stack comment."""
    version: int = STACK_COMMENT_VERSION
    stack: List[StackEntry] = Field(default_factory=list)

    def index_of(self, bookmark_name: str) -> int:
        """Position of bookmark_name in the stack, -1 if absent."""
        for i, entry in enumerate(self.stack):
            if entry.bookmarkName == bookmark_name:
                return i
        return -1
