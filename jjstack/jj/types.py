"""Type definitions for jj template output."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from ..typing import ChangeID, CommitID


class LogEntry(BaseModel):
    """One commit as printed by our ``jj log`` template."""
    model_config = ConfigDict(frozen=True)

    commit_id: CommitID
    change_id: ChangeID
    author_name: str
    author_email: str
    description_first_line: str
    parents: List[CommitID]
    local_bookmarks: List[str]
    remote_bookmarks: List[str]
    is_current_working_copy: bool
    authored_at: Optional[datetime] = None
    committed_at: Optional[datetime] = None


class BookmarkLine(BaseModel):
    """One line of our ``jj bookmark list`` template.

    jj prints a line for the local bookmark and one more for every tracked
    remote that points somewhere else, so several lines can share a name.
    """
    name: str
    remote: Optional[str] = None
    commit_id: CommitID
    change_id: ChangeID
    local_bookmarks: List[str]
    remote_bookmarks: List[str]


class Bookmark(BaseModel):
    """A user bookmark with its remote sync status."""
    name: str
    commit_id: CommitID
    change_id: ChangeID
    has_remote: bool = False
    is_synced: bool = False


class GitRemote(BaseModel):
    """A git remote configured in the jj repository."""
    name: str
    url: str


def parse_log_entry(line: str) -> LogEntry:
    """Parse a single JSON line into a LogEntry."""
    return LogEntry.model_validate_json(line)


def parse_bookmark_line(line: str) -> BookmarkLine:
    """Parse a single JSON line into a BookmarkLine."""
    return BookmarkLine.model_validate_json(line)
