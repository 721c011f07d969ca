"""Common types used across the codebase."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, NewType, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from .jj.types import Bookmark, GitRemote, LogEntry

# Create NewTypes for jj identifiers
CommitID = NewType('CommitID', str)
ChangeID = NewType('ChangeID', str)

# Literal base marker used for segments stacked directly on trunk
TRUNK = "trunk"


class JjInterface(Protocol):
    """Protocol for what the graph builder and submitter expect from jj."""

    def git_fetch(self) -> None:
        ...

    def get_my_bookmarks(self) -> List[Bookmark]:
        ...

    def find_common_ancestor(self, bookmark_name: str) -> LogEntry:
        ...

    def get_changes_between(self, from_commit: str, to_commit: str,
                            cursor: Optional[str] = None) -> List[LogEntry]:
        ...

    def get_git_remote_list(self) -> List[GitRemote]:
        ...

    def get_trunk_remote_bookmarks(self) -> List[str]:
        ...

    def push_bookmark(self, bookmark_name: str, remote: str) -> None:
        ...


class JjStackError(Exception):
    """Base class for errors raised by jjstack."""


class JjCommandError(JjStackError):
    """Raised when a jj invocation fails."""

    def __init__(self, args: Sequence[str], stderr: str = "", returncode: Optional[int] = None):
        self.argv = list(args)
        self.stderr = stderr.strip()
        self.returncode = returncode
        message = f"jj command failed: {' '.join(self.argv)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class MergeCommitError(JjStackError):
    """Raised when a walked range contains a commit with more than one parent."""

    def __init__(self, commit_id: str, bookmark: str):
        self.commit_id = commit_id
        self.bookmark = bookmark
        super().__init__(
            f"Found merge commit {commit_id} in the history of bookmark '{bookmark}'. "
            "Merge commits are not supported inside a stack: split or rebase the history "
            "so each bookmark sits on a linear chain, then try again."
        )


class BookmarkNotFoundError(JjStackError):
    """Raised when a bookmark needed for submission can't be found."""


class RemoteError(JjStackError):
    """Raised when no usable GitHub remote can be resolved."""


class NoGitHubRemoteError(RemoteError):
    """Raised when the repository has no remote hosted on GitHub."""


class NotGitHubRemoteError(RemoteError):
    """Raised when a remote URL does not point at a GitHub repository."""


class AmbiguousRemoteError(RemoteError):
    """Raised when several GitHub remotes exist and none was configured."""

    def __init__(self, remotes: Sequence[str]):
        self.remotes = list(remotes)
        super().__init__(
            f"Multiple GitHub remotes found ({', '.join(self.remotes)}). "
            "Pass --remote or set repo.github_remote in .jj-stack.yaml."
        )


class DefaultBranchNotFoundError(JjStackError):
    """Raised when trunk() has no main, master or trunk remote bookmark."""


class InternalInvariantError(JjStackError):
    """Raised when the planner or executor receives inconsistent input."""


class AuthenticationError(JjStackError):
    """Raised when no GitHub token can be found."""
