"""jj interfaces and implementation."""

import json
import logging
import subprocess
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..config.models import JjStackConfig
from ..typing import JjCommandError
from .types import Bookmark, GitRemote, LogEntry, parse_bookmark_line, parse_log_entry

# Get module logger
logger = logging.getLogger(__name__)

# jj log pages are capped at this many commits
PAGE_SIZE = 100

LOG_ENTRY_TEMPLATE = " ++ ".join([
    "'{\"commit_id\":'", "commit_id.short().escape_json()",
    "', \"change_id\":'", "change_id.short().escape_json()",
    "', \"author_name\":'", "author.name().escape_json()",
    "', \"author_email\":'", "stringify(author.email()).escape_json()",
    "', \"description_first_line\":'", "description.first_line().trim().escape_json()",
    "', \"parents\": ['", "parents.map(|p| p.commit_id().short().escape_json()).join(\",\")",
    "'], \"local_bookmarks\": ['", "local_bookmarks.map(|b| b.name().escape_json()).join(\",\")",
    "'], \"remote_bookmarks\": ['",
    "remote_bookmarks.map(|b| stringify(b.name() ++ \"@\" ++ b.remote()).escape_json()).join(\",\")",
    "'], \"is_current_working_copy\":'", "current_working_copy",
    "', \"authored_at\":'",
    "stringify(author.timestamp().format(\"%Y-%m-%dT%H:%M:%S%:z\")).escape_json()",
    "', \"committed_at\":'",
    "stringify(committer.timestamp().format(\"%Y-%m-%dT%H:%M:%S%:z\")).escape_json()",
    "'}\\n'",
])

BOOKMARK_TEMPLATE = " ++ ".join([
    "'{\"name\":'", "name.escape_json()",
    "', \"remote\":'", "stringify(remote).escape_json()",
    "', \"commit_id\":'", "normal_target.commit_id().short().escape_json()",
    "', \"change_id\":'", "normal_target.change_id().short().escape_json()",
    "', \"local_bookmarks\": ['", "normal_target.local_bookmarks().map(|b| b.name().escape_json()).join(\",\")",
    "'], \"remote_bookmarks\": ['",
    "normal_target.remote_bookmarks().map(|b| stringify(b.name() ++ \"@\" ++ b.remote()).escape_json()).join(\",\")",
    "']}\\n'",
])

TRUNK_REMOTE_BOOKMARKS_TEMPLATE = "'[' ++ remote_bookmarks.map(|b| b.name().escape_json()).join(\",\") ++ ']\\n'"


def _remote_names_for(bookmark_name: str, remote_bookmarks: List[str]) -> List[str]:
    """Remotes (other than the colocated git backend) that carry bookmark_name."""
    remotes: List[str] = []
    for ref in remote_bookmarks:
        name, _, remote = ref.rpartition("@")
        if name == bookmark_name and remote and remote != "git":
            remotes.append(remote)
    return remotes


def merge_bookmark_lines(lines: List[str]) -> List[Bookmark]:
    """Fold ``jj bookmark list`` template lines into one Bookmark per name.

    The first line for a name is the local bookmark. A later line for a
    remote whose target carries no local bookmark of that name means the
    local bookmark is out of sync with that remote.
    """
    bookmarks: Dict[str, Bookmark] = {}
    for line in lines:
        if not line.strip():
            continue
        try:
            parsed = parse_bookmark_line(line)
        except ValidationError as e:
            raise JjCommandError(["bookmark", "list"], f"Failed to parse bookmark line: {line}\n{e}")

        remotes = _remote_names_for(parsed.name, parsed.remote_bookmarks)
        if parsed.remote == "git":
            continue
        existing = bookmarks.get(parsed.name)
        if existing is None:
            if parsed.remote:
                # Remote-only bookmark, nothing local to stack
                logger.debug(f"Skipping remote-only bookmark {parsed.name}@{parsed.remote}")
                continue
            bookmarks[parsed.name] = Bookmark(
                name=parsed.name,
                commit_id=parsed.commit_id,
                change_id=parsed.change_id,
                has_remote=bool(remotes),
                is_synced=parsed.name in parsed.local_bookmarks and bool(remotes),
            )
        else:
            existing.has_remote = existing.has_remote or bool(parsed.remote) or bool(remotes)
            if parsed.name not in parsed.local_bookmarks:
                existing.is_synced = False
    return list(bookmarks.values())


class RealJj:
    """Real jj implementation that shells out to the jj binary."""

    def __init__(self, config: JjStackConfig):
        """Initialize with config."""
        self.config = config

    @property
    def binary(self) -> str:
        return self.config.tool.jj_binary

    def run_cmd(self, args: List[str]) -> str:
        """Run a jj command and return its stdout."""
        argv = [self.binary, *args]
        logger.info(f"> jj {' '.join(args)}")
        try:
            result = subprocess.run(argv, capture_output=True, text=True, check=False)
        except FileNotFoundError:
            raise JjCommandError(argv, f"jj binary not found: {self.binary}")
        if result.returncode != 0:
            raise JjCommandError(argv, result.stderr, result.returncode)
        if result.stderr:
            logger.debug(f"jj stderr: {result.stderr.strip()}")
        return result.stdout

    def git_fetch(self) -> None:
        """Fetch latest changes from all git remotes."""
        self.run_cmd(["git", "fetch", "--all-remotes"])

    def get_my_bookmarks(self) -> List[Bookmark]:
        """Get all bookmarks on commits authored by the current user."""
        output = self.run_cmd([
            "bookmark", "list", "--revisions", "mine()", "--template", BOOKMARK_TEMPLATE,
        ])
        bookmarks = merge_bookmark_lines(output.strip().split("\n"))
        logger.debug(f"Parsed {len(bookmarks)} bookmarks")
        return bookmarks

    def find_common_ancestor(self, bookmark_name: str) -> LogEntry:
        """Get the newest commit shared by trunk() and the bookmark."""
        revset = f'heads(::trunk() & ::"{bookmark_name}")'
        entries = self._log(revset, limit=1)
        if not entries:
            raise JjCommandError(["log", "--revisions", revset],
                                 f"No common ancestor with trunk() for bookmark {bookmark_name}")
        return entries[0]

    def get_changes_between(self, from_commit: str, to_commit: str,
                            cursor: Optional[str] = None) -> List[LogEntry]:
        """Get ancestors of to_commit that are not ancestors of from_commit.

        The result includes to_commit itself but not from_commit, newest
        first, at most PAGE_SIZE entries. Passing the oldest commit of the
        previous page as cursor returns the next page.
        """
        if cursor:
            revset = f"({from_commit}..{to_commit}) ~ {cursor}::"
        else:
            revset = f"{from_commit}..{to_commit}"
        return self._log(revset, limit=PAGE_SIZE, strict=False)

    def get_git_remote_list(self) -> List[GitRemote]:
        """List git remotes as (name, url) pairs."""
        output = self.run_cmd(["git", "remote", "list"])
        remotes: List[GitRemote] = []
        for line in output.strip().split("\n"):
            parts = line.strip().split()
            if len(parts) >= 2:
                remotes.append(GitRemote(name=parts[0], url=parts[1]))
        return remotes

    def get_trunk_remote_bookmarks(self) -> List[str]:
        """Get the names of remote bookmarks pointing at trunk()."""
        output = self.run_cmd([
            "log", "--revisions", "trunk()", "--no-graph", "--limit", "1",
            "--template", TRUNK_REMOTE_BOOKMARKS_TEMPLATE,
        ])
        try:
            names = json.loads(output)
        except ValueError as e:
            raise JjCommandError(["log", "--revisions", "trunk()"],
                                 f"Failed to parse remote bookmarks from jj log output: {e}")
        if not isinstance(names, list):
            raise JjCommandError(["log", "--revisions", "trunk()"],
                                 f"Unexpected remote bookmark output: {output.strip()}")
        return [str(name) for name in names]

    def push_bookmark(self, bookmark_name: str, remote: str) -> None:
        """Push a bookmark to the given remote, creating it if needed."""
        self.run_cmd([
            "git", "push", "--remote", remote, "--bookmark", bookmark_name, "--allow-new",
        ])

    def _log(self, revset: str, limit: int, strict: bool = True) -> List[LogEntry]:
        output = self.run_cmd([
            "log", "--revisions", revset, "--no-graph",
            "--limit", str(limit), "--template", LOG_ENTRY_TEMPLATE,
        ])
        entries: List[LogEntry] = []
        for line in output.strip().split("\n"):
            if not line.strip():
                continue
            try:
                entries.append(parse_log_entry(line))
            except ValidationError as e:
                if strict:
                    raise JjCommandError(["log", "--revisions", revset], f"Failed to parse line: {line}\n{e}")
                logger.error(f"Failed to parse line: {line}: {e}")
        return entries
