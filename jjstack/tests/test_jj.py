"""Unit tests for the jj command layer, with subprocess mocked out."""

import json
import subprocess
from typing import Dict, List, Optional
from unittest import mock

import pytest

from jjstack.config import default_config
from jjstack.jj import RealJj, merge_bookmark_lines
from jjstack.typing import JjCommandError


def bookmark_line(name: str, commit_id: str, remote: str = "", local: Optional[List[str]] = None,
                  remotes: Optional[List[str]] = None) -> str:
    return json.dumps({
        "name": name, "remote": remote, "commit_id": commit_id, "change_id": f"ch-{commit_id}",
        "local_bookmarks": local if local is not None else [name],
        "remote_bookmarks": remotes or [],
    })


def log_line(commit_id: str, parents: List[str], description: str = "Do a thing",
             bookmarks: Optional[List[str]] = None) -> str:
    return json.dumps({
        "commit_id": commit_id, "change_id": f"ch-{commit_id}",
        "author_name": "Test User", "author_email": "test@example.com",
        "description_first_line": description, "parents": parents,
        "local_bookmarks": bookmarks or [], "remote_bookmarks": [],
        "is_current_working_copy": False,
        "authored_at": "2024-05-01T10:00:00+02:00", "committed_at": "2024-05-01T10:05:00+02:00",
    })


def completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(["jj"], returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def run() -> mock.MagicMock:
    with mock.patch("jjstack.jj.subprocess.run") as run_mock:
        run_mock.return_value = completed()
        yield run_mock


def argv(run: mock.MagicMock) -> List[str]:
    return run.call_args[0][0]


class TestMergeBookmarkLines:
    """Folding bookmark list output into Bookmarks."""

    def test_synced_bookmark(self) -> None:
        [bookmark] = merge_bookmark_lines([
            bookmark_line("feat", "abc", remotes=["feat@origin", "feat@git"])])
        assert bookmark.name == "feat"
        assert bookmark.commit_id == "abc"
        assert bookmark.has_remote
        assert bookmark.is_synced

    def test_local_only_bookmark(self) -> None:
        [bookmark] = merge_bookmark_lines([bookmark_line("feat", "abc", remotes=["feat@git"])])
        assert not bookmark.has_remote
        assert not bookmark.is_synced

    def test_remote_behind_local(self) -> None:
        [bookmark] = merge_bookmark_lines([
            bookmark_line("feat", "new"),
            bookmark_line("feat", "old", remote="origin", local=[], remotes=["feat@origin"]),
        ])
        assert bookmark.commit_id == "new"
        assert bookmark.has_remote
        assert not bookmark.is_synced

    def test_git_remote_lines_are_ignored(self) -> None:
        bookmarks = merge_bookmark_lines([
            bookmark_line("feat", "abc"),
            bookmark_line("feat", "abc", remote="git"),
        ])
        assert [(b.name, b.has_remote) for b in bookmarks] == [("feat", False)]

    def test_remote_only_bookmark_is_skipped(self) -> None:
        assert merge_bookmark_lines([bookmark_line("theirs", "abc", remote="origin", local=[])]) == []

    def test_blank_lines(self) -> None:
        assert merge_bookmark_lines(["", "  "]) == []

    def test_bad_line(self) -> None:
        with pytest.raises(JjCommandError, match="Failed to parse bookmark line"):
            merge_bookmark_lines(['{"name": "feat"}'])


class TestRealJj:
    """Commands RealJj runs and how their output is parsed."""

    @pytest.fixture
    def jj(self) -> RealJj:
        return RealJj(default_config())

    def test_failed_command(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.return_value = completed(returncode=1, stderr="Error: There is no jj repo in \".\"")
        with pytest.raises(JjCommandError) as exc_info:
            jj.git_fetch()
        assert exc_info.value.returncode == 1
        assert "no jj repo" in str(exc_info.value)

    def test_missing_binary(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.side_effect = FileNotFoundError
        with pytest.raises(JjCommandError, match="not found"):
            jj.git_fetch()

    def test_git_fetch(self, jj: RealJj, run: mock.MagicMock) -> None:
        jj.git_fetch()
        assert argv(run) == ["jj", "git", "fetch", "--all-remotes"]

    def test_configured_binary(self, run: mock.MagicMock) -> None:
        config = default_config()
        config.tool.jj_binary = "/opt/jj/bin/jj"
        RealJj(config).git_fetch()
        assert argv(run)[0] == "/opt/jj/bin/jj"

    def test_get_my_bookmarks(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.return_value = completed("\n".join([
            bookmark_line("a", "111", remotes=["a@origin"]),
            bookmark_line("b", "222"),
        ]) + "\n")

        bookmarks = jj.get_my_bookmarks()

        assert [(b.name, b.is_synced) for b in bookmarks] == [("a", True), ("b", False)]
        assert argv(run)[:4] == ["jj", "bookmark", "list", "--revisions"]
        assert "mine()" in argv(run)

    def test_find_common_ancestor(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.return_value = completed(log_line("base", ["older"]) + "\n")

        entry = jj.find_common_ancestor("feat")

        assert entry.commit_id == "base"
        assert entry.authored_at is not None and entry.authored_at.year == 2024
        assert 'heads(::trunk() & ::"feat")' in argv(run)

    def test_find_common_ancestor_empty(self, jj: RealJj, run: mock.MagicMock) -> None:
        with pytest.raises(JjCommandError, match="No common ancestor"):
            jj.find_common_ancestor("feat")

    def test_changes_between(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.return_value = completed("\n".join([
            log_line("c2", ["c1"], bookmarks=["feat"]),
            "not json",
            log_line("c1", ["base"]),
        ]) + "\n")

        entries = jj.get_changes_between("base", "c2")

        assert [e.commit_id for e in entries] == ["c2", "c1"]
        assert entries[0].local_bookmarks == ["feat"]
        args = argv(run)
        assert args[args.index("--revisions") + 1] == "base..c2"
        assert args[args.index("--limit") + 1] == "100"

    def test_changes_between_with_cursor(self, jj: RealJj, run: mock.MagicMock) -> None:
        jj.get_changes_between("base", "tip", cursor="mid")
        args = argv(run)
        assert args[args.index("--revisions") + 1] == "(base..tip) ~ mid::"

    def test_remote_list(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.return_value = completed("origin git@github.com:acme/widgets.git\nupstream https://github.com/up/widgets\n")
        remotes = jj.get_git_remote_list()
        assert [(r.name, r.url) for r in remotes] == [
            ("origin", "git@github.com:acme/widgets.git"),
            ("upstream", "https://github.com/up/widgets"),
        ]

    def test_trunk_remote_bookmarks(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.return_value = completed('["main","release"]\n')
        assert jj.get_trunk_remote_bookmarks() == ["main", "release"]

    def test_trunk_remote_bookmarks_garbage(self, jj: RealJj, run: mock.MagicMock) -> None:
        run.return_value = completed("oops\n")
        with pytest.raises(JjCommandError):
            jj.get_trunk_remote_bookmarks()

    def test_push_bookmark(self, jj: RealJj, run: mock.MagicMock) -> None:
        jj.push_bookmark("feat", "origin")
        assert argv(run) == ["jj", "git", "push", "--remote", "origin", "--bookmark", "feat", "--allow-new"]

    def test_commands_are_logged(self, jj: RealJj, run: mock.MagicMock, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level("INFO", logger="jjstack.jj")
        jj.push_bookmark("feat", "origin")
        assert "> jj git push --remote origin --bookmark feat --allow-new" in caplog.text
