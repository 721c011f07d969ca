"""Tests for the click CLI with jj and GitHub faked out."""

import json
from typing import Tuple

import pytest
from click.testing import CliRunner

from jjstack.cmd.jjstack import main
from jjstack.config import default_config
from jjstack.github import GitHubClient, save_token, saved_token_path
from jjstack.github.adapters import PyGithubAdapter
from jjstack.tests.fake_github import FakeGithub
from jjstack.tests.fake_jj import FakeJj


@pytest.fixture
def fake_jj() -> FakeJj:
    fake = FakeJj()
    a = fake.commit("Add login form")
    b = fake.commit("Add profile page", parents=[a])
    fake.bookmark("auth", a)
    fake.bookmark("profile", b)
    return fake


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, fake_jj: FakeJj, fake_github: FakeGithub) -> Tuple[FakeJj, FakeGithub]:
    config = default_config()
    monkeypatch.setattr(main, "setup_jj", lambda directory=None: (config, fake_jj))
    monkeypatch.setattr(main, "setup_github", lambda cfg: GitHubClient(cfg, fake_github))
    return fake_jj, fake_github


def invoke(*args: str, input: str = ""):
    return CliRunner().invoke(main.cli, list(args), input=input, obj={})


def test_status_alias(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    fake_jj, _ = cli_env
    result = invoke("st")
    assert result.exit_code == 0, result.output
    assert "Stack 1 (2 bookmarks)" in result.output
    assert result.output.index("profile") < result.output.index("auth (not pushed)")
    assert fake_jj.fetch_count == 1


def test_status_no_fetch(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    fake_jj, _ = cli_env
    assert invoke("status", "--no-fetch").exit_code == 0
    assert fake_jj.fetch_count == 0


def test_submit_dry_run(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    fake_jj, fake_github = cli_env
    result = invoke("submit", "profile", "--dry-run")
    assert result.exit_code == 0, result.output
    assert "Create PR:" in result.output
    assert "profile -> auth: Add profile page" in result.output
    assert "Dry run" in result.output
    assert fake_jj.pushed == []
    assert fake_github.get_repo("acme/widgets").pulls == {}


def test_submit(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    fake_jj, fake_github = cli_env
    result = invoke("submit", "profile")
    assert result.exit_code == 0, result.output
    assert fake_jj.pushed == [("auth", "origin"), ("profile", "origin")]
    pulls = fake_github.get_repo("acme/widgets").pulls
    assert [(pr.head.ref, pr.base.ref) for pr in pulls.values()] == [("auth", "main"), ("profile", "auth")]
    assert "Created #2 profile -> auth" in result.output
    assert "Done." in result.output


def test_submit_failure_exit_code(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    _, fake_github = cli_env
    fake_github.get_repo("acme/widgets").fail("create", "profile")
    result = invoke("submit", "profile")
    assert result.exit_code == 1
    assert "creating PR for profile" in result.output


def test_submit_unknown_bookmark(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    result = invoke("submit", "nope")
    assert result.exit_code == 1
    assert "Error: Bookmark 'nope' not found" in result.output


def test_submit_without_github_remote(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    fake_jj, _ = cli_env
    fake_jj.remotes = []
    result = invoke("submit", "profile")
    assert result.exit_code == 1
    assert "No git remotes found" in result.output
    assert "Traceback" not in result.output


def test_submit_prompts_for_ambiguous_remote(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    from jjstack.jj.types import GitRemote

    fake_jj, _ = cli_env
    fake_jj.remotes = [
        GitRemote(name="fork", url="git@github.com:me/widgets.git"),
        GitRemote(name="upstream", url="git@github.com:acme/widgets.git"),
    ]
    result = invoke("submit", "profile", "--dry-run", input="upstream\n")
    assert result.exit_code == 0, result.output
    assert "via upstream" in result.output


def test_submit_prompts_for_shared_commit(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    fake_jj, _ = cli_env
    fake_jj.bookmark("auth-copy", fake_jj.bookmarks["auth"].commit_id)
    result = invoke("submit", "profile", "--dry-run", input="auth-copy\n")
    assert result.exit_code == 0, result.output
    assert "profile -> auth-copy" in result.output


def test_auth_test(cli_env: Tuple[FakeJj, FakeGithub]) -> None:
    result = invoke("auth", "test")
    assert result.exit_code == 0, result.output
    assert "Authenticated to GitHub as testuser" in result.output


def test_auth_test_without_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(main, "find_github_token", lambda: None)
    result = invoke("auth", "test", input="\n")
    assert result.exit_code == 1
    assert "No GitHub token found" in result.output
    assert "jj-stack auth help" in result.output
    assert not saved_token_path().exists()


def test_prompted_token_is_saved(monkeypatch: pytest.MonkeyPatch, fake_github: FakeGithub) -> None:
    monkeypatch.setattr(main, "find_github_token", lambda: None)
    monkeypatch.setattr(PyGithubAdapter, "from_token", lambda token: fake_github)

    result = invoke("auth", "test", input="ghp_entered\n")

    assert result.exit_code == 0, result.output
    assert "Authenticated to GitHub as testuser" in result.output
    assert "ghp_entered" not in result.output
    assert json.loads(saved_token_path().read_text()) == {"github": {"token": "ghp_entered"}}


def test_auth_logout() -> None:
    save_token("ghp_saved")

    result = invoke("auth", "logout")

    assert result.exit_code == 0, result.output
    assert "Cleared saved GitHub token" in result.output
    assert json.loads(saved_token_path().read_text()) == {"github": {}}
    assert "No saved GitHub token to clear" in invoke("auth", "logout").output


def test_auth_help() -> None:
    result = invoke("auth", "help")
    assert result.exit_code == 0
    assert "gh auth login" in result.output
    assert "GITHUB_TOKEN or GH_TOKEN" in result.output
    assert "~/.config/jj-stack/config.json" in result.output
