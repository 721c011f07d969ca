"""Configuration for pytest."""

from pathlib import Path

import pytest

from jjstack.config import Config, default_config
from jjstack.github import GitHubClient
from jjstack.tests.fake_github import FakeGithub, FakeRepository
from jjstack.tests.fake_jj import FakeJj

@pytest.fixture(autouse=True)
def no_github_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the developer's environment and saved tokens out of config and token lookup."""
    for var in ("GITHUB_OWNER", "GITHUB_REPO", "GITHUB_TOKEN", "GH_TOKEN", "GH_CONFIG_DIR"):
        monkeypatch.delenv(var, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))

@pytest.fixture
def fake_jj() -> FakeJj:
    return FakeJj()

@pytest.fixture
def config() -> Config:
    return default_config()

@pytest.fixture
def fake_github() -> FakeGithub:
    return FakeGithub()

@pytest.fixture
def fake_repo(fake_github: FakeGithub) -> FakeRepository:
    """The repo that FakeJj's default origin remote points at."""
    return fake_github.get_repo("acme/widgets")

@pytest.fixture
def github_client(config: Config, fake_github: FakeGithub) -> GitHubClient:
    return GitHubClient(config, fake_github)
