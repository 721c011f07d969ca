"""GitHub interfaces and implementation."""

import base64
import json
import os
import re
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from urllib.parse import urlparse

from ..config.models import JjStackConfig
from ..jj.types import GitRemote
from ..typing import AmbiguousRemoteError, NoGitHubRemoteError, NotGitHubRemoteError
from ..util import ensure
from .types import StackCommentData

# Get module logger
logger = logging.getLogger(__name__)

# First line of a stack comment wraps the base64 manifest in these
STACK_INFO_PREFIX = "<!--- JJ-STACK_INFO: "
STACK_INFO_POSTFIX = " --->"
# Identifies our comment among the others on a PR
STACK_COMMENT_FOOTER = "*Created with [jj-stack](https://github.com/keanemind/jj-stack)*"


@dataclass
class PullRequest:
    """Pull request info."""
    number: int
    html_url: str
    title: str
    base_ref: str
    head_ref: str
    base_sha: str = ""
    head_sha: str = ""
    state: str = "open"
    merged: bool = False

    def __str__(self) -> str:
        """Convert to string."""
        return f"PR #{self.number} - {self.title} ({self.head_ref} -> {self.base_ref})"


@dataclass
class RepoInfo:
    """GitHub repository coordinates."""
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


# Define protocols for GitHub objects
@runtime_checkable
class GitHubUserProtocol(Protocol):
    """Protocol for GitHub user objects (real or fake)."""
    @property
    def login(self) -> str:
        """Get the user's login name."""
        ...

@runtime_checkable
class GitHubRefProtocol(Protocol):
    """Protocol for GitHub ref objects (base/head references)."""
    @property
    def ref(self) -> str:
        """Get the ref name (e.g., 'main', 'feature-branch')."""
        ...

    @property
    def sha(self) -> str:
        """Get the commit SHA."""
        ...

@runtime_checkable
class GitHubIssueCommentProtocol(Protocol):
    """Protocol for comments on a pull request's conversation."""
    @property
    def id(self) -> int:
        ...

    @property
    def body(self) -> str:
        ...

    def edit(self, body: str) -> None:
        ...

@runtime_checkable
class GitHubPullRequestProtocol(Protocol):
    """Protocol for GitHub pull request objects (real or fake)."""
    @property
    def number(self) -> int:
        ...

    @property
    def title(self) -> str:
        ...

    @property
    def html_url(self) -> str:
        ...

    @property
    def state(self) -> str:
        ...

    @property
    def merged(self) -> bool:
        ...

    @property
    def base(self) -> GitHubRefProtocol:
        ...

    @property
    def head(self) -> GitHubRefProtocol:
        ...

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        """Edit the pull request."""
        ...

    def get_issue_comments(self) -> List[GitHubIssueCommentProtocol]:
        ...

    def create_issue_comment(self, body: str) -> GitHubIssueCommentProtocol:
        ...

@runtime_checkable
class GitHubRepoProtocol(Protocol):
    """Protocol for GitHub repository objects (real or fake)."""
    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        ...

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[GitHubPullRequestProtocol]:
        ...

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> GitHubPullRequestProtocol:
        ...

class PyGithubProtocol(Protocol):
    """Protocol for the top-level PyGithub object (real or fake)."""
    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        ...

    def get_user(self, login: Optional[str] = None) -> Optional[GitHubUserProtocol]:
        ...


def _gh_cli_token() -> Optional[str]:
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, check=False)
    except FileNotFoundError:
        logger.debug("gh CLI not installed")
        return None
    token = result.stdout.strip()
    if result.returncode != 0 or not token:
        logger.debug(f"gh auth token failed: {result.stderr.strip()}")
        return None
    return token


def _gh_hosts_token() -> Optional[str]:
    import yaml

    config_dir = os.environ.get("GH_CONFIG_DIR")
    hosts_path = Path(config_dir) if config_dir else Path.home() / ".config" / "gh"
    hosts_path = hosts_path / "hosts.yml"
    try:
        with open(hosts_path, "r") as f:
            gh_config = yaml.safe_load(f)
    except FileNotFoundError:
        return None
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error reading gh CLI config: {e}")
        return None
    if not isinstance(gh_config, dict):
        return None
    github_config = gh_config.get("github.com")
    if isinstance(github_config, dict):
        token = github_config.get("oauth_token")
        if isinstance(token, str) and token:
            return token
    return None


def saved_token_path() -> Path:
    """File holding a token that was entered at the prompt."""
    return Path.home() / ".config" / "jj-stack" / "config.json"


def _load_saved_config() -> Dict[str, Any]:
    path = saved_token_path()
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.error(f"Error reading {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _write_saved_config(data: Dict[str, Any]) -> Path:
    path = saved_token_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    # Holds a credential
    path.chmod(0o600)
    return path


def _saved_token() -> Optional[str]:
    github_config = _load_saved_config().get("github")
    if isinstance(github_config, dict):
        token = github_config.get("token")
        if isinstance(token, str) and token:
            return token
    return None


def save_token(token: str) -> Path:
    """Store token in the jj-stack config file, keeping any other keys."""
    data = _load_saved_config()
    github_config = data.get("github")
    if not isinstance(github_config, dict):
        github_config = {}
    github_config["token"] = token
    data["github"] = github_config
    path = _write_saved_config(data)
    logger.info(f"Saved GitHub token to {path}")
    return path


def clear_saved_token() -> bool:
    """Remove a saved token. Returns False when there was none."""
    data = _load_saved_config()
    github_config = data.get("github")
    if not isinstance(github_config, dict) or "token" not in github_config:
        return False
    del github_config["token"]
    path = _write_saved_config(data)
    logger.info(f"Removed GitHub token from {path}")
    return True


def find_github_token() -> Optional[str]:
    """Find GitHub token from the gh CLI, the environment or a saved token.

    Order: ``gh auth token``, ``~/.config/gh/hosts.yml``, ``GITHUB_TOKEN``,
    ``GH_TOKEN``, ``~/.config/jj-stack/config.json``.
    """
    token = _gh_cli_token()
    if token:
        logger.debug("Using GitHub token from gh CLI")
        return token
    token = _gh_hosts_token()
    if token:
        logger.debug("Using GitHub token from gh hosts.yml")
        return token
    for var in ("GITHUB_TOKEN", "GH_TOKEN"):
        token = os.environ.get(var)
        if token:
            logger.debug(f"Using GitHub token from {var}")
            return token
    token = _saved_token()
    if token:
        logger.debug(f"Using GitHub token from {saved_token_path()}")
        return token
    return None


_SCP_REMOTE_RE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>[^/].*)$")


def _is_github_host(host: str) -> bool:
    host = host.lower()
    return host == "github.com" or host.endswith(".github.com")


def parse_github_remote_url(url: str) -> RepoInfo:
    """Parse owner and repo out of a GitHub remote URL.

    Accepts https/http, ``ssh://`` and scp-like ``git@github.com:owner/repo``
    forms, with or without a trailing ``.git``.
    """
    url = url.strip()
    if "://" in url:
        parsed = urlparse(url)
        host = parsed.hostname or ""
        path = parsed.path
    else:
        match = _SCP_REMOTE_RE.match(url)
        if not match:
            raise NotGitHubRemoteError(f"Could not parse remote URL: {url}")
        host = match.group("host")
        path = match.group("path")

    if not _is_github_host(host):
        raise NotGitHubRemoteError(f"Remote URL is not a GitHub URL: {url}")

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-len(".git")]
    parts = path.split("/")
    if len(parts) != 2 or not all(parts):
        raise NotGitHubRemoteError(f"Could not find owner/repo in remote URL: {url}")
    return RepoInfo(owner=parts[0], repo=parts[1])


def is_github_remote(remote: GitRemote) -> bool:
    try:
        parse_github_remote_url(remote.url)
    except NotGitHubRemoteError:
        return False
    return True


def select_github_remote(remotes: List[GitRemote], preferred: Optional[str] = None,
                         strict: bool = False) -> GitRemote:
    """Pick the GitHub remote to push to and open PRs against.

    A preferred remote that exists is used as long as it is on GitHub. When
    strict, a preferred remote that doesn't exist is an error. Otherwise
    the only GitHub remote wins and several of them are ambiguous.
    """
    if not remotes:
        raise NoGitHubRemoteError("No git remotes found. Add one with 'jj git remote add'.")

    if preferred:
        by_name: Dict[str, GitRemote] = {r.name: r for r in remotes}
        if preferred in by_name:
            remote = by_name[preferred]
            if not is_github_remote(remote):
                raise NotGitHubRemoteError(f"Remote '{remote.name}' is not a GitHub remote: {remote.url}")
            return remote
        if strict:
            raise NoGitHubRemoteError(f"Remote '{preferred}' not found")
        logger.debug(f"Preferred remote {preferred} not found, looking for GitHub remotes")

    github_remotes = [r for r in remotes if is_github_remote(r)]
    if not github_remotes:
        names = ", ".join(f"{r.name} ({r.url})" for r in remotes)
        raise NoGitHubRemoteError(f"No GitHub remotes found among: {names}")
    if len(github_remotes) > 1:
        raise AmbiguousRemoteError([r.name for r in github_remotes])
    return github_remotes[0]


def encode_stack_comment_data(data: StackCommentData) -> str:
    """Encode the manifest as base64 JSON."""
    return base64.b64encode(data.model_dump_json().encode("utf-8")).decode("ascii")


def decode_stack_comment_data(body: str) -> Optional[StackCommentData]:
    """Decode the manifest from a stack comment body, None if there isn't one."""
    first_line = body.split("\n", 1)[0].strip()
    if not (first_line.startswith(STACK_INFO_PREFIX) and first_line.endswith(STACK_INFO_POSTFIX)):
        return None
    encoded = first_line[len(STACK_INFO_PREFIX):-len(STACK_INFO_POSTFIX)].strip()
    try:
        raw = base64.b64decode(encoded, validate=True).decode("utf-8")
        return StackCommentData.model_validate_json(raw)
    except ValueError as e:
        logger.warning(f"Ignoring malformed stack comment manifest: {e}")
        return None


def format_stack_comment(data: StackCommentData, bookmark_name: str) -> str:
    """Render the full comment for the PR of bookmark_name."""
    count = len(data.stack)
    lines = [
        f"{STACK_INFO_PREFIX}{encode_stack_comment_data(data)}{STACK_INFO_POSTFIX}",
        f"This PR is part of a stack of {count} bookmark{'' if count == 1 else 's'}:",
        "",
    ]
    for i, entry in enumerate(data.stack):
        if entry.bookmarkName == bookmark_name:
            lines.append(f"{i + 1}. **{entry.bookmarkName} ← this PR**")
        else:
            lines.append(f"{i + 1}. [{entry.bookmarkName}]({entry.prUrl})")
    lines += ["", "---", STACK_COMMENT_FOOTER]
    return "\n".join(lines)


def _to_pull_request(pr: GitHubPullRequestProtocol) -> PullRequest:
    return PullRequest(
        number=pr.number,
        html_url=pr.html_url,
        title=pr.title,
        base_ref=pr.base.ref,
        head_ref=pr.head.ref,
        base_sha=pr.base.sha,
        head_sha=pr.head.sha,
        state=pr.state,
        merged=pr.merged,
    )


class GitHubClient:
    """GitHub client implementation."""
    def __init__(self, config: JjStackConfig, github_client: PyGithubProtocol,
                 repo_info: Optional[RepoInfo] = None):
        """Initialize with config and GitHub client implementation.

        Args:
            config: The configuration
            github_client: GitHub client implementation (real or fake)
            repo_info: Repository to work on, may be resolved later
        """
        self.config = config
        self.client = github_client
        self._repo_info = repo_info
        self._repo: Optional[GitHubRepoProtocol] = None

    @property
    def repo_info(self) -> Optional[RepoInfo]:
        if self._repo_info is None:
            owner = self.config.repo.github_repo_owner
            name = self.config.repo.github_repo_name
            if owner and name:
                self._repo_info = RepoInfo(owner, name)
        return self._repo_info

    @repo_info.setter
    def repo_info(self, value: RepoInfo) -> None:
        if self._repo_info != value:
            self._repo = None
        self._repo_info = value

    @property
    def repo(self) -> GitHubRepoProtocol:
        """Get GitHub repository."""
        if self._repo is None:
            info = ensure(self.repo_info, "GitHub repository not resolved - set owner/repo or pick a remote")
            logger.info(f"> github get repo {info.full_name}")
            self._repo = self.client.get_repo(info.full_name)
        return self._repo

    def find_pull_request_for_branch(self, branch_name: str) -> Optional[PullRequest]:
        """Get the open pull request whose head is branch_name, if any."""
        owner = ensure(self.repo_info).owner
        head_filter = f"{owner}:{branch_name}"
        logger.info(f"> github list open PRs head={head_filter}")
        for pr in self.repo.get_pulls(state="open", head=head_filter):
            logger.debug(f"Checking PR #{pr.number}: head.ref={pr.head.ref}, base.ref={pr.base.ref}")
            if pr.head.ref == branch_name:
                return _to_pull_request(pr)
        return None

    def get_pull_request(self, number: int) -> PullRequest:
        logger.info(f"> github get #{number}")
        return _to_pull_request(self.repo.get_pull(number))

    def create_pull_request(self, title: str, head: str, base: str, body: str = "") -> PullRequest:
        """Create pull request."""
        logger.info(f"> github create {head} -> {base} : {title}")
        pr = self.repo.create_pull(title=title, body=body, base=base, head=head)
        return _to_pull_request(pr)

    def update_pull_request_base(self, number: int, base: str) -> PullRequest:
        """Point an existing pull request at a new base branch."""
        logger.info(f"> github update base #{number} -> {base}")
        gh_pr = self.repo.get_pull(number)
        gh_pr.edit(base=base)
        return _to_pull_request(self.repo.get_pull(number))

    def find_stack_comment(self, number: int) -> Optional[GitHubIssueCommentProtocol]:
        """Find the comment we manage on a PR, recognized by its footer."""
        logger.info(f"> github list comments #{number}")
        for comment in self.repo.get_pull(number).get_issue_comments():
            if comment.body and STACK_COMMENT_FOOTER in comment.body:
                return comment
        return None

    def get_stack_comment_data(self, number: int) -> Optional[StackCommentData]:
        comment = self.find_stack_comment(number)
        if comment is None:
            return None
        return decode_stack_comment_data(comment.body)

    def create_or_update_stack_comment(self, number: int, data: StackCommentData, bookmark_name: str) -> None:
        """Write the stack comment on a PR, editing ours if it's already there."""
        body = format_stack_comment(data, bookmark_name)
        existing = self.find_stack_comment(number)
        if existing is not None:
            logger.info(f"> github update comment #{number} ({existing.id})")
            existing.edit(body=body)
        else:
            logger.info(f"> github add comment #{number}")
            self.repo.get_pull(number).create_issue_comment(body)

    def get_authenticated_login(self) -> str:
        logger.info("> github get user")
        user = ensure(self.client.get_user(), "Could not get authenticated user")
        return user.login
