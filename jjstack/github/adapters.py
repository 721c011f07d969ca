"""Adapter classes to wrap PyGithub objects with our protocol interfaces."""

from typing import List, Optional, Union
import logging

from github import Auth, Github
from github.AuthenticatedUser import AuthenticatedUser
from github.GithubObject import NotSet
from github.IssueComment import IssueComment
from github.NamedUser import NamedUser
from github.PullRequest import PullRequest as PyGithubPullRequest
from github.Repository import Repository

from . import (
    PyGithubProtocol,
    GitHubRepoProtocol,
    GitHubPullRequestProtocol,
    GitHubIssueCommentProtocol,
    GitHubUserProtocol,
    GitHubRefProtocol,
)

logger = logging.getLogger(__name__)


class PyGithubUserAdapter(GitHubUserProtocol):
    """Adapter for PyGithub NamedUser or AuthenticatedUser objects."""

    def __init__(self, user: Union[NamedUser, AuthenticatedUser]) -> None:
        self._user = user

    @property
    def login(self) -> str:
        """Get the user's login name."""
        return self._user.login


class PyGithubIssueCommentAdapter(GitHubIssueCommentProtocol):
    """Adapter for PyGithub IssueComment objects."""

    def __init__(self, comment: IssueComment) -> None:
        self._comment = comment

    @property
    def id(self) -> int:
        return self._comment.id

    @property
    def body(self) -> str:
        return self._comment.body or ""

    def edit(self, body: str) -> None:
        self._comment.edit(body)


class PyGithubPullRequestAdapter(GitHubPullRequestProtocol):
    """Adapter for PyGithub PullRequest objects."""

    def __init__(self, pr: PyGithubPullRequest) -> None:
        self._pr = pr

    @property
    def number(self) -> int:
        return self._pr.number

    @property
    def title(self) -> str:
        return self._pr.title

    @property
    def html_url(self) -> str:
        return self._pr.html_url

    @property
    def state(self) -> str:
        return self._pr.state

    @property
    def merged(self) -> bool:
        return self._pr.merged

    @property
    def base(self) -> GitHubRefProtocol:
        return self._pr.base

    @property
    def head(self) -> GitHubRefProtocol:
        return self._pr.head

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        """Edit the pull request."""
        # Convert None to NotSet for PyGithub
        self._pr.edit(
            title=title if title is not None else NotSet,
            body=body if body is not None else NotSet,
            state=state if state is not None else NotSet,
            base=base if base is not None else NotSet
        )

    def get_issue_comments(self) -> List[GitHubIssueCommentProtocol]:
        """Get the conversation comments on the pull request."""
        return [PyGithubIssueCommentAdapter(c) for c in self._pr.get_issue_comments()]

    def create_issue_comment(self, body: str) -> GitHubIssueCommentProtocol:
        """Add a comment to the pull request."""
        return PyGithubIssueCommentAdapter(self._pr.create_issue_comment(body))


class PyGithubRepoAdapter(GitHubRepoProtocol):
    """Adapter for PyGithub Repository objects."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        """Get a pull request by number."""
        return PyGithubPullRequestAdapter(self._repo.get_pull(number))

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[GitHubPullRequestProtocol]:
        """Get pull requests with optional filtering."""
        # Convert empty strings to NotSet for PyGithub
        pulls = self._repo.get_pulls(
            state=state,
            head=head if head else NotSet,
            base=base if base else NotSet
        )
        return [PyGithubPullRequestAdapter(pr) for pr in pulls]

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> GitHubPullRequestProtocol:
        """Create a new pull request."""
        pr = self._repo.create_pull(title=title, body=body, base=base, head=head, draft=draft)
        return PyGithubPullRequestAdapter(pr)


class PyGithubAdapter(PyGithubProtocol):
    """Adapter for the main PyGithub object."""

    def __init__(self, github: Github) -> None:
        self._github = github

    @classmethod
    def from_token(cls, token: str) -> "PyGithubAdapter":
        """Create an adapter around a PyGithub client authenticated with token."""
        return cls(Github(auth=Auth.Token(token)))

    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name."""
        return PyGithubRepoAdapter(self._github.get_repo(full_name_or_id))

    def get_user(self, login: Optional[str] = None) -> Optional[GitHubUserProtocol]:
        """Get a user by login or the authenticated user if login is None."""
        # PyGithub uses NotSet instead of None
        if login is None:
            user = self._github.get_user()
        else:
            user = self._github.get_user(login)
        return PyGithubUserAdapter(user) if user else None
