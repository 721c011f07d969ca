"""Fake PyGithub implementation for testing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from github import GithubException

logger = logging.getLogger(__name__)

@dataclass
class FakeNamedUser:
    """Fake implementation of the NamedUser class from PyGithub."""
    login: str

@dataclass
class FakeRef:
    """Fake implementation of a PR's base/head ref."""
    ref: str
    sha: str = ""

@dataclass
class FakeIssueComment:
    """Fake implementation of the IssueComment class from PyGithub."""
    id: int
    body: str
    pr: "FakePullRequest" = field(repr=False)

    def edit(self, body: str) -> None:
        self.pr.repo.check("comment", self.pr.head.ref)
        self.body = body

@dataclass
class FakePullRequest:
    """Fake implementation of the PullRequest class from PyGithub."""
    number: int
    title: str
    body: str
    base: FakeRef
    head: FakeRef
    repo: "FakeRepository" = field(repr=False)
    state: str = "open"
    merged: bool = False
    comments: List[FakeIssueComment] = field(default_factory=list)

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.repo.full_name}/pull/{self.number}"

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        if base is not None:
            self.repo.check("update_base", self.head.ref)
            self.base = FakeRef(base)
        if title is not None:
            self.title = title
        if body is not None:
            self.body = body
        if state is not None:
            self.state = state

    def get_issue_comments(self) -> List[FakeIssueComment]:
        return list(self.comments)

    def create_issue_comment(self, body: str) -> FakeIssueComment:
        self.repo.check("comment", self.head.ref)
        comment = FakeIssueComment(id=self.repo.next_id(), body=body, pr=self)
        self.comments.append(comment)
        return comment

@dataclass
class FakeRepository:
    """Fake implementation of the Repository class from PyGithub."""
    owner_login: str
    name: str
    pulls: Dict[int, FakePullRequest] = field(default_factory=dict)
    failures: Set[Tuple[str, str]] = field(default_factory=set)
    _next_id: int = 1000

    @property
    def full_name(self) -> str:
        return f"{self.owner_login}/{self.name}"

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def fail(self, operation: str, head_ref: str) -> None:
        """Make operation ('create', 'update_base', 'comment') fail for a branch."""
        self.failures.add((operation, head_ref))

    def check(self, operation: str, head_ref: str) -> None:
        if (operation, head_ref) in self.failures:
            raise GithubException(422, {"message": f"Injected {operation} failure for {head_ref}"}, None)

    def add_pull(self, head: str, base: str, title: str = "", merged: bool = False,
                 state: Optional[str] = None) -> FakePullRequest:
        """Seed a PR directly, bypassing failure injection."""
        number = len(self.pulls) + 1
        pr = FakePullRequest(
            number=number, title=title or head, body="", base=FakeRef(base), head=FakeRef(head),
            repo=self, state=state or ("closed" if merged else "open"), merged=merged,
        )
        self.pulls[number] = pr
        return pr

    def get_pull(self, number: int) -> FakePullRequest:
        if number not in self.pulls:
            raise GithubException(404, {"message": "Not Found"}, None)
        return self.pulls[number]

    def get_pulls(self, state: str = "open", head: str = "", base: str = "") -> List[FakePullRequest]:
        result: List[FakePullRequest] = []
        for pr in self.pulls.values():
            if state != "all" and pr.state != state:
                continue
            if head and head != f"{self.owner_login}:{pr.head.ref}":
                continue
            if base and pr.base.ref != base:
                continue
            result.append(pr)
        return result

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> FakePullRequest:
        self.check("create", head)
        if self.get_pulls(state="open", head=f"{self.owner_login}:{head}"):
            raise GithubException(422, {"message": f"A pull request already exists for {head}"}, None)
        pr = self.add_pull(head=head, base=base, title=title)
        pr.body = body
        return pr

@dataclass
class FakeGithub:
    """Fake implementation of the top-level Github object."""
    login: str = "testuser"
    repos: Dict[str, FakeRepository] = field(default_factory=dict)

    def get_repo(self, full_name_or_id: str) -> FakeRepository:
        if full_name_or_id not in self.repos:
            owner, name = full_name_or_id.split("/", 1)
            self.repos[full_name_or_id] = FakeRepository(owner_login=owner, name=name)
        return self.repos[full_name_or_id]

    def get_user(self, login: Optional[str] = None) -> FakeNamedUser:
        return FakeNamedUser(login or self.login)
