"""Submission planning and execution for bookmark stacks."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config.models import JjStackConfig
from ..github import (
    GitHubClient, PullRequest, RepoInfo, parse_github_remote_url, select_github_remote,
)
from ..github.types import StackCommentData, StackEntry
from ..graph import BookmarkSegment
from ..jj.types import Bookmark
from ..typing import DefaultBranchNotFoundError, InternalInvariantError, JjInterface

# Get module logger
logger = logging.getLogger(__name__)

# Remote bookmark names on trunk() tried in this order
DEFAULT_BRANCH_CANDIDATES = ("main", "master", "trunk")


@dataclass
class PRCreationItem:
    """A bookmark that has no open PR yet."""
    bookmark: Bookmark
    base_branch_options: List[str]
    title: str


@dataclass
class BaseUpdateItem:
    """An existing PR whose base branch is not what the stack expects."""
    bookmark: Bookmark
    pr: PullRequest
    current_base: str
    base_branch_options: List[str]


@dataclass
class SubmissionPlan:
    """Everything submit would do, computed without touching anything."""
    target_bookmark: str
    segments: List[BookmarkSegment]
    repo_info: RepoInfo
    remote: str
    default_branch: str
    bookmarks_needing_push: List[Bookmark] = field(default_factory=list)
    prs_to_create: List[PRCreationItem] = field(default_factory=list)
    prs_to_update_base: List[BaseUpdateItem] = field(default_factory=list)
    existing_prs: Dict[str, PullRequest] = field(default_factory=dict)

    @property
    def bookmarks(self) -> List[Bookmark]:
        """Bookmarks to submit, base first."""
        return [segment.bookmarks[0] for segment in self.segments]

    @property
    def has_work(self) -> bool:
        return bool(self.bookmarks_needing_push or self.prs_to_create or self.prs_to_update_base)


@dataclass
class SubmissionError:
    """A single failed operation."""
    error: Exception
    context: str

    def __str__(self) -> str:
        return f"{self.context}: {self.error}"


@dataclass
class SubmissionResult:
    """What execute actually did."""
    success: bool = True
    pushed_bookmarks: List[Bookmark] = field(default_factory=list)
    created_prs: List[PullRequest] = field(default_factory=list)
    updated_prs: List[PullRequest] = field(default_factory=list)
    errors: List[SubmissionError] = field(default_factory=list)


class SubmissionObserver:
    """Progress hooks for planning and execution. All no-ops by default."""

    def on_checking_prs(self, bookmarks: List[Bookmark]) -> None:
        pass

    def on_plan_ready(self, plan: SubmissionPlan) -> None:
        pass

    def on_push_started(self, bookmark: Bookmark, remote: str) -> None:
        pass

    def on_push_completed(self, bookmark: Bookmark, remote: str) -> None:
        pass

    def on_base_update_started(self, bookmark: Bookmark, current_base: str, new_base: str) -> None:
        pass

    def on_base_update_completed(self, bookmark: Bookmark, pr: PullRequest) -> None:
        pass

    def on_pr_started(self, bookmark: Bookmark, title: str, base: str) -> None:
        pass

    def on_pr_completed(self, bookmark: Bookmark, pr: PullRequest) -> None:
        pass

    def on_stack_comment_written(self, bookmark_name: str, pr_number: int) -> None:
        pass

    def on_error(self, error: SubmissionError) -> None:
        pass


def auto_select_bookmark(segment: BookmarkSegment) -> Optional[Bookmark]:
    """Pick the bookmark of a multi-bookmark segment without asking.

    Only possible when exactly one of them has a remote.
    """
    if len(segment.bookmarks) == 1:
        return segment.bookmarks[0]
    with_remote = [b for b in segment.bookmarks if b.has_remote]
    if len(with_remote) == 1:
        return with_remote[0]
    return None


def narrow_segment(segment: BookmarkSegment, bookmark_name: str) -> BookmarkSegment:
    """Copy of segment carrying only bookmark_name."""
    kept = [b for b in segment.bookmarks if b.name == bookmark_name]
    if not kept:
        raise InternalInvariantError(
            f"Bookmark {bookmark_name} is not on segment {', '.join(segment.bookmark_names)}")
    return BookmarkSegment(bookmarks=kept, changes=segment.changes, base_commit=segment.base_commit)


def resolve_default_branch(remote_bookmarks: List[str]) -> str:
    """Choose the default branch among trunk()'s remote bookmarks."""
    for candidate in DEFAULT_BRANCH_CANDIDATES:
        if candidate in remote_bookmarks:
            return candidate
    raise DefaultBranchNotFoundError(
        "Could not find a default branch (main, master or trunk) among the remote bookmarks "
        f"on trunk(): {', '.join(remote_bookmarks) or 'none'}")


def pr_title_for(segment: BookmarkSegment) -> str:
    """First description line of the newest commit, or the bookmark name."""
    if segment.changes and segment.changes[0].description_first_line:
        return segment.changes[0].description_first_line
    return segment.bookmarks[0].name


class StackSubmitter:
    """Plans and executes the submission of one bookmark stack."""

    def __init__(self, config: JjStackConfig, github: GitHubClient, jj: JjInterface,
                 observer: Optional[SubmissionObserver] = None,
                 remote_name: Optional[str] = None):
        """Initialize with config, GitHub and jj clients.

        remote_name, when given, must exist. Otherwise the configured remote
        is preferred and any single GitHub remote is accepted.
        """
        self.config = config
        self.github = github
        self.jj = jj
        self.observer = observer or SubmissionObserver()
        self.remote_name = remote_name

    def base_branch_options(self, segments: List[BookmarkSegment], index: int, default_branch: str) -> List[str]:
        """Branches the PR at index may target."""
        if index == 0:
            return [default_branch]
        return segments[index - 1].bookmark_names

    def analyze(self, segments: List[BookmarkSegment]) -> SubmissionPlan:
        """Work out what needs pushing, creating and retargeting.

        segments run base to tip and must each carry exactly one bookmark.
        """
        if not segments:
            raise InternalInvariantError("No segments to submit")
        for segment in segments:
            if len(segment.bookmarks) != 1:
                raise InternalInvariantError(
                    f"Expected exactly one bookmark per segment, got {len(segment.bookmarks)}: "
                    f"{', '.join(segment.bookmark_names)}")

        remote = select_github_remote(
            self.jj.get_git_remote_list(),
            self.remote_name or self.config.repo.github_remote,
            strict=self.remote_name is not None,
        )
        owner = self.config.repo.github_repo_owner
        name = self.config.repo.github_repo_name
        repo_info = RepoInfo(owner, name) if owner and name else parse_github_remote_url(remote.url)
        self.github.repo_info = repo_info
        logger.info(f"Using remote {remote.name} for {repo_info.full_name}")

        bookmarks = [segment.bookmarks[0] for segment in segments]
        self.observer.on_checking_prs(bookmarks)
        existing_prs: Dict[str, PullRequest] = {}
        for bookmark in bookmarks:
            pr = self.github.find_pull_request_for_branch(bookmark.name)
            if pr is not None:
                existing_prs[bookmark.name] = pr

        default_branch = self.config.repo.default_branch or \
            resolve_default_branch(self.jj.get_trunk_remote_bookmarks())
        logger.debug(f"Default branch: {default_branch}")

        plan = SubmissionPlan(
            target_bookmark=bookmarks[-1].name,
            segments=segments,
            repo_info=repo_info,
            remote=remote.name,
            default_branch=default_branch,
            existing_prs=existing_prs,
        )
        for i, (segment, bookmark) in enumerate(zip(segments, bookmarks)):
            if not bookmark.has_remote or not bookmark.is_synced:
                plan.bookmarks_needing_push.append(bookmark)

            options = self.base_branch_options(segments, i, default_branch)
            pr = existing_prs.get(bookmark.name)
            if pr is None:
                plan.prs_to_create.append(PRCreationItem(bookmark, options, pr_title_for(segment)))
            elif pr.base_ref not in options:
                plan.prs_to_update_base.append(BaseUpdateItem(bookmark, pr, pr.base_ref, options))

        self.observer.on_plan_ready(plan)
        return plan

    def execute(self, plan: SubmissionPlan) -> SubmissionResult:
        """Push, retarget and create PRs in that order, then write stack comments.

        A failed operation is recorded and the rest still run.
        """
        for item in [*plan.prs_to_update_base, *plan.prs_to_create]:
            if len(item.base_branch_options) != 1:
                raise InternalInvariantError(
                    f"Expected exactly one base branch option for {item.bookmark.name}, "
                    f"got {len(item.base_branch_options)}: {', '.join(item.base_branch_options)}")

        result = SubmissionResult()
        prs: Dict[str, PullRequest] = dict(plan.existing_prs)

        for bookmark in plan.bookmarks_needing_push:
            try:
                self.observer.on_push_started(bookmark, plan.remote)
                self.jj.push_bookmark(bookmark.name, plan.remote)
                self.observer.on_push_completed(bookmark, plan.remote)
                result.pushed_bookmarks.append(bookmark)
            except Exception as e:
                self._record(result, e, f"pushing {bookmark.name}")

        for update in plan.prs_to_update_base:
            new_base = update.base_branch_options[0]
            try:
                self.observer.on_base_update_started(update.bookmark, update.current_base, new_base)
                pr = self.github.update_pull_request_base(update.pr.number, new_base)
                self.observer.on_base_update_completed(update.bookmark, pr)
                result.updated_prs.append(pr)
                prs[update.bookmark.name] = pr
            except Exception as e:
                self._record(result, e, f"updating PR base for {update.bookmark.name}")

        for create in plan.prs_to_create:
            base = create.base_branch_options[0]
            try:
                self.observer.on_pr_started(create.bookmark, create.title, base)
                pr = self.github.create_pull_request(create.title, head=create.bookmark.name, base=base)
                self.observer.on_pr_completed(create.bookmark, pr)
                result.created_prs.append(pr)
                prs[create.bookmark.name] = pr
            except Exception as e:
                self._record(result, e, f"creating PR for {create.bookmark.name}")

        self._update_stack_comments(plan, prs, result)
        return result

    def _record(self, result: SubmissionResult, error: Exception, context: str, fatal: bool = True) -> None:
        failure = SubmissionError(error, context)
        logger.error(f"Failed {failure}")
        result.errors.append(failure)
        if fatal:
            result.success = False
        self.observer.on_error(failure)

    def _retained_ancestors(self, root_name: str, root_pr: PullRequest,
                            result: SubmissionResult) -> List[StackEntry]:
        """Entries below the stack root kept from the root PR's previous comment.

        They are kept only while the root's immediate parent PR is merged.
        """
        try:
            previous = self.github.get_stack_comment_data(root_pr.number)
        except Exception as e:
            self._record(result, e, f"reading stack comment for {root_name}", fatal=False)
            return []
        if previous is None:
            return []
        index = previous.index_of(root_name)
        if index <= 0:
            return []

        parent = previous.stack[index - 1]
        try:
            merged = self.github.get_pull_request(parent.prNumber).merged
        except Exception as e:
            self._record(result, e, f"checking merge status of {parent.bookmarkName}", fatal=False)
            return []
        if not merged:
            logger.debug(f"Parent {parent.bookmarkName} of {root_name} is not merged, starting fresh")
            return []
        logger.info(f"Keeping {index} merged ancestor(s) of {root_name} in the stack comment")
        return list(previous.stack[:index])

    def _update_stack_comments(self, plan: SubmissionPlan, prs: Dict[str, PullRequest],
                               result: SubmissionResult) -> None:
        entries: List[StackEntry] = []
        for bookmark in plan.bookmarks:
            pr = prs.get(bookmark.name)
            if pr is None:
                logger.warning(f"No PR for {bookmark.name}, leaving it out of the stack comment")
                continue
            entries.append(StackEntry(bookmarkName=bookmark.name, prUrl=pr.html_url, prNumber=pr.number))
        if not entries:
            return

        root_name = plan.bookmarks[0].name
        root_pr = prs.get(root_name)
        ancestors = self._retained_ancestors(root_name, root_pr, result) if root_pr else []
        data = StackCommentData(stack=ancestors + entries)

        for entry in data.stack:
            try:
                self.github.create_or_update_stack_comment(entry.prNumber, data, entry.bookmarkName)
                self.observer.on_stack_comment_written(entry.bookmarkName, entry.prNumber)
            except Exception as e:
                self._record(result, e, f"creating stack comment for {entry.bookmarkName}", fatal=False)
