"""Change graph construction from jj bookmarks.

Bookmarks are walked one at a time from their commit back toward trunk.
Every other tracked bookmark met on the way splits the walk into a new
segment, and a bookmark whose segment was already collected by an earlier
walk ends it. Segments are keyed by the change id of their tip commit so
that several bookmarks on one commit share a single segment.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..jj import PAGE_SIZE
from ..jj.types import Bookmark, LogEntry
from ..util import ensure
from ..typing import (
    TRUNK, BookmarkNotFoundError, ChangeID, CommitID, InternalInvariantError, JjInterface,
    MergeCommitError,
)

# Get module logger
logger = logging.getLogger(__name__)


@dataclass
class BookmarkSegment:
    """Commits introduced by one or more bookmarks sitting on the same commit.

    ``changes`` is newest first and never overlaps another segment.
    ``base_commit`` is the commit id of the stacking parent's bookmark, or
    ``TRUNK`` for a stack root.
    """
    bookmarks: List[Bookmark]
    changes: List[LogEntry] = field(default_factory=list)
    base_commit: str = TRUNK

    @property
    def change_id(self) -> ChangeID:
        return self.bookmarks[0].change_id

    @property
    def commit_id(self) -> CommitID:
        return self.bookmarks[0].commit_id

    @property
    def bookmark_names(self) -> List[str]:
        return [b.name for b in self.bookmarks]

    def __str__(self) -> str:
        return f"{'|'.join(self.bookmark_names)} ({len(self.changes)} changes)"


@dataclass
class BranchStack:
    """Segments from a stack root (on trunk) up to one leaf, base first."""
    segments: List[BookmarkSegment]

    @property
    def leaf(self) -> BookmarkSegment:
        return self.segments[-1]

    def index_of(self, bookmark_name: str) -> Optional[int]:
        """Position of the segment carrying bookmark_name, if any."""
        for i, segment in enumerate(self.segments):
            if bookmark_name in segment.bookmark_names:
                return i
        return None


@dataclass
class ChangeGraph:
    """All of the user's bookmarks organized into stacks.

    ``stacking_relationships`` maps a child segment's change id to its
    parent segment's change id. Roots and leaves are change ids too.
    """
    bookmarks: Dict[str, Bookmark] = field(default_factory=dict)
    bookmark_to_change_id: Dict[str, ChangeID] = field(default_factory=dict)
    segments: Dict[ChangeID, BookmarkSegment] = field(default_factory=dict)
    stacking_relationships: Dict[ChangeID, ChangeID] = field(default_factory=dict)
    roots: List[ChangeID] = field(default_factory=list)
    leaves: List[ChangeID] = field(default_factory=list)
    stacks: List[BranchStack] = field(default_factory=list)

    def segment_for_bookmark(self, bookmark_name: str) -> Optional[BookmarkSegment]:
        change_id = self.bookmark_to_change_id.get(bookmark_name)
        if change_id is None:
            return None
        return self.segments[change_id]

    def stack_containing(self, bookmark_name: str) -> Optional[BranchStack]:
        """First stack that has bookmark_name anywhere in it."""
        for stack in self.stacks:
            if stack.index_of(bookmark_name) is not None:
                return stack
        return None

    def children_of(self, change_id: ChangeID) -> List[ChangeID]:
        return [child for child, parent in self.stacking_relationships.items() if parent == change_id]


@dataclass
class DiscoveredSegment:
    """A segment found by one walk, before it is stored in the graph."""
    bookmark_names: List[str]
    change_id: ChangeID
    changes: List[LogEntry]


@dataclass
class DiscoveryResult:
    """Outcome of walking one bookmark toward trunk.

    ``segments`` run tip to base. ``base_bookmark`` is set when the walk
    stopped at an already collected bookmark, in which case ``base_commit``
    is that bookmark's commit. Otherwise ``base_commit`` is the common
    ancestor with trunk.
    """
    segments: List[DiscoveredSegment]
    base_bookmark: Optional[str]
    base_commit: str


def traverse_and_discover_segments(bookmark: Bookmark, common_ancestor: LogEntry,
                                   fully_collected: Set[str], bookmark_commits: Dict[str, CommitID],
                                   jj: JjInterface) -> DiscoveryResult:
    """Walk from bookmark's commit back to the common ancestor, page by page.

    Raises MergeCommitError on the first commit with more than one parent.
    """
    segments: List[DiscoveredSegment] = []
    current: Optional[DiscoveredSegment] = None
    cursor: Optional[str] = None

    while True:
        changes = jj.get_changes_between(common_ancestor.commit_id, bookmark.commit_id, cursor)
        logger.debug(f"Walking {bookmark.name}: got {len(changes)} changes (cursor={cursor})")

        for change in changes:
            if len(change.parents) > 1:
                raise MergeCommitError(change.commit_id, bookmark.name)

            names = sorted(n for n in change.local_bookmarks if n in bookmark_commits)
            if current is None:
                # Tip commit, always belongs to the walked bookmark's segment
                current = DiscoveredSegment(names or [bookmark.name], change.change_id, [change])
                continue
            if not names:
                current.changes.append(change)
                continue

            collected = [n for n in names if n in fully_collected]
            if collected:
                logger.debug(f"Found fully collected bookmark {collected[0]} at {change.commit_id}")
                segments.append(current)
                return DiscoveryResult(segments, collected[0], change.commit_id)

            logger.debug(f"Found bookmark {', '.join(names)} on path of {bookmark.name}")
            segments.append(current)
            current = DiscoveredSegment(names, change.change_id, [change])

        if len(changes) < PAGE_SIZE:
            break
        # Oldest commit of this page bounds the next one
        cursor = changes[-1].commit_id

    if current is not None:
        segments.append(current)
    return DiscoveryResult(segments, None, common_ancestor.commit_id)


def group_segments_into_stacks(segments: Dict[ChangeID, BookmarkSegment],
                               stacking_relationships: Dict[ChangeID, ChangeID]) -> List[BranchStack]:
    """Build one stack per leaf segment, in segment insertion order.

    Stacks that share a prefix each carry their own copy of the path, the
    segment objects themselves are shared.
    """
    parents = set(stacking_relationships.values())
    stacks: List[BranchStack] = []
    for change_id, segment in segments.items():
        parent = stacking_relationships.get(change_id)
        segment.base_commit = segments[parent].commit_id if parent else TRUNK

    for leaf in segments:
        if leaf in parents:
            continue
        path = [leaf]
        while path[0] in stacking_relationships:
            path.insert(0, stacking_relationships[path[0]])
            if len(path) > len(segments):
                raise InternalInvariantError(f"Cycle in stacking relationships at {path[0]}")
        stacks.append(BranchStack([segments[c] for c in path]))
    return stacks


def build_change_graph(jj: JjInterface) -> ChangeGraph:
    """Build the change graph for all bookmarks on the user's own commits."""
    bookmarks = jj.get_my_bookmarks()
    graph = ChangeGraph(bookmarks={b.name: b for b in bookmarks})
    if not bookmarks:
        logger.info("No bookmarks found")
        return graph

    bookmark_commits = {b.name: b.commit_id for b in bookmarks}
    fully_collected: Set[str] = set()

    for bookmark in bookmarks:
        if bookmark.name in fully_collected:
            logger.debug(f"Skipping {bookmark.name}, already collected")
            continue

        common_ancestor = jj.find_common_ancestor(bookmark.name)
        result = traverse_and_discover_segments(
            bookmark, common_ancestor, fully_collected, bookmark_commits, jj)
        if not result.segments:
            logger.info(f"Bookmark {bookmark.name} has no changes beyond trunk, skipping")
            continue

        for found in result.segments:
            graph.segments[found.change_id] = BookmarkSegment(
                bookmarks=[graph.bookmarks[n] for n in found.bookmark_names],
                changes=found.changes,
            )
            for name in found.bookmark_names:
                graph.bookmark_to_change_id[name] = found.change_id
                fully_collected.add(name)
            logger.debug(f"Found segment for {', '.join(found.bookmark_names)}: {len(found.changes)} changes")

        for child, parent in zip(result.segments, result.segments[1:]):
            graph.stacking_relationships[child.change_id] = parent.change_id
            logger.debug(f"Stacking: {child.bookmark_names} -> {parent.bookmark_names}")

        outermost = result.segments[-1]
        if result.base_bookmark:
            base_change_id = graph.bookmark_to_change_id[result.base_bookmark]
            graph.stacking_relationships[outermost.change_id] = base_change_id
            logger.debug(f"Stacking: {outermost.bookmark_names} -> {result.base_bookmark}")
        else:
            graph.roots.append(outermost.change_id)
            logger.debug(f"Root: {outermost.bookmark_names} on {result.base_commit}")

    graph.stacks = group_segments_into_stacks(graph.segments, graph.stacking_relationships)
    graph.leaves = [stack.leaf.change_id for stack in graph.stacks]
    logger.info(f"Built change graph: {len(graph.segments)} segments, {len(graph.stacks)} stacks")
    return graph


def get_stack_segments_to_submit(graph: ChangeGraph, bookmark_name: str) -> List[BookmarkSegment]:
    """Segments from the stack root up to and including bookmark_name."""
    if bookmark_name not in graph.bookmarks:
        raise BookmarkNotFoundError(f"Bookmark '{bookmark_name}' not found among your bookmarks")
    stack = graph.stack_containing(bookmark_name)
    if stack is None:
        raise BookmarkNotFoundError(
            f"Bookmark '{bookmark_name}' is not part of any stack (is it already on trunk?)")
    index = ensure(stack.index_of(bookmark_name))
    return stack.segments[:index + 1]
