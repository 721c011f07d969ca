"""Pretty formatting utilities for CLI output."""

import shutil
import sys
from typing import IO, List, Optional

from ..graph import BranchStack, ChangeGraph
from ..submit import SubmissionPlan, SubmissionResult

def get_term_width() -> int:
    """Get terminal width, default to 80 if can't detect."""
    try:
        return shutil.get_terminal_size().columns
    except (OSError, ValueError):
        return 80


def header(text: str, use_emoji: bool = True) -> str:
    """Create a boxed header with optional emoji."""
    width = max(get_term_width(), len(text) + 8)
    h_line = "─" * (width - 2)
    v_line = "│"
    emoji = "📚 " if use_emoji else ""
    # The emoji renders two columns wide
    pad = width - len(text) - (4 if use_emoji else 0) - 3

    return "\n".join([
        f"┌{h_line}┐",
        f"{v_line} {emoji}{text}{' ' * max(pad, 0)}{v_line}",
        f"└{h_line}┘",
    ])


def print_header(text: str, use_emoji: bool = True, file: Optional[IO[str]] = None) -> None:
    """Print a header to file (default stdout)."""
    if file is None:
        file = sys.stdout
    print(header(text, use_emoji), file=file)


def format_stack(stack: BranchStack, index: int) -> str:
    """Render one stack tip first, the way jj log draws history."""
    lines = [f"Stack {index + 1} ({len(stack.segments)} bookmark{'' if len(stack.segments) == 1 else 's'}):"]
    for segment in reversed(stack.segments):
        names = " | ".join(segment.bookmark_names)
        status = ""
        if len(segment.bookmarks) == 1:
            bookmark = segment.bookmarks[0]
            if not bookmark.has_remote:
                status = " (not pushed)"
            elif not bookmark.is_synced:
                status = " (needs push)"
        lines.append(f"  ◉ {names}{status}")
        for change in segment.changes:
            title = change.description_first_line or "(no description)"
            lines.append(f"  │   {change.change_id} {title}")
    lines.append("  ◆ trunk()")
    return "\n".join(lines)


def format_graph(graph: ChangeGraph) -> str:
    if not graph.stacks:
        return "No stacks found. Create a bookmark with 'jj bookmark create'."
    return "\n\n".join(format_stack(stack, i) for i, stack in enumerate(graph.stacks))


def format_plan(plan: SubmissionPlan) -> str:
    """Describe a submission plan in a few lines per step."""
    lines: List[str] = [
        f"Submitting {plan.target_bookmark} to {plan.repo_info.full_name} "
        f"via {plan.remote} (default branch {plan.default_branch})",
        "",
        "Stack:",
    ]
    for i, bookmark in enumerate(plan.bookmarks):
        pr = plan.existing_prs.get(bookmark.name)
        pr_text = f"PR #{pr.number}" if pr else "no PR"
        lines.append(f"  {i + 1}. {bookmark.name} ({pr_text})")

    if not plan.has_work:
        lines += ["", "Everything is up to date."]
        return "\n".join(lines)

    if plan.bookmarks_needing_push:
        lines += ["", "Push:"]
        lines += [f"  - {b.name}" for b in plan.bookmarks_needing_push]
    if plan.prs_to_update_base:
        lines += ["", "Update PR base:"]
        lines += [f"  - #{u.pr.number} {u.bookmark.name}: {u.current_base} -> {', '.join(u.base_branch_options)}"
                  for u in plan.prs_to_update_base]
    if plan.prs_to_create:
        lines += ["", "Create PR:"]
        lines += [f"  - {c.bookmark.name} -> {', '.join(c.base_branch_options)}: {c.title}"
                  for c in plan.prs_to_create]
    return "\n".join(lines)


def format_result(result: SubmissionResult) -> str:
    lines: List[str] = []
    for bookmark in result.pushed_bookmarks:
        lines.append(f"✓ Pushed {bookmark.name}")
    for pr in result.updated_prs:
        lines.append(f"✓ Updated base of #{pr.number} to {pr.base_ref}: {pr.html_url}")
    for pr in result.created_prs:
        lines.append(f"✓ Created #{pr.number} {pr.head_ref} -> {pr.base_ref}: {pr.html_url}")
    for error in result.errors:
        lines.append(f"✗ Failed {error}")
    lines.append("Done." if result.success else "Finished with errors.")
    return "\n".join(lines)
