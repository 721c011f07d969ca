"""CLI entry point."""

import os
import sys
import click
import logging
from typing import Any, Dict, List, NoReturn, Optional, Tuple
from click import Context
from github import GithubException

from ...config import Config, default_config
from ...config.config_parser import parse_config
from ...graph import BookmarkSegment, build_change_graph, get_stack_segments_to_submit
from ...github import (
    GitHubClient, PullRequest, clear_saved_token, find_github_token, save_token, saved_token_path,
)
from ...jj import RealJj
from ...jj.types import Bookmark
from ...pretty import format_graph, format_plan, format_result, print_header
from ...submit import (
    StackSubmitter, SubmissionError, SubmissionObserver, auto_select_bookmark, narrow_segment,
)
from ...typing import AmbiguousRemoteError, AuthenticationError, JjCommandError, JjStackError

# Get module logger
logger = logging.getLogger(__name__)

def fail(err: Exception) -> NoReturn:
    """Print a user-facing error and exit."""
    click.echo(f"Error: {err}", err=True)
    sys.exit(1)

class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """jj-stack - Stacked pull requests on GitHub from jj bookmarks."""
    ctx.obj = {}

cli.add_alias('st', 'status')

class ClickObserver(SubmissionObserver):
    """Echo submission progress as it happens."""

    def on_checking_prs(self, bookmarks: List[Bookmark]) -> None:
        click.echo(f"Checking for existing PRs for {len(bookmarks)} bookmark(s)...")

    def on_push_started(self, bookmark: Bookmark, remote: str) -> None:
        click.echo(f"Pushing {bookmark.name} to {remote}...")

    def on_base_update_started(self, bookmark: Bookmark, current_base: str, new_base: str) -> None:
        click.echo(f"Updating PR base for {bookmark.name}: {current_base} -> {new_base}...")

    def on_pr_started(self, bookmark: Bookmark, title: str, base: str) -> None:
        click.echo(f"Creating PR for {bookmark.name} -> {base}...")

    def on_pr_completed(self, bookmark: Bookmark, pr: PullRequest) -> None:
        click.echo(f"  {pr.html_url}")

    def on_error(self, error: SubmissionError) -> None:
        click.echo(f"  Failed {error}", err=True)

def setup_jj(directory: Optional[str] = None) -> Tuple[Config, RealJj]:
    """Setup jj command and config."""
    if directory:
        os.chdir(directory)

    # Check we're inside a jj repo
    jj = RealJj(default_config())
    try:
        jj.run_cmd(["root"])
    except JjCommandError as e:
        click.echo(f"Error: not in a jj repository\n{e}", err=True)
        sys.exit(2)

    config = Config(parse_config())
    return config, RealJj(config)

TOKEN_SOURCES = (
    "jj-stack looks for a GitHub token in this order:\n"
    "1. GitHub CLI: run 'gh auth login'\n"
    "2. GITHUB_TOKEN or GH_TOKEN env var\n"
    "3. Saved token in ~/.config/jj-stack/config.json as {\"github\": {\"token\": \"...\"}}\n"
    "4. A personal access token with 'repo' scope entered at the prompt\n"
    "   (create one at https://github.com/settings/tokens/new), saved for next time"
)

def prompt_for_token() -> str:
    """Ask for a personal access token on the terminal."""
    click.echo(f"No GitHub token found.\n{TOKEN_SOURCES}\n", err=True)
    token = click.prompt("GitHub token", hide_input=True, default="", show_default=False, err=True)
    token = token.strip()
    if not token:
        raise AuthenticationError("No GitHub token found. Run 'jj-stack auth help' for the options.")
    return token

def setup_github(config: Config) -> GitHubClient:
    """Create a GitHub client from the first token we can find, else ask for one."""
    from ...github.adapters import PyGithubAdapter

    token = find_github_token()
    if token:
        return GitHubClient(config, PyGithubAdapter.from_token(token))

    token = prompt_for_token()
    github = GitHubClient(config, PyGithubAdapter.from_token(token))
    try:
        github.get_authenticated_login()
    except GithubException as e:
        raise AuthenticationError(f"GitHub rejected the token: {e}")
    try:
        path = save_token(token)
    except OSError as e:
        logger.warning(f"Could not save GitHub token: {e}")
    else:
        click.echo(f"Token saved to {path}", err=True)
    return github

def choose_bookmarks(segments: List[BookmarkSegment], target: str, config: Config) -> List[BookmarkSegment]:
    """Reduce every segment to a single bookmark, asking when it can't be guessed."""
    narrowed: List[BookmarkSegment] = []
    for segment in segments:
        if target in segment.bookmark_names:
            narrowed.append(narrow_segment(segment, target))
            continue
        chosen = auto_select_bookmark(segment) if config.user.auto_select_bookmark else None
        if chosen is None and len(segment.bookmarks) == 1:
            chosen = segment.bookmarks[0]
        if chosen is None:
            name = click.prompt(
                f"Several bookmarks point at {segment.change_id}, which one should get a PR?",
                type=click.Choice(segment.bookmark_names))
        else:
            name = chosen.name
        narrowed.append(narrow_segment(segment, name))
    return narrowed

@cli.command(name="status", help="Show all bookmark stacks")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if jj-stack was started in DIRECTORY instead of the current working directory')
@click.option('--no-fetch', is_flag=True, help="Don't fetch from remotes first")
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def status(directory: Optional[str], no_fetch: bool, verbose: int) -> None:
    """Status command."""
    from ... import setup_logging
    setup_logging(verbose)

    _config, jj = setup_jj(directory)
    try:
        if not no_fetch:
            jj.git_fetch()
        graph = build_change_graph(jj)
    except JjStackError as e:
        fail(e)
    print_header("jj-stack status")
    click.echo(format_graph(graph))

@cli.command(name="submit", help="Push a bookmark and everything below it and open or retarget their PRs")
@click.argument('bookmark')
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if jj-stack was started in DIRECTORY instead of the current working directory')
@click.option('--dry-run', is_flag=True, help="Only show what would happen")
@click.option('--no-fetch', is_flag=True, help="Don't fetch from remotes first")
@click.option('--remote', type=str, help="Git remote to push to")
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def submit(bookmark: str, directory: Optional[str], dry_run: bool, no_fetch: bool,
           remote: Optional[str], verbose: int) -> None:
    """Submit command."""
    from ... import setup_logging
    setup_logging(verbose)

    config, jj = setup_jj(directory)
    if dry_run:
        config.tool.pretend = True

    try:
        if not no_fetch:
            jj.git_fetch()
        graph = build_change_graph(jj)
        segments = choose_bookmarks(get_stack_segments_to_submit(graph, bookmark), bookmark, config)
        github = setup_github(config)
        submitter = StackSubmitter(config, github, jj, ClickObserver(), remote_name=remote)
        try:
            plan = submitter.analyze(segments)
        except AmbiguousRemoteError as e:
            submitter.remote_name = click.prompt(f"{e}\nWhich remote?", type=click.Choice(e.remotes))
            plan = submitter.analyze(segments)

        click.echo(format_plan(plan))
        if config.tool.pretend:
            click.echo("\nDry run, nothing was changed.")
            return

        click.echo("")
        result = submitter.execute(plan)
    except (JjStackError, GithubException) as e:
        fail(e)

    click.echo(format_result(result))
    if not result.success:
        sys.exit(1)

@cli.group(name="auth", help="GitHub authentication")
def auth() -> None:
    pass

@auth.command(name="test", help="Check that a GitHub token can be found and works")
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def auth_test(verbose: int) -> None:
    """Auth test command."""
    from ... import setup_logging
    setup_logging(verbose)

    try:
        github = setup_github(Config(parse_config()))
        login = github.get_authenticated_login()
    except (AuthenticationError, GithubException) as e:
        fail(e)
    click.echo(f"Authenticated to GitHub as {login}")

@auth.command(name="logout", help="Forget the GitHub token saved by jj-stack")
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def auth_logout(verbose: int) -> None:
    """Auth logout command."""
    from ... import setup_logging
    setup_logging(verbose)

    try:
        cleared = clear_saved_token()
    except OSError as e:
        fail(e)
    if cleared:
        click.echo(f"Cleared saved GitHub token from {saved_token_path()}")
    else:
        click.echo("No saved GitHub token to clear")
    click.echo("GitHub CLI and env var tokens are not touched, use 'gh auth logout' for the former.")

@auth.command(name="help", help="Show where jj-stack looks for a GitHub token")
def auth_help() -> None:
    """Auth help command."""
    click.echo(TOKEN_SOURCES)


def main() -> None:
    """Main entry point."""
    cli(obj={})

if __name__ == "__main__":
    main()
