"""CLI entry point for pin-flake-inputs."""

import difflib
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import click

from . import git
from .config import Config, load_config, parse_datetime
from .errors import ConfigError, PinError
from .log import bold, cyan, error, green, magenta, setup_logging, warn, yellow
from .pinning import FLAKE_FILE, MISSING, PINNED, pin_inputs, plan_inputs, preview_inputs

# Per-directory results
CHANGED = 'changed'
UNCHANGED = 'unchanged'
SKIPPED = 'skipped'
FAILED = 'failed'


@click.group()
@click.version_option(package_name='pin-flake-inputs')
@click.option('-v', '--verbose', is_flag=True, help='Show debug log events')
@click.option('--log-format', type=click.Choice(['console', 'json']), default=None, help='Log event format')
@click.option(
    '--config',
    'config_path',
    type=click.Path(dir_okay=False, path_type=Path),
    help='Config file (default: ~/.config/pin-flake-inputs/config.json)',
)
@click.pass_context
def cli(ctx, verbose, log_format, config_path):
    """pin-flake-inputs - pin flake.nix inputs to the commits in flake.lock.

    Pinned inputs get a comment Renovate uses to keep them up to date.
    """
    setup_logging(verbose=verbose, log_format=log_format)
    ctx.ensure_object(dict)
    try:
        ctx.obj['config'] = load_config(config_path)
    except ConfigError as e:
        error(str(e))
        sys.exit(1)


def _format_date(ts: int | None) -> str:
    """Format a lastModified timestamp as ' (YYYY-MM-DD)', matching nix's format."""
    if not ts:
        return ''
    return f' ({datetime.fromtimestamp(ts):%Y-%m-%d})'


def _print_diff(repo_dir: Path, old: str, new: str) -> None:
    path = str(repo_dir / FLAKE_FILE)
    diff = difflib.unified_diff(
        old.splitlines(keepends=True),
        new.splitlines(keepends=True),
        fromfile=f'a/{path}',
        tofile=f'b/{path}',
    )
    click.echo(''.join(diff), nl=False)


def _commit(repo_dir: Path, config: Config, branch: str) -> None:
    if not git.is_git_repo(repo_dir):
        raise PinError(f"'{repo_dir}' is not a git repository, cannot commit")
    if not git.has_flake_nix_changes(repo_dir):
        click.echo(f'No uncommitted changes to {FLAKE_FILE} in {repo_dir}')
        return
    git.ensure_branch(repo_dir, branch)
    if config.git_author:
        git.configure_identity(repo_dir, config.git_author)
    git.commit_flake_nix(repo_dir, config.commit_message, config.commit_body)
    click.echo(f'Committed {FLAKE_FILE} on branch {bold(branch)}')


def _pin_one(repo_dir: Path, config: Config, dry_run: bool, commit: bool, branch: str) -> str:
    """Pin a single checkout and return its result."""
    if not git.has_flake_nix(repo_dir):
        click.echo(f'{magenta("⊘")} No {FLAKE_FILE} in {repo_dir}, skipping')
        return SKIPPED

    if dry_run:
        preview = preview_inputs(repo_dir, migration_deadline=config.migration_deadline)
        if preview is None or preview[1].text == preview[0]:
            click.echo(f'○ No inputs to pin in {repo_dir}')
            return UNCHANGED
        original, outcome = preview
        _print_diff(repo_dir, original, outcome.text)
        click.echo(f'DRY-RUN: would pin {len(outcome.pinned)} input(s) in {repo_dir}')
        return CHANGED

    if not pin_inputs(repo_dir, migration_deadline=config.migration_deadline):
        click.echo(f'○ No inputs to pin or already pinned in {repo_dir}')
        return UNCHANGED

    click.echo(f'{green("✓")} Pinned inputs in {repo_dir / FLAKE_FILE}')
    if commit:
        _commit(repo_dir, config, branch)
    return CHANGED


@cli.command()
@click.argument('dirs', nargs=-1, type=click.Path(file_okay=False, path_type=Path))
@click.option('-n', '--dry-run', is_flag=True, help="Show the diff but don't write flake.nix")
@click.option('--commit', is_flag=True, help='Commit the pinned flake.nix on a branch')
@click.option('--branch', default=None, help='Branch to commit on (default from config)')
@click.option('--migration-deadline', default=None, metavar='DATE', help='Override the annotation migration deadline')
@click.pass_context
def pin(ctx, dirs, dry_run, commit, branch, migration_deadline):
    """Pin flake inputs in one or more checkouts.

    \b
    Examples:
      pin-flake-inputs pin                  # Pin inputs in the current directory
      pin-flake-inputs pin -n ./a ./b       # Show what would change in two flakes
      pin-flake-inputs pin --commit         # Pin and commit on renovate/pin-flake-inputs
    """
    config = ctx.obj['config']
    if migration_deadline:
        try:
            config = replace(config, migration_deadline=parse_datetime(migration_deadline))
        except ConfigError as e:
            raise click.BadParameter(str(e), param_hint='--migration-deadline') from e
    if dry_run and commit:
        raise click.UsageError('--dry-run and --commit are mutually exclusive')
    branch = branch or config.branch

    results = {CHANGED: 0, UNCHANGED: 0, SKIPPED: 0, FAILED: 0}
    for repo_dir in dirs or (Path('.'),):
        try:
            result = _pin_one(repo_dir, config, dry_run, commit, branch)
        except PinError as e:
            error(f'{repo_dir}: {e}')
            result = FAILED
        results[result] += 1

    if len(dirs) > 1:
        click.echo(
            f'{bold("Summary:")} {results[CHANGED]} changed, {results[UNCHANGED]} unchanged, '
            f'{results[SKIPPED]} skipped, {results[FAILED]} failed'
        )
    if results[FAILED]:
        sys.exit(1)


@cli.command()
@click.argument('flake_dir', default='.', type=click.Path(file_okay=False, path_type=Path))
def status(flake_dir):
    """Show which flake inputs are pinned.

    \b
    Examples:
      pin-flake-inputs status       # Status of the current flake
    """
    try:
        statuses = plan_inputs(flake_dir)
    except PinError as e:
        error(str(e))
        sys.exit(1)

    if not statuses:
        click.echo(f'No pinnable inputs in {flake_dir}')
        return

    for entry in statuses:
        name = entry.input.name
        if entry.status == PINNED:
            marker = green('pinned')
        elif entry.status == MISSING:
            marker = yellow('not declared')
        else:
            marker = magenta('unpinned')
        click.echo(f'{bold(name)}: {marker}')
        click.echo(f'    {cyan(entry.pinned_url)}{_format_date(entry.input.last_modified)}')
        if entry.status == MISSING:
            warn(f"input '{name}' is in flake.lock but not declared in {FLAKE_FILE}")


def main():
    cli()


if __name__ == '__main__':
    main()
