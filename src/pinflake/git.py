"""Git command wrappers for committing pinned flake.nix changes."""

import os
import re
import subprocess
from pathlib import Path

import structlog

from .errors import GitError

log = structlog.get_logger('pinflake.git')

FLAKE_FILE = 'flake.nix'


def _get_clean_env() -> dict:
    """Get environment suitable for spawning git.

    Disables interactive prompts so a missing credential fails instead of hanging.
    """
    env = os.environ.copy()
    env['GIT_TERMINAL_PROMPT'] = '0'
    return env


def _run_git(repo_dir: Path, args: list[str]) -> subprocess.CompletedProcess:
    """Run git in repo_dir without checking the exit code."""
    cmd = ['git', *args]
    log.debug('git.run', cmd=' '.join(cmd), repo_dir=str(repo_dir))
    try:
        return subprocess.run(cmd, capture_output=True, text=True, cwd=repo_dir, env=_get_clean_env())
    except FileNotFoundError as e:
        raise GitError('git executable not found') from e


def _git(repo_dir: Path, args: list[str]) -> str:
    """Run git in repo_dir and return stdout, raising GitError on failure."""
    result = _run_git(repo_dir, args)
    if result.returncode != 0:
        raise GitError(f'git {" ".join(args)} failed: {result.stderr.strip() or result.stdout.strip()}')
    return result.stdout


def has_flake_nix(repo_dir: Path) -> bool:
    """Check whether the checkout contains a flake.nix."""
    return (Path(repo_dir) / FLAKE_FILE).is_file()


def is_git_repo(repo_dir: Path) -> bool:
    result = _run_git(repo_dir, ['rev-parse', '--is-inside-work-tree'])
    return result.returncode == 0 and result.stdout.strip() == 'true'


def has_flake_nix_changes(repo_dir: Path) -> bool:
    """Check if flake.nix has uncommitted changes."""
    result = _run_git(repo_dir, ['diff', '--', FLAKE_FILE])
    return result.returncode == 0 and result.stdout.strip() != ''


def ensure_branch(repo_dir: Path, branch: str) -> None:
    """Create or reset `branch` at the current commit and check it out."""
    _git(repo_dir, ['checkout', '-B', branch])


def parse_author(git_author: str) -> tuple[str, str]:
    """Split "Name <email>" into (name, email).

    Examples:
        "Renovate Bot <bot@example.com>" -> ("Renovate Bot", "bot@example.com")
        "Renovate Bot" -> ("Renovate Bot", "")
    """
    name = re.sub(r'\s*<.*$', '', git_author).strip()
    match = re.search(r'<([^>]+)>', git_author)
    return name, match.group(1) if match else ''


def configure_identity(repo_dir: Path, git_author: str) -> None:
    """Set the committer identity for this checkout."""
    name, email = parse_author(git_author)
    _git(repo_dir, ['config', 'user.name', name])
    _git(repo_dir, ['config', 'user.email', email])


def commit_flake_nix(repo_dir: Path, message: str, body: str | None = None) -> None:
    """Stage and commit flake.nix."""
    _git(repo_dir, ['add', FLAKE_FILE])
    args = ['commit', '-m', message]
    if body:
        args += ['-m', body]
    _git(repo_dir, args)
    log.info('git.committed', repo_dir=str(repo_dir), message=message)
