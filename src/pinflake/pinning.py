"""Pin the inputs of a flake checkout.

Reads flake.lock once, rewrites flake.nix in memory input by input, and
writes it back at most once.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import structlog

from .errors import DeclarationFileError
from .inputs import PinnableInput, extract_pinnable_inputs
from .lock import read_lock
from .rewrite import (
    build_pinned_url,
    check_migration_deadline,
    find_declaration,
    is_already_pinned,
    pin_input,
    strip_deprecated_prefix,
)

log = structlog.get_logger('pinflake.pinning')

FLAKE_FILE = 'flake.nix'

PINNED = 'pinned'
UNPINNED = 'unpinned'
MISSING = 'missing'


@dataclass
class PinOutcome:
    """Result of pinning inputs in a flake.nix text."""

    text: str
    pinned: list[PinnableInput] = field(default_factory=list)
    migrated: bool = False


@dataclass
class InputStatus:
    """Pinning status of a single input."""

    input: PinnableInput
    pinned_url: str
    status: str  # PINNED, UNPINNED or MISSING


def pin_flake_text(text: str, inputs: list[PinnableInput]) -> PinOutcome:
    """Pin every input in `text`, in order, against one shared buffer.

    Later inputs see the edits of earlier ones. An input is reported as
    pinned only if its rewrite actually changed the text.
    """
    migrated = strip_deprecated_prefix(text)
    outcome = PinOutcome(text=migrated, migrated=migrated != text)

    for entry in inputs:
        before = outcome.text
        outcome.text = pin_input(before, entry)
        if outcome.text != before:
            outcome.pinned.append(entry)

    return outcome


def _read_flake(flake_nix: Path) -> str:
    try:
        with open(flake_nix, newline='') as f:
            return f.read()
    except FileNotFoundError as e:
        raise DeclarationFileError(f"no {FLAKE_FILE} found in '{flake_nix.parent}'") from e
    except OSError as e:
        raise DeclarationFileError(f"cannot read '{flake_nix}': {e}") from e


def _write_flake(flake_nix: Path, text: str) -> None:
    try:
        flake_nix.write_text(text, newline='')
    except OSError as e:
        raise DeclarationFileError(f"cannot write '{flake_nix}': {e}") from e


def preview_inputs(
    repo_dir: Path,
    now: datetime | None = None,
    migration_deadline: datetime | None = None,
) -> tuple[str, PinOutcome] | None:
    """Compute the pinned flake.nix without writing it.

    Returns (original text, outcome), or None when flake.lock has nothing
    pinnable.
    """
    repo_dir = Path(repo_dir)
    inputs = extract_pinnable_inputs(read_lock(repo_dir))
    if not inputs:
        log.info('pinning.no_pinnable_inputs', repo_dir=str(repo_dir))
        return None

    check_migration_deadline(now, migration_deadline)
    original = _read_flake(repo_dir / FLAKE_FILE)
    return original, pin_flake_text(original, inputs)


def pin_inputs(
    repo_dir: Path,
    now: datetime | None = None,
    migration_deadline: datetime | None = None,
    dry_run: bool = False,
) -> bool:
    """Pin flake.nix inputs to the revisions in flake.lock.

    Args:
        repo_dir: Checkout containing flake.nix and flake.lock
        now: Current time for the migration deadline check (defaults to now)
        migration_deadline: Override for the prefix migration deadline
        dry_run: Compute and log changes but don't write flake.nix

    Returns True if flake.nix changed (or would change, with dry_run).
    """
    repo_dir = Path(repo_dir)
    preview = preview_inputs(repo_dir, now=now, migration_deadline=migration_deadline)
    if preview is None:
        return False
    original, outcome = preview

    if outcome.migrated:
        log.info('pinning.prefix_migrated', repo_dir=str(repo_dir))
    for entry in outcome.pinned:
        log.info('pinning.input_pinned', input=entry.name, rev=entry.rev)

    changed = outcome.text != original
    if changed and not dry_run:
        _write_flake(repo_dir / FLAKE_FILE, outcome.text)
    return changed


def plan_inputs(repo_dir: Path) -> list[InputStatus]:
    """Report, without modifying anything, how each pinnable input is declared."""
    repo_dir = Path(repo_dir)
    inputs = extract_pinnable_inputs(read_lock(repo_dir))
    if not inputs:
        return []

    text = _read_flake(repo_dir / FLAKE_FILE)
    statuses = []
    for entry in inputs:
        if is_already_pinned(text, entry):
            status = PINNED
        elif find_declaration(text, entry.name) is None:
            status = MISSING
        else:
            status = UNPINNED
        statuses.append(InputStatus(input=entry, pinned_url=build_pinned_url(entry), status=status))
    return statuses
