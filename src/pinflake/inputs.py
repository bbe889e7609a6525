"""Extract pinnable inputs from a parsed flake.lock.

Only direct inputs of the root node are considered. Anything that cannot be
pinned (follows references, unsupported source types, nodes missing required
fields) is skipped quietly so one odd input never blocks the others.
"""

from dataclasses import dataclass

import structlog

from .lock import get_node, root_inputs

log = structlog.get_logger('pinflake.inputs')

GITLAB_DEFAULT_HOST = 'gitlab.com'

# Source types we know how to pin
FORGE_TYPES = ('github', 'gitlab')
GIT_TYPE = 'git'


@dataclass(frozen=True)
class PinnableInput:
    """A root input that can be pinned to an exact revision."""

    name: str
    type: str  # github, gitlab, git
    rev: str
    owner: str | None = None
    repo: str | None = None
    host: str | None = None  # gitlab only
    url: str | None = None  # git only, as locked
    original_url: str | None = None  # git only, as written by the user
    original_type: str | None = None
    original_ref: str | None = None
    last_modified: int | None = None


def _skip(name: str, reason: str, **kw) -> None:
    log.debug('inputs.skipped', input=name, reason=reason, **kw)


def _to_pinnable(name: str, node: dict) -> PinnableInput | None:
    """Convert one lock node to a PinnableInput, or None if it can't be pinned."""
    locked = node.get('locked')
    if not isinstance(locked, dict):
        _skip(name, 'no locked section')
        return None
    original = node.get('original')
    if not isinstance(original, dict):
        original = {}

    typ = locked.get('type')
    rev = locked.get('rev')
    if not typ or not rev:
        _skip(name, 'missing type or rev', type=typ)
        return None

    original_ref = original.get('ref') or locked.get('ref')

    if typ in FORGE_TYPES:
        owner = locked.get('owner')
        repo = locked.get('repo')
        if not owner or not repo:
            _skip(name, 'missing owner or repo', type=typ)
            return None
        return PinnableInput(
            name=name,
            type=typ,
            rev=rev,
            owner=owner,
            repo=repo,
            host=(locked.get('host') or GITLAB_DEFAULT_HOST) if typ == 'gitlab' else None,
            original_type=original.get('type'),
            original_ref=original_ref,
            last_modified=locked.get('lastModified'),
        )

    if typ == GIT_TYPE:
        url = locked.get('url')
        if not url:
            _skip(name, 'missing url', type=typ)
            return None
        return PinnableInput(
            name=name,
            type=typ,
            rev=rev,
            url=url,
            original_url=original.get('url'),
            original_type=original.get('type'),
            original_ref=original_ref,
            last_modified=locked.get('lastModified'),
        )

    _skip(name, 'unsupported type', type=typ)
    return None


def extract_pinnable_inputs(lock: dict) -> list[PinnableInput]:
    """Return the pinnable root inputs of a lock, in root input order.

    Never raises on malformed entries; they are skipped.
    """
    pinnable = []
    for name, node_id in root_inputs(lock).items():
        node = get_node(lock, node_id)
        if node is None:
            _skip(name, 'follows reference or unknown node')
            continue
        entry = _to_pinnable(name, node)
        if entry is not None:
            pinnable.append(entry)
    return pinnable
