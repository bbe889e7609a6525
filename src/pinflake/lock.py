"""Reading flake.lock files.

Only the native nix format (version 7) is expected; other versions are read
anyway with a warning since the parts we use have not changed.
"""

import json
from pathlib import Path

import structlog

from .errors import LockfileError

log = structlog.get_logger('pinflake.lock')

LOCK_FILE = 'flake.lock'
LOCK_VERSION = 7


def read_lock(repo_dir: Path) -> dict:
    """Read and parse <repo_dir>/flake.lock.

    Raises LockfileError if the file is missing, unreadable, or not a JSON object.
    """
    flake_lock = Path(repo_dir) / LOCK_FILE
    try:
        with open(flake_lock) as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise LockfileError(f"no {LOCK_FILE} found in '{repo_dir}'") from e
    except OSError as e:
        raise LockfileError(f"cannot read '{flake_lock}': {e}") from e
    except json.JSONDecodeError as e:
        raise LockfileError(f"'{flake_lock}' is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise LockfileError(f"'{flake_lock}' does not contain a JSON object")

    version = data.get('version')
    if version is not None and version != LOCK_VERSION:
        log.warning('lock.unexpected_version', path=str(flake_lock), version=version, expected=LOCK_VERSION)
    return data


def root_inputs(lock: dict) -> dict:
    """Return the root node's input mapping (input name -> node id or follows path)."""
    nodes = lock.get('nodes')
    if not isinstance(nodes, dict):
        return {}
    root = nodes.get(lock.get('root', 'root'))
    if not isinstance(root, dict):
        return {}
    inputs = root.get('inputs', {})
    return inputs if isinstance(inputs, dict) else {}


def get_node(lock: dict, node_id) -> dict | None:
    """Resolve a node id to its node, or None for follows paths and dangling ids."""
    if not isinstance(node_id, str):
        return None
    node = lock.get('nodes', {}).get(node_id)
    return node if isinstance(node, dict) else None
