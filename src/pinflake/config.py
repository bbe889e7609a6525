"""Configuration for pin-flake-inputs.

Settings are layered, later sources winning:
- Built-in defaults
- Config file: $XDG_CONFIG_HOME/pin-flake-inputs/config.json (or --config PATH)
- Environment: PIN_FLAKE_INPUTS_<KEY>, e.g. PIN_FLAKE_INPUTS_BRANCH
- Command line options
"""

import json
import os
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from pathlib import Path

from .errors import ConfigError
from .log import warn
from .rewrite import MIGRATION_DEADLINE

ENV_PREFIX = 'PIN_FLAKE_INPUTS_'


@dataclass(frozen=True)
class Config:
    """Resolved settings."""

    migration_deadline: datetime = MIGRATION_DEADLINE
    branch: str = 'renovate/pin-flake-inputs'
    commit_message: str = 'chore(deps): pin flake inputs'
    commit_body: str = (
        'Pin Nix flake inputs to specific commits from flake.lock.\n\n'
        'This enables Renovate to track and update them properly.'
    )
    git_author: str | None = None  # "Name <email>"


def parse_datetime(value: str) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC.

    Examples:
        2025-12-02 -> 2025-12-02T00:00:00+00:00
        2025-12-02T12:00:00Z -> 2025-12-02T12:00:00+00:00
    """
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as e:
        raise ConfigError(f'invalid date {value!r}, expected YYYY-MM-DD or an ISO datetime') from e
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _get_user_config_path(env) -> Path:
    """Get the user config file path."""
    config_home = env.get('XDG_CONFIG_HOME') or os.path.expanduser('~/.config')
    return Path(config_home) / 'pin-flake-inputs' / 'config.json'


def _load_config_file(path: Path) -> dict:
    """Load a config file, returning an empty dict if it doesn't exist."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in config '{path}': {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config '{path}' must contain a JSON object")
    return data


def _coerce(key: str, value, source: str):
    if key == 'migration_deadline':
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str):
            raise ConfigError(f'{source}: migration_deadline must be a date string')
        return parse_datetime(value)
    if not isinstance(value, str):
        raise ConfigError(f'{source}: {key} must be a string')
    return value


def load_config(path: Path | None = None, env: dict | None = None) -> Config:
    """Build the effective Config from the config file and environment.

    An explicit `path` must exist; the default user path is optional.
    """
    env = os.environ if env is None else env
    known = {f.name for f in fields(Config)}

    if path is not None and not Path(path).exists():
        raise ConfigError(f"config file '{path}' does not exist")
    config_path = Path(path) if path is not None else _get_user_config_path(env)

    overrides = {}
    for key, value in _load_config_file(config_path).items():
        if key not in known:
            warn(f"ignoring unknown config key '{key}' in {config_path}")
            continue
        overrides[key] = _coerce(key, value, str(config_path))

    for key in known:
        env_value = env.get(ENV_PREFIX + key.upper())
        if env_value:
            overrides[key] = _coerce(key, env_value, ENV_PREFIX + key.upper())

    return replace(Config(), **overrides)
