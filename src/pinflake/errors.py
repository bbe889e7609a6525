"""Exceptions raised by pin-flake-inputs.

Everything that aborts a pinning pass derives from PinError so the CLI can
report it without a traceback. Per-input problems are never raised; they are
logged and the input is skipped.
"""


class PinError(Exception):
    """Base class for fatal pinning errors."""


class LockfileError(PinError):
    """Raised when flake.lock is missing or cannot be parsed."""


class DeclarationFileError(PinError):
    """Raised when flake.nix cannot be read or written."""


class MigrationExpiredError(PinError):
    """Raised when the annotation prefix migration is past its deadline."""


class GitError(PinError):
    """Raised when a git command fails."""


class ConfigError(PinError):
    """Raised when the configuration file is malformed."""
