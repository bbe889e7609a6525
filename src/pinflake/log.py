"""Logging setup and terminal output helpers.

Structured events go through structlog; the CLI's own human-facing output
uses click.echo with nix-style coloring.
"""

import logging
import os
import sys

import click
import structlog

LOG_LEVEL_ENV = 'PIN_FLAKE_INPUTS_LOG_LEVEL'
LOG_FORMAT_ENV = 'PIN_FLAKE_INPUTS_LOG_FORMAT'


def _stderr_logger_factory(*args) -> structlog.PrintLogger:
    # Look up sys.stderr on every call so a swapped stream (click's test runner) is honored
    return structlog.PrintLogger(sys.stderr)


def setup_logging(verbose: bool = False, log_format: str | None = None) -> None:
    """Configure structlog for the process.

    Level comes from --verbose, then $PIN_FLAKE_INPUTS_LOG_LEVEL, then INFO.
    Format is 'console' (default) or 'json'.
    """
    if verbose:
        level_name = 'DEBUG'
    else:
        level_name = os.environ.get(LOG_LEVEL_ENV, 'INFO').upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    fmt = (log_format or os.environ.get(LOG_FORMAT_ENV, 'console')).lower()
    if fmt == 'json':
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=_use_color())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt='iso', utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


# ANSI color codes for terminal output (matching nix's style)
def _use_color() -> bool:
    """Check if we should use colored output."""
    return sys.stderr.isatty()


def yellow(text: str) -> str:
    """Yellow text for warnings."""
    if _use_color():
        return f'\033[1;33m{text}\033[0m'
    return text


def red(text: str) -> str:
    """Red text for errors."""
    if _use_color():
        return f'\033[1;31m{text}\033[0m'
    return text


def green(text: str) -> str:
    if _use_color():
        return f'\033[32;1m{text}\033[0m'
    return text


def magenta(text: str) -> str:
    """Magenta/bold text for bullets and emphasis."""
    if _use_color():
        return f'\033[1;35m{text}\033[0m'
    return text


def cyan(text: str) -> str:
    """Cyan text for URLs."""
    if _use_color():
        return f'\033[36m{text}\033[0m'
    return text


def bold(text: str) -> str:
    if _use_color():
        return f'\033[1m{text}\033[0m'
    return text


def warn(msg: str) -> None:
    """Print a warning message to stderr in nix style."""
    click.echo(f'{yellow("warning:")} {msg}', err=True)


def error(msg: str) -> None:
    """Print an error message to stderr in nix style."""
    click.echo(f'{red("error:")} {msg}', err=True)
