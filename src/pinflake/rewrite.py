"""Rewrite flake.nix declarations to pin inputs to exact revisions.

flake.nix is treated as plain text: declarations are located with anchored
patterns and replaced by index range, so everything around them keeps its
formatting. Two declaration shapes are recognized:

    nixpkgs.url = "github:NixOS/nixpkgs/nixos-unstable";

    dotfiles = {
      url = "github:nalabelle/dotfiles";
      inputs.nixpkgs.follows = "nixpkgs";
    };

Either may also be written with an ``inputs.`` attribute path prefix. A pinned
declaration gets a comment line above its url, e.g.
``# depName=NixOS/nixpkgs branch=nixos-unstable``, which Renovate uses to keep
the pin current.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from .errors import MigrationExpiredError
from .inputs import FORGE_TYPES, GIT_TYPE, GITLAB_DEFAULT_HOST, PinnableInput

log = structlog.get_logger('pinflake.rewrite')

INLINE = 'inline'
BLOCK = 'block'

# Older releases wrote "# renovate: depName=...". The prefix is stripped until
# the deadline, after which a run fails.
DEPRECATED_PREFIX = 'renovate:'
MIGRATION_DEADLINE = datetime(2025, 12, 2, tzinfo=timezone.utc)
_DEPRECATED_PREFIX_RE = re.compile(r'^([ \t]*#[ \t]*)renovate:[ \t]+', re.MULTILINE)

# The url attribute inside a block: indent, value
_URL_LINE_RE = re.compile(r'^([ \t]*)url[ \t]*=[ \t]*"([^"]*)";', re.MULTILINE)


@dataclass(frozen=True)
class Declaration:
    """Location of an input declaration in flake.nix."""

    shape: str  # INLINE or BLOCK
    start: int
    end: int
    indent: str
    prefix: str  # 'inputs.' or ''


def _source_url(entry: PinnableInput) -> str:
    """The git URL as the user wrote it, with the git+ scheme restored."""
    url = entry.original_url or entry.url
    if not url:
        raise ValueError(f'git input {entry.name} has no url')
    if entry.original_type == GIT_TYPE and url.startswith(('https://', 'http://')):
        url = f'git+{url}'
    return url


def build_pinned_url(entry: PinnableInput) -> str:
    """Build the flake URL that pins an input to its locked revision.

    Examples:
        github -> github:NixOS/nixpkgs/<rev>
        gitlab -> gitlab:group/project/<rev>
        git    -> git+https://example.com/repo?rev=<rev>
    """
    if entry.type in FORGE_TYPES:
        if not entry.owner or not entry.repo:
            raise ValueError(f'{entry.type} input {entry.name} missing owner or repo')
        return f'{entry.type}:{entry.owner}/{entry.repo}/{entry.rev}'
    if entry.type == GIT_TYPE:
        base = _source_url(entry).split('?', 1)[0]
        if not base:
            raise ValueError(f'git input {entry.name} has an invalid url')
        return f'{base}?rev={entry.rev}'
    raise ValueError(f'unsupported input type: {entry.type}')


def build_annotation(entry: PinnableInput, indent: str = '') -> str:
    """Build the comment line Renovate reads to track a pinned input.

    Token order is fixed: depName/url, then branch, then host (gitlab only).
    """
    parts = []
    if entry.type in FORGE_TYPES:
        parts.append(f'depName={entry.owner}/{entry.repo}')
        if entry.original_ref:
            parts.append(f'branch={entry.original_ref}')
        if entry.type == 'gitlab':
            parts.append(f'host={entry.host or GITLAB_DEFAULT_HOST}')
    elif entry.type == GIT_TYPE:
        parts.append(f'url={_source_url(entry)}')
        if entry.original_ref:
            parts.append(f'branch={entry.original_ref}')
    else:
        raise ValueError(f'unsupported input type: {entry.type}')
    return f'{indent}# {" ".join(parts)}'


def _inline_pattern(name: str) -> re.Pattern:
    return re.compile(rf'^([ \t]*)((?:inputs\.)?){re.escape(name)}\.url[ \t]*=[^\r\n]*(?=\r?$)', re.MULTILINE)


def _block_pattern(name: str) -> re.Pattern:
    # The opening line must not close the block; the block ends at the first
    # line holding only '};' at the declaration's own indentation.
    return re.compile(
        rf'^([ \t]*)((?:inputs\.)?){re.escape(name)}\s*=\s*\{{[^}}\n]*\n.*?^\1\}};',
        re.MULTILINE | re.DOTALL,
    )


def _brace_depth(text: str, pos: int) -> int:
    """Count the attribute sets open at `pos`, skipping strings and comments."""
    depth = 0
    quote = None
    i = 0
    while i < pos:
        if quote:
            if quote == '"' and text[i] == '\\':
                i += 2
                continue
            if text.startswith(quote, i):
                i += len(quote)
                quote = None
                continue
        elif text[i] == '#':
            i = text.find('\n', i)
            if i == -1:
                break
        elif text.startswith("''", i):
            quote = "''"
            i += 2
            continue
        elif text[i] == '"':
            quote = '"'
        elif text[i] == '{':
            depth += 1
        elif text[i] == '}':
            depth -= 1
        i += 1
    return depth


def _declarations(pattern: re.Pattern, text: str):
    """Yield matches that declare a root input.

    An ``inputs.<name>`` attribute path only declares the input at the top
    level of the flake; deeper down it overrides another input's dependency.
    """
    for match in pattern.finditer(text):
        if not match.group(2) or _brace_depth(text, match.start()) <= 1:
            yield match


def find_declaration(text: str, name: str) -> Declaration | None:
    """Locate the declaration of input `name`, trying the inline shape first."""
    for shape, pattern in ((INLINE, _inline_pattern(name)), (BLOCK, _block_pattern(name))):
        for match in _declarations(pattern, text):
            return Declaration(shape, match.start(), match.end(), match.group(1), match.group(2))
    return None


def is_already_pinned(text: str, entry: PinnableInput) -> bool:
    """Check whether flake.nix already declares `entry` with its pinned URL."""
    pinned = build_pinned_url(entry)
    value = re.compile(rf'\.url[ \t]*=[ \t]*"{re.escape(pinned)}"')
    for line in _declarations(_inline_pattern(entry.name), text):
        if value.search(line.group(0)):
            return True
    for block in _declarations(_block_pattern(entry.name), text):
        url = _URL_LINE_RE.search(block.group(0))
        if url and url.group(2) == pinned:
            return True
    return False


def _line_ending(text: str, pos: int) -> str:
    """The line terminator of the line containing `pos`."""
    nl = text.find('\n', pos)
    return '\r\n' if nl > 0 and text[nl - 1] == '\r' else '\n'


def _annotation_start(text: str, line_start: int, annotation: str) -> int:
    """Extend a replacement to cover this input's own annotation directly above it."""
    if line_start == 0:
        return line_start
    prev_start = text.rfind('\n', 0, line_start - 1) + 1
    prev_line = text[prev_start : line_start - 1].rstrip('\r')
    if prev_line == annotation:
        return prev_start
    return line_start


def pin_input(text: str, entry: PinnableInput) -> str:
    """Return `text` with the declaration of `entry` pinned to its revision.

    Returns `text` unchanged when the input is already pinned or is not
    declared at all.
    """
    if is_already_pinned(text, entry):
        return text

    decl = find_declaration(text, entry.name)
    if decl is None:
        log.warning('rewrite.declaration_not_found', input=entry.name)
        return text

    pinned = build_pinned_url(entry)
    if decl.shape == INLINE:
        start, end, indent = decl.start, decl.end, decl.indent
        new_line = f'{indent}{decl.prefix}{entry.name}.url = "{pinned}";'
    else:
        url = _URL_LINE_RE.search(text, decl.start, decl.end)
        if url is None:
            log.warning('rewrite.block_without_url', input=entry.name)
            return text
        start, end, indent = url.start(), url.end(), url.group(1)
        new_line = f'{indent}url = "{pinned}";'

    annotation = build_annotation(entry, indent)
    start = _annotation_start(text, start, annotation)
    return text[:start] + annotation + _line_ending(text, start) + new_line + text[end:]


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def check_migration_deadline(now: datetime | None = None, deadline: datetime | None = None) -> None:
    """Fail once the deprecated-prefix migration has outlived its deadline."""
    now = _as_utc(now or datetime.now(timezone.utc))
    deadline = _as_utc(deadline or MIGRATION_DEADLINE)
    if now > deadline:
        raise MigrationExpiredError(
            f"migration of '{DEPRECATED_PREFIX}' annotation prefixes expired on {deadline:%Y-%m-%d}; "
            'remove strip_deprecated_prefix or extend migration_deadline'
        )


def strip_deprecated_prefix(text: str) -> str:
    """Remove the deprecated 'renovate:' marker from annotation comments."""
    return _DEPRECATED_PREFIX_RE.sub(r'\1', text)
