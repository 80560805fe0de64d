"""Split user-configured CLI flag strings into argv lists."""
from __future__ import annotations

import shlex

from .errors import FlagParseError


def parse_shell_args(flags: str | None) -> list[str]:
    """Split *flags* with POSIX shell quoting rules.

    ``None`` and blank strings give an empty list. Unterminated quotes
    raise FlagParseError.
    """
    if not flags or not flags.strip():
        return []
    try:
        return shlex.split(flags)
    except ValueError as exc:
        raise FlagParseError(flags, str(exc)) from exc


def coerce_flags(value: str | list | None) -> list[str]:
    """Accept either a flag string or an already-split list (YAML allows both)."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    return parse_shell_args(str(value))
