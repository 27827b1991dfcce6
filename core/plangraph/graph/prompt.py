"""Prompt template rendering.

Placeholders are written as ``{name}`` and may address nested values with
dotted or bracketed paths::

    render_prompt("Summarize {search.results[0].title}", inputs)
    render_prompt("Reply to {ticket['subject']}", inputs)

A placeholder whose path does not resolve is left in place, so ``{provider}``
stays ``{provider}`` when no such input exists. A resolved ``None`` renders
as an empty string.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][\w.\-]*(?:\[[^\[\]{}]+\][\w.\-]*)*)\}")
_BRACKET_PATTERN = re.compile(r"\[(?:'|\")?([^\[\]'\"]+)(?:'|\")?\]")

_MISSING = object()


def resolve_path(source: Any, path: str) -> Any:
    """Walk ``path`` (``a.b``, ``a[b]``, ``items[0]``) through nested mappings and sequences.

    Returns None when any segment is missing.
    """
    value = _lookup(source, path)
    return None if value is _MISSING else value


def _lookup(source: Any, path: str) -> Any:
    normalized = _BRACKET_PATTERN.sub(r".\1", path).lstrip(".")
    segments = [segment.strip() for segment in normalized.split(".") if segment.strip()]
    if not segments:
        return _MISSING

    cursor = source
    for segment in segments:
        cursor = _step(cursor, segment)
        if cursor is _MISSING:
            break
    return cursor


def _step(cursor: Any, segment: str) -> Any:
    if isinstance(cursor, Mapping):
        return cursor.get(segment, _MISSING)
    if isinstance(cursor, Sequence) and not isinstance(cursor, str | bytes):
        try:
            return cursor[int(segment)]
        except (ValueError, IndexError):
            return _MISSING
    return getattr(cursor, segment, _MISSING)


def render_prompt(template: str, inputs: Mapping[str, Any]) -> str:
    """Substitute every placeholder in ``template`` with its value from ``inputs``."""
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        value = _lookup(inputs, match.group(1))
        if value is _MISSING:
            return match.group(0)
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_replace, template)
