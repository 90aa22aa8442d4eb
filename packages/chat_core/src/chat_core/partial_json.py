"""Best-effort repair of truncated JSON text.

Tool-call arguments arrive as string fragments while a response is streaming.
``parse_partial_json`` closes whatever is still open (strings, objects, arrays)
so the caller can peek at the fields received so far. The result is advisory:
it may be missing keys or hold truncated values.
"""

from __future__ import annotations

import json
import re
from typing import Any

_INCOMPLETE_UNICODE_ESCAPE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")
_FALLBACK_FIELDS = ("id", "path", "title", "type")


def parse_partial_json(text: str) -> Any:
    """Parse ``text`` as JSON, completing a truncated document when needed.

    Valid JSON is returned exactly as ``json.loads`` would return it. Empty input
    yields an empty dict. When the repaired text still does not parse, a dict of
    the simple string fields that could be located (id, path, title, type) is
    returned instead.
    """
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(text)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        return _extract_fields(text)


def repair_json(text: str) -> str:
    """Return ``text`` with open strings and containers closed."""
    closers: list[str] = []
    in_string = False
    escaped = False

    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            closers.append("}")
        elif char == "[":
            closers.append("]")
        elif char in "}]" and closers and closers[-1] == char:
            closers.pop()

    fixed = text
    if in_string:
        if escaped:
            # A dangling backslash would escape the closing quote.
            fixed = fixed[:-1]
        fixed = _INCOMPLETE_UNICODE_ESCAPE.sub("", fixed)
        fixed += '"'

    trimmed = fixed.rstrip()
    if trimmed.endswith(","):
        fixed = trimmed[:-1]
    elif trimmed.endswith(":"):
        fixed += " null"

    while closers:
        fixed += closers.pop()
    return fixed


def _extract_fields(text: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for field in _FALLBACK_FIELDS:
        match = re.search(rf'"{field}"\s*:\s*"([^"]*)"', text)
        if match:
            result[field] = match.group(1)
    return result
