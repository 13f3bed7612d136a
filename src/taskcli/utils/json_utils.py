"""JSON extraction from model replies.

Every external contract is a single JSON object, but models like to wrap
it in prose or markdown fences. These helpers locate the object; they do
not validate it (see :mod:`taskcli.contracts`).
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in ``text``, or None.

    Tries, in order: the raw text, the first fenced block, then the first
    balanced ``{...}`` span. Trailing commas are tolerated.
    """
    candidates = [text.strip()]
    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1).strip())
    balanced = _extract_balanced(text, "{", "}")
    if balanced:
        candidates.append(balanced)

    for candidate in candidates:
        parsed = _try_parse(candidate)
        if parsed is None:
            parsed = _try_parse(fix_trailing_commas(candidate))
        if isinstance(parsed, dict):
            return parsed
    return None


def fix_trailing_commas(text: str) -> str:
    """Remove trailing commas before closing brackets."""
    return re.sub(r",\s*([\]}])", r"\1", text)


def _try_parse(text: str) -> Any | None:
    if not text:
        return None
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def _extract_balanced(text: str, open_char: str, close_char: str) -> str | None:
    """Extract a balanced substring between open and close characters."""
    start = text.find(open_char)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        c = text[i]

        if escape:
            escape = False
            continue
        if c == "\\":
            escape = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if c == open_char:
            depth += 1
        elif c == close_char:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None
