"""Engine output parsing utilities.

Brace-matching helpers that locate JSON objects inside free-form text.
"""

import json
from collections.abc import Iterator
from typing import Any


def find_object_end(text: str, start: int) -> int:
    """Return the index of the ``}`` closing the object opened at ``start``.

    Braces inside string literals (including escaped quotes) do not count.
    Returns -1 when the object is never closed.
    """
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        char = text[i]
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
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def extract_json_object(text: str) -> str | None:
    """Return the outermost balanced object starting at the first ``{``."""
    start = text.find("{")
    if start < 0:
        return None
    end = find_object_end(text, start)
    if end < 0:
        return None
    return text[start : end + 1]


def iter_json_objects(text: str) -> Iterator[dict[str, Any]]:
    """Yield every top-level JSON object embedded in ``text``, in order.

    Balanced candidates that are not valid JSON are skipped. An unclosed
    ``{`` is skipped so that a later, well-formed object can still be found.
    """
    pos = text.find("{")
    while pos >= 0:
        end = find_object_end(text, pos)
        if end < 0:
            pos = text.find("{", pos + 1)
            continue

        try:
            parsed = json.loads(text[pos : end + 1])
        except json.JSONDecodeError:
            # 例如 prompt 回显中的 {"score": number} 模板，继续向内层查找
            pos = text.find("{", pos + 1)
            continue

        if isinstance(parsed, dict):
            yield parsed
        pos = text.find("{", end + 1)
