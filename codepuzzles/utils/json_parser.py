"""
Utility functions for extracting JSON objects from LLM responses.

Model output is often wrapped in prose, markdown fences or reasoning blocks,
may contain trailing commas, and sometimes puts raw line breaks inside string
values. ``extract_json_object`` tolerates all of that and returns ``None``
instead of raising when no object can be recovered.
"""

import json
import logging
import re
from typing import Any

from codepuzzles.utils.content_sanitizer import strip_think_tags

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def _find_object_span(text: str) -> str | None:
    """
    Return the first balanced ``{...}`` span of ``text``.

    Braces inside single- or double-quoted strings are ignored and backslash
    escapes are honoured while inside a string.
    """
    start_idx = text.find("{")
    if start_idx == -1:
        return None

    depth = 0
    in_string = False
    quote_char = ""
    escape_next = False

    for i in range(start_idx, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if in_string:
            if char == "\\":
                escape_next = True
            elif char == quote_char:
                in_string = False
            continue

        if char in ('"', "'"):
            in_string = True
            quote_char = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx : i + 1]

    return None


def _escape_newlines_in_strings(text: str) -> str:
    """Turn raw CR/LF characters inside double-quoted strings into ``\\n`` escapes."""
    result = []
    in_string = False
    escape_next = False
    i = 0

    while i < len(text):
        char = text[i]

        if escape_next:
            result.append(char)
            escape_next = False
        elif char == "\\" and in_string:
            result.append(char)
            escape_next = True
        elif char == '"':
            in_string = not in_string
            result.append(char)
        elif in_string and char in ("\n", "\r"):
            # CRLF collapses to a single escaped newline
            if char == "\r" and i + 1 < len(text) and text[i + 1] == "\n":
                i += 1
            result.append("\\n")
        else:
            result.append(char)
        i += 1

    return "".join(result)


def extract_json_object(raw: str | None) -> dict[str, Any] | None:
    """
    Recover the first JSON object embedded in a model response.

    Steps: strip reasoning blocks, locate the first balanced object span,
    drop trailing commas before ``}``/``]``, escape raw newlines inside
    string values, then parse.

    Args:
        raw: Raw response text from the model

    Returns:
        The parsed object, or None when no object could be recovered
    """
    if not raw:
        return None

    text = strip_think_tags(raw)
    span = _find_object_span(text)
    if span is None:
        logger.debug("No JSON object found in model output")
        return None

    span = _TRAILING_COMMA.sub(r"\1", span)
    span = _escape_newlines_in_strings(span)

    try:
        parsed = json.loads(span)
    except (json.JSONDecodeError, ValueError) as e:
        logger.debug(f"Failed to parse JSON span: {e}")
        return None

    if not isinstance(parsed, dict):
        return None
    return parsed


def get_key(obj: dict[str, Any], snake: str, camel: str) -> Any:
    """Read a field under either naming; the snake_case form wins when both are present."""
    value = obj.get(snake)
    if value is None:
        value = obj.get(camel)
    return value
