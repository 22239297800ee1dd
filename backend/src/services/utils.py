"""Shared utility functions for service layer."""
import json
from typing import Any

from services.exceptions import AIResponseParseError


def escape_ilike(value: str) -> str:
    r"""
    Escape special ILIKE characters for safe use in LIKE/ILIKE patterns.

    PostgreSQL LIKE/ILIKE treats these characters specially:
    - % matches any sequence of characters
    - _ matches any single character
    - \\ is the escape character

    This function escapes them so they match literally.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _find_balanced_block(text: str, opener: str, closer: str) -> str | None:
    """
    Return the first balanced ``opener ... closer`` block in text.

    Brackets inside JSON string literals are ignored so that values such as
    ``"a {curly} note"`` do not break the balance count.
    """
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
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
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from this opener; try the next one
        start = text.find(opener, start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Parse the first balanced ``{...}`` block in a model response.

    Tolerates surrounding prose and markdown code fences.

    Raises:
        AIResponseParseError: If no object is present or it is not valid JSON.
    """
    block = _find_balanced_block(text, "{", "}")
    if block is None:
        raise AIResponseParseError("No JSON object found in model response", raw=text)
    try:
        parsed = json.loads(block)
    except json.JSONDecodeError as e:
        raise AIResponseParseError(f"Invalid JSON object in model response: {e}", raw=text) from e
    if not isinstance(parsed, dict):
        raise AIResponseParseError("Model response JSON is not an object", raw=text)
    return parsed


def extract_json_array(text: str) -> list[Any]:
    """
    Parse the first balanced ``[...]`` block in a model response.

    Raises:
        AIResponseParseError: If no array is present or it is not valid JSON.
    """
    block = _find_balanced_block(text, "[", "]")
    if block is None:
        raise AIResponseParseError("No JSON array found in model response", raw=text)
    try:
        parsed = json.loads(block)
    except json.JSONDecodeError as e:
        raise AIResponseParseError(f"Invalid JSON array in model response: {e}", raw=text) from e
    if not isinstance(parsed, list):
        raise AIResponseParseError("Model response JSON is not an array", raw=text)
    return parsed
