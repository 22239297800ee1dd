"""
Shared validation functions for Pydantic schemas and the enrichment pipeline.

User-supplied tags are validated strictly (bad input is rejected before any
enrichment work), while AI-produced tags are cleaned leniently (bad entries are
dropped) because the model output is best-effort.
"""
import re
from collections.abc import Iterable
from typing import Any

from core.config import get_settings
from core.taxonomy import MAX_TAG_LENGTH, MIN_TAG_LENGTH


def normalize_preview(value: str | None) -> str | None:
    """Collapse newlines, tabs, and runs of whitespace in a content preview."""
    if value is None:
        return None
    return re.sub(r"\s+", " ", value).strip()


def validate_and_normalize_tag(tag: str) -> str:
    """
    Normalize and validate a single user-supplied tag.

    Args:
        tag: The tag string to validate.

    Returns:
        The normalized tag (lowercase, trimmed, inner whitespace collapsed).

    Raises:
        ValueError: If tag is empty or outside the allowed length.
    """
    normalized = normalize_preview(tag.lower()) or ""
    if not normalized:
        raise ValueError("Tag name cannot be empty")
    if not MIN_TAG_LENGTH <= len(normalized) <= MAX_TAG_LENGTH:
        raise ValueError(
            f"Invalid tag '{normalized}': tags must be between "
            f"{MIN_TAG_LENGTH} and {MAX_TAG_LENGTH} characters.",
        )
    return normalized


def validate_and_normalize_tags(tags: list[str]) -> list[str]:
    """
    Normalize and validate a list of user-supplied tags.

    Args:
        tags: List of tag strings to validate.

    Returns:
        List of normalized tags, with empty strings filtered out
        and duplicates removed (preserving first occurrence order).

    Raises:
        ValueError: If any tag is outside the allowed length.
    """
    normalized = []
    seen: set[str] = set()
    for tag in tags:
        if not tag.strip():
            continue  # Skip empty tags silently
        validated = validate_and_normalize_tag(tag)
        if validated not in seen:
            seen.add(validated)
            normalized.append(validated)
    return normalized


def clean_tags(tags: Iterable[Any], limit: int | None = None) -> list[str]:
    """
    Leniently clean tags from an untrusted source (model output, stored data).

    Non-strings, blanks, and entries outside the length bounds are dropped.
    The result is lowercase, deduplicated in first-seen order, and capped.
    """
    cleaned: list[str] = []
    seen: set[str] = set()
    for tag in tags:
        if not isinstance(tag, str):
            continue
        normalized = normalize_preview(tag.lower()) or ""
        if not MIN_TAG_LENGTH <= len(normalized) <= MAX_TAG_LENGTH:
            continue
        if normalized in seen:
            continue
        seen.add(normalized)
        cleaned.append(normalized)
        if limit is not None and len(cleaned) >= limit:
            break
    return cleaned


def validate_title(title: str) -> str:
    """Validate that a title is non-empty and within the maximum length."""
    settings = get_settings()
    trimmed = title.strip()
    if not trimmed:
        raise ValueError("Title is required")
    if len(trimmed) > settings.max_title_length:
        raise ValueError(
            f"Title exceeds maximum length of {settings.max_title_length:,} characters "
            f"(got {len(trimmed):,} characters).",
        )
    return trimmed


def validate_content_length(content: str | None) -> str | None:
    """Validate that content doesn't exceed maximum length."""
    settings = get_settings()
    if content is not None and len(content) > settings.max_content_length:
        raise ValueError(
            f"Content exceeds maximum length of {settings.max_content_length:,} characters "
            f"(got {len(content):,} characters). Consider summarizing the content.",
        )
    return content
