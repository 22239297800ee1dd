"""Pydantic schemas for bookmark endpoints."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

from schemas.validators import (
    validate_and_normalize_tags,
    validate_content_length,
    validate_title,
)


def _blank_to_none(value: Any) -> Any:
    """Treat an empty string the same as an omitted optional value."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


class BookmarkCreate(BaseModel):
    """Schema for saving a URL or a text note."""

    title: str = Field(description="Required, non-empty. Replaced by the scraped title if found.")
    # HttpUrl normalizes root domains with trailing slash (example.com -> example.com/)
    # but preserves paths as-is (example.com/page stays example.com/page)
    url: HttpUrl | None = None
    content: str | None = Field(default=None, description="Raw text content saved by the user.")
    tags: list[str] = []

    @field_validator("url", mode="before")
    @classmethod
    def empty_url_is_none(cls, v: Any) -> Any:
        """Accept an empty string for 'no URL'."""
        return _blank_to_none(v)

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        """Validate title presence and length."""
        return validate_title(v)

    @field_validator("content")
    @classmethod
    def check_content_length(cls, v: str | None) -> str | None:
        """Validate content length."""
        return validate_content_length(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str]:
        """Normalize and validate tags."""
        if v is None:
            return []
        return validate_and_normalize_tags(v)

    @property
    def url_str(self) -> str | None:
        """URL as a plain string, or None."""
        return str(self.url) if self.url is not None else None


class ImageBookmarkCreate(BaseModel):
    """Schema for saving an image found on a page."""

    image_url: HttpUrl
    title: str | None = None
    page_url: HttpUrl | None = None
    page_title: str | None = None
    surrounding_text: str | None = None
    alt_text: str | None = None
    tags: list[str] = []

    @field_validator("page_url", "title", "page_title", "surrounding_text", "alt_text", mode="before")
    @classmethod
    def empty_is_none(cls, v: Any) -> Any:
        """Accept empty strings for omitted optional values."""
        return _blank_to_none(v)

    @field_validator("surrounding_text")
    @classmethod
    def check_content_length(cls, v: str | None) -> str | None:
        """Validate surrounding text length."""
        return validate_content_length(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str]:
        """Normalize and validate tags."""
        if v is None:
            return []
        return validate_and_normalize_tags(v)


_RESPONSE_FIELDS = (
    "id", "user_id", "title", "url", "content", "description", "content_type",
    "tags", "category", "summary", "key_points", "thumbnail", "favicon",
    "extra_metadata", "image_url", "image_storage_key", "image_width",
    "image_height", "image_size", "image_format", "ocr_text", "image_description",
    "image_objects", "embedding_model", "created_at", "updated_at", "extracted_at",
)


class BookmarkResponse(BaseModel):
    """
    Schema for bookmark responses.

    The embedding vector itself is never returned; has_embedding tells the
    client whether background embedding has completed.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    title: str
    url: str | None
    content: str | None
    description: str | None
    content_type: str
    tags: list[str]
    category: str | None
    summary: str | None
    key_points: list[str]
    thumbnail: str | None
    favicon: str | None
    metadata: dict[str, Any] | None = None
    image_url: str | None = None
    image_storage_key: str | None = None
    image_width: int | None = None
    image_height: int | None = None
    image_size: int | None = None
    image_format: str | None = None
    ocr_text: str | None = None
    image_description: str | None = None
    image_objects: list[str] = []
    has_embedding: bool = False
    embedding_model: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    extracted_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def from_bookmark(cls, data: Any) -> Any:
        """
        Flatten a Bookmark model into response fields.

        Reads attributes directly so the vector never leaves the service layer.
        """
        if hasattr(data, "__dict__") and not isinstance(data, dict):
            data_dict = {key: getattr(data, key, None) for key in _RESPONSE_FIELDS}
            data_dict["metadata"] = data_dict.pop("extra_metadata")
            data_dict["tags"] = data_dict["tags"] or []
            data_dict["key_points"] = data_dict["key_points"] or []
            data_dict["image_objects"] = data_dict["image_objects"] or []
            data_dict["has_embedding"] = getattr(data, "embedding", None) is not None
            return data_dict
        return data
