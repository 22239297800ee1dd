"""Bookmark model for storing enriched user bookmarks."""
from datetime import datetime
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDMixin


class Bookmark(Base, UUIDMixin, TimestampMixin):
    """
    Bookmark model - saved content plus AI-derived enrichment.

    The embedding column has no fixed dimension because the producing provider
    decides it (768 for Gemini, 1536 for OpenAI). embedding_model records which
    provider model wrote the vector so that vectors from different models are
    never compared.
    """

    __tablename__ = "bookmarks"
    __table_args__ = (
        Index("ix_bookmarks_tags", "tags", postgresql_using="gin"),
        Index("ix_bookmarks_user_id_created_at", "user_id", "created_at"),
    )

    # Owning user is managed by the external identity provider
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Source fields
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Classification - set once at creation
    content_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # Enrichment
    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String(30)), nullable=False, default=list, server_default="{}",
    )
    category: Mapped[str | None] = mapped_column(String(30), nullable=True, index=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_points: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default="{}",
    )
    thumbnail: Mapped[str | None] = mapped_column(Text, nullable=True)
    favicon: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONB, nullable=True,
    )

    # Image-only fields
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_storage_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_format: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ocr_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_objects: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default="{}",
    )

    # Eventually consistent - written by the background embedding queue
    embedding: Mapped[list[float] | None] = mapped_column(Vector(), nullable=True)
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)

    extracted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None,
    )
