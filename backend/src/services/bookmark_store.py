"""
Record store for bookmarks.

The enrichment and search services only talk to the BookmarkStore protocol.
SqlBookmarkStore implements it over async SQLAlchemy + pgvector; every call
opens its own session, and every mutation is a single row keyed by id.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import ColumnElement, func, literal, or_, select, text, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.bookmark import Bookmark
from services.exceptions import BookmarkNotFoundError, StoreUnavailableError
from services.utils import escape_ilike

logger = logging.getLogger(__name__)

# Columns callers may change after creation. content_type is immutable.
UPDATABLE_FIELDS = frozenset({
    "title", "description", "content", "tags", "category", "summary", "key_points",
    "thumbnail", "favicon", "extra_metadata", "embedding", "embedding_model",
    "extracted_at", "ocr_text", "image_description", "image_objects",
})


@dataclass
class SearchCriteria:
    """
    One retrieval query against the store.

    Empty filter lists mean 'no filter'. When query_embedding is set, only rows
    embedded by the same embedding_model are compared and the result is ordered
    by similarity; otherwise rows are ordered by recency.
    """

    user_id: str
    limit: int
    query_embedding: list[float] | None = None
    embedding_model: str | None = None
    content_types: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    created_after: datetime | None = None
    created_before: datetime | None = None

    @property
    def uses_vector(self) -> bool:  # noqa: D102
        return bool(self.query_embedding) and self.embedding_model is not None


@dataclass
class SearchCandidate:
    """A retrieved bookmark and its similarity to the query (None without vector search)."""

    bookmark: Bookmark
    similarity: float | None = None


class BookmarkStore(Protocol):
    """Keyed store for bookmark records."""

    async def create(self, bookmark: Bookmark) -> Bookmark:
        """Persist a new bookmark and return it with generated fields populated."""
        ...

    async def get(self, user_id: str, bookmark_id: UUID) -> Bookmark | None:
        """Fetch one bookmark owned by user_id."""
        ...

    async def get_by_id(self, bookmark_id: UUID) -> Bookmark | None:
        """Fetch one bookmark regardless of owner (background jobs)."""
        ...

    async def update_fields(self, bookmark_id: UUID, fields: dict[str, Any]) -> None:
        """Update the given columns of one bookmark. Raises BookmarkNotFoundError."""
        ...

    async def search(self, criteria: SearchCriteria) -> list[SearchCandidate]:
        """Run one retrieval query."""
        ...

    async def ping(self) -> None:
        """Round-trip to the store. Raises StoreUnavailableError."""
        ...

    async def has_embedding_column(self) -> bool:
        """Whether vector search is available in this store."""
        ...

    async def list_ids(self, user_id: str | None = None) -> list[UUID]:
        """Ids of all bookmarks (optionally for one user), oldest first."""
        ...


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate connectivity failures into StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError, OSError) as e:
        logger.exception("Bookmark store unavailable")
        raise StoreUnavailableError(f"Bookmark store unavailable: {e}") from e


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update bookmark fields: {', '.join(sorted(unknown))}")


def build_search_statement(criteria: SearchCriteria):  # noqa: ANN201
    """
    Build the single SELECT for a retrieval query.

    Returns rows of (Bookmark, similarity).
    """
    if criteria.uses_vector:
        similarity: ColumnElement = (
            1 - Bookmark.embedding.cosine_distance(criteria.query_embedding)
        ).label("similarity")
    else:
        similarity = literal(0.0).label("similarity")

    stmt = select(Bookmark, similarity).where(Bookmark.user_id == criteria.user_id)

    if criteria.content_types:
        stmt = stmt.where(Bookmark.content_type.in_(criteria.content_types))
    if criteria.categories:
        stmt = stmt.where(Bookmark.category.in_(criteria.categories))
    if criteria.created_after is not None:
        stmt = stmt.where(Bookmark.created_at >= criteria.created_after)
    if criteria.created_before is not None:
        stmt = stmt.where(Bookmark.created_at <= criteria.created_before)
    if criteria.tags:
        stmt = stmt.where(Bookmark.tags.overlap(criteria.tags))
    if criteria.keywords:
        tag_text = func.array_to_string(Bookmark.tags, " ")
        matches = []
        for keyword in criteria.keywords:
            pattern = f"%{escape_ilike(keyword)}%"
            matches.extend([
                Bookmark.title.ilike(pattern, escape="\\"),
                Bookmark.content.ilike(pattern, escape="\\"),
                Bookmark.url.ilike(pattern, escape="\\"),
                tag_text.ilike(pattern, escape="\\"),
            ])
        stmt = stmt.where(or_(*matches))

    if criteria.uses_vector:
        stmt = stmt.where(
            Bookmark.embedding.is_not(None),
            Bookmark.embedding_model == criteria.embedding_model,
        ).order_by(similarity.desc())
    else:
        stmt = stmt.order_by(Bookmark.created_at.desc())

    return stmt.limit(criteria.limit)


class SqlBookmarkStore:
    """BookmarkStore over PostgreSQL with the pgvector extension."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._has_embedding_column: bool | None = None

    async def create(self, bookmark: Bookmark) -> Bookmark:  # noqa: D102
        with store_errors():
            async with self._session_factory() as session:
                session.add(bookmark)
                await session.commit()
                await session.refresh(bookmark)
                return bookmark

    async def get(self, user_id: str, bookmark_id: UUID) -> Bookmark | None:  # noqa: D102
        with store_errors():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Bookmark).where(
                        Bookmark.id == bookmark_id,
                        Bookmark.user_id == user_id,
                    ),
                )
                return result.scalar_one_or_none()

    async def get_by_id(self, bookmark_id: UUID) -> Bookmark | None:  # noqa: D102
        with store_errors():
            async with self._session_factory() as session:
                return await session.get(Bookmark, bookmark_id)

    async def update_fields(self, bookmark_id: UUID, fields: dict[str, Any]) -> None:
        """
        Single-row UPDATE keyed by id.

        One statement per call, so concurrent writers to the same row leave
        the last writer's values intact rather than a mix.
        """
        _check_fields(fields)
        if not fields:
            return
        with store_errors():
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Bookmark).where(Bookmark.id == bookmark_id).values(**fields),
                )
                if result.rowcount == 0:
                    await session.rollback()
                    raise BookmarkNotFoundError(bookmark_id)
                await session.commit()

    async def search(self, criteria: SearchCriteria) -> list[SearchCandidate]:  # noqa: D102
        stmt = build_search_statement(criteria)
        with store_errors():
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        return [
            SearchCandidate(
                bookmark=bookmark,
                similarity=float(similarity) if criteria.uses_vector else None,
            )
            for bookmark, similarity in rows
        ]

    async def ping(self) -> None:  # noqa: D102
        with store_errors():
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))

    async def has_embedding_column(self) -> bool:
        """Check information_schema once; the answer is cached for the store's lifetime."""
        if self._has_embedding_column is None:
            with store_errors():
                async with self._session_factory() as session:
                    result = await session.execute(
                        text(
                            "SELECT 1 FROM information_schema.columns "
                            "WHERE table_name = 'bookmarks' AND column_name = 'embedding'",
                        ),
                    )
                    self._has_embedding_column = result.first() is not None
            if not self._has_embedding_column:
                logger.warning("bookmarks.embedding column missing; vector search disabled")
        return self._has_embedding_column

    async def list_ids(self, user_id: str | None = None) -> list[UUID]:  # noqa: D102
        stmt = select(Bookmark.id).order_by(Bookmark.created_at)
        if user_id is not None:
            stmt = stmt.where(Bookmark.user_id == user_id)
        with store_errors():
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
