"""Pydantic schemas for natural-language bookmark search."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from core.taxonomy import CATEGORIES, CONTENT_TYPES, QUERY_INTENTS, QueryIntent
from schemas.bookmark import BookmarkResponse
from schemas.validators import clean_tags


def _as_string_list(value: Any) -> list[str]:
    """Coerce model output into a list of non-empty strings, dropping anything else."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list | tuple):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class DateRange(BaseModel):
    """Inclusive date bounds. Either side may be open."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def lenient_datetime(cls, v: Any) -> Any:
        """Treat blank or unparseable dates as absent."""
        if v is None or isinstance(v, datetime):
            return v
        if isinstance(v, str) and v.strip():
            try:
                return datetime.fromisoformat(v.strip())
            except ValueError:
                return None
        return None


class QueryFilters(BaseModel):
    """Structured filters derived from a query. Empty lists mean 'no filter'."""

    content_type: list[str] = []
    category: list[str] = []
    tags: list[str] = []
    date_range: DateRange | None = None

    @field_validator("content_type", mode="before")
    @classmethod
    def known_content_types(cls, v: Any) -> list[str]:
        """Keep only values from the content-type taxonomy."""
        return [item.lower() for item in _as_string_list(v) if item.lower() in CONTENT_TYPES]

    @field_validator("category", mode="before")
    @classmethod
    def known_categories(cls, v: Any) -> list[str]:
        """Keep only values from the category taxonomy."""
        return [item.lower() for item in _as_string_list(v) if item.lower() in CATEGORIES]

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: Any) -> list[str]:
        """Clean tags the same way stored tags are cleaned."""
        return clean_tags(_as_string_list(v))

    @field_validator("date_range", mode="before")
    @classmethod
    def lenient_date_range(cls, v: Any) -> Any:
        """Drop a date range that is not an object."""
        if v is None or isinstance(v, dict | DateRange):
            return v
        return None


class ParsedQuery(BaseModel):
    """
    Structured interpretation of a natural-language query.

    Every field has a type-safe default, so a partial model response still
    validates into a usable query.
    """

    intent: QueryIntent = "find_bookmarks"
    filters: QueryFilters = Field(default_factory=QueryFilters)
    keywords: list[str] = []
    expanded_keywords: list[str] = []
    semantic_query: str = ""
    contextual_hints: list[str] = []
    confidence: float = 0.5

    @field_validator("intent", mode="before")
    @classmethod
    def known_intent(cls, v: Any) -> str:
        """Fall back to the default intent for unknown values."""
        if isinstance(v, str) and v in QUERY_INTENTS:
            return v
        return "find_bookmarks"

    @field_validator("filters", mode="before")
    @classmethod
    def filters_object(cls, v: Any) -> Any:
        """Replace a non-object filters value with empty filters."""
        if isinstance(v, dict | QueryFilters):
            return v
        return {}

    @field_validator("keywords", "expanded_keywords", "contextual_hints", mode="before")
    @classmethod
    def string_lists(cls, v: Any) -> list[str]:
        """Coerce to a list of strings."""
        return _as_string_list(v)

    @field_validator("semantic_query", mode="before")
    @classmethod
    def semantic_query_string(cls, v: Any) -> str:
        """Coerce to a string."""
        return v.strip() if isinstance(v, str) else ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        """Clamp confidence to [0, 1], defaulting when not numeric."""
        if isinstance(v, bool) or not isinstance(v, int | float):
            return 0.5
        return min(max(float(v), 0.0), 1.0)

    @property
    def search_keywords(self) -> list[str]:
        """Expanded keywords when present, otherwise the plain keywords."""
        return self.expanded_keywords or self.keywords


class SmartSearchRequest(BaseModel):
    """Request body for natural-language search."""

    query: str = ""
    limit: int | None = Field(default=None, ge=1)


class SmartSearchResult(BookmarkResponse):
    """A bookmark with its relevance judgment."""

    relevance_score: float = Field(description="Reranker score in [0, 1]")
    explanation: str = Field(description="Why the reranker considered this relevant")
    vector_similarity: float | None = Field(
        default=None,
        description="Cosine similarity to the query embedding, when vector search ran",
    )


class SmartSearchResponse(BaseModel):
    """Response from natural-language search. Never an error for an empty result."""

    results: list[SmartSearchResult] = []
    query: str
    parsed: ParsedQuery | None = None
    total_results: int = 0
    message: str


class Ranking(BaseModel):
    """A single relevance judgment from the reranker."""

    id: UUID
    score: float
    explanation: str = ""
