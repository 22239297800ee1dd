"""Hybrid retrieval: structured filters + vector similarity + keyword match in one store query."""
import logging
from datetime import UTC, datetime, time

from schemas.search import ParsedQuery
from services.bookmark_store import BookmarkStore, SearchCandidate, SearchCriteria
from services.embeddings import EmbeddingResult

logger = logging.getLogger(__name__)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def end_of_day(moment: datetime) -> datetime:
    """Extend a date-range end bound to the last microsecond of its day."""
    return _aware(datetime.combine(moment.date(), time.max, tzinfo=moment.tzinfo))


class RetrievalEngine:
    """Turns a ParsedQuery into SearchCriteria and runs it against the store."""

    def __init__(self, store: BookmarkStore, overfetch_factor: int = 3) -> None:
        self.store = store
        self.overfetch_factor = overfetch_factor

    def build_criteria(
        self,
        parsed: ParsedQuery,
        user_id: str,
        limit: int,
        query_embedding: EmbeddingResult | None = None,
    ) -> SearchCriteria:
        """
        Map parsed filters onto store criteria.

        Over-fetches by overfetch_factor to leave headroom for reranking.
        """
        filters = parsed.filters
        created_after = created_before = None
        if filters.date_range is not None:
            if filters.date_range.start is not None:
                created_after = _aware(filters.date_range.start)
            if filters.date_range.end is not None:
                created_before = end_of_day(filters.date_range.end)

        use_vector = query_embedding is not None and not query_embedding.is_empty
        return SearchCriteria(
            user_id=user_id,
            limit=limit * self.overfetch_factor,
            query_embedding=query_embedding.vector if use_vector else None,
            embedding_model=query_embedding.model if use_vector else None,
            content_types=list(filters.content_type),
            categories=list(filters.category),
            tags=list(filters.tags),
            keywords=list(parsed.search_keywords),
            created_after=created_after,
            created_before=created_before,
        )

    async def retrieve(
        self,
        parsed: ParsedQuery,
        user_id: str,
        limit: int,
        query_embedding: EmbeddingResult | None = None,
    ) -> list[SearchCandidate]:
        """
        Run the hybrid query.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        criteria = self.build_criteria(parsed, user_id, limit, query_embedding)
        candidates = await self.store.search(criteria)
        logger.info(
            "Retrieved %d candidates (%s search)",
            len(candidates), "vector" if criteria.uses_vector else "keyword",
        )
        return candidates
