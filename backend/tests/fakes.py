"""In-memory fakes for the record store, AI providers, and scrapers."""
import asyncio
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from core.config import Settings
from models.bookmark import Bookmark
from services.bookmark_store import (
    UPDATABLE_FIELDS,
    SearchCandidate,
    SearchCriteria,
)
from services.embedding_queue import EmbeddingQueue
from services.embeddings import EmbeddingService, cosine_similarity
from services.enrichment_service import EnrichmentService
from services.exceptions import BookmarkNotFoundError, StoreUnavailableError
from services.image_storage import PassthroughImageStorage
from services.llm import ImageSource
from services.query_parser import QueryParser
from services.reranker import Reranker
from services.retrieval import RetrievalEngine
from services.smart_search_service import SmartSearchService
from services.tagging import TagGenerator
from services.url_scraper import ScrapedMetadata
from services.vision_analyzer import VisionAnalyzer

BASE_TIME = datetime(2024, 10, 15, 12, 0, tzinfo=UTC)


class FakeBookmarkStore:
    """
    In-memory BookmarkStore.

    search() evaluates SearchCriteria in Python with the same semantics as the
    SQL statement: AND of filters, OR of keyword matches, same-model cosine
    ranking when a query vector is given, recency otherwise.
    """

    def __init__(self, vector_search: bool = True) -> None:
        self.bookmarks: dict[UUID, Bookmark] = {}
        self.searches: list[SearchCriteria] = []
        self.updates: list[tuple[UUID, dict[str, Any]]] = []
        self.vector_search = vector_search
        self.available = True
        self._tick = 0

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("Bookmark store unavailable: simulated outage")

    async def create(self, bookmark: Bookmark) -> Bookmark:
        self._check_available()
        if bookmark.id is None:
            bookmark.id = uuid4()
        if bookmark.created_at is None:
            self._tick += 1
            bookmark.created_at = BASE_TIME + timedelta(seconds=self._tick)
        bookmark.updated_at = bookmark.created_at
        bookmark.tags = bookmark.tags or []
        bookmark.key_points = bookmark.key_points or []
        bookmark.image_objects = bookmark.image_objects or []
        self.bookmarks[bookmark.id] = bookmark
        return bookmark

    async def get(self, user_id: str, bookmark_id: UUID) -> Bookmark | None:
        self._check_available()
        bookmark = self.bookmarks.get(bookmark_id)
        if bookmark is None or bookmark.user_id != user_id:
            return None
        return bookmark

    async def get_by_id(self, bookmark_id: UUID) -> Bookmark | None:
        self._check_available()
        return self.bookmarks.get(bookmark_id)

    async def update_fields(self, bookmark_id: UUID, fields: dict[str, Any]) -> None:
        self._check_available()
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update bookmark fields: {', '.join(sorted(unknown))}")
        bookmark = self.bookmarks.get(bookmark_id)
        if bookmark is None:
            raise BookmarkNotFoundError(bookmark_id)
        # Yield once so concurrent writers interleave like separate statements
        await asyncio.sleep(0)
        for name, value in fields.items():
            setattr(bookmark, name, value)
        self.updates.append((bookmark_id, dict(fields)))

    async def search(self, criteria: SearchCriteria) -> list[SearchCandidate]:
        self._check_available()
        self.searches.append(criteria)
        candidates = [
            SearchCandidate(
                bookmark=b,
                similarity=(
                    cosine_similarity(criteria.query_embedding, b.embedding)
                    if criteria.uses_vector else None
                ),
            )
            for b in self.bookmarks.values()
            if self._matches(b, criteria)
        ]
        if criteria.uses_vector:
            candidates.sort(key=lambda c: c.similarity, reverse=True)
        else:
            candidates.sort(key=lambda c: c.bookmark.created_at, reverse=True)
        return candidates[:criteria.limit]

    @staticmethod
    def _matches(bookmark: Bookmark, criteria: SearchCriteria) -> bool:  # noqa: PLR0911
        if bookmark.user_id != criteria.user_id:
            return False
        if criteria.content_types and bookmark.content_type not in criteria.content_types:
            return False
        if criteria.categories and bookmark.category not in criteria.categories:
            return False
        if criteria.created_after and bookmark.created_at < criteria.created_after:
            return False
        if criteria.created_before and bookmark.created_at > criteria.created_before:
            return False
        if criteria.tags and not set(criteria.tags) & set(bookmark.tags or []):
            return False
        if criteria.keywords:
            haystacks = [
                bookmark.title or "",
                bookmark.content or "",
                bookmark.url or "",
                " ".join(bookmark.tags or []),
            ]
            if not any(
                keyword.lower() in haystack.lower()
                for keyword in criteria.keywords
                for haystack in haystacks
            ):
                return False
        if criteria.uses_vector:
            return (
                bookmark.embedding is not None
                and bookmark.embedding_model == criteria.embedding_model
            )
        return True

    async def ping(self) -> None:
        self._check_available()

    async def has_embedding_column(self) -> bool:
        self._check_available()
        return self.vector_search

    async def list_ids(self, user_id: str | None = None) -> list[UUID]:
        self._check_available()
        bookmarks = sorted(self.bookmarks.values(), key=lambda b: b.created_at)
        return [b.id for b in bookmarks if user_id is None or b.user_id == user_id]


class FakeTextGenerator:
    """
    TextGenerator that answers by system-prompt substring.

    A response may be a string, an exception instance (raised), or a callable
    taking the user prompt. Unmatched prompts raise RuntimeError, which every
    caller treats as a provider failure.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[tuple[str, str]] = []

    async def complete(
        self,
        system: str,
        user: str,
        max_tokens: int = 1024,  # noqa: ARG002
        temperature: float = 0.3,  # noqa: ARG002
    ) -> str:
        self.calls.append((system, user))
        for marker, response in self.responses.items():
            if marker in system:
                if isinstance(response, Exception):
                    raise response
                if callable(response):
                    return response(user)
                return response
        raise RuntimeError("simulated provider failure")


class FakeVisionGenerator:
    """VisionGenerator returning a fixed response (or raising a fixed error)."""

    def __init__(self, response: str | Exception) -> None:
        self.response = response
        self.calls: list[tuple[ImageSource, str]] = []

    async def complete_with_image(
        self,
        image: ImageSource,
        prompt: str,
        max_tokens: int = 2048,  # noqa: ARG002
    ) -> str:
        self.calls.append((image, prompt))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class FakeEmbeddingProvider:
    """
    EmbeddingProvider with a pluggable vector function.

    The default embeds text as word counts over a fixed vocabulary, so texts
    sharing vocabulary words are similar and unrelated texts score zero.
    """

    def __init__(
        self,
        name: str = "fake",
        model: str = "fake-embedding",
        vocabulary: Sequence[str] = (
            "math", "calculus", "study", "learning", "python", "recipe", "pasta", "video",
        ),
        vector_fn: Callable[[str], list[float]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.model = model
        self.vocabulary = list(vocabulary)
        self.dimensions = len(self.vocabulary)
        self.vector_fn = vector_fn
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if self.vector_fn is not None:
            return self.vector_fn(text)
        words = text.lower().split()
        # Smoothing keeps every vector non-zero
        return [float(words.count(term)) + 0.01 for term in self.vocabulary]


class FakeScraperManager:
    """ScraperManager stand-in returning canned metadata per URL."""

    def __init__(self, results: dict[str, ScrapedMetadata] | None = None) -> None:
        self.results = results or {}
        self.calls: list[str] = []

    async def scrape(self, url: str) -> ScrapedMetadata:
        self.calls.append(url)
        if url in self.results:
            return self.results[url]
        return ScrapedMetadata(title=url, metadata={"error": "Failed to extract metadata"})


def build_enrichment_service(
    store: FakeBookmarkStore,
    queue: EmbeddingQueue,
    settings: Settings,
    text_generator: FakeTextGenerator | None = None,
    vision_generator: FakeVisionGenerator | None = None,
    scraper: FakeScraperManager | None = None,
) -> EnrichmentService:
    """Enrichment service wired with fakes."""
    return EnrichmentService(
        store=store,
        scraper=scraper or FakeScraperManager(),
        tagger=TagGenerator(text_generator, max_tags=settings.max_generated_tags),
        vision=VisionAnalyzer(vision_generator),
        embedding_queue=queue,
        image_storage=PassthroughImageStorage(),
        settings=settings,
    )


def build_search_service(
    store: FakeBookmarkStore,
    embeddings: EmbeddingService,
    text_generator: FakeTextGenerator | None = None,
    clock: Callable[[], datetime] = lambda: BASE_TIME,
) -> SmartSearchService:
    """Search service wired with fakes."""
    return SmartSearchService(
        parser=QueryParser(text_generator, clock=clock),
        embeddings=embeddings,
        retrieval=RetrievalEngine(store, overfetch_factor=3),
        reranker=Reranker(text_generator),
    )


def make_bookmark(**overrides: Any) -> Bookmark:
    """Unsaved bookmark with sensible defaults."""
    fields: dict[str, Any] = {
        "user_id": "user-1",
        "title": "Untitled",
        "url": None,
        "content": None,
        "content_type": "note",
        "tags": [],
        "category": "personal",
        "key_points": [],
        "image_objects": [],
    }
    fields.update(overrides)
    return Bookmark(**fields)
