"""Shared fixtures for API tests."""
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from api.main import app
from core.config import Settings, get_settings
from services.embedding_queue import EmbeddingQueue
from services.embeddings import EmbeddingService
from tests.fakes import (
    FakeBookmarkStore,
    FakeScraperManager,
    FakeTextGenerator,
    build_enrichment_service,
    build_search_service,
)

USER_ID = 'user-1'

# Constant for non-existent entity ID
FAKE_UUID = "00000000-0000-0000-0000-000000000000"


@pytest.fixture
def scraper() -> FakeScraperManager:
    """Scraper with no canned pages; every URL fails to scrape."""
    return FakeScraperManager()


@pytest.fixture
def text_generator() -> FakeTextGenerator:
    """Text generator with no canned answers; every AI call fails."""
    return FakeTextGenerator()


@pytest.fixture
async def client(
    settings: Settings,
    store: FakeBookmarkStore,
    embedding_service: EmbeddingService,
    embedding_queue: EmbeddingQueue,
    scraper: FakeScraperManager,
    text_generator: FakeTextGenerator,
) -> AsyncGenerator[AsyncClient]:
    """
    Test client with every service replaced by an in-memory fake.

    The lifespan does not run under ASGITransport, so app.state is wired here.
    Requests carry the X-User-Id header for USER_ID.
    """
    app.state.bookmark_store = store
    app.state.embedding_queue = embedding_queue
    app.state.enrichment_service = build_enrichment_service(
        store, embedding_queue, settings, text_generator=text_generator, scraper=scraper,
    )
    app.state.smart_search_service = build_search_service(
        store, embedding_service, text_generator=text_generator,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={'X-User-Id': USER_ID},
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
