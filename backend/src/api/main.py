"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from api.routers import bookmarks, health
from core.config import Settings, get_settings
from db.init_db import create_schema
from db.session import engine, get_session_factory
from services.bookmark_store import BookmarkStore, SqlBookmarkStore
from services.embedding_queue import EmbeddingQueue
from services.embeddings import build_embedding_service
from services.enrichment_service import EnrichmentService
from services.exceptions import BookmarkNotFoundError, StoreUnavailableError
from services.image_storage import PassthroughImageStorage
from services.llm import build_anthropic_client, build_generator
from services.query_parser import QueryParser
from services.reranker import Reranker
from services.retrieval import RetrievalEngine
from services.smart_search_service import SmartSearchService
from services.tagging import TagGenerator
from services.url_scraper import ScraperManager
from services.vision_analyzer import VisionAnalyzer

logger = logging.getLogger(__name__)


def build_services(
    app: FastAPI, settings: Settings, store: BookmarkStore,
) -> EmbeddingQueue:
    """
    Construct every service once and attach it to app.state.

    Returns the embedding queue, which the caller owns (start/stop).
    """
    client = build_anthropic_client(settings)
    text_generator = build_generator(client, settings.text_model, settings.ai_timeout)
    vision_generator = build_generator(client, settings.vision_model, settings.ai_timeout)

    embeddings = build_embedding_service(settings)
    embedding_queue = EmbeddingQueue(embeddings, store, workers=settings.embedding_workers)

    app.state.bookmark_store = store
    app.state.embedding_queue = embedding_queue
    app.state.enrichment_service = EnrichmentService(
        store=store,
        scraper=ScraperManager.default(settings.scrape_timeout, settings.max_image_bytes),
        tagger=TagGenerator(text_generator, max_tags=settings.max_generated_tags),
        vision=VisionAnalyzer(vision_generator),
        embedding_queue=embedding_queue,
        image_storage=PassthroughImageStorage(),
        settings=settings,
    )
    app.state.smart_search_service = SmartSearchService(
        parser=QueryParser(text_generator),
        embeddings=embeddings,
        retrieval=RetrievalEngine(store, overfetch_factor=settings.search_overfetch_factor),
        reranker=Reranker(text_generator),
    )
    return embedding_queue


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: schema, services, background embedding workers
    if app_settings.init_db_on_startup:
        await create_schema(engine)
    store = SqlBookmarkStore(get_session_factory())
    embedding_queue = build_services(app, app_settings, store)
    embedding_queue.start()

    yield

    # Shutdown: finish queued embeddings before the engine goes away
    await embedding_queue.stop(drain=True)
    await engine.dispose()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response


app_settings = get_settings()

app = FastAPI(
    title="Bookmark Enrichment API",
    description="Bookmark enrichment with AI tagging, vision analysis, and hybrid search.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_exception_handler(
    _request: Request, _exc: StoreUnavailableError,
) -> JSONResponse:
    """The record store could not be reached."""
    return JSONResponse(
        status_code=503,
        content={"detail": "Bookmark store unavailable. Please try again later."},
    )


@app.exception_handler(BookmarkNotFoundError)
async def bookmark_not_found_exception_handler(
    _request: Request, _exc: BookmarkNotFoundError,
) -> JSONResponse:
    """Keyed lookup or update missed."""
    return JSONResponse(status_code=404, content={"detail": "Bookmark not found"})


# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(bookmarks.router)
