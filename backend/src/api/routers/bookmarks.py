"""Bookmark save, fetch, and smart-search endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from api.dependencies import (
    get_bookmark_store,
    get_current_user_id,
    get_enrichment_service,
    get_settings,
    get_smart_search_service,
)
from core.config import Settings
from schemas.bookmark import BookmarkCreate, BookmarkResponse, ImageBookmarkCreate
from schemas.search import SmartSearchRequest, SmartSearchResponse
from services.bookmark_store import BookmarkStore
from services.enrichment_service import EnrichmentService
from services.smart_search_service import SmartSearchService

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


class EmbeddingRegenerationResponse(BaseModel):
    """Acknowledgement for a queued embedding regeneration."""

    id: UUID
    queued: bool


@router.post("/", response_model=BookmarkResponse, status_code=201)
async def create_bookmark(
    data: BookmarkCreate,
    user_id: str = Depends(get_current_user_id),
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> BookmarkResponse:
    """
    Save a URL or text note.

    Enrichment (metadata, tags, summary) is best-effort; the embedding is
    generated in the background, so has_embedding is false in this response.
    """
    bookmark = await enrichment.enrich_and_save(user_id, data)
    return BookmarkResponse.model_validate(bookmark)


@router.post("/image", response_model=BookmarkResponse, status_code=201)
async def create_image_bookmark(
    data: ImageBookmarkCreate,
    user_id: str = Depends(get_current_user_id),
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> BookmarkResponse:
    """Save an image with vision analysis."""
    bookmark = await enrichment.enrich_and_save_image(user_id, data)
    return BookmarkResponse.model_validate(bookmark)


@router.post("/smart-search", response_model=SmartSearchResponse)
async def smart_search(
    data: SmartSearchRequest,
    user_id: str = Depends(get_current_user_id),
    search_service: SmartSearchService = Depends(get_smart_search_service),
    settings: Settings = Depends(get_settings),
) -> SmartSearchResponse:
    """
    Natural-language search.

    Always 200: an empty or unmatched query returns an empty result list
    with a message.
    """
    limit = min(data.limit or settings.default_search_limit, settings.max_search_limit)
    return await search_service.search(data.query, user_id, limit)


@router.get("/{bookmark_id}", response_model=BookmarkResponse)
async def get_bookmark(
    bookmark_id: UUID,
    user_id: str = Depends(get_current_user_id),
    store: BookmarkStore = Depends(get_bookmark_store),
) -> BookmarkResponse:
    """Get a single bookmark by ID."""
    bookmark = await store.get(user_id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.post(
    "/{bookmark_id}/embedding",
    response_model=EmbeddingRegenerationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def regenerate_embedding(
    bookmark_id: UUID,
    user_id: str = Depends(get_current_user_id),
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> EmbeddingRegenerationResponse:
    """Queue a fresh embedding for one bookmark."""
    queued = await enrichment.regenerate_embedding(bookmark_id, user_id=user_id)
    return EmbeddingRegenerationResponse(id=bookmark_id, queued=queued)
