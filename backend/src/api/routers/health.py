"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_bookmark_store
from services.bookmark_store import BookmarkStore


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    vector_search: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: BookmarkStore = Depends(get_bookmark_store),
) -> HealthResponse:
    """Check store connectivity and whether vector search is available."""
    db_status = "healthy"
    vector_search = False
    try:
        await store.ping()
        vector_search = await store.has_embedding_column()
    except Exception:
        logger.exception("Database health check failed")
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        vector_search=vector_search,
    )
