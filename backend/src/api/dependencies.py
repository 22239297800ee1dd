"""FastAPI dependencies for injection."""
from fastapi import Depends, Header, HTTPException, Request, status

from core.config import Settings, get_settings
from services.bookmark_store import BookmarkStore
from services.enrichment_service import EnrichmentService
from services.smart_search_service import SmartSearchService

DEV_USER_ID = "dev-user"
MAX_USER_ID_LENGTH = 255


async def get_current_user_id(
    x_user_id: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Resolve the requesting user.

    Identity is established upstream; the gateway forwards the verified user id
    in the X-User-Id header. In DEV_MODE every request is the dev user.
    """
    if settings.dev_mode:
        return DEV_USER_ID
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )
    return user_id


def get_bookmark_store(request: Request) -> BookmarkStore:
    """Store built at startup."""
    return request.app.state.bookmark_store


def get_enrichment_service(request: Request) -> EnrichmentService:
    """Enrichment service built at startup."""
    return request.app.state.enrichment_service


def get_smart_search_service(request: Request) -> SmartSearchService:
    """Search service built at startup."""
    return request.app.state.smart_search_service


__all__ = [
    "DEV_USER_ID",
    "get_bookmark_store",
    "get_current_user_id",
    "get_enrichment_service",
    "get_settings",
    "get_smart_search_service",
]
