"""Shared exceptions for service layer operations."""
from uuid import UUID


class BookmarkNotFoundError(Exception):
    """Raised when a keyed lookup or update does not match any bookmark."""

    def __init__(self, bookmark_id: UUID | str) -> None:
        self.bookmark_id = bookmark_id
        super().__init__(f"Bookmark not found: {bookmark_id}")


class StoreUnavailableError(Exception):
    """
    Raised when the bookmark store cannot be reached.

    This is the one failure the enrichment and search paths do not absorb: the
    caller has to see it, because nothing was persisted or queried.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class EmbeddingDimensionError(ValueError):
    """
    Raised when vectors of different (or zero) length are compared or persisted.

    Mixed dimensions mean the corpus was embedded by a different provider than
    the one currently active. The fix is operational (regenerate all vectors),
    so this error is never caught inside the core.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ProviderNotConfiguredError(Exception):
    """Raised by an AI provider whose credentials are missing."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"{provider} is not configured")


class AIResponseParseError(ValueError):
    """Raised when a model response does not contain the expected JSON block."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)


class ScrapeError(Exception):
    """Raised by a scraper when the page could not be fetched or parsed."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to extract metadata from {url}: {reason}")
