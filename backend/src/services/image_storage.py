"""
Image download and storage collaborator.

Binary object storage is external to this service. PassthroughImageStorage
keeps the source URL as the image reference and derives a content-addressed
key, which is enough for the enrichment pipeline to record image metadata.
A real object store only needs to implement ImageStorage.upload().
"""
import hashlib
import logging
from dataclasses import dataclass
from typing import Protocol

from services.exceptions import ScrapeError
from services.url_scraper import DEFAULT_TIMEOUT, fetch_url, read_image_info

logger = logging.getLogger(__name__)


@dataclass
class DownloadedImage:
    """Raw image bytes and where they came from."""

    data: bytes
    media_type: str
    source_url: str


@dataclass
class UploadedImage:
    """Reference to a stored image plus its measured properties."""

    url: str
    storage_key: str
    width: int | None
    height: int | None
    size: int
    format: str | None


class ImageStorage(Protocol):
    """Binary object store for image bookmarks."""

    async def upload(self, image: DownloadedImage, user_id: str) -> UploadedImage:
        """Store the image and return its reference and properties."""
        ...


async def download_image(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,  # noqa: ASYNC109
    max_bytes: int = 5 * 1024 * 1024,
) -> DownloadedImage:
    """
    Download an image with the SSRF guard and a size cap.

    Raises:
        ScrapeError: If the URL is blocked, unreachable, too large, or not an image.
    """
    result = await fetch_url(url, timeout, max_bytes=max_bytes)
    if result.error:
        raise ScrapeError(url, result.error)
    if not isinstance(result.content, bytes):
        raise ScrapeError(url, f"Not an image: {result.content_type}")
    media_type = (result.content_type or "image/jpeg").split(";")[0].strip()
    return DownloadedImage(data=result.content, media_type=media_type, source_url=result.final_url)


class PassthroughImageStorage:
    """ImageStorage that measures the image but leaves it at its source URL."""

    async def upload(self, image: DownloadedImage, user_id: str) -> UploadedImage:  # noqa: D102
        info = read_image_info(image.data)
        extension = info.format or image.media_type.rsplit("/", 1)[-1] or "jpg"
        digest = hashlib.sha256(image.data).hexdigest()
        return UploadedImage(
            url=image.source_url,
            storage_key=f"images/{user_id}/{digest}.{extension}",
            width=info.width,
            height=info.height,
            size=info.size,
            format=info.format,
        )
