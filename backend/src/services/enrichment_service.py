"""
Enrichment orchestrator: classify, scrape, tag, summarize, persist, embed.

Every enrichment step is best-effort. The only failures that reach the caller
are request validation (before this service runs) and StoreUnavailableError
from persisting the record. Embedding generation is handed to the background
EmbeddingQueue after the record exists, so saves never wait on it.
"""
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from core.config import Settings
from models.bookmark import Bookmark
from schemas.bookmark import BookmarkCreate, ImageBookmarkCreate
from services.bookmark_store import BookmarkStore
from services.content_classifier import detect_content_type, get_favicon_url
from services.embedding_queue import EmbeddingJob, EmbeddingQueue
from services.exceptions import BookmarkNotFoundError, ScrapeError
from services.image_storage import DownloadedImage, ImageStorage, UploadedImage, download_image
from services.tagging import TagGenerator, infer_category, merge_tags
from services.url_scraper import ScraperManager
from services.vision_analyzer import ImageAnalysis, VisionAnalyzer

logger = logging.getLogger(__name__)

IMAGE_TAG_CONTEXT_MIN_LENGTH = 20
IMAGE_TITLE_CONTEXT_MIN_LENGTH = 10
IMAGE_TITLE_WORDS = 10
IMAGE_TITLE_MAX_CHARS = 100
SURROUNDING_TEXT_METADATA_CHARS = 500
# Encodings the vision model accepts inline as base64
INLINE_VISION_MEDIA_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


def _join_text(*parts: str | None) -> str:
    return " ".join(part for part in parts if part)


def derive_image_title(
    title: str | None,
    page_title: str | None,
    alt_text: str | None,
    surrounding_text: str | None,
) -> str:
    """
    Pick a title for an image bookmark.

    An explicit title always wins. Otherwise the first words of the
    surrounding text are preferred over the page title and alt text.
    """
    if title:
        return title
    derived = page_title or alt_text or "Image"
    if surrounding_text and len(surrounding_text) > IMAGE_TITLE_CONTEXT_MIN_LENGTH:
        words = surrounding_text.split()[:IMAGE_TITLE_WORDS]
        derived = " ".join(words)[:IMAGE_TITLE_MAX_CHARS] or derived
    return derived


def embedding_job_for(bookmark: Bookmark) -> EmbeddingJob:
    """Build the embedding job for a stored bookmark (used for regeneration)."""
    if bookmark.content_type == "image":
        content = _join_text(
            bookmark.title,
            bookmark.ocr_text,
            bookmark.image_description,
            " ".join(bookmark.tags or []),
            " ".join(bookmark.image_objects or []),
        )
    else:
        content = bookmark.content or bookmark.description
    return EmbeddingJob(
        bookmark_id=bookmark.id,
        title=bookmark.title,
        content=content,
        tags=tuple(bookmark.tags or []),
        url=bookmark.url,
    )


class EnrichmentService:
    """Runs the save pipeline for URL, note, and image bookmarks."""

    def __init__(
        self,
        store: BookmarkStore,
        scraper: ScraperManager,
        tagger: TagGenerator,
        vision: VisionAnalyzer,
        embedding_queue: EmbeddingQueue,
        image_storage: ImageStorage,
        settings: Settings,
    ) -> None:
        self.store = store
        self.scraper = scraper
        self.tagger = tagger
        self.vision = vision
        self.embedding_queue = embedding_queue
        self.image_storage = image_storage
        self.settings = settings

    async def enrich_and_save(self, user_id: str, data: BookmarkCreate) -> Bookmark:
        """
        Save a URL or text bookmark with best-effort enrichment.

        Classification happens first and needs no network. Scraping, tagging
        and content analysis each fall back independently, so the record is
        always persisted with at least the caller's fields.

        Raises:
            StoreUnavailableError: If the record could not be persisted.
        """
        url = data.url_str
        content_type = detect_content_type(url)

        title = data.title
        description = thumbnail = favicon = page_text = None
        extracted_at = None
        metadata: dict[str, Any] = {}

        if url:
            scraped = await self.scraper.scrape(url)
            if not scraped.failed and scraped.title:
                title = scraped.title[:self.settings.max_title_length]
            description = scraped.description
            thumbnail = scraped.thumbnail
            page_text = scraped.text
            metadata.update(scraped.metadata)
            favicon = get_favicon_url(url)
            extracted_at = datetime.now(UTC)

        text = data.content or page_text or description or title
        tags = await self._generate_tags(title, text, url, data.tags)

        summary = None
        key_points: list[str] = []
        if len(text) > self.settings.content_analysis_min_length:
            analysis = await self.tagger.analyze_content(text, content_type, url)
            if analysis.summary:
                summary = analysis.summary
                metadata["ai_summary"] = analysis.summary
            if analysis.key_points:
                key_points = analysis.key_points
                metadata["key_points"] = analysis.key_points
            if analysis.suggested_tags:
                tags = merge_tags(tags, analysis.suggested_tags, self.settings.max_merged_tags)

        bookmark = Bookmark(
            user_id=user_id,
            title=title,
            url=url,
            content_type=content_type,
            content=data.content or description,
            description=description,
            thumbnail=thumbnail,
            favicon=favicon,
            extra_metadata=metadata or None,
            tags=tags,
            category=infer_category(tags, content_type=content_type),
            summary=summary,
            key_points=key_points,
            extracted_at=extracted_at,
        )
        bookmark = await self.store.create(bookmark)
        logger.info(
            "Saved %s bookmark %s with %d tags", content_type, bookmark.id, len(tags),
        )

        self.embedding_queue.enqueue(EmbeddingJob(
            bookmark_id=bookmark.id,
            title=title,
            content=data.content or page_text or description,
            tags=tuple(tags),
            url=url,
        ))
        return bookmark

    async def _generate_tags(
        self,
        title: str,
        text: str,
        url: str | None,
        user_tags: list[str],
    ) -> list[str]:
        """AI tags first, then the caller's; a smaller cap when AI tags stand alone."""
        ai_tags = await self.tagger.generate_tags(title, text, url)
        if user_tags:
            return merge_tags(ai_tags, user_tags, self.settings.max_merged_tags)
        return ai_tags[:self.settings.max_generated_tags]

    async def enrich_and_save_image(self, user_id: str, data: ImageBookmarkCreate) -> Bookmark:
        """
        Save an image bookmark with vision analysis.

        Download, storage, vision, and tagging are all best-effort. A failed
        download still produces a record that points at the original URL.

        Raises:
            StoreUnavailableError: If the record could not be persisted.
        """
        image_url = str(data.image_url)
        page_url = str(data.page_url) if data.page_url else None

        downloaded = await self._download_image(image_url)
        uploaded = await self._upload_image(downloaded, user_id) if downloaded else None
        analysis_url = uploaded.url if uploaded else image_url
        if downloaded and downloaded.media_type in INLINE_VISION_MEDIA_TYPES:
            analysis = await self.vision.analyze_bytes(
                downloaded.data, downloaded.media_type, data.surrounding_text, data.alt_text,
            )
        else:
            analysis = await self.vision.analyze(
                analysis_url, data.surrounding_text, data.alt_text,
            )

        title = derive_image_title(
            data.title, data.page_title, data.alt_text, data.surrounding_text,
        )[:self.settings.max_title_length]
        tags = await self._image_tags(title, analysis, data, page_url)

        bookmark = Bookmark(
            user_id=user_id,
            title=title,
            url=page_url or image_url,
            content_type="image",
            content=data.surrounding_text or analysis.description,
            image_url=analysis_url,
            image_storage_key=uploaded.storage_key if uploaded else None,
            image_width=uploaded.width if uploaded else None,
            image_height=uploaded.height if uploaded else None,
            image_size=uploaded.size if uploaded else None,
            image_format=uploaded.format if uploaded else None,
            ocr_text=analysis.ocr_text or None,
            image_description=analysis.description or None,
            image_objects=analysis.objects,
            tags=tags,
            category=infer_category(tags, analysis.objects, content_type="image"),
            extra_metadata={
                "original_image_url": image_url,
                "page_title": data.page_title,
                "alt_text": data.alt_text,
                "surrounding_text": (
                    data.surrounding_text[:SURROUNDING_TEXT_METADATA_CHARS]
                    if data.surrounding_text else None
                ),
                "ai_confidence": analysis.confidence,
            },
        )
        bookmark = await self.store.create(bookmark)
        logger.info("Saved image bookmark %s with %d tags", bookmark.id, len(tags))

        self.embedding_queue.enqueue(embedding_job_for(bookmark))
        return bookmark

    async def _download_image(self, image_url: str) -> DownloadedImage | None:
        try:
            return await download_image(
                image_url,
                timeout=self.settings.scrape_timeout,
                max_bytes=self.settings.max_image_bytes,
            )
        except ScrapeError as e:
            logger.warning("Image download failed for %s: %s", image_url, e.reason)
        return None

    async def _upload_image(self, image: DownloadedImage, user_id: str) -> UploadedImage | None:
        try:
            return await self.image_storage.upload(image, user_id)
        except Exception:
            logger.exception("Image storage failed for %s", image.source_url)
        return None

    async def _image_tags(
        self,
        title: str,
        analysis: ImageAnalysis,
        data: ImageBookmarkCreate,
        page_url: str | None,
    ) -> list[str]:
        context = _join_text(
            analysis.ocr_text, analysis.description, data.surrounding_text, data.alt_text,
        )
        ai_tags: list[str] = []
        if len(context) > IMAGE_TAG_CONTEXT_MIN_LENGTH:
            ai_tags = await self.tagger.generate_tags(title, context, page_url)
        return merge_tags(
            [*analysis.tags, *ai_tags], data.tags, self.settings.max_image_tags,
        )

    async def regenerate_embedding(self, bookmark_id: UUID, user_id: str | None = None) -> bool:
        """
        Queue a fresh embedding for one bookmark.

        Returns:
            True if the job was queued.

        Raises:
            BookmarkNotFoundError: If the bookmark does not exist (or is not
                owned by user_id when given).
        """
        if user_id is not None:
            bookmark = await self.store.get(user_id, bookmark_id)
        else:
            bookmark = await self.store.get_by_id(bookmark_id)
        if bookmark is None:
            raise BookmarkNotFoundError(bookmark_id)
        return self.embedding_queue.enqueue(embedding_job_for(bookmark))
