"""
Bulk AI tag regeneration.

Asks the text model for fresh tags on every bookmark and merges them in front
of the existing tags. Records with too little text to tag are skipped.

Usage:
    python -m tasks.regenerate_tags
    python -m tasks.regenerate_tags --user USER_ID
"""
import argparse
import asyncio
import logging

from core.config import get_settings
from db.session import get_session_factory
from models.bookmark import Bookmark
from services.bookmark_store import BookmarkStore, SqlBookmarkStore
from services.exceptions import BookmarkNotFoundError
from services.llm import build_anthropic_client, build_generator
from services.tagging import TagGenerator, merge_tags
from tasks.regenerate_embeddings import RegenerationStats

logger = logging.getLogger(__name__)

# Tag requests are heavier than embeddings; one per second
DEFAULT_DELAY_SECONDS = 1.0
MIN_TAGGABLE_CHARS = 10


def taggable_text(bookmark: Bookmark) -> str | None:
    """Best available text for tagging: content, image description, OCR, then title."""
    return (
        bookmark.content
        or bookmark.image_description
        or bookmark.ocr_text
        or bookmark.title
    )


async def regenerate_tags(
    store: BookmarkStore,
    tagger: TagGenerator,
    user_id: str | None = None,
    delay: float = DEFAULT_DELAY_SECONDS,
    max_tags: int = 8,
) -> RegenerationStats:
    """
    Regenerate tags sequentially.

    New AI tags come first, existing tags fill the remainder up to max_tags.
    A bookmark for which the model returns nothing keeps its tags and is
    counted as skipped.
    """
    stats = RegenerationStats()
    bookmark_ids = await store.list_ids(user_id)
    stats.total = len(bookmark_ids)
    logger.info("Regenerating tags for %d bookmarks", stats.total)

    for index, bookmark_id in enumerate(bookmark_ids):
        if index and delay > 0:
            await asyncio.sleep(delay)
        bookmark = await store.get_by_id(bookmark_id)
        if bookmark is None:
            stats.skipped += 1
            continue

        text = taggable_text(bookmark)
        if not text or len(text) < MIN_TAGGABLE_CHARS:
            logger.info("Skipping bookmark %s: insufficient content", bookmark_id)
            stats.skipped += 1
            continue

        ai_tags = await tagger.generate_tags(bookmark.title, text, bookmark.url)
        if not ai_tags:
            stats.skipped += 1
            continue

        tags = merge_tags(ai_tags, bookmark.tags or [], max_tags)
        try:
            await store.update_fields(bookmark_id, {"tags": tags})
        except BookmarkNotFoundError:
            stats.skipped += 1
            continue
        except Exception:
            logger.exception("Tag update failed for bookmark %s", bookmark_id)
            stats.errors += 1
            continue
        logger.info("Updated tags for bookmark %s: %s", bookmark_id, ", ".join(tags))
        stats.success += 1

    return stats


async def run_regenerate_tags(
    user_id: str | None = None,
    delay: float = DEFAULT_DELAY_SECONDS,
) -> RegenerationStats:
    """Build the store and tagger from settings and run the regeneration."""
    settings = get_settings()
    store = SqlBookmarkStore(get_session_factory())
    generator = build_generator(
        build_anthropic_client(settings), settings.text_model, settings.ai_timeout,
    )
    if generator is None:
        logger.error("No text model configured; nothing to do")
        return RegenerationStats()
    tagger = TagGenerator(generator, max_tags=settings.max_generated_tags)
    stats = await regenerate_tags(
        store, tagger, user_id=user_id, delay=delay, max_tags=settings.max_merged_tags,
    )
    logger.info("Tag regeneration complete: %s", stats.to_dict())
    return stats


def main() -> None:
    """CLI entry point with --user and --delay options."""
    parser = argparse.ArgumentParser(description="Regenerate bookmark tags with AI.")
    parser.add_argument("--user", default=None, help="Only retag this user's bookmarks")
    parser.add_argument(
        "--delay",
        type=float,
        default=DEFAULT_DELAY_SECONDS,
        help="Seconds between bookmarks",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_regenerate_tags(user_id=args.user, delay=args.delay))


if __name__ == "__main__":
    main()
