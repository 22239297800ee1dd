"""
Bulk embedding regeneration.

Re-embeds every bookmark (or one user's bookmarks) one at a time, pausing
between records to stay under provider rate limits. Use after switching
embedding providers, or to backfill records saved while no provider was
configured.

Usage:
    python -m tasks.regenerate_embeddings
    python -m tasks.regenerate_embeddings --user USER_ID --delay 0.5
"""
import argparse
import asyncio
import logging
from dataclasses import dataclass

from core.config import get_settings
from db.session import get_session_factory
from services.bookmark_store import BookmarkStore, SqlBookmarkStore
from services.embedding_queue import EmbeddingQueue
from services.embeddings import build_embedding_service
from services.enrichment_service import embedding_job_for
from services.exceptions import BookmarkNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class RegenerationStats:
    """Statistics from a bulk regeneration run."""

    total: int = 0
    success: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {
            "total": self.total,
            "success": self.success,
            "skipped": self.skipped,
            "errors": self.errors,
        }


async def regenerate_embeddings(
    store: BookmarkStore,
    queue: EmbeddingQueue,
    user_id: str | None = None,
    delay: float = 0.1,
) -> RegenerationStats:
    """
    Regenerate embeddings sequentially.

    Jobs run inline through queue.process() rather than the worker pool, so
    one record is in flight at a time.

    Args:
        store: Record store.
        queue: Embedding queue used for its process() step; need not be started.
        user_id: Limit the run to one user's bookmarks.
        delay: Seconds to sleep between records.

    Returns:
        RegenerationStats. Skipped means the record vanished or no provider
        produced a vector.
    """
    stats = RegenerationStats()
    bookmark_ids = await store.list_ids(user_id)
    stats.total = len(bookmark_ids)
    logger.info("Regenerating embeddings for %d bookmarks", stats.total)

    for index, bookmark_id in enumerate(bookmark_ids):
        if index and delay > 0:
            await asyncio.sleep(delay)
        bookmark = await store.get_by_id(bookmark_id)
        if bookmark is None:
            stats.skipped += 1
            continue
        try:
            saved = await queue.process(embedding_job_for(bookmark))
        except BookmarkNotFoundError:
            stats.skipped += 1
            continue
        except Exception:
            logger.exception("Embedding regeneration failed for bookmark %s", bookmark_id)
            stats.errors += 1
            continue
        if saved:
            stats.success += 1
        else:
            stats.skipped += 1

    return stats


async def run_regenerate_embeddings(
    user_id: str | None = None,
    delay: float | None = None,
) -> RegenerationStats:
    """Build the store and embedding service from settings and run the regeneration."""
    settings = get_settings()
    store = SqlBookmarkStore(get_session_factory())
    queue = EmbeddingQueue(build_embedding_service(settings), store)
    stats = await regenerate_embeddings(
        store,
        queue,
        user_id=user_id,
        delay=settings.regeneration_delay_seconds if delay is None else delay,
    )
    logger.info("Embedding regeneration complete: %s", stats.to_dict())
    return stats


def main() -> None:
    """CLI entry point with --user and --delay options."""
    parser = argparse.ArgumentParser(description="Regenerate bookmark embeddings.")
    parser.add_argument("--user", default=None, help="Only regenerate this user's bookmarks")
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds between bookmarks (default: REGENERATION_DELAY_SECONDS)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_regenerate_embeddings(user_id=args.user, delay=args.delay))


if __name__ == "__main__":
    main()
