"""
Background embedding generation.

Saving a bookmark must not wait for an embedding provider, so the enrichment
service hands an EmbeddingJob to this queue after the record is persisted.
Worker tasks generate the vector and write back just the embedding columns in
one keyed update. Failures are logged and the job is dropped; the bookmark
stays searchable by keyword and can be regenerated explicitly later.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from uuid import UUID

from services.bookmark_store import BookmarkStore
from services.embeddings import EmbeddingService
from services.exceptions import BookmarkNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingJob:
    """Everything needed to embed one bookmark without re-reading it."""

    bookmark_id: UUID
    title: str
    content: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    url: str | None = None


class EmbeddingQueue:
    """
    asyncio.Queue drained by a fixed pool of worker tasks.

    Lifecycle is explicit: start() from the app lifespan, stop() on shutdown.
    enqueue() never blocks and never raises for a stopped queue; the job is
    dropped with a warning instead so saves keep succeeding.
    """

    def __init__(
        self,
        embeddings: EmbeddingService,
        store: BookmarkStore,
        workers: int = 2,
    ) -> None:
        self.embeddings = embeddings
        self.store = store
        self.worker_count = workers
        self._queue: asyncio.Queue[EmbeddingJob] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self.processed = 0
        self.skipped = 0
        self.failed = 0

    @property
    def running(self) -> bool:  # noqa: D102
        return bool(self._workers)

    def start(self) -> None:
        """Spawn worker tasks on the running event loop."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"embedding-worker-{i}")
            for i in range(self.worker_count)
        ]
        logger.info("Embedding queue started with %d workers", self.worker_count)

    def enqueue(self, job: EmbeddingJob) -> bool:
        """
        Schedule a job. Returns False when the queue is not running.

        The unbounded queue means put_nowait cannot fail.
        """
        if not self._workers:
            logger.warning("Embedding queue not running; dropped job for %s", job.bookmark_id)
            return False
        self._queue.put_nowait(job)
        return True

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Optionally drain pending jobs, then cancel the workers."""
        if drain and self._workers:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(
            "Embedding queue stopped (processed=%d, skipped=%d, failed=%d)",
            self.processed, self.skipped, self.failed,
        )

    async def process(self, job: EmbeddingJob) -> bool:
        """
        Generate and persist one embedding.

        Returns:
            True if a vector was written, False if none could be generated.
        """
        result = await self.embeddings.embed_bookmark(
            job.title, job.content, list(job.tags), job.url,
        )
        if result.is_empty:
            logger.warning("No embedding generated for bookmark %s", job.bookmark_id)
            return False
        await self.store.update_fields(
            job.bookmark_id,
            {"embedding": result.vector, "embedding_model": result.model},
        )
        logger.info(
            "Embedding saved for bookmark %s (%s, %d dims)",
            job.bookmark_id, result.model, result.dimensions,
        )
        return True

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                if await self.process(job):
                    self.processed += 1
                else:
                    self.skipped += 1
            except BookmarkNotFoundError:
                self.failed += 1
                logger.warning("Bookmark %s deleted before embedding was saved", job.bookmark_id)
            except Exception:
                self.failed += 1
                logger.exception(
                    "Embedding worker %d failed for bookmark %s", index, job.bookmark_id,
                )
            finally:
                self._queue.task_done()
