"""Tests for the background embedding queue."""
import asyncio
from uuid import uuid4

from services.embedding_queue import EmbeddingJob, EmbeddingQueue
from services.embeddings import EmbeddingService
from tests.fakes import FakeBookmarkStore, FakeEmbeddingProvider, make_bookmark


def _job(bookmark_id: object, title: str = 'Calculus Basics') -> EmbeddingJob:
    return EmbeddingJob(
        bookmark_id=bookmark_id,
        title=title,
        content='Limits and derivatives',
        tags=('math', 'learning'),
        url='https://example.com/calc',
    )


async def test__process__writes_vector_and_model(
    store: FakeBookmarkStore,
    embedding_service: EmbeddingService,
    embedding_provider: FakeEmbeddingProvider,
) -> None:
    bookmark = await store.create(make_bookmark(title='Calculus Basics'))
    queue = EmbeddingQueue(embedding_service, store)

    assert await queue.process(_job(bookmark.id)) is True

    assert bookmark.embedding is not None
    assert len(bookmark.embedding) == embedding_provider.dimensions
    assert bookmark.embedding_model == embedding_provider.model
    assert store.updates == [
        (bookmark.id, {'embedding': bookmark.embedding, 'embedding_model': 'fake-embedding'}),
    ]


async def test__process__no_provider_leaves_record_unembedded(store: FakeBookmarkStore) -> None:
    bookmark = await store.create(make_bookmark())
    queue = EmbeddingQueue(EmbeddingService([]), store)

    assert await queue.process(_job(bookmark.id)) is False
    assert bookmark.embedding is None
    assert store.updates == []


async def test__enqueue__not_running_drops_job(
    store: FakeBookmarkStore,
    embedding_service: EmbeddingService,
) -> None:
    queue = EmbeddingQueue(embedding_service, store)
    assert queue.enqueue(_job(uuid4())) is False


async def test__worker__processes_enqueued_jobs(
    store: FakeBookmarkStore,
    embedding_queue: EmbeddingQueue,
) -> None:
    first = await store.create(make_bookmark(title='One'))
    second = await store.create(make_bookmark(title='Two'))

    assert embedding_queue.enqueue(_job(first.id, 'One'))
    assert embedding_queue.enqueue(_job(second.id, 'Two'))
    await embedding_queue.join()

    assert first.embedding is not None
    assert second.embedding is not None
    assert embedding_queue.processed == 2
    assert embedding_queue.failed == 0


async def test__worker__job_without_vector_counted_as_skipped(store: FakeBookmarkStore) -> None:
    bookmark = await store.create(make_bookmark())
    queue = EmbeddingQueue(EmbeddingService([]), store, workers=1)
    queue.start()
    try:
        queue.enqueue(_job(bookmark.id))
        await queue.join()
    finally:
        await queue.stop()

    assert (queue.processed, queue.skipped, queue.failed) == (0, 1, 0)
    assert bookmark.embedding is None


async def test__worker__survives_missing_record_and_provider_errors(
    store: FakeBookmarkStore,
) -> None:
    calls = 0

    def flaky(_text: str) -> list[float]:
        nonlocal calls
        calls += 1
        if calls == 2:
            raise RuntimeError('provider exploded')
        return [1.0, 0.0]

    provider = FakeEmbeddingProvider(vocabulary=('a', 'b'), vector_fn=flaky)
    queue = EmbeddingQueue(EmbeddingService([provider]), store, workers=1)
    queue.start()
    try:
        bookmark = await store.create(make_bookmark(title='Kept'))
        queue.enqueue(_job(uuid4(), 'Deleted before processing'))
        queue.enqueue(_job(bookmark.id, 'Provider fails'))
        queue.enqueue(_job(bookmark.id, 'Kept'))
        await queue.join()
    finally:
        await queue.stop()

    assert bookmark.embedding == [1.0, 0.0]
    assert queue.failed == 1
    assert queue.skipped == 1
    assert queue.processed == 1
    assert not queue.running


async def test__stop__drains_pending_jobs(
    store: FakeBookmarkStore,
    embedding_service: EmbeddingService,
) -> None:
    bookmark = await store.create(make_bookmark())
    queue = EmbeddingQueue(embedding_service, store)
    queue.start()
    queue.enqueue(_job(bookmark.id))

    await queue.stop(drain=True)

    assert bookmark.embedding is not None
    assert queue.enqueue(_job(bookmark.id)) is False


async def test__concurrent_jobs_same_record__last_writer_wins_whole(
    store: FakeBookmarkStore,
) -> None:
    """Two concurrent jobs for one id leave exactly one of the two outputs."""
    vectors = {'Version A': [1.0, 0.0, 0.0], 'Version B': [0.0, 1.0, 0.0]}

    def by_title(text: str) -> list[float]:
        return vectors['Version A'] if 'Version A' in text else vectors['Version B']

    provider = FakeEmbeddingProvider(vocabulary=('x', 'y', 'z'), vector_fn=by_title)
    queue = EmbeddingQueue(EmbeddingService([provider]), store)
    bookmark = await store.create(make_bookmark(title='Original'))

    results = await asyncio.gather(
        queue.process(_job(bookmark.id, 'Version A')),
        queue.process(_job(bookmark.id, 'Version B')),
    )

    assert results == [True, True]
    assert bookmark.embedding in (vectors['Version A'], vectors['Version B'])
    assert bookmark.embedding_model == 'fake-embedding'
