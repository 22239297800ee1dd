"""
Fixtures for tests against a real PostgreSQL + pgvector database.

A pgvector container is started once per session. Every test runs inside an
outer transaction that is rolled back, and the store's own commits become
savepoints, so tests don't affect each other.
"""
from collections.abc import AsyncGenerator, Generator

import pytest
from docker.errors import DockerException
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from testcontainers.postgres import PostgresContainer

from db.init_db import create_schema
from services.bookmark_store import SqlBookmarkStore


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer]:
    """Start a PostgreSQL container with the pgvector extension available."""
    container = PostgresContainer("pgvector/pgvector:pg16", driver="asyncpg")
    try:
        container.start()
    except DockerException as e:
        pytest.skip(f"Docker is not available: {e}")
    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
async def async_engine(postgres_container: PostgresContainer) -> AsyncGenerator[AsyncEngine]:
    """Engine with the schema created."""
    engine = create_async_engine(postgres_container.get_connection_url(), echo=False)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_connection(async_engine: AsyncEngine) -> AsyncGenerator[AsyncConnection]:
    """Connection with a transaction that is rolled back after the test."""
    async with async_engine.connect() as connection:
        transaction = await connection.begin()
        try:
            yield connection
        finally:
            await transaction.rollback()


@pytest.fixture
def sql_store(db_connection: AsyncConnection) -> SqlBookmarkStore:
    """
    SqlBookmarkStore bound to the test transaction.

    join_transaction_mode="create_savepoint" lets the store commit per call
    while the outer transaction still rolls everything back.
    """
    session_factory = async_sessionmaker(
        bind=db_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    return SqlBookmarkStore(session_factory)
