"""Schema bootstrap for environments without a migration runner."""
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from models.base import Base

logger = logging.getLogger(__name__)


async def create_schema(engine: AsyncEngine) -> None:
    """
    Enable pgvector and create all tables that do not exist yet.

    Idempotent: safe to call on every startup.
    """
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")
