"""PostgreSQL engine and session factory for the SQL vault store.

Imported only when STORE_BACKEND=sql, so the in-memory backend never opens
a connection pool.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from vaultfill.config import settings

logger = logging.getLogger(__name__)

engine: AsyncEngine = create_async_engine(
    settings.db.database_url,
    echo=False,
    pool_size=settings.db.pool_size,
    max_overflow=settings.db.max_overflow,
    pool_pre_ping=True,
    pool_recycle=3600,
)

# Records are converted before the session closes; nothing is lazily loaded
async_session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Check the database answers, and create the vault tables outside production."""
    import vaultfill.models  # noqa: F401  registers every table on Base.metadata
    from vaultfill.models.base import Base

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if settings.is_production:
            logger.info("Production database: expecting vault tables to exist")
        else:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Vault tables ensured (%d tables)", len(Base.metadata.tables))


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Open the pool for the app's lifetime and dispose it on shutdown."""
    await init_db()
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database pool disposed")
