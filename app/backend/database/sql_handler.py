"""Async SQLAlchemy handler."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from models.sql.base import Base

# Register ORM tables on Base.metadata.
import models.sql.backup_scheduler  # noqa: F401


logger = logging.getLogger(__name__)


class SQLHandler:
    """Owns the async engine and the session factory."""

    def __init__(self, database_url: str, *, echo: bool = False):
        """Initialize the handler.

        Args:
            database_url: SQLAlchemy async database URL.
            echo: Log emitted SQL.
        """

        self.database_url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url, echo=echo)
        # Detached rows stay readable after commit; stores hand them to callers.
        self.AsyncSessionLocal = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_tables(self) -> None:
        """Create all tables that do not exist yet."""

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured url=%s", self.engine.url.render_as_string(hide_password=True))

    async def dispose(self) -> None:
        """Dispose of the engine's connection pool."""

        await self.engine.dispose()
