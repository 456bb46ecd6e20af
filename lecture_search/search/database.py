"""PostgreSQL connection pool for search retrieval.

Wraps a SQLAlchemy ``AsyncEngine`` (asyncpg driver) in an explicit
resource manager. The engine is created lazily on first use and must be
disposed on shutdown. Components receive a ``Database`` instance by
injection so tests can substitute a fake.

Pool policy:
- At most ``db_pool_size`` connections, no overflow.
- Checkout blocks up to ``db_pool_timeout`` seconds when exhausted.
- Connections are returned to the pool on every exit path.
- Bound parameters are never rendered into error messages.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from lecture_search.search.config import SearchConfig, get_search_config
from lecture_search.search.errors import DatabaseNotConfiguredError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

logger = logging.getLogger(__name__)


class Database:
    """Lazily-initialized async connection pool.

    Attributes:
        config: Search configuration with connection and pool settings.
    """

    def __init__(self, config: SearchConfig) -> None:
        """Initialize without connecting.

        Args:
            config: Search configuration.
        """
        self.config = config
        self._engine: AsyncEngine | None = None

    @property
    def is_initialized(self) -> bool:
        """True once the engine has been created."""
        return self._engine is not None

    def init(self) -> AsyncEngine:
        """Create the engine if needed and return it.

        Raises:
            DatabaseNotConfiguredError: If no database URL is configured.
        """
        if self._engine is not None:
            return self._engine

        url = self.config.async_database_url
        if not url:
            raise DatabaseNotConfiguredError(
                "SEARCH_DATABASE_URL, POSTGRES_URL or DATABASE_URL must be set"
            )

        self._engine = create_async_engine(
            url,
            pool_pre_ping=True,
            pool_size=self.config.db_pool_size,
            max_overflow=0,
            pool_timeout=self.config.db_pool_timeout,
            pool_recycle=self.config.db_pool_recycle,
            hide_parameters=True,
        )
        logger.info(f"Database pool created: size={self.config.db_pool_size}")
        return self._engine

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Check out a pooled connection for the duration of the block."""
        engine = self.init()
        async with engine.connect() as conn:
            yield conn

    async def fetch_all(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run a parameterized query and return rows as plain dicts.

        Args:
            sql: SQL text with ``:name`` bind parameters.
            params: Bind parameter values.

        Returns:
            One dict per row, keyed by column label.
        """
        async with self.connection() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return [dict(row) for row in result.mappings().all()]

    async def dispose(self) -> None:
        """Close all pooled connections. Safe to call more than once."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        logger.info("Database pool disposed")


@lru_cache
def get_database() -> Database:
    """Get the process-wide database resource manager."""
    return Database(get_search_config())
