"""asyncpg pool used by the Postgres handle and the CLI."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

import asyncpg

from blacklist.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class Database:
    """
    Connection pool for the blacklist cache database.

    Pool bounds and the URL come from Settings (DATABASE_URL,
    DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE).

    Usage:
        async with Database() as db:
            async with db.transaction() as conn:
                await conn.execute("DELETE FROM blacklist_lists WHERE name = $1", name)
    """

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        settings = self._settings
        self._pool = await asyncpg.create_pool(
            str(settings.database_url),
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        logger.info(
            "Blacklist database pool open (%d-%d connections)",
            settings.db_pool_min_size,
            settings.db_pool_max_size,
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Blacklist database pool closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run the block on one connection inside one transaction."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement; returns the PostgreSQL status string (e.g. 'UPDATE 1')."""
        async with self.pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def health_check(self) -> bool:
        """True when a pooled connection answers a trivial query."""
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except (OSError, asyncpg.PostgresError, RuntimeError) as e:
            logger.warning("Blacklist database health check failed: %s", e)
            return False
