"""
asyncpg pool for the PostgreSQL chapter store.

Every store operation is a single statement, so each helper borrows one
pooled connection for exactly one call. Sessions run in UTC so ``NOW()``
and timestamp comparisons line up with the UTC datetimes the workers use.
"""

import logging
from types import TracebackType
from typing import Any

import asyncpg

from chapterbell.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


async def _prepare_connection(conn: asyncpg.Connection) -> None:
    await conn.execute("SET TIME ZONE 'UTC'")


class Database:
    """
    Connection pool with one-statement query helpers.

    Usage:
        async with Database() as db:
            count = await db.fetchval("SELECT count(*) FROM chapters")
    """

    def __init__(self, settings: Settings | None = None, command_timeout: float = 60.0):
        settings = settings or get_settings()
        self._dsn = str(settings.database_url)
        self._pool_size = (settings.db_pool_min_size, settings.db_pool_max_size)
        self._command_timeout = command_timeout
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        min_size, max_size = self._pool_size
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=self._command_timeout,
                init=_prepare_connection,
            )
        except Exception as e:
            logger.error("Could not open chapter store pool: %s", e)
            raise
        logger.info("Chapter store pool open (%d-%d connections)", min_size, max_size)

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("Chapter store pool closed")

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

    async def _run(self, method: str, query: str, args: tuple[Any, ...]) -> Any:
        if self._pool is None:
            raise RuntimeError("Database not connected; call connect() first")
        async with self._pool.acquire() as conn:
            return await getattr(conn, method)(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement and return its status tag."""
        return await self._run("execute", query, args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self._run("fetch", query, args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self._run("fetchrow", query, args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._run("fetchval", query, args)

    async def health_check(self) -> bool:
        """True if the pool can run a trivial query."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning("Chapter store health check failed: %s", e)
            return False
