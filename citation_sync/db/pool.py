"""
Shared psycopg connection pool for the citation API and the queue worker.

Every pooled connection runs in autocommit with dict rows and a UTC session,
so the repositories only open a transaction when they update a submission and
its queue item together.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from citation_sync.config import settings
from citation_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Above this the pool is reported as saturated on /health/database
SATURATION_PERCENT = 90
SLOW_PROBE_MS = 100


class CitationDatabase:
    """Owns the pool lifecycle. One instance per process (see ``db_pool``)."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._state = "new"

    @property
    def initialized(self) -> bool:
        return self._state == "open"

    async def initialize(self) -> None:
        if self._state == "open":
            logger.warning("Citation database pool already open")
            return
        if self._state == "closed":
            raise RuntimeError("Cannot reinitialize closed pool")
        if not settings.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not configured")

        options = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._prepare_session,
            **options,
        )

        try:
            await pool.open()
            await pool.wait()
            self.pool = pool
            self._state = "open"
            await self._probe()
        except Exception as e:
            logger.error("Citation database pool failed to open", error=str(e))
            self._state = "new"
            self.pool = None
            await self._discard(pool)
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info(
            "Citation database pool ready",
            min_size=options["min_size"],
            max_size=options["max_size"],
            environment=settings.environment,
        )

    async def _prepare_session(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"citation-sync-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(
                sql.Literal(f"{settings.DB_STATEMENT_TIMEOUT_SECONDS}s")
            )
        )

    async def _probe(self) -> float:
        """Round-trip ``SELECT 1`` and return the latency in milliseconds."""
        started = time.perf_counter()
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1 AS ok")
                row = await cur.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError(f"Unexpected probe result: {row!r}")
        return (time.perf_counter() - started) * 1000

    @staticmethod
    async def _discard(pool: AsyncConnectionPool) -> None:
        try:
            await pool.close()
        except Exception as e:
            logger.warning("Error closing half-open pool", error=str(e))

    async def close(self) -> None:
        if self._state != "open":
            return
        self._state = "closed"
        try:
            await asyncio.wait_for(self.pool.close(), timeout=30.0)
            logger.info("Citation database pool closed")
        except TimeoutError:
            logger.warning("Citation database pool close timed out")
        except Exception as e:
            logger.error("Error closing citation database pool", error=str(e))

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if self._state == "closed":
            raise RuntimeError("Database pool is closed")
        if self._state != "open":
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside ``BEGIN``; commits on exit, rolls back on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if self._state != "open":
            reason = "Pool is closed" if self._state == "closed" else "Pool not initialized"
            return {"healthy": False, "error": reason, "service": "database_pool"}

        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        waiting = stats.get("requests_waiting", 0)

        try:
            latency_ms = await self._probe()
        except Exception as e:
            return {
                "healthy": False,
                "error": f"Connection test failed: {e}",
                "error_type": type(e).__name__,
                "service": "database_pool",
            }

        in_use = (size - available) / size * 100 if size else 0
        report = {
            "healthy": in_use < SATURATION_PERCENT and latency_ms < SLOW_PROBE_MS,
            "service": "database_pool",
            "connection_time_ms": round(latency_ms, 2),
            "pool_stats": {
                "pool_size": size,
                "pool_available": available,
                "pool_utilization_percent": round(in_use, 2),
                "requests_waiting": waiting,
            },
        }
        if waiting:
            report["warnings"] = [f"Requests waiting for connections: {waiting}"]
        return report


db_pool = CitationDatabase()


async def get_db_connection():
    return db_pool.connection()


async def get_db_transaction():
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
