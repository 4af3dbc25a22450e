"""
Query helpers used by the citation repositories.

Each helper borrows a pooled connection unless one is passed in, and turns
psycopg failures into ``DatabaseError`` so callers only handle one type.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from citation_sync.db.pool import get_db_connection, get_db_transaction
from citation_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A query or transaction failed. ``recoverable`` tells the worker whether to keep going."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _borrowed(
    connection: psycopg.AsyncConnection | None, operation: str, query: str
) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    try:
        if connection is not None:
            yield connection
        else:
            async with await get_db_connection() as conn:
                yield conn
    except psycopg.Error as e:
        logger.error("Citation query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """First row as a dict, or None."""
    async with _borrowed(connection, "fetch_one", query) as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchone() or None


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    async with _borrowed(connection, "fetch_all", query) as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()


async def fetch_val(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> Any:
    """First column of the first row, e.g. an encrypted credential value."""
    row = await fetch_one(query, params, connection=connection)
    return next(iter(row.values())) if row else None


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    async with _borrowed(connection, "execute", query) as conn:
        cursor = await conn.execute(query, params)
        return cursor.rowcount


async def execute_transaction(statements: list[tuple[str, tuple]]) -> list[int]:
    """
    Run ``(query, params)`` pairs inside one transaction.

    Used when a submission row and its queue item must change together, e.g.
    marking a submission ``submitted`` and completing the queue item.
    Returns the affected row count per statement.
    """
    rowcounts = []
    try:
        async with await get_db_transaction() as conn:
            for query, params in statements:
                cursor = await conn.execute(query, params)
                rowcounts.append(cursor.rowcount)
    except psycopg.Error as e:
        logger.error("Citation transaction rolled back", statements=len(statements), error=str(e))
        raise DatabaseError(f"Transaction failed: {e}", operation="transaction") from e

    return rowcounts


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a repository call when the underlying failure is an ``OperationalError``
    (dropped connection, failover). Other database errors propagate at once.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not isinstance(e.__cause__, psycopg.OperationalError):
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            "Citation query gave up", operation=func.__name__, attempts=attempt + 1
                        )
                        raise DatabaseError(
                            f"Operation failed after {max_retries} retries: {e}",
                            operation=func.__name__,
                            recoverable=False,
                        ) from e

                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Retrying citation query",
                        operation=func.__name__,
                        attempt=attempt,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
