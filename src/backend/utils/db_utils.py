"""Database utilities for connection management and resilience.

Provides:
- Connection pool factory with production configuration
- Retry decorator for transient database failures
- Pool health statistics
- Connection acquisition with timeouts
- Query timing
"""

from __future__ import annotations

import asyncio
import functools
import random
import time

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import asyncpg

from utils.logger import logger
from utils.metrics import db_pool_connections, db_query_duration_seconds

P = ParamSpec("P")
T = TypeVar("T")


class DatabaseUnavailable(Exception):
    """Pool could not be created or a connection could not be acquired."""


async def create_database_pool(
    dsn: str,
    *,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    connection_timeout: float = 10.0,
    statement_cache_size: int = 100,
    max_inactive_connection_lifetime: float = 300.0,
) -> asyncpg.Pool:
    """Create a production-configured database connection pool.

    Args:
        dsn: PostgreSQL connection string
        min_size: Minimum connections to maintain
        max_size: Maximum connections allowed
        command_timeout: Default query timeout in seconds
        connection_timeout: Timeout for establishing the initial connections
        statement_cache_size: Prepared statement cache per connection
        max_inactive_connection_lifetime: Close idle connections after this time

    Raises:
        DatabaseUnavailable: If initial connections cannot be established
    """

    async def init_connection(conn: asyncpg.Connection) -> None:
        timeout_ms = int(command_timeout * 1000)
        await conn.execute(f"SET statement_timeout = '{timeout_ms}'")
        await conn.execute(f"SET lock_timeout = '{timeout_ms}'")

    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn=dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
                statement_cache_size=statement_cache_size,
                max_inactive_connection_lifetime=max_inactive_connection_lifetime,
                init=init_connection,
            ),
            timeout=connection_timeout,
        )
    except TimeoutError as e:
        raise DatabaseUnavailable(f"Connection pool creation timed out after {connection_timeout}s") from e
    except Exception as e:
        raise DatabaseUnavailable(f"Failed to create connection pool: {e}") from e

    if pool is None:
        raise DatabaseUnavailable("Failed to create connection pool")
    return pool


@asynccontextmanager
async def acquire_connection(
    pool: asyncpg.Pool,
    *,
    timeout: float | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection, translating acquire timeouts.

    Raises:
        DatabaseUnavailable: If a connection cannot be acquired within timeout
    """
    try:
        async with pool.acquire(timeout=timeout) as conn:
            yield conn
    except TimeoutError as e:
        raise DatabaseUnavailable(
            f"Could not acquire database connection within {timeout}s - pool may be exhausted"
        ) from e


@asynccontextmanager
async def timed_query(query_type: str) -> AsyncGenerator[None, None]:
    """Observe the wrapped block in the query duration histogram."""
    start = time.perf_counter()
    try:
        yield
    finally:
        db_query_duration_seconds.labels(query_type=query_type).observe(time.perf_counter() - start)


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    retryable_exceptions: tuple[type[Exception], ...] = (
        asyncpg.PostgresConnectionError,
        asyncpg.InterfaceError,
        DatabaseUnavailable,
    ),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry a coroutine on transient database failures.

    Uses exponential backoff with jitter. Only wrap idempotent reads:
    a retried insert could persist twice.

    Example:
        @with_retry(max_attempts=3)
        async def get_user(pool, user_id):
            async with pool.acquire() as conn:
                return await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as e:  # noqa: PERF203
                    if attempt + 1 >= max_attempts:
                        logger.error(
                            f"Database operation failed after {max_attempts} attempts: {e}",
                            exc_info=True,
                        )
                        raise

                    delay = min(base_delay * (2**attempt) + random.uniform(0, 0.5), max_delay)
                    logger.warning(
                        f"Database operation failed (attempt {attempt + 1}/{max_attempts}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry loop exited unexpectedly")

        return wrapper

    return decorator


async def check_pool_health(pool: asyncpg.Pool) -> dict[str, Any]:
    """Check database pool health and return statistics."""
    error: str | None = None
    try:
        async with acquire_connection(pool, timeout=5.0) as conn:
            is_healthy = await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        is_healthy = False
        error = str(e)

    size = pool.get_size()
    free = pool.get_idle_size()
    db_pool_connections.labels(state="free").set(free)
    db_pool_connections.labels(state="used").set(size - free)

    return {
        "healthy": is_healthy,
        "pool_size": size,
        "pool_min_size": pool.get_min_size(),
        "pool_max_size": pool.get_max_size(),
        "pool_free": free,
        "pool_used": size - free,
        "error": error,
    }


async def graceful_pool_close(pool: asyncpg.Pool, timeout: float = 10.0) -> None:
    """Close the pool after active connections are released, or after timeout."""
    loop = asyncio.get_running_loop()
    start = loop.time()
    while pool.get_size() > pool.get_idle_size():
        if loop.time() - start > timeout:
            logger.warning(
                f"Timeout waiting for connections to drain, "
                f"forcing close ({pool.get_size() - pool.get_idle_size()} active)"
            )
            break
        await asyncio.sleep(0.1)

    await pool.close()
