"""Connection pool management for the problem catalog and submissions."""

import logging
from contextlib import asynccontextmanager

import psycopg
from psycopg_pool import AsyncConnectionPool

from judge.config import get_settings

_logger = logging.getLogger(__name__)

_pool: AsyncConnectionPool | None = None


def _get_dsn() -> str:
    return get_settings().postgres.get_dsn()


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return
    settings = get_settings().postgres
    _pool = AsyncConnectionPool(
        settings.get_dsn(),
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout,
        max_lifetime=settings.pool_max_lifetime,
        max_idle=settings.pool_max_idle,
        reconnect_timeout=settings.pool_reconnect_timeout,
        check=AsyncConnectionPool.check_connection,
        open=False,
    )
    await _pool.open()
    _logger.info(
        "Database connection pool initialized (min=%d, max=%d, timeout=%ss)",
        settings.pool_min_size,
        settings.pool_max_size,
        settings.pool_timeout,
    )
    from judge.db.schema import ensure_schema

    await ensure_schema()


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        _logger.info("Database connection pool closed")


@asynccontextmanager
async def _get_connection(autocommit: bool = True):
    if _pool is not None:
        async with _pool.connection() as conn:
            if autocommit:
                await conn.set_autocommit(True)
            yield conn
    else:
        async with await psycopg.AsyncConnection.connect(_get_dsn(), autocommit=autocommit) as conn:
            yield conn


def get_pool() -> AsyncConnectionPool | None:
    return _pool
