"""Supabase Postgres access with RLS context.

Every remote call gets a connection where ``app.current_user_id`` is set via
``SET LOCAL``, so Postgres Row-Level Security policies only expose the signed-in
user's sessions and readings.

The pool is optional: when ``SUPABASE_DB_URL`` is not configured the client
runs offline-only and ``get_pool()`` raises.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import asyncpg

from surfsense.config import Settings, get_settings

logger = logging.getLogger("surfsense.db")

# Module-level connection pool, initialized once at app startup
_pool: asyncpg.Pool | None = None


async def init_pool(settings: Settings | None = None) -> asyncpg.Pool | None:
    """Create the asyncpg connection pool if a database URL is configured."""
    global _pool
    s = settings or get_settings()
    if not s.supabase_db_url:
        logger.info("No SUPABASE_DB_URL configured, running offline-only")
        return None
    try:
        _pool = await asyncpg.create_pool(
            s.supabase_db_url,
            min_size=1,
            max_size=5,
            command_timeout=30,
        )
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        # Remote calls then fail as RemoteStoreError; local recording is unaffected
        logger.warning("Database unreachable, remote sync disabled until restart: %s", exc)
        return None
    logger.info("Database pool initialized (min=1, max=5)")
    return _pool


async def close_pool() -> None:
    """Drain the pool. Call at app shutdown."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Database pool not initialized — call init_pool() first")
    return _pool


def pool_ready() -> bool:
    return _pool is not None


@asynccontextmanager
async def get_connection(
    user_id: str | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Acquire a connection with the RLS user variable set.

    Usage::

        async with get_connection(user_id=identity.user_id) as conn:
            rows = await conn.fetch("SELECT * FROM user_sessions")

    ``SET LOCAL`` is scoped to the transaction, so it disappears when the
    connection is returned to the pool.
    """
    pool = get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            if user_id:
                await conn.execute(
                    "SELECT set_config('app.current_user_id', $1, true)", user_id
                )
            yield conn


async def fetch(query: str, *args: Any, user_id: str | None = None) -> list[asyncpg.Record]:
    """Fetch rows with RLS context."""
    async with get_connection(user_id=user_id) as conn:
        return await conn.fetch(query, *args)


async def fetchrow(query: str, *args: Any, user_id: str | None = None) -> asyncpg.Record | None:
    """Fetch a single row with RLS context."""
    async with get_connection(user_id=user_id) as conn:
        return await conn.fetchrow(query, *args)


async def fetchval(query: str, *args: Any, user_id: str | None = None) -> Any:
    """Fetch a single value with RLS context."""
    async with get_connection(user_id=user_id) as conn:
        return await conn.fetchval(query, *args)
