"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from surfsense.config import get_settings
from surfsense.dependencies import SessionManagerDep
from surfsense.services.supabase import get_pool, pool_ready

router = APIRouter(tags=["system"])
logger = logging.getLogger("surfsense.health")


@router.get("/health")
async def health_check(manager: SessionManagerDep) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight DB connectivity check when a remote store is
    configured; offline-only mode reports the database as disabled.
    """
    settings = get_settings()
    database = "unreachable" if settings.remote_configured else "disabled"
    if pool_ready():
        database = "unreachable"
        try:
            pool = get_pool()
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            database = "connected"
        except Exception as exc:
            logger.warning("Health check DB probe failed: %s", exc)

    state = manager.connection_state
    return {
        "status": "degraded" if database == "unreachable" else "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
        "sensor": "connected" if state.is_connected else "disconnected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
