"""Surf Sense local API — FastAPI application entry point.

Run locally:
    uvicorn surfsense.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from surfsense.config import get_settings
from surfsense.routers import health, sensor, sessions
from surfsense.sensor.manager import SensorSessionManager, build_session_manager
from surfsense.services.supabase import close_pool, init_pool

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("surfsense")


# ---------- App factory ----------

def create_app(manager: SensorSessionManager | None = None) -> FastAPI:
    """Build the app.

    Args:
        manager: Pre-built session manager (tests). When None, one is built
                 from settings at startup and the database pool is opened.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info(
            "Starting Surf Sense API v%s [%s]",
            settings.app_version,
            settings.environment,
        )
        owns_pool = manager is None
        if owns_pool:
            await init_pool(settings)
        session_manager = manager or build_session_manager(settings)
        app.state.session_manager = session_manager
        await session_manager.start()
        try:
            yield
        finally:
            await session_manager.shutdown()
            if owns_pool:
                await close_pool()
            logger.info("Surf Sense API shut down")

    app = FastAPI(
        title="Surf Sense API",
        description=(
            "Local API for the Surf Sense sensor: device connection, live readings, "
            "session recording and session history sync."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(sensor.router, prefix=v1_prefix)
    app.include_router(sessions.router, prefix=v1_prefix)

    return app


app = create_app()
