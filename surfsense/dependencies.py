"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from surfsense.sensor.manager import SensorSessionManager


async def get_session_manager(request: Request) -> SensorSessionManager:
    """Return the session manager created in the app lifespan."""
    manager = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Session manager not started")
    return manager


# Convenient type alias for route signatures
SessionManagerDep = Annotated[SensorSessionManager, Depends(get_session_manager)]
