"""Session history, sync and sign-in endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Query

from surfsense.dependencies import SessionManagerDep
from surfsense.models.identity import UserIdentity
from surfsense.models.sessions import Session

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _strip_points(sessions: list[Session], include_points: bool) -> list[Session]:
    if include_points:
        return sessions
    return [s.model_copy(update={"points": []}) for s in sessions]


@router.get("", response_model=list[Session])
async def list_sessions(
    manager: SessionManagerDep,
    include_points: bool = Query(default=False),
) -> Any:
    """Pending sessions merged in front of recent history, newest first."""
    return _strip_points(manager.display_sessions, include_points)


@router.get("/recent", response_model=list[Session])
async def recent_sessions(
    manager: SessionManagerDep,
    include_points: bool = Query(default=False),
) -> Any:
    return _strip_points(manager.recent_history, include_points)


@router.get("/pending", response_model=list[Session])
async def pending_sessions(
    manager: SessionManagerDep,
    include_points: bool = Query(default=False),
) -> Any:
    return _strip_points(manager.pending_sessions, include_points)


@router.post("/sync")
async def sync_now(manager: SessionManagerDep) -> dict:
    return asdict(await manager.sync_now())


@router.delete("", status_code=204)
async def clear_all(manager: SessionManagerDep) -> None:
    await manager.clear_all_data()


# ---------- Identity ----------

@router.post("/login", response_model=UserIdentity)
async def login(manager: SessionManagerDep, body: UserIdentity) -> Any:
    return await manager.login(body)


@router.post("/logout")
async def logout(manager: SessionManagerDep) -> dict:
    return asdict(await manager.logout())
