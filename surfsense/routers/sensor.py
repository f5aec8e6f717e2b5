"""Device connection, live reading, recording and on-board file endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import Field

from surfsense.dependencies import SessionManagerDep
from surfsense.models.base import SurfSenseBase
from surfsense.models.devices import ConnectionState, SensorFile
from surfsense.models.identity import RecordingStatus
from surfsense.models.readings import Reading
from surfsense.models.sessions import Session

router = APIRouter(prefix="/sensor", tags=["sensor"])


class DownloadRequest(SurfSenseBase):
    file_name: str = Field(min_length=1, max_length=255)


@router.get("/state", response_model=ConnectionState)
async def get_state(manager: SessionManagerDep) -> Any:
    return manager.connection_state


@router.post("/connect", response_model=ConnectionState)
async def connect(manager: SessionManagerDep) -> Any:
    return await manager.connect()


@router.post("/disconnect", response_model=ConnectionState)
async def disconnect(manager: SessionManagerDep) -> Any:
    return await manager.disconnect()


@router.post("/scan/stop", response_model=ConnectionState)
async def stop_scanning(manager: SessionManagerDep) -> Any:
    return manager.stop_scanning()


@router.get("/reading", response_model=Reading | None)
async def current_reading(manager: SessionManagerDep) -> Any:
    return manager.current_reading


# ---------- Recording ----------

@router.get("/recording", response_model=RecordingStatus)
async def recording_status(manager: SessionManagerDep) -> Any:
    return manager.recording_status


@router.post("/recording/start", response_model=RecordingStatus)
async def start_recording(manager: SessionManagerDep) -> Any:
    session_id = await manager.start_recording()
    if session_id is None:
        raise HTTPException(status_code=409, detail="No sensor connected")
    return manager.recording_status


@router.post("/recording/stop", response_model=Session | None)
async def stop_recording(manager: SessionManagerDep) -> Any:
    return await manager.stop_recording()


# ---------- On-board files ----------

@router.get("/files", response_model=list[SensorFile])
async def list_files(manager: SessionManagerDep) -> Any:
    return await manager.read_sensor_files()


@router.post("/files/download")
async def download_file(manager: SessionManagerDep, body: DownloadRequest) -> dict:
    path = await manager.download_sensor_file(body.file_name)
    if path is None:
        raise HTTPException(status_code=502, detail="File download failed")
    return {"fileName": body.file_name, "path": str(path)}
