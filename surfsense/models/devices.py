"""Pydantic models for the device link: connection state and on-board files."""

from __future__ import annotations

from pydantic import Field

from surfsense.models.base import SurfSenseBase


class ConnectedDevice(SurfSenseBase):
    id: str
    name: str
    simulated: bool = False


class ConnectionState(SurfSenseBase):
    is_scanning: bool = False
    is_connected: bool = False
    connected_device: ConnectedDevice | None = None


class SensorFile(SurfSenseBase):
    """A file advertised by the sensor's on-board storage."""

    name: str = Field(min_length=1)
    size: int = Field(default=0, ge=0)
    last_modified: int = 0  # ms since epoch
