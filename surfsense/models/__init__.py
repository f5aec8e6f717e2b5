"""Serialized Surf Sense records."""

from surfsense.models.devices import ConnectedDevice, ConnectionState, SensorFile
from surfsense.models.identity import RecordingStatus, UserIdentity
from surfsense.models.readings import (
    AccelerometerReading,
    DevicePayload,
    LocationFix,
    Reading,
    SessionPoint,
    Vector3,
)
from surfsense.models.sessions import DeviceInfo, Session, SessionAggregates

__all__ = [
    "AccelerometerReading",
    "ConnectedDevice",
    "ConnectionState",
    "DeviceInfo",
    "DevicePayload",
    "LocationFix",
    "Reading",
    "RecordingStatus",
    "SensorFile",
    "Session",
    "SessionAggregates",
    "SessionPoint",
    "UserIdentity",
    "Vector3",
]
