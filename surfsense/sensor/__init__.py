"""Surf Sense sensor session core.

Links one BLE environmental sensor (or a simulated stand-in), streams its
readings, records sessions and reconciles session history across the local
store and an optional remote store.

Subpackages:
    transports/ — Device transports (BLE via bleak)
    sync/       — Dedup/merge rule, history reconciler, uploads, scheduler

Core modules:
    base          — DeviceTransport / DeviceHandle ABCs and transport errors
    connection    — Connection manager with simulated fallback
    acquisition   — Acquisition loop (notify, poll, simulated)
    recorder      — Session recorder state machine
    aggregation   — Finalize-time session aggregates
    manager       — SensorSessionManager composing all of the above
    config_loader — Load/validate/hot-reload sensor_config.yaml
"""

from surfsense.sensor.base import (
    DeviceHandle,
    DeviceNotFoundError,
    DeviceTransport,
    PayloadParseError,
    TransportError,
)
from surfsense.sensor.config_loader import SensorConfig, get_sensor_config

__all__ = [
    "DeviceHandle",
    "DeviceTransport",
    "DeviceNotFoundError",
    "PayloadParseError",
    "TransportError",
    "SensorConfig",
    "get_sensor_config",
]
