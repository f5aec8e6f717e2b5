"""Pydantic models for live sensor data: readings, session points, location fixes."""

from __future__ import annotations

import math

from pydantic import Field, computed_field

from surfsense.models.base import SurfSenseBase


class Vector3(SurfSenseBase):
    x: float
    y: float
    z: float


class AccelerometerReading(Vector3):
    """3-axis acceleration. ``magnitude`` is always derived from the axes.

    Any ``magnitude`` present in the input is ignored.
    """

    @computed_field  # type: ignore[prop-decorator]
    @property
    def magnitude(self) -> float:
        return magnitude(self.x, self.y, self.z)


class LocationFix(SurfSenseBase):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)


class Reading(SurfSenseBase):
    """One timestamped sensor sample."""

    serial_number: str
    timestamp: int = Field(ge=0)  # ms since epoch
    temperature: float  # °C
    accelerometer: AccelerometerReading
    gyroscope: Vector3 | None = None
    magnetometer: Vector3 | None = None


class SessionPoint(Reading):
    """A Reading plus the location fix known when it was recorded."""

    location: LocationFix | None = None

    @classmethod
    def from_reading(
        cls, reading: Reading, location: LocationFix | None = None
    ) -> SessionPoint:
        return cls(**dict(reading), location=location)


class DevicePayload(SurfSenseBase):
    """JSON frame sent by the sensor on its data characteristic.

    Example::

        {"serialNumber": "SURF-001-A1B2C3", "temperature": 21.4,
         "accel": {"x": 0.1, "y": -0.3, "z": 0.98}, "gyro": {...}}
    """

    serial_number: str | None = None
    temperature: float
    accel: Vector3
    gyro: Vector3 | None = None
    mag: Vector3 | None = None

    def to_reading(self, timestamp: int, fallback_serial: str) -> Reading:
        return Reading(
            serial_number=self.serial_number or fallback_serial,
            timestamp=timestamp,
            temperature=self.temperature,
            accelerometer=AccelerometerReading(
                x=self.accel.x, y=self.accel.y, z=self.accel.z
            ),
            gyroscope=self.gyro,
            magnetometer=self.mag,
        )


def magnitude(x: float, y: float, z: float) -> float:
    """Euclidean norm of a 3-axis vector."""
    return math.sqrt(x * x + y * y + z * z)
