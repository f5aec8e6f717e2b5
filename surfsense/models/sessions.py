"""Pydantic models for finalized recording sessions and their aggregates."""

from __future__ import annotations

from pydantic import Field

from surfsense.models.base import SurfSenseBase
from surfsense.models.readings import LocationFix, SessionPoint


class DeviceInfo(SurfSenseBase):
    serial_number: str
    device_name: str | None = None


class SessionAggregates(SurfSenseBase):
    """Statistics computed once, when a recording stops.

    Attributes:
        start_time:       Timestamp (ms) of the first recorded point.
        end_time:         Timestamp (ms) of the last recorded point.
        duration_seconds: floor((end_time - start_time) / 1000).
        data_point_count: Number of recorded points.
        avg_temp:         Mean temperature (°C).
        max_temp:         Maximum temperature (°C).
        min_temp:         Minimum temperature (°C).
        max_accel:        Maximum accelerometer magnitude.
        avg_accel:        Mean accelerometer magnitude.
        distance:         Kinematic approximation, sum of speed_i * dt_i.
        max_speed:        Maximum of speed_i = magnitude_i * dt_i.
        avg_speed:        Mean of speed_i over consecutive point pairs.
    """

    start_time: int
    end_time: int
    duration_seconds: int = Field(alias="duration", ge=0)
    data_point_count: int = Field(alias="dataPoints", ge=0)
    avg_temp: float
    max_temp: float
    min_temp: float
    max_accel: float = 0.0
    avg_accel: float = 0.0
    distance: float = 0.0
    max_speed: float = 0.0
    avg_speed: float = 0.0


class Session(SessionAggregates):
    """A finalized, aggregated record of one recording interval.

    ``id`` is unique across pending, durable and remote collections; two
    records with the same id are the same session.
    """

    id: str = Field(min_length=1)
    location: LocationFix | None = None
    points: list[SessionPoint] = Field(default_factory=list, alias="data")
    device_info: DeviceInfo | None = None
