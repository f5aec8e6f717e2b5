"""Finalize-time session aggregates.

Pure functions over the recorded point buffer, computed exactly once when a
recording stops.  The kinematic values are a simplified approximation kept
for comparability with historical sessions:

    dt_i      = (t[i] - t[i-1]) / 1000             seconds
    speed_i   = magnitude[i] * dt_i
    distance  = sum(speed_i * dt_i)
    max_speed = max(speed_i)
    avg_speed = mean(speed_i)

A single-point buffer has no pairs, so distance and both speeds are 0.
"""

from __future__ import annotations

import logging
import statistics
from typing import Sequence

from surfsense.models.readings import Reading
from surfsense.models.sessions import SessionAggregates

logger = logging.getLogger("surfsense.sensor.aggregation")


def _bounded_mean(values: Sequence[float], low: float, high: float) -> float:
    # fmean can land one ulp outside [min, max] for near-identical values
    return min(max(statistics.fmean(values), low), high)


def speeds(points: Sequence[Reading]) -> list[float]:
    """Return speed_i for every consecutive pair of points, in buffer order."""
    result: list[float] = []
    for prev, cur in zip(points, points[1:]):
        dt = (cur.timestamp - prev.timestamp) / 1000
        result.append(cur.accelerometer.magnitude * dt)
    return result


def distance(points: Sequence[Reading]) -> float:
    """Sum of speed_i * dt_i over consecutive pairs."""
    total = 0.0
    for prev, cur in zip(points, points[1:]):
        dt = (cur.timestamp - prev.timestamp) / 1000
        total += cur.accelerometer.magnitude * dt * dt
    return total


def compute_aggregates(points: Sequence[Reading]) -> SessionAggregates:
    """Compute all session aggregates over a non-empty, time-ordered buffer.

    Args:
        points: Recorded readings (or session points) in arrival order.

    Returns:
        SessionAggregates for the buffer.

    Raises:
        ValueError: If ``points`` is empty.
    """
    if not points:
        raise ValueError("Cannot aggregate an empty session buffer")

    temperatures = [p.temperature for p in points]
    magnitudes = [p.accelerometer.magnitude for p in points]
    pair_speeds = speeds(points)

    max_temp = max(temperatures)
    min_temp = min(temperatures)
    max_accel = max(magnitudes)

    start_time = points[0].timestamp
    end_time = points[-1].timestamp

    return SessionAggregates(
        start_time=start_time,
        end_time=end_time,
        duration_seconds=max(0, (end_time - start_time) // 1000),
        data_point_count=len(points),
        avg_temp=_bounded_mean(temperatures, min_temp, max_temp),
        max_temp=max_temp,
        min_temp=min_temp,
        max_accel=max_accel,
        avg_accel=_bounded_mean(magnitudes, 0.0, max_accel),
        distance=distance(points),
        max_speed=max([0.0, *pair_speeds]),
        avg_speed=statistics.fmean(pair_speeds) if pair_speeds else 0.0,
    )
