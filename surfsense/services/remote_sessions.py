"""Remote session store backed by the Supabase Postgres database.

Tables (all filtered by RLS on ``user_id``):
    sensor_sessions  — placeholder row created when a recording starts
    sensor_readings  — one row per reading submitted while recording
    user_sessions    — finalized session aggregates, keyed by (user_id, session_id)
    users            — profile (username, email) for the signed-in identity

Finalized sessions are stored under the local session id, so the same session
arriving from the remote list and from local history deduplicates by id, and
re-submitting after a failure is an idempotent upsert.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError

from surfsense.models.readings import LocationFix, SessionPoint
from surfsense.models.sessions import DeviceInfo, Session
from surfsense.sensor.sync.dedup import build_upsert_query
from surfsense.services import supabase

logger = logging.getLogger("surfsense.remote")


class RemoteStoreError(RuntimeError):
    """Raised when a remote session store call fails."""


class RemoteSessionStore(ABC):
    """Session and reading records scoped to one authenticated user.

    Every method may raise ``RemoteStoreError``; callers treat all remote
    calls as best-effort.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id

    @abstractmethod
    async def create_session_placeholder(
        self, session_id: str, location: LocationFix | None = None
    ) -> str:
        """Create the remote row for a recording that just started."""

    @abstractmethod
    async def submit_reading(self, point: SessionPoint, session_id: str) -> str:
        """Store one reading recorded during ``session_id``."""

    @abstractmethod
    async def submit_finalized_session(self, session: Session) -> str:
        """Store a finalized session's aggregates (idempotent by session id)."""

    @abstractmethod
    async def list_sessions_for_user(self) -> list[Session]:
        """Return the user's finalized sessions, newest first."""

    async def get_user_profile(self) -> dict[str, Any] | None:
        """Return profile fields (username, email) or None if unknown."""
        return None


_SESSION_COLUMNS = [
    "user_id",
    "session_id",
    "start_time",
    "end_time",
    "duration_seconds",
    "data_points",
    "avg_temp",
    "max_temp",
    "min_temp",
    "max_accel",
    "avg_accel",
    "distance",
    "max_speed",
    "avg_speed",
    "latitude",
    "longitude",
    "device_serial",
    "device_name",
]

_UPSERT_SESSION = build_upsert_query(
    "user_sessions",
    _SESSION_COLUMNS,
    conflict_columns=["user_id", "session_id"],
)


class SupabaseSessionStore(RemoteSessionStore):
    """Remote store using the module-level asyncpg pool."""

    async def create_session_placeholder(
        self, session_id: str, location: LocationFix | None = None
    ) -> str:
        try:
            await supabase.fetchval(
                """
                INSERT INTO sensor_sessions (session_id, user_id, start_time, latitude, longitude, data_count)
                VALUES ($1, $2, NOW(), $3, $4, 0)
                ON CONFLICT (user_id, session_id) DO NOTHING
                RETURNING session_id
                """,
                session_id,
                self.user_id,
                location.latitude if location else None,
                location.longitude if location else None,
                user_id=self.user_id,
            )
        except Exception as exc:
            raise RemoteStoreError(f"create_session_placeholder failed: {exc}") from exc
        logger.info("Remote session placeholder created: %s", session_id)
        return session_id

    async def submit_reading(self, point: SessionPoint, session_id: str) -> str:
        try:
            reading_id = await supabase.fetchval(
                """
                INSERT INTO sensor_readings
                    (reading_id, user_id, session_id, serial_number, timestamp_ms,
                     temperature, accelerometer, latitude, longitude)
                VALUES (gen_random_uuid(), $1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING reading_id::text
                """,
                self.user_id,
                session_id,
                point.serial_number,
                point.timestamp,
                point.temperature,
                point.accelerometer.magnitude,
                point.location.latitude if point.location else None,
                point.location.longitude if point.location else None,
                user_id=self.user_id,
            )
        except Exception as exc:
            raise RemoteStoreError(f"submit_reading failed: {exc}") from exc
        return str(reading_id)

    async def submit_finalized_session(self, session: Session) -> str:
        location = session.location
        device = session.device_info
        try:
            await supabase.fetchval(
                _UPSERT_SESSION,
                self.user_id,
                session.id,
                session.start_time,
                session.end_time,
                session.duration_seconds,
                session.data_point_count,
                session.avg_temp,
                session.max_temp,
                session.min_temp,
                session.max_accel,
                session.avg_accel,
                session.distance,
                session.max_speed,
                session.avg_speed,
                location.latitude if location else None,
                location.longitude if location else None,
                device.serial_number if device else None,
                device.device_name if device else None,
                user_id=self.user_id,
            )
        except Exception as exc:
            raise RemoteStoreError(f"submit_finalized_session failed: {exc}") from exc
        logger.info("Session %s saved to remote store", session.id)
        return session.id

    async def list_sessions_for_user(self) -> list[Session]:
        try:
            rows = await supabase.fetch(
                "SELECT * FROM user_sessions WHERE user_id = $1 ORDER BY start_time DESC",
                self.user_id,
                user_id=self.user_id,
            )
        except Exception as exc:
            raise RemoteStoreError(f"list_sessions_for_user failed: {exc}") from exc

        sessions: list[Session] = []
        for row in rows:
            session = row_to_session(dict(row))
            if session is not None:
                sessions.append(session)
        return sessions

    async def get_user_profile(self) -> dict[str, Any] | None:
        try:
            row = await supabase.fetchrow(
                "SELECT username, email FROM users WHERE user_id = $1",
                self.user_id,
                user_id=self.user_id,
            )
        except Exception as exc:
            raise RemoteStoreError(f"get_user_profile failed: {exc}") from exc
        return dict(row) if row else None


def row_to_session(row: dict[str, Any]) -> Session | None:
    """Convert a ``user_sessions`` row to a Session, or None if it is invalid."""
    location = None
    if row.get("latitude") is not None and row.get("longitude") is not None:
        location = LocationFix(latitude=row["latitude"], longitude=row["longitude"])
    device = None
    if row.get("device_serial"):
        device = DeviceInfo(
            serial_number=row["device_serial"], device_name=row.get("device_name")
        )
    try:
        return Session(
            id=str(row["session_id"]),
            start_time=row["start_time"],
            end_time=row["end_time"],
            duration_seconds=row["duration_seconds"],
            data_point_count=row["data_points"],
            avg_temp=row["avg_temp"],
            max_temp=row["max_temp"],
            min_temp=row["min_temp"],
            max_accel=row.get("max_accel") or 0.0,
            avg_accel=row.get("avg_accel") or 0.0,
            distance=row.get("distance") or 0.0,
            max_speed=row.get("max_speed") or 0.0,
            avg_speed=row.get("avg_speed") or 0.0,
            location=location,
            device_info=device,
        )
    except (KeyError, ValidationError) as exc:
        logger.warning("Skipping invalid remote session row %r: %s", row.get("session_id"), exc)
        return None
