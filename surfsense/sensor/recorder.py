"""Session recorder: Idle → Recording → Idle.

``start`` requires a connected device.  While recording, every reading from
the acquisition loop is appended to the buffer as a SessionPoint.  ``stop``
freezes the buffer, computes aggregates once, and hands the finalized Session
to the reconciler's pending list before any remote call is made.
"""

from __future__ import annotations

import logging
from typing import Callable

from surfsense.models.base import now_ms
from surfsense.models.identity import RecordingStatus
from surfsense.models.readings import LocationFix, Reading, SessionPoint
from surfsense.models.sessions import DeviceInfo, Session
from surfsense.sensor.aggregation import compute_aggregates
from surfsense.sensor.sync.reconciler import SyncReconciler

logger = logging.getLogger("surfsense.sensor.recorder")


class SessionRecorder:
    """Owns the active recording and its point buffer.

    Args:
        reconciler:   Receives finalized sessions; its ``remote`` (if any) is
                      the signed-in user's remote store.
        is_connected: Returns True while a device (real or simulated) is linked.
        clock:        Millisecond clock used for session ids.
    """

    def __init__(
        self,
        reconciler: SyncReconciler,
        is_connected: Callable[[], bool],
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._reconciler = reconciler
        self._is_connected = is_connected
        self._clock = clock
        self._session_id: str | None = None
        self._device_info: DeviceInfo | None = None
        self._buffer: list[SessionPoint] = []
        self._finalizing: set[str] = set()
        self._last_id_ms = 0

    @property
    def is_recording(self) -> bool:
        return self._session_id is not None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def points(self) -> list[SessionPoint]:
        return list(self._buffer)

    def status(self) -> RecordingStatus:
        return RecordingStatus(
            is_recording=self.is_recording,
            session_id=self._session_id,
            point_count=len(self._buffer),
        )

    def _next_session_id(self) -> str:
        # Millisecond timestamp, bumped so two starts in one ms stay distinct
        stamp = max(self._clock(), self._last_id_ms + 1)
        self._last_id_ms = stamp
        return str(stamp)

    async def start(
        self,
        location: LocationFix | None = None,
        device_info: DeviceInfo | None = None,
    ) -> str | None:
        """Begin a recording.

        Returns:
            The new session id, or None if no device is connected or a
            recording is already active.
        """
        if not self._is_connected():
            logger.info("Start recording ignored: no device connected")
            return None
        if self.is_recording:
            return self._session_id

        session_id = self._next_session_id()
        self._session_id = session_id
        self._device_info = device_info
        self._buffer = []
        logger.info("Recording started: session %s", session_id)

        remote = self._reconciler.remote
        if remote is not None:
            try:
                await remote.create_session_placeholder(session_id, location)
            except Exception as exc:
                logger.error("Failed to create remote session: %s", exc)
        return session_id

    def append(self, reading: Reading, location: LocationFix | None = None) -> SessionPoint | None:
        """Add a reading to the active buffer; returns None when not recording."""
        if not self.is_recording:
            return None
        point = SessionPoint.from_reading(reading, location)
        self._buffer.append(point)
        return point

    def clear_buffer(self) -> None:
        """Drop buffered points; an active recording keeps running."""
        self._buffer = []

    async def stop(self, location: LocationFix | None = None) -> Session | None:
        """Finalize the active recording.

        Recording state is reset before any await, so a concurrent second
        stop sees Idle.  An empty buffer ends the recording without producing
        a session.

        Args:
            location: Location fix to attach to the finalized session.

        Returns:
            The finalized Session, or None if nothing was recorded.
        """
        session_id = self._session_id
        if session_id is None or session_id in self._finalizing:
            return None

        points, device_info = self._buffer, self._device_info
        self._session_id = None
        self._device_info = None
        self._buffer = []

        if not points:
            logger.info("Recording %s stopped with no data points", session_id)
            return None

        self._finalizing.add(session_id)
        try:
            aggregates = compute_aggregates(points)
            session = Session(
                id=session_id,
                location=location,
                points=points,
                device_info=device_info,
                **dict(aggregates),
            )
            await self._reconciler.add_pending(session)
            logger.info(
                "Recording stopped: session %s, %d points, %ds",
                session_id, session.data_point_count, session.duration_seconds,
            )

            remote = self._reconciler.remote
            if remote is not None:
                try:
                    await remote.submit_finalized_session(session)
                except Exception as exc:
                    logger.error("Failed to save session to remote store: %s", exc)
                    await self._reconciler.enqueue_remote_retry(session_id)
            return session
        finally:
            self._finalizing.discard(session_id)
