"""Fire-and-forget reading uploads to the remote store.

Each reading recorded while signed in is submitted once.  Submissions run as
background tasks so the acquisition path never waits on the network; a failed
submission is logged and not retried (the finalized session is what the
remote outbox guarantees).
"""

from __future__ import annotations

import asyncio
import logging

from surfsense.models.readings import SessionPoint
from surfsense.services.remote_sessions import RemoteSessionStore

logger = logging.getLogger("surfsense.sensor.sync.outbound")


class ReadingUploader:
    """Tracks in-flight reading submissions.

    Usage::

        uploader = ReadingUploader()
        uploader.submit(remote, point, session_id)   # returns immediately
        ...
        await uploader.drain()                       # on shutdown
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self.submitted = 0
        self.failed = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, remote: RemoteSessionStore, point: SessionPoint, session_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._send(remote, point, session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _send(self, remote: RemoteSessionStore, point: SessionPoint, session_id: str) -> None:
        try:
            await remote.submit_reading(point, session_id)
            self.submitted += 1
        except Exception as exc:
            self.failed += 1
            logger.warning("Error sending reading for session %s: %s", session_id, exc)

    async def drain(self) -> None:
        """Wait for every in-flight submission to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
