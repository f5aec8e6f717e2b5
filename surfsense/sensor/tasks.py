"""Cancellable periodic task used by the acquisition loop and the sync scheduler."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable

logger = logging.getLogger("surfsense.sensor.tasks")

TickCallback = Callable[[], "Awaitable[None] | None"]


class PeriodicTask:
    """Run ``callback`` every ``interval_s`` seconds until stopped.

    Each tick is one discrete callback invocation.  An exception inside a tick
    is logged and the next tick still runs.  The handle must be stopped
    explicitly; use it as an async context manager to guarantee that on every
    exit path::

        async with PeriodicTask("poll", 1.0, tick):
            ...
    """

    def __init__(
        self,
        name: str,
        interval_s: float,
        callback: TickCallback,
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self.interval_s = interval_s
        self._callback = callback
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> PeriodicTask:
        if self.running:
            return self
        self._task = asyncio.create_task(self._run(), name=f"periodic:{self.name}")
        logger.debug("Periodic task %s started (every %.3fs)", self.name, self.interval_s)
        return self

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            # Stopped from inside its own tick; cancellation lands at the next await.
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Periodic task %s stopped after %d ticks", self.name, self.ticks)

    async def __aenter__(self) -> PeriodicTask:
        return self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _run(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self.interval_s)
        while True:
            self.ticks += 1
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic task %s tick failed", self.name)
            await asyncio.sleep(self.interval_s)
