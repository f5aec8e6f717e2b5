"""Background sync scheduler for session history.

Each run:
1. Reload durable history and, when signed in, the remote session list
2. Re-submit finalized sessions waiting in the remote outbox
3. Record the sync time

Runs are skipped while the last sync is more recent than the interval, so a
login or logout that just synced is not immediately repeated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from surfsense.sensor.sync.reconciler import SyncReconciler
from surfsense.sensor.tasks import PeriodicTask

logger = logging.getLogger("surfsense.sensor.sync.scheduler")


@dataclass
class SyncRunResult:
    """Result of a single sync run.

    Attributes:
        status:          'success', 'partial' (outbox entries left), 'error'.
        recent_count:    Sessions in the recent-history view after the run.
        outbox_mirrored: Outbox sessions accepted by the remote store.
        error:           Error message if status == 'error'.
        synced_at:       UTC timestamp of completion.
    """

    status: str = "success"
    recent_count: int = 0
    outbox_mirrored: int = 0
    error: str | None = None
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SyncScheduler:
    """Run history sync on an interval.

    Usage::

        scheduler = SyncScheduler(reconciler, interval_s=300)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, reconciler: SyncReconciler, interval_s: float) -> None:
        self._reconciler = reconciler
        self.interval_s = interval_s
        self._task: PeriodicTask | None = None
        self.last_result: SyncRunResult | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and self._task.running

    def should_sync(self, last_sync_at: datetime | None) -> bool:
        """Return True if history is due for a sync.

        Args:
            last_sync_at: UTC datetime of last successful sync (None = never).
        """
        if last_sync_at is None:
            return True
        elapsed = (datetime.now(timezone.utc) - last_sync_at).total_seconds()
        return elapsed >= self.interval_s

    async def run_once(self) -> SyncRunResult:
        try:
            recent = await self._reconciler.load_history()
            mirrored = await self._reconciler.retry_remote_outbox()
        except Exception as exc:
            logger.error("Sync run failed: %s", exc)
            result = SyncRunResult(status="error", error=str(exc))
        else:
            result = SyncRunResult(
                status="partial" if self._reconciler.outbox else "success",
                recent_count=len(recent),
                outbox_mirrored=mirrored,
            )
            logger.info(
                "Sync complete: %d recent, %d mirrored, status=%s",
                result.recent_count, mirrored, result.status,
            )
        self.last_result = result
        return result

    async def _tick(self) -> None:
        if self.should_sync(self._reconciler.last_sync_at):
            await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = PeriodicTask("history-sync", self.interval_s, self._tick).start()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            await task.stop()
