"""Tests for the history sync scheduler and the reading uploader."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from surfsense.sensor.tests.sensor_fakes import make_reading, make_session
from surfsense.models.readings import SessionPoint
from surfsense.sensor.sync.outbound import ReadingUploader
from surfsense.sensor.sync.scheduler import SyncScheduler


class TestShouldSync:
    def test_never_synced(self, reconciler) -> None:
        assert SyncScheduler(reconciler, 300).should_sync(None)

    def test_recent_sync_is_skipped(self, reconciler) -> None:
        scheduler = SyncScheduler(reconciler, 300)
        assert not scheduler.should_sync(datetime.now(timezone.utc) - timedelta(seconds=10))

    def test_stale_sync_is_due(self, reconciler) -> None:
        scheduler = SyncScheduler(reconciler, 300)
        assert scheduler.should_sync(datetime.now(timezone.utc) - timedelta(seconds=301))


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_reloads_history_and_retries_outbox(self, store, reconciler, remote) -> None:
        store.data["historicalSessions"] = json.dumps([make_session("A", 1000).to_json_dict()])
        reconciler.remote = remote
        await reconciler.enqueue_remote_retry("A")

        result = await SyncScheduler(reconciler, 300).run_once()

        assert result.status == "success"
        assert result.recent_count == 1
        assert result.outbox_mirrored == 1
        assert reconciler.last_sync_at is not None

    @pytest.mark.asyncio
    async def test_outbox_left_is_partial(self, store, reconciler, remote) -> None:
        await reconciler.add_pending(make_session("A", 1000))
        reconciler.remote = remote
        await reconciler.enqueue_remote_retry("A")
        remote.fail_finalize = True

        result = await SyncScheduler(reconciler, 300).run_once()
        assert result.status == "partial"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(self, reconciler) -> None:
        reconciler.load_history = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = SyncScheduler(reconciler, 300)

        result = await scheduler.run_once()

        assert result.status == "error"
        assert result.error == "boom"
        assert scheduler.last_result is result


class TestPeriodicRuns:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, reconciler) -> None:
        scheduler = SyncScheduler(reconciler, 0.01)
        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.running
        assert scheduler.last_result is not None


class TestReadingUploader:
    @pytest.mark.asyncio
    async def test_submissions_are_fire_and_forget(self, remote) -> None:
        uploader = ReadingUploader()
        for t in (0, 1000, 2000):
            uploader.submit(remote, SessionPoint.from_reading(make_reading(t)), "S1")
        await uploader.drain()

        assert sorted(remote.readings) == [("S1", 0), ("S1", 1000), ("S1", 2000)]
        assert uploader.submitted == 3
        assert uploader.in_flight == 0

    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(self, remote) -> None:
        remote.fail_reading = True
        uploader = ReadingUploader()
        uploader.submit(remote, SessionPoint.from_reading(make_reading(0)), "S1")
        await uploader.drain()

        assert uploader.failed == 1
        assert remote.readings == []
