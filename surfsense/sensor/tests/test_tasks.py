"""Tests for the cancellable periodic task."""

from __future__ import annotations

import asyncio

import pytest

from surfsense.sensor.tasks import PeriodicTask


class TestPeriodicTask:
    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self) -> None:
        calls = []
        task = PeriodicTask("t", 0.01, lambda: calls.append(1)).start()
        await asyncio.sleep(0.06)
        await task.stop()

        assert calls
        assert not task.running
        count = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_async_callback_and_run_immediately(self) -> None:
        calls = []

        async def tick() -> None:
            calls.append(1)

        async with PeriodicTask("t", 10.0, tick, run_immediately=True) as task:
            await asyncio.sleep(0.01)
            assert task.running
        assert calls == [1]
        assert not task.running

    @pytest.mark.asyncio
    async def test_failing_tick_does_not_stop_task(self) -> None:
        calls = []

        def tick() -> None:
            calls.append(1)
            raise RuntimeError("boom")

        task = PeriodicTask("t", 0.01, tick, run_immediately=True).start()
        await asyncio.sleep(0.05)
        await task.stop()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_is_safe(self) -> None:
        task = PeriodicTask("t", 1.0, lambda: None)
        await task.stop()
        assert task.start() is task.start()
        await task.stop()
        await task.stop()
        assert not task.running

    @pytest.mark.asyncio
    async def test_stop_from_inside_own_tick(self) -> None:
        calls = []
        holder: dict[str, PeriodicTask] = {}

        async def tick() -> None:
            calls.append(1)
            await holder["task"].stop()

        holder["task"] = PeriodicTask("t", 0.01, tick, run_immediately=True).start()
        await asyncio.sleep(0.05)
        assert calls == [1]
        assert not holder["task"].running
