"""Tests for the connection manager and its simulated fallback."""

from __future__ import annotations

import asyncio
import json
import random

import pytest

from surfsense.sensor.tests.sensor_fakes import (
    NOTIFY_CHAR,
    READ_ONLY_CHAR,
    TEST_DEVICE_ID,
    WRITE_ONLY_CHAR,
    FakeHandle,
    FakeTransport,
)
from surfsense.sensor.acquisition import AcquisitionLoop
from surfsense.sensor.connection import ConnectionManager


def _connection(sensor_config, transport, tmp_path, **kwargs) -> ConnectionManager:
    acquisition = AcquisitionLoop(sensor_config, rng=random.Random(5))
    return ConnectionManager(
        transport,
        acquisition,
        sensor_config,
        download_dir=tmp_path / "downloads",
        **kwargs,
    )


class TestRealDevice:
    @pytest.mark.asyncio
    async def test_connects_and_subscribes(self, sensor_config, transport, tmp_path) -> None:
        conn = _connection(sensor_config, transport, tmp_path)
        state = await conn.connect()

        assert state.is_connected
        assert not state.is_scanning
        assert state.connected_device.id == TEST_DEVICE_ID
        assert not state.connected_device.simulated
        assert NOTIFY_CHAR.uuid in transport.handle.callbacks
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_first_readable_or_notifiable_characteristic_is_used(
        self, sensor_config, tmp_path
    ) -> None:
        handle = FakeHandle(characteristics=[WRITE_ONLY_CHAR, READ_ONLY_CHAR, NOTIFY_CHAR])
        conn = _connection(sensor_config, FakeTransport(handle=handle), tmp_path)
        await conn.connect()

        assert conn._acquisition.mode == "poll"
        assert handle.callbacks == {}
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_second_connect_is_noop(self, sensor_config, transport, tmp_path) -> None:
        conn = _connection(sensor_config, transport, tmp_path)
        await conn.connect()
        device = conn.connected_device

        state = await conn.connect()

        assert transport.discover_calls == 1
        assert state.connected_device == device
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_concurrent_connects_link_once(self, sensor_config, tmp_path) -> None:
        transport = FakeTransport(open_delay_s=0.02)
        conn = _connection(sensor_config, transport, tmp_path)
        await asyncio.gather(conn.connect(), conn.connect())
        assert transport.discover_calls == 1
        assert conn.is_connected
        await conn.disconnect()


class TestReturnedState:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("available", [True, False])
    async def test_returned_state_matches_live_state(self, sensor_config, tmp_path, available) -> None:
        conn = _connection(sensor_config, FakeTransport(available=available), tmp_path)
        returned = await conn.connect()

        assert returned.is_scanning is False
        assert returned == conn.state
        await conn.disconnect()


class TestLinkLoss:
    @pytest.mark.asyncio
    async def test_drop_runs_disconnect(self, sensor_config, transport, tmp_path) -> None:
        conn = _connection(sensor_config, transport, tmp_path)
        await conn.connect()

        transport.handle.drop()
        await conn._link_lost_task

        assert not conn.is_connected
        assert not conn._acquisition.running
        assert transport.handle.close_calls == 1

    @pytest.mark.asyncio
    async def test_custom_handler_is_used(self, sensor_config, transport, tmp_path) -> None:
        conn = _connection(sensor_config, transport, tmp_path)
        calls = []

        async def _handler() -> None:
            calls.append(conn.is_connected)
            await conn.disconnect()

        conn.link_lost_handler = _handler
        await conn.connect()
        transport.handle.drop()
        await conn._link_lost_task

        assert calls == [True]
        assert not conn.is_connected

    @pytest.mark.asyncio
    async def test_drop_after_disconnect_is_ignored(self, sensor_config, transport, tmp_path) -> None:
        conn = _connection(sensor_config, transport, tmp_path)
        await conn.connect()
        await conn.disconnect()

        transport.handle.drop()

        assert conn._link_lost_task is None


class TestSimulatedFallback:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "transport_kwargs",
        [
            {"available": False},
            {"fail_discover": True},
            {"fail_open": True},
            {"devices": []},
            {"handle": FakeHandle(characteristics=[WRITE_ONLY_CHAR])},
        ],
    )
    async def test_falls_back_to_simulation(self, sensor_config, tmp_path, transport_kwargs) -> None:
        conn = _connection(sensor_config, FakeTransport(**transport_kwargs), tmp_path)
        state = await conn.connect()

        assert state.is_connected
        assert state.connected_device.simulated
        assert state.connected_device.id == sensor_config.simulation.device_id
        assert conn._acquisition.mode == "simulated"
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_no_transport_simulates(self, sensor_config, tmp_path) -> None:
        conn = _connection(sensor_config, None, tmp_path)
        assert (await conn.connect()).connected_device.simulated
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_connect_timeout_falls_back(self, sensor_config, tmp_path) -> None:
        transport = FakeTransport(open_delay_s=1.0)
        conn = _connection(sensor_config, transport, tmp_path, connect_timeout_s=0.02)
        state = await conn.connect()
        assert state.connected_device.simulated
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_fallback_waits_fixed_delay(self, sensor_config, tmp_path) -> None:
        delays = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        sensor_config.simulation.connect_delay_ms = 1000
        conn = _connection(sensor_config, None, tmp_path, sleep=fake_sleep)
        await conn.connect()
        assert delays == [1.0]
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_failed_link_is_closed_before_fallback(self, sensor_config, tmp_path) -> None:
        handle = FakeHandle(characteristics=[WRITE_ONLY_CHAR])
        conn = _connection(sensor_config, FakeTransport(handle=handle), tmp_path)
        await conn.connect()
        assert handle.close_calls == 1
        await conn.disconnect()


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_tears_down_everything(self, sensor_config, transport, tmp_path) -> None:
        conn = _connection(sensor_config, transport, tmp_path)
        await conn.connect()
        await conn.disconnect()

        assert not conn.is_connected
        assert conn.connected_device is None
        assert transport.handle.close_calls == 1
        assert conn._acquisition.mode == "idle"

    @pytest.mark.asyncio
    async def test_disconnect_stops_simulated_ticks(self, sensor_config, tmp_path) -> None:
        conn = _connection(sensor_config, None, tmp_path)
        await conn.connect()
        await asyncio.sleep(0.05)
        await conn.disconnect()

        current = conn._acquisition.current
        await asyncio.sleep(0.05)
        assert conn._acquisition.current is current
        assert not conn._acquisition.running

    @pytest.mark.asyncio
    async def test_disconnect_when_idle_is_safe(self, sensor_config, tmp_path) -> None:
        conn = _connection(sensor_config, None, tmp_path)
        await conn.disconnect()
        assert not conn.is_connected

    @pytest.mark.asyncio
    async def test_stop_scanning(self, sensor_config, tmp_path) -> None:
        conn = _connection(sensor_config, None, tmp_path)
        conn._scanning = True
        conn.stop_scanning()
        assert not conn.is_scanning


class TestSensorFiles:
    @pytest.mark.asyncio
    async def test_list_files(self, sensor_config, tmp_path) -> None:
        listing = {"files": [{"name": "log1.csv", "size": 2048, "lastModified": 1700000000000}, {"size": 1}]}
        handle = FakeHandle(responses=[json.dumps(listing).encode()])
        conn = _connection(sensor_config, FakeTransport(handle=handle), tmp_path)
        await conn.connect()

        files = await conn.read_sensor_files()

        assert [f.name for f in files] == ["log1.csv"]
        assert files[0].size == 2048
        assert json.loads(handle.writes[0]) == {"command": "list_files"}
        assert conn.sensor_files == files
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_download_writes_under_download_dir(self, sensor_config, tmp_path) -> None:
        handle = FakeHandle(responses=[b"t,temp\n0,21.5\n"])
        conn = _connection(sensor_config, FakeTransport(handle=handle), tmp_path)
        await conn.connect()

        path = await conn.download_sensor_file("../../etc/log1.csv")

        assert path == tmp_path / "downloads" / "log1.csv"
        assert path.read_text() == "t,temp\n0,21.5\n"
        assert json.loads(handle.writes[0]) == {
            "command": "download_file",
            "filename": "../../etc/log1.csv",
        }
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_failed_read_returns_none(self, sensor_config, tmp_path) -> None:
        conn = _connection(sensor_config, FakeTransport(handle=FakeHandle(responses=[])), tmp_path)
        await conn.connect()
        assert await conn.download_sensor_file("log1.csv") is None
        assert await conn.read_sensor_files() == []
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_simulated_device_has_no_files(self, sensor_config, tmp_path) -> None:
        conn = _connection(sensor_config, None, tmp_path)
        await conn.connect()
        assert await conn.read_sensor_files() == []
        assert await conn.download_sensor_file("log1.csv") is None
        await conn.disconnect()

    @pytest.mark.asyncio
    async def test_read_only_channel_rejects_commands(self, sensor_config, tmp_path) -> None:
        handle = FakeHandle(characteristics=[READ_ONLY_CHAR])
        conn = _connection(sensor_config, FakeTransport(handle=handle), tmp_path)
        await conn.connect()
        assert await conn.read_sensor_files() == []
        assert handle.writes == []
        await conn.disconnect()
