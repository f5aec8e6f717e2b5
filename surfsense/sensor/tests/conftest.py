"""Shared fixtures for sensor session tests."""

from __future__ import annotations

import random
from pathlib import Path

import pytest

from surfsense.sensor.tests.sensor_fakes import FakeRemoteStore, FakeTransport, FlakyStore
from surfsense.sensor.config_loader import SensorConfig, load_sensor_config
from surfsense.sensor.manager import SensorSessionManager
from surfsense.sensor.sync.reconciler import SyncReconciler


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sensor_config() -> SensorConfig:
    """Bundled config with a fast cadence and no simulated connect delay."""
    config = load_sensor_config()
    config.acquisition.interval_ms = 10
    config.simulation.connect_delay_ms = 0
    return config


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def reconciler(store: FlakyStore, sensor_config: SensorConfig) -> SyncReconciler:
    return SyncReconciler(store, sensor_config)


@pytest.fixture
def manager(
    sensor_config: SensorConfig,
    store: FlakyStore,
    transport: FakeTransport,
    tmp_path: Path,
) -> SensorSessionManager:
    return SensorSessionManager(
        config=sensor_config,
        store=store,
        transport=transport,
        download_dir=tmp_path / "downloads",
        rng=random.Random(7),
    )
