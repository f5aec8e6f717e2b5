"""Load, validate, and hot-reload the sensor tuning configuration.

The config lives in ``sensor_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sensor_config()`` to re-read from
disk after an edit — no restart required.

Usage::

    from surfsense.sensor.config_loader import get_sensor_config

    config = get_sensor_config()
    config.acquisition.interval_s      # 1.0
    config.history.recent_window       # 5
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("surfsense.sensor.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sensor_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class AcquisitionConfig:
    interval_ms: int

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0


@dataclass
class TemperatureWalkConfig:
    """Simulated temperature: bounded random walk plus a slow sinusoid."""

    base_min_c: float
    base_max_c: float
    walk_step_c: float
    wave_amplitude_c: float
    wave_timescale_ms: float


@dataclass
class SimulationConfig:
    """Settings for the simulated fallback device."""

    connect_delay_ms: int
    device_id: str
    device_name: str
    serial_prefix: str
    temperature: TemperatureWalkConfig
    accel_range: float
    gyro_range: float

    @property
    def connect_delay_s(self) -> float:
        return self.connect_delay_ms / 1000.0


@dataclass
class BleConfig:
    preferred_services: list[str] = field(default_factory=list)


@dataclass
class HistoryConfig:
    recent_window: int


@dataclass
class StorageKeys:
    local_sessions: str
    historical_sessions: str
    remote_outbox: str


@dataclass
class SensorConfig:
    """Complete, validated sensor configuration.

    Attributes:
        version:      Config schema version string.
        acquisition:  Reading cadence.
        simulation:   Simulated fallback device and synthetic reading shape.
        ble:          BLE discovery settings.
        history:      Recent-history display window.
        storage_keys: Local store keys for the session collections.
    """

    version: str
    acquisition: AcquisitionConfig
    simulation: SimulationConfig
    ble: BleConfig
    history: HistoryConfig
    storage_keys: StorageKeys
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sensor_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sensor config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> SensorConfig:
    """Validate the raw YAML dict and construct a SensorConfig.

    Applies defaults for optional fields and collects every problem before
    raising, so one edit can fix them all.

    Raises:
        ConfigValidationError: If any value is missing, mistyped or out of range.
    """
    errors: list[str] = []

    def _number(section: dict, key: str, default: float, path: str, minimum: float = 0.0) -> float:
        value = section.get(key, default)
        try:
            number = float(value)
        except (TypeError, ValueError):
            errors.append(f"{path}.{key} must be a number, got {value!r}")
            return default
        if number < minimum:
            errors.append(f"{path}.{key} = {number} must be >= {minimum}")
        return number

    def _section(key: str) -> dict:
        value = raw.get(key) or {}
        if not isinstance(value, dict):
            errors.append(f"'{key}' must be a mapping")
            return {}
        return value

    version = str(raw.get("version", "1.0"))

    # ── Acquisition ──
    acq_raw = _section("acquisition")
    acquisition = AcquisitionConfig(
        interval_ms=int(_number(acq_raw, "interval_ms", 1000, "acquisition", minimum=1)),
    )

    # ── Simulation ──
    sim_raw = _section("simulation")
    temp_raw = sim_raw.get("temperature") or {}
    if not isinstance(temp_raw, dict):
        errors.append("simulation.temperature must be a mapping")
        temp_raw = {}
    temperature = TemperatureWalkConfig(
        base_min_c=_number(temp_raw, "base_min_c", 20.0, "simulation.temperature", minimum=-50),
        base_max_c=_number(temp_raw, "base_max_c", 35.0, "simulation.temperature", minimum=-50),
        walk_step_c=_number(temp_raw, "walk_step_c", 0.5, "simulation.temperature"),
        wave_amplitude_c=_number(temp_raw, "wave_amplitude_c", 5.0, "simulation.temperature"),
        wave_timescale_ms=_number(
            temp_raw, "wave_timescale_ms", 10000, "simulation.temperature", minimum=1
        ),
    )
    if temperature.base_min_c > temperature.base_max_c:
        errors.append(
            "simulation.temperature.base_min_c must not exceed base_max_c "
            f"({temperature.base_min_c} > {temperature.base_max_c})"
        )
    simulation = SimulationConfig(
        connect_delay_ms=int(_number(sim_raw, "connect_delay_ms", 1000, "simulation")),
        device_id=str(sim_raw.get("device_id", "mock-device")),
        device_name=str(sim_raw.get("device_name", "Mock Surf Sensor")),
        serial_prefix=str(sim_raw.get("serial_prefix", "SURF-001-")),
        temperature=temperature,
        accel_range=_number(sim_raw, "accel_range", 1.0, "simulation"),
        gyro_range=_number(sim_raw, "gyro_range", 0.25, "simulation"),
    )

    # ── BLE ──
    ble_raw = _section("ble")
    services = ble_raw.get("preferred_services", [])
    if not isinstance(services, list) or not all(isinstance(s, str) for s in services):
        errors.append("ble.preferred_services must be a list of service UUID strings")
        services = []
    ble = BleConfig(preferred_services=list(services))

    # ── History ──
    hist_raw = _section("history")
    history = HistoryConfig(
        recent_window=int(_number(hist_raw, "recent_window", 5, "history", minimum=1)),
    )

    # ── Storage keys ──
    keys_raw = _section("storage_keys")
    storage_keys = StorageKeys(
        local_sessions=str(keys_raw.get("local_sessions", "localSessions")),
        historical_sessions=str(keys_raw.get("historical_sessions", "historicalSessions")),
        remote_outbox=str(keys_raw.get("remote_outbox", "remoteOutbox")),
    )
    if len({storage_keys.local_sessions, storage_keys.historical_sessions, storage_keys.remote_outbox}) < 3:
        errors.append("storage_keys must be distinct")

    if errors:
        raise ConfigValidationError(
            f"sensor_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SensorConfig(
        version=version,
        acquisition=acquisition,
        simulation=simulation,
        ble=ble,
        history=history,
        storage_keys=storage_keys,
        _raw=raw,
    )


def load_sensor_config(path: Path | None = None) -> SensorConfig:
    """Load and validate the sensor config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sensor_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sensor config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SensorConfig | None = None
_config_lock = threading.Lock()


def get_sensor_config() -> SensorConfig:
    """Return the global SensorConfig singleton, loading it on first call.

    Thread-safe.  Use ``reload_sensor_config()`` to refresh after YAML changes.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sensor_config()
    return _config


def reload_sensor_config(path: Path | None = None) -> SensorConfig:
    """Reload the sensor config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sensor_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sensor config: %s → %s", old_version, new_config.version)
    return new_config
