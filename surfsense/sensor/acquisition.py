"""Acquisition loop — turns a connected device into a stream of readings.

Three modes:
    notify     — the device pushes frames on a notifiable characteristic
    poll       — a read-only characteristic is read once per interval
    simulated  — synthetic readings once per interval (no transport available)

Every reading becomes the live ``current`` value and is handed to the
registered listeners.  A malformed frame is dropped and the stream continues.
"""

from __future__ import annotations

import logging
import math
import random
import string
from typing import Callable

from pydantic import ValidationError

from surfsense.models.base import now_ms
from surfsense.models.readings import AccelerometerReading, DevicePayload, Reading, Vector3
from surfsense.sensor.base import (
    CharacteristicInfo,
    DeviceHandle,
    PayloadParseError,
    TransportError,
    decode_json_payload,
)
from surfsense.sensor.config_loader import SensorConfig, SimulationConfig
from surfsense.sensor.tasks import PeriodicTask

logger = logging.getLogger("surfsense.sensor.acquisition")

ReadingListener = Callable[[Reading], None]


def parse_payload(data: bytes | bytearray, timestamp: int, fallback_serial: str) -> Reading:
    """Decode one device frame into a Reading.

    The accelerometer magnitude is recomputed from the axes; any magnitude in
    the frame is ignored.

    Raises:
        PayloadParseError: If the frame is not JSON or does not match the schema.
    """
    obj = decode_json_payload(data)
    try:
        payload = DevicePayload.model_validate(obj)
    except ValidationError as exc:
        raise PayloadParseError(f"Device payload schema mismatch: {exc}") from exc
    return payload.to_reading(timestamp=timestamp, fallback_serial=fallback_serial)


class SimulatedReadingSource:
    """Plausible synthetic readings for the simulated device.

    Temperature follows a bounded random walk inside the configured base range
    plus a slow sinusoid; acceleration axes are uniform in
    [-accel_range, accel_range].
    """

    def __init__(self, config: SimulationConfig, rng: random.Random | None = None) -> None:
        self._config = config
        self._rng = rng or random.Random()
        suffix = "".join(self._rng.choices(string.ascii_uppercase + string.digits, k=6))
        self.serial_number = f"{config.serial_prefix}{suffix}"
        temp = config.temperature
        self._walk = self._rng.uniform(temp.base_min_c, temp.base_max_c)

    def next_reading(self, timestamp: int) -> Reading:
        cfg = self._config
        temp = cfg.temperature
        step = self._rng.uniform(-temp.walk_step_c, temp.walk_step_c)
        self._walk = min(max(self._walk + step, temp.base_min_c), temp.base_max_c)
        temperature = self._walk + math.sin(timestamp / temp.wave_timescale_ms) * temp.wave_amplitude_c

        r = cfg.accel_range
        g = cfg.gyro_range
        return Reading(
            serial_number=self.serial_number,
            timestamp=timestamp,
            temperature=temperature,
            accelerometer=AccelerometerReading(
                x=self._rng.uniform(-r, r),
                y=self._rng.uniform(-r, r),
                z=self._rng.uniform(-r, r),
            ),
            gyroscope=Vector3(
                x=self._rng.uniform(-g, g),
                y=self._rng.uniform(-g, g),
                z=self._rng.uniform(-g, g),
            ),
        )


class AcquisitionLoop:
    """Produce readings while a device is connected.

    Usage::

        loop = AcquisitionLoop(config)
        loop.add_listener(recorder_hook)
        await loop.start_device(handle, characteristic)   # or start_simulated()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        config: SensorConfig,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._rng = rng
        self._listeners: list[ReadingListener] = []
        self._task: PeriodicTask | None = None
        self._accepting = False
        self._serial = "UNKNOWN"
        self.mode = "idle"
        self.current: Reading | None = None
        self.dropped_frames = 0

    @property
    def running(self) -> bool:
        return self._accepting

    def add_listener(self, listener: ReadingListener) -> None:
        self._listeners.append(listener)

    async def start_simulated(self) -> None:
        await self.stop()
        source = SimulatedReadingSource(self._config.simulation, self._rng)
        self._serial = source.serial_number

        def _tick() -> None:
            self._emit(source.next_reading(self._clock()))

        self._accepting = True
        self.mode = "simulated"
        self._task = PeriodicTask(
            "acquisition-simulated", self._config.acquisition.interval_s, _tick
        ).start()
        logger.info("Simulated acquisition started (%s)", source.serial_number)

    async def start_device(self, handle: DeviceHandle, characteristic: CharacteristicInfo) -> None:
        """Start the real-device path on ``characteristic``.

        Notifiable characteristics are subscribed to; read-only ones are polled
        once per interval.

        Raises:
            TransportError: If the subscription cannot be installed.
        """
        await self.stop()
        self._serial = handle.device_id
        self._accepting = True

        if characteristic.notifiable:
            try:
                await handle.subscribe(characteristic, self.handle_payload)
            except TransportError:
                self._accepting = False
                raise
            self.mode = "notify"
            logger.info("Acquisition subscribed to %s on %s", characteristic.uuid, handle.name)
            return

        async def _poll() -> None:
            try:
                data = await handle.read(characteristic)
            except TransportError as exc:
                logger.warning("Polling read failed: %s", exc)
                return
            self.handle_payload(data)

        self.mode = "poll"
        self._task = PeriodicTask(
            "acquisition-poll", self._config.acquisition.interval_s, _poll
        ).start()
        logger.info("Acquisition polling %s on %s", characteristic.uuid, handle.name)

    def handle_payload(self, data: bytes) -> Reading | None:
        """Characteristic-change callback for the real-device path."""
        if not self._accepting:
            return None
        try:
            reading = parse_payload(data, self._clock(), self._serial)
        except PayloadParseError as exc:
            self.dropped_frames += 1
            logger.warning("Error parsing sensor data, frame dropped: %s", exc)
            logger.debug("Raw data received: %r", data)
            return None
        self._emit(reading)
        return reading

    async def stop(self) -> None:
        self._accepting = False
        task, self._task = self._task, None
        if task is not None:
            await task.stop()
        if self.mode != "idle":
            logger.info("Acquisition stopped (%s)", self.mode)
        self.mode = "idle"

    def _emit(self, reading: Reading) -> None:
        self.current = reading
        for listener in self._listeners:
            try:
                listener(reading)
            except Exception:
                logger.exception("Reading listener failed")
