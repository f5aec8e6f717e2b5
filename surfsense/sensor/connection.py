"""Connection manager: one linked sensor at a time, real or simulated.

connect():
    1. Discover candidates on the wireless transport (inclusive filter)
    2. Open a GATT session with the strongest candidate
    3. Pick the first readable-or-notifiable characteristic as the data channel
    4. Start acquisition on it (subscribe, or poll when read-only)

Any transport error, a missing device/characteristic or the connect timeout
falls back to the simulated device after a short fixed delay.  The fallback
is a normal outcome, not an error: the session flows work the same headless.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable

from pydantic import ValidationError

from surfsense.models.devices import ConnectedDevice, ConnectionState, SensorFile
from surfsense.models.sessions import DeviceInfo
from surfsense.sensor.acquisition import AcquisitionLoop
from surfsense.sensor.base import (
    CharacteristicInfo,
    DeviceHandle,
    DeviceNotFoundError,
    DeviceTransport,
    PayloadParseError,
    TransportError,
    decode_json_payload,
    encode_command,
    select_data_characteristic,
)
from surfsense.sensor.config_loader import SensorConfig

logger = logging.getLogger("surfsense.sensor.connection")


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class ConnectionManager:
    """Owns the device link and the connection state.

    Args:
        transport:         Wireless transport, or None to always simulate.
        acquisition:       Acquisition loop driven by the link.
        config:            Sensor config (simulated device identity and delay).
        connect_timeout_s: Upper bound on discovery + GATT negotiation.
        download_dir:      Where downloaded sensor files are written.
        sleep:             Awaitable sleep, replaced in tests.

    An unexpected link drop runs ``link_lost_handler`` (default: ``disconnect``).
    """

    def __init__(
        self,
        transport: DeviceTransport | None,
        acquisition: AcquisitionLoop,
        config: SensorConfig,
        connect_timeout_s: float = 10.0,
        download_dir: Path = Path("downloads"),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._acquisition = acquisition
        self._simulation = config.simulation
        self._connect_timeout_s = connect_timeout_s
        self._download_dir = download_dir
        self._sleep = sleep
        self._scanning = False
        self._connecting = False
        self._device: ConnectedDevice | None = None
        self._handle: DeviceHandle | None = None
        self._characteristic: CharacteristicInfo | None = None
        self.sensor_files: list[SensorFile] = []
        self.link_lost_handler: Callable[[], Awaitable[None]] | None = None
        self._link_lost_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._device is not None

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    @property
    def connected_device(self) -> ConnectedDevice | None:
        return self._device

    @property
    def state(self) -> ConnectionState:
        return ConnectionState(
            is_scanning=self._scanning,
            is_connected=self.is_connected,
            connected_device=self._device,
        )

    def device_info(self) -> DeviceInfo | None:
        if self._device is None:
            return None
        return DeviceInfo(serial_number=self._device.id, device_name=self._device.name)

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self) -> ConnectionState:
        """Link a device, falling back to simulation.

        A call while already connected or mid-connect is a no-op.
        """
        if self._device is not None or self._connecting:
            logger.info("Connect ignored: a device is already connected or connecting")
            return self.state

        self._connecting = True
        self._scanning = True
        try:
            if not await self._try_transport():
                await self._connect_simulated()
        finally:
            self._scanning = False
            self._connecting = False
        return self.state

    async def _try_transport(self) -> bool:
        """Attempt the real link; False means fall back to simulation."""
        if self._transport is None or not self._transport.is_available():
            logger.info("No wireless transport available, using simulated device")
            return False
        try:
            await asyncio.wait_for(self._connect_transport(), self._connect_timeout_s)
            return True
        except (TransportError, asyncio.TimeoutError) as exc:
            reason = exc if isinstance(exc, TransportError) else "connect timed out"
            logger.warning("Bluetooth connection failed, using simulated device: %s", reason)
            await self._teardown_link()
            return False

    async def _connect_transport(self) -> None:
        devices = await self._transport.discover()
        if not devices:
            raise DeviceNotFoundError("No sensor devices found")
        device = devices[0]
        logger.info("Connecting to %s (%s)", device.name or "unnamed device", device.id)

        handle = await self._transport.open(device)
        handle.on_link_lost = lambda: self._on_link_lost(handle)
        self._handle = handle
        characteristic = select_data_characteristic(await self._handle.characteristics())
        if characteristic is None:
            raise DeviceNotFoundError(f"No readable or notifiable characteristic on {device.id}")

        await self._acquisition.start_device(self._handle, characteristic)
        self._characteristic = characteristic
        self._device = ConnectedDevice(id=device.id, name=device.name or "Unknown Device")
        logger.info("Connected to %s", self._device.name)

    async def _connect_simulated(self) -> None:
        await self._sleep(self._simulation.connect_delay_s)
        await self._acquisition.start_simulated()
        self._device = ConnectedDevice(
            id=self._simulation.device_id,
            name=self._simulation.device_name,
            simulated=True,
        )
        logger.info("Connected to %s", self._device.name)

    async def disconnect(self) -> None:
        """Tear the link down. Safe to call when nothing is connected."""
        was = self._device
        await self._teardown_link()
        if was is not None:
            logger.info("Disconnected from %s", was.name)

    async def _teardown_link(self) -> None:
        try:
            await self._acquisition.stop()
        finally:
            handle, self._handle = self._handle, None
            if handle is not None:
                handle.on_link_lost = None
            self._characteristic = None
            self._device = None
            self.sensor_files = []
            if handle is not None:
                try:
                    await handle.close()
                except TransportError as exc:
                    logger.warning("Error closing device link: %s", exc)

    def _on_link_lost(self, handle: DeviceHandle) -> None:
        if handle is not self._handle or self._device is None:
            return
        logger.warning("Lost connection to %s", handle.name)
        self._link_lost_task = asyncio.get_running_loop().create_task(self._handle_link_lost())

    async def _handle_link_lost(self) -> None:
        """Run the normal disconnect path after an unexpected link drop."""
        handler = self.link_lost_handler or self.disconnect
        try:
            await handler()
        except Exception as exc:
            logger.error("Error handling lost connection: %s", exc)

    def stop_scanning(self) -> None:
        self._scanning = False

    # ------------------------------------------------------------------
    # On-board files
    # ------------------------------------------------------------------

    def _command_channel(self) -> tuple[DeviceHandle, CharacteristicInfo] | None:
        handle, characteristic = self._handle, self._characteristic
        if handle is None or characteristic is None:
            logger.info("No sensor connected")
            return None
        if not (characteristic.writable and characteristic.readable):
            logger.info("Data characteristic %s does not accept commands", characteristic.uuid)
            return None
        return handle, characteristic

    async def read_sensor_files(self) -> list[SensorFile]:
        """Ask the sensor for its on-board file list.

        Returns:
            Advertised files; empty when no command-capable link is attached
            or the request fails.
        """
        channel = self._command_channel()
        if channel is None:
            return []
        handle, characteristic = channel

        try:
            await handle.write(characteristic, encode_command("list_files"))
            response = decode_json_payload(await handle.read(characteristic))
        except (TransportError, PayloadParseError) as exc:
            logger.error("Error reading sensor files: %s", exc)
            return []

        files: list[SensorFile] = []
        raw_files = response.get("files") or []
        for item in raw_files if isinstance(raw_files, list) else []:
            try:
                files.append(SensorFile.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping invalid sensor file entry: %s", exc.errors()[:1])
        self.sensor_files = files
        logger.info("Sensor reports %d files", len(files))
        return files

    async def download_sensor_file(self, file_name: str) -> Path | None:
        """Download one on-board file into the download directory.

        Only the final path component of ``file_name`` is used locally.

        Returns:
            The written path, or None if the download failed.
        """
        local_name = Path(file_name).name
        if local_name in ("", ".", ".."):
            logger.warning("Refusing to download file with name %r", file_name)
            return None

        channel = self._command_channel()
        if channel is None:
            return None
        handle, characteristic = channel

        try:
            await handle.write(characteristic, encode_command("download_file", filename=file_name))
            data = await handle.read(characteristic)
            text = bytes(data).decode("utf-8")
        except (TransportError, UnicodeDecodeError) as exc:
            logger.error("Error downloading file %s: %s", file_name, exc)
            return None

        target = self._download_dir / local_name
        try:
            await asyncio.to_thread(_write_text, target, text)
        except OSError as exc:
            logger.error("Error saving downloaded file %s: %s", target, exc)
            return None
        logger.info("Downloaded %s (%d bytes) to %s", file_name, len(data), target)
        return target
