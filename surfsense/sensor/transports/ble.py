"""Bluetooth Low Energy transport built on bleak.

Discovery is inclusive: every advertising device is a candidate unless a
name filter is configured.  Candidates advertising a preferred service come
first, then by signal strength, so the sensor lying next to the phone/laptop
wins.
"""

from __future__ import annotations

import logging
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.exc import BleakError
from bleak.uuids import normalize_uuid_str

from surfsense.sensor.base import (
    CharacteristicInfo,
    DeviceHandle,
    DeviceTransport,
    DiscoveredDevice,
    NotificationCallback,
    TransportError,
)

logger = logging.getLogger("surfsense.sensor.ble")


class BleakDeviceHandle(DeviceHandle):
    """A GATT session on a BleakClient.

    The client is created here so bleak's disconnect notification can be
    routed to ``link_lost``; a disconnect caused by ``close()`` is not reported.
    """

    def __init__(self, target: Any, device_id: str, name: str) -> None:
        super().__init__(device_id, name)
        self._client = BleakClient(target, disconnected_callback=self._on_disconnected)
        self._gatt: dict[str, BleakGATTCharacteristic] = {}
        self._closing = False

    async def connect(self) -> None:
        try:
            await self._client.connect()
        except (BleakError, OSError) as exc:
            raise TransportError(f"Bluetooth connection error: {exc}") from exc

    def _on_disconnected(self, _client: BleakClient) -> None:
        if self._closing:
            return
        logger.warning("%s disconnected unexpectedly", self.name)
        self.link_lost()

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    async def characteristics(self) -> list[CharacteristicInfo]:
        infos: list[CharacteristicInfo] = []
        try:
            for service in self._client.services:
                for char in service.characteristics:
                    self._gatt[str(char.uuid)] = char
                    infos.append(
                        CharacteristicInfo(
                            uuid=str(char.uuid),
                            service_uuid=str(service.uuid),
                            properties=frozenset(char.properties),
                        )
                    )
        except BleakError as exc:
            raise TransportError(f"Error accessing services: {exc}") from exc
        logger.info("%s: %d characteristics available", self.name, len(infos))
        return infos

    def _char(self, characteristic: CharacteristicInfo) -> BleakGATTCharacteristic | str:
        return self._gatt.get(characteristic.uuid, characteristic.uuid)

    async def read(self, characteristic: CharacteristicInfo) -> bytes:
        try:
            return bytes(await self._client.read_gatt_char(self._char(characteristic)))
        except BleakError as exc:
            raise TransportError(f"Read failed on {characteristic.uuid}: {exc}") from exc

    async def write(self, characteristic: CharacteristicInfo, data: bytes) -> None:
        try:
            await self._client.write_gatt_char(
                self._char(characteristic), data, response="write" in characteristic.properties
            )
        except BleakError as exc:
            raise TransportError(f"Write failed on {characteristic.uuid}: {exc}") from exc

    async def subscribe(
        self, characteristic: CharacteristicInfo, callback: NotificationCallback
    ) -> None:
        def _handler(_sender: BleakGATTCharacteristic, data: bytearray) -> None:
            callback(bytes(data))

        try:
            await self._client.start_notify(self._char(characteristic), _handler)
        except BleakError as exc:
            raise TransportError(
                f"Could not enable notifications on {characteristic.uuid}: {exc}"
            ) from exc
        logger.info("Notifications enabled on %s", characteristic.uuid)

    async def close(self) -> None:
        self._closing = True
        if not self._client.is_connected:
            return
        try:
            await self._client.disconnect()
        except BleakError as exc:
            logger.warning("Error disconnecting %s: %s", self.name, exc)


class BleakTransport(DeviceTransport):
    """BLE transport.

    Args:
        enabled:            Whether BLE hardware should be used at all.
        scan_timeout:       Seconds to scan for advertisements.
        name_filter:        Case-insensitive substring; None accepts every device.
        preferred_services: Service UUIDs (16-bit or 128-bit) that rank a
                            device first when advertised.  Never a filter.
    """

    TRANSPORT_ID = "ble"
    DISPLAY_NAME = "Bluetooth Low Energy"

    def __init__(
        self,
        enabled: bool = True,
        scan_timeout: float = 5.0,
        name_filter: str | None = None,
        preferred_services: list[str] | None = None,
    ) -> None:
        self._enabled = enabled
        self._scan_timeout = scan_timeout
        self._name_filter = name_filter.lower() if name_filter else None
        self._preferred = {normalize_uuid_str(u) for u in preferred_services or []}

    def is_available(self) -> bool:
        return self._enabled

    async def discover(self) -> list[DiscoveredDevice]:
        logger.info("Scanning for Bluetooth devices (%.1fs)...", self._scan_timeout)
        try:
            found = await BleakScanner.discover(timeout=self._scan_timeout, return_adv=True)
        except (BleakError, OSError) as exc:
            raise TransportError(f"Bluetooth scan failed: {exc}") from exc

        ranked: list[tuple[bool, int, DiscoveredDevice]] = []
        for address, (device, adv) in found.items():
            name = device.name or adv.local_name
            if self._name_filter and (not name or self._name_filter not in name.lower()):
                continue
            advertised = {u.lower() for u in adv.service_uuids or []}
            preferred = bool(self._preferred & advertised)
            ranked.append(
                (
                    preferred,
                    adv.rssi if adv.rssi is not None else -999,
                    DiscoveredDevice(id=address, name=name, rssi=adv.rssi, backend=device),
                )
            )
            logger.debug(
                "Found device: %s (%s) rssi=%s preferred=%s",
                name or "Unknown", address, adv.rssi, preferred,
            )

        ranked.sort(key=lambda r: (r[0], r[1]), reverse=True)
        return [device for _, _, device in ranked]

    async def open(self, device: DiscoveredDevice) -> DeviceHandle:
        logger.info("Connecting to GATT server on %s...", device.id)
        handle = BleakDeviceHandle(
            device.backend or device.id, device.id, device.name or "Unknown Device"
        )
        await handle.connect()
        return handle
