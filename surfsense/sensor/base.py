"""Base classes and shared types for the sensor link.

Every transport must subclass DeviceTransport and hand out DeviceHandle
objects.  The connection manager, acquisition loop and file commands only
ever talk to these two interfaces, so the simulated fallback and real BLE
hardware look the same from above.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger("surfsense.sensor")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TransportError(RuntimeError):
    """Discovery, connect or characteristic access failed."""


class DeviceNotFoundError(TransportError):
    """Discovery finished without a usable device."""


class PayloadParseError(ValueError):
    """A device frame was not valid UTF-8 JSON of the expected shape."""


# ---------------------------------------------------------------------------
# Discovery / GATT descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiscoveredDevice:
    """A device seen during discovery.

    Attributes:
        id:      Transport address (MAC / platform UUID).
        name:    Advertised name, if any.
        rssi:    Signal strength at discovery time.
        backend: Transport-specific device object passed back to ``open()``.
    """

    id: str
    name: str | None = None
    rssi: int | None = None
    backend: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CharacteristicInfo:
    """One GATT characteristic and the operations it supports."""

    uuid: str
    service_uuid: str
    properties: frozenset[str] = frozenset()

    @property
    def readable(self) -> bool:
        return "read" in self.properties

    @property
    def notifiable(self) -> bool:
        return "notify" in self.properties or "indicate" in self.properties

    @property
    def writable(self) -> bool:
        return "write" in self.properties or "write-without-response" in self.properties


NotificationCallback = Callable[[bytes], None]


# ---------------------------------------------------------------------------
# Abstract handle / transport
# ---------------------------------------------------------------------------


class DeviceHandle(ABC):
    """An open link to one device."""

    def __init__(self, device_id: str, name: str) -> None:
        self.device_id = device_id
        self.name = name
        self.on_link_lost: Callable[[], None] | None = None

    def link_lost(self) -> None:
        """Report that the link dropped without ``close()`` being called.

        Transports call this from their own disconnect notification.
        """
        if self.on_link_lost is not None:
            self.on_link_lost()

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True while the underlying link is up."""

    @abstractmethod
    async def characteristics(self) -> list[CharacteristicInfo]:
        """Enumerate characteristics across all services, in service order."""

    @abstractmethod
    async def read(self, characteristic: CharacteristicInfo) -> bytes:
        """Read the current value of a characteristic."""

    @abstractmethod
    async def write(self, characteristic: CharacteristicInfo, data: bytes) -> None:
        """Write a value to a characteristic."""

    @abstractmethod
    async def subscribe(
        self, characteristic: CharacteristicInfo, callback: NotificationCallback
    ) -> None:
        """Install ``callback`` for change notifications on a characteristic."""

    @abstractmethod
    async def close(self) -> None:
        """Tear the link down. Safe to call more than once."""


class DeviceTransport(ABC):
    """A wireless transport able to discover and open sensor devices."""

    #: Unique slug (e.g. 'ble').
    TRANSPORT_ID: str = "unknown"

    #: Human-readable name for logging.
    DISPLAY_NAME: str = "Unknown Transport"

    def is_available(self) -> bool:
        """Whether this transport can be used in the current environment."""
        return True

    @abstractmethod
    async def discover(self) -> list[DiscoveredDevice]:
        """Scan for candidate devices.

        Raises:
            TransportError: If the radio/adapter cannot scan.
        """

    @abstractmethod
    async def open(self, device: DiscoveredDevice) -> DeviceHandle:
        """Connect to ``device`` and return an open handle.

        Raises:
            TransportError: If the GATT session cannot be negotiated.
        """


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def select_data_characteristic(
    characteristics: list[CharacteristicInfo],
) -> CharacteristicInfo | None:
    """Return the first readable-or-notifiable characteristic, if any."""
    for characteristic in characteristics:
        if characteristic.readable or characteristic.notifiable:
            return characteristic
    return None


def decode_json_payload(data: bytes | bytearray) -> dict:
    """Decode a UTF-8 JSON object frame.

    Raises:
        PayloadParseError: If the bytes are not UTF-8 or not a JSON object.
    """
    try:
        obj = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PayloadParseError(f"Invalid device payload: {exc}") from exc
    if not isinstance(obj, dict):
        raise PayloadParseError(f"Device payload must be a JSON object, got {type(obj).__name__}")
    return obj


def encode_command(command: str, **fields: Any) -> bytes:
    """Encode a JSON command frame, e.g. ``{"command": "list_files"}``."""
    return json.dumps({"command": command, **fields}).encode("utf-8")
