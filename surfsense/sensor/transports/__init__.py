"""Device transports for the sensor link.

Each transport implements the DeviceTransport ABC and handles discovery and
GATT-style session negotiation.  When no transport is available the
connection manager falls back to the simulated device instead.

Available transports:
    BleakTransport — Bluetooth Low Energy via bleak
"""

from surfsense.sensor.base import DeviceTransport
from surfsense.sensor.transports.ble import BleakTransport

__all__ = [
    "BleakTransport",
    "get_transport",
]

# Registry: transport_id → transport class
TRANSPORT_REGISTRY: dict[str, type[DeviceTransport]] = {
    "ble": BleakTransport,
}


def get_transport(transport_id: str) -> type[DeviceTransport]:
    """Return the transport class for a given slug.

    Raises:
        KeyError: If the transport_id is not registered.
    """
    if transport_id not in TRANSPORT_REGISTRY:
        raise KeyError(
            f"No transport registered for '{transport_id}'. "
            f"Available: {list(TRANSPORT_REGISTRY)}"
        )
    return TRANSPORT_REGISTRY[transport_id]
