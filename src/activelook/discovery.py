"""Scanning for ActiveLook glasses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bleak import BleakScanner

from .models.serialized import SerializedGlasses
from .protocol.uuids import MANUFACTURER_ID

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData

_LOGGER = logging.getLogger(__name__)

_UNNAMED = "Unnamed glasses"


def manufacturer_hex(advertisement: AdvertisementData) -> str | None:
    """Full ActiveLook manufacturer data (company id included) as hex, if advertised.

    Bleak strips the 2-byte company id from the payload; it is put back
    little-endian, so the string starts with ``fada``.
    """
    payload = advertisement.manufacturer_data.get(MANUFACTURER_ID)
    if payload is None:
        return None
    return (MANUFACTURER_ID.to_bytes(2, byteorder="little") + bytes(payload)).hex()


@dataclass(frozen=True, slots=True)
class DiscoveredGlasses:
    """Glasses found while scanning."""

    address: str
    name: str
    manufacturer_id: str
    rssi: int | None = None
    ble_device: BLEDevice | None = None

    def serialize(self) -> SerializedGlasses:
        """Token for reconnecting later without a scan."""
        return SerializedGlasses(self.address, self.name, self.manufacturer_id)


async def discover_glasses(timeout: float = 5.0) -> list[DiscoveredGlasses]:
    """Scan for glasses advertising the ActiveLook manufacturer data.

    Args:
        timeout: Scan duration in seconds (default: 5)

    Returns:
        Discovered glasses, strongest signal first
    """
    _LOGGER.debug("Scanning for ActiveLook glasses (%.1fs)", timeout)
    found = await BleakScanner.discover(timeout=timeout, return_adv=True)

    glasses: list[DiscoveredGlasses] = []
    for device, advertisement in found.values():
        manufacturer_id = manufacturer_hex(advertisement)
        if manufacturer_id is None:
            continue
        glasses.append(DiscoveredGlasses(
            address=device.address,
            name=advertisement.local_name or device.name or _UNNAMED,
            manufacturer_id=manufacturer_id,
            rssi=advertisement.rssi,
            ble_device=device,
        ))

    glasses.sort(key=lambda g: g.rssi if g.rssi is not None else -999, reverse=True)
    _LOGGER.info("Found %d ActiveLook glasses", len(glasses))
    return glasses
