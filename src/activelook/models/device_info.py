"""Device information and command response models."""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from ..protocol import uuids
from .firmware import FirmwareVersion


@dataclass
class DeviceInformation:
    """Strings published by the standard device information service."""

    manufacturer_name: str | None = None
    model_number: str | None = None
    serial_number: str | None = None
    hardware_version: str | None = None
    firmware_version: str | None = None
    software_version: str | None = None

    @property
    def is_complete(self) -> bool:
        """True when every field has been read."""
        return all(getattr(self, f.name) is not None for f in fields(self))

    @property
    def firmware(self) -> FirmwareVersion | None:
        """Installed firmware version parsed from the firmware revision string."""
        if self.firmware_version is None:
            return None
        return FirmwareVersion.parse(self.firmware_version)

    def set_from_characteristic(self, char_uuid: str, value: bytes) -> bool:
        """Store a characteristic value read from the device information service.

        Returns:
            True if the uuid is a device information characteristic
        """
        name = _CHAR_TO_FIELD.get(char_uuid.lower())
        if name is None:
            return False
        setattr(self, name, bytes(value).decode("utf-8", errors="replace").rstrip("\x00"))
        return True


_CHAR_TO_FIELD = {
    uuids.MANUFACTURER_NAME_CHAR: "manufacturer_name",
    uuids.MODEL_NUMBER_CHAR: "model_number",
    uuids.SERIAL_NUMBER_CHAR: "serial_number",
    uuids.HARDWARE_VERSION_CHAR: "hardware_version",
    uuids.FIRMWARE_VERSION_CHAR: "firmware_version",
    uuids.SOFTWARE_VERSION_CHAR: "software_version",
}


# Characteristics that must be discovered before the glasses are usable
REQUIRED_CHARACTERISTICS = frozenset({
    uuids.RX_CHAR,
    uuids.TX_CHAR,
    uuids.BATTERY_LEVEL_CHAR,
    uuids.FLOW_CONTROL_CHAR,
    uuids.SENSOR_INTERFACE_CHAR,
})


@dataclass
class DeviceReadiness:
    """Tracks what the initializer has discovered so far."""

    spota_service: bool = False
    characteristics: set[str] = field(default_factory=set)
    notifying: set[str] = field(default_factory=set)
    information: DeviceInformation = field(default_factory=DeviceInformation)

    @property
    def missing(self) -> list[str]:
        """Human readable list of what is still missing, for diagnostics."""
        missing: list[str] = []
        if not self.spota_service:
            missing.append("spota service")
        missing.extend(sorted(REQUIRED_CHARACTERISTICS - self.characteristics))
        for char in (uuids.TX_CHAR, uuids.FLOW_CONTROL_CHAR):
            if char not in self.notifying:
                missing.append(f"notify {char}")
        missing.extend(
            f.name for f in fields(self.information)
            if getattr(self.information, f.name) is None
        )
        return missing

    @property
    def ready(self) -> bool:
        return not self.missing


@dataclass(frozen=True, slots=True)
class GlassesVersion:
    """Decoded response of the ``vers`` command."""

    major: int
    minor: int
    patch: int
    suffix: str
    manufacturing_year: int
    manufacturing_week: int
    serial_number: int

    @property
    def firmware_version(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}{self.suffix}"

    @property
    def firmware(self) -> FirmwareVersion:
        return FirmwareVersion(self.major, self.minor, self.patch)

    @classmethod
    def from_payload(cls, payload: bytes) -> GlassesVersion:
        """Parse ``[major, minor, patch, suffix, year, week, serial:3 BE]``.

        Short payloads decode to an all-zero version, as older firmware may
        answer with less data.
        """
        if len(payload) < 9:
            return cls(0, 0, 0, "", 0, 0, 0)
        return cls(
            major=payload[0],
            minor=payload[1],
            patch=payload[2],
            suffix=bytes(payload[3:4]).decode("ascii", errors="replace").rstrip("\x00"),
            manufacturing_year=payload[4],
            manufacturing_week=payload[5],
            serial_number=int.from_bytes(payload[6:9], byteorder="big"),
        )


@dataclass(frozen=True, slots=True)
class ConfigurationElementsInfo:
    """Decoded response of ``cfg_read``."""

    version: int
    nb_img: int
    nb_layout: int
    nb_font: int
    nb_page: int
    nb_gauge: int

    @classmethod
    def from_payload(cls, payload: bytes) -> ConfigurationElementsInfo:
        if len(payload) < 9:
            return cls(0, 0, 0, 0, 0, 0)
        return cls(
            version=int.from_bytes(payload[0:4], byteorder="big"),
            nb_img=payload[4],
            nb_layout=payload[5],
            nb_font=payload[6],
            nb_page=payload[7],
            nb_gauge=payload[8],
        )


@dataclass(frozen=True, slots=True)
class FreeSpace:
    """Decoded response of ``cfg_free_space`` (bytes)."""

    total_size: int
    free_space: int

    @classmethod
    def from_payload(cls, payload: bytes) -> FreeSpace:
        if len(payload) < 8:
            return cls(0, 0)
        return cls(
            total_size=int.from_bytes(payload[0:4], byteorder="big"),
            free_space=int.from_bytes(payload[4:8], byteorder="big"),
        )


@dataclass(frozen=True, slots=True)
class GlassesSettings:
    """Decoded response of the ``settings`` command."""

    x_shift: int
    y_shift: int
    luma: int
    brightness_adjustment_enabled: bool
    gesture_detection_enabled: bool

    @classmethod
    def from_payload(cls, payload: bytes) -> GlassesSettings:
        if len(payload) < 5:
            return cls(0, 0, 0, False, False)
        return cls(
            x_shift=int.from_bytes(payload[0:1], byteorder="big", signed=True),
            y_shift=int.from_bytes(payload[1:2], byteorder="big", signed=True),
            luma=payload[2],
            brightness_adjustment_enabled=payload[3] == 0x01,
            gesture_detection_enabled=payload[4] == 0x01,
        )


@dataclass(frozen=True, slots=True)
class ConfigurationDescription:
    """One entry of the ``cfg_list`` response."""

    name: str
    size: int
    version: int
    usage_count: int
    install_count: int
    is_system: bool

    # name\0, size:4, version:4, usage:1, install:1, system:1
    _FIXED_SIZE = 12

    @classmethod
    def list_from_payload(cls, payload: bytes) -> list[ConfigurationDescription]:
        """Parse consecutive entries; a truncated trailing entry is ignored."""
        results: list[ConfigurationDescription] = []
        offset = 0
        while offset < len(payload):
            end = payload.find(b"\x00", offset)
            if end < 0:
                break
            record_end = end + cls._FIXED_SIZE
            if record_end > len(payload):
                break
            results.append(cls(
                name=payload[offset:end].decode("utf-8", errors="replace"),
                size=int.from_bytes(payload[end + 1:end + 5], byteorder="big"),
                version=int.from_bytes(payload[end + 5:end + 9], byteorder="big"),
                usage_count=payload[end + 9],
                install_count=payload[end + 10],
                is_system=payload[end + 11] != 0,
            ))
            offset = record_end
        return results
