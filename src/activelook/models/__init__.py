"""Data models for ActiveLook glasses."""

from .device_info import (
    ConfigurationDescription,
    ConfigurationElementsInfo,
    DeviceInformation,
    DeviceReadiness,
    FreeSpace,
    GlassesSettings,
    GlassesVersion,
)
from .enums import (
    DemoPattern,
    FlowControlState,
    LedState,
    PublicUpdateState,
    SoftwareClass,
    TextRotation,
    UpdateState,
    WriteChannelState,
)
from .firmware import Block, Firmware, FirmwareVersion, partition, xor_checksum
from .serialized import SerializedGlasses
from .update import GlassesUpdate

__all__ = [
    "Block",
    "ConfigurationDescription",
    "ConfigurationElementsInfo",
    "DemoPattern",
    "DeviceInformation",
    "DeviceReadiness",
    "Firmware",
    "FirmwareVersion",
    "FlowControlState",
    "FreeSpace",
    "GlassesUpdate",
    "GlassesSettings",
    "GlassesVersion",
    "LedState",
    "PublicUpdateState",
    "SerializedGlasses",
    "SoftwareClass",
    "TextRotation",
    "UpdateState",
    "WriteChannelState",
    "partition",
    "xor_checksum",
]
