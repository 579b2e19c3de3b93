"""ActiveLook BLE Protocol Package.

  Pure Python package for communicating with ActiveLook smart glasses.
  """

from .device import ActiveLookGlasses
from .discovery import DiscoveredGlasses, discover_glasses
from .exceptions import (
    AbortedByCaller,
    ActiveLookError,
    BLEConnectionError,
    BLETimeoutError,
    ClientError,
    DecodeError,
    DeviceNotConnected,
    DowngradeForbidden,
    FirmwareUpdateError,
    InitializationError,
    InitializationTimeout,
    InvalidToken,
    LowBattery,
    NetworkUnavailable,
    ProtocolFormatError,
    QueryTimeout,
    SerializationError,
    ServerError,
    UpdateError,
    UpdateForbidden,
    VersionCheckError,
)
from .initializer import GlassesInitializer, InitializerState
from .models.device_info import (
    ConfigurationDescription,
    ConfigurationElementsInfo,
    DeviceInformation,
    FreeSpace,
    GlassesSettings,
    GlassesVersion,
)
from .models.enums import (
    DemoPattern,
    FlowControlState,
    LedState,
    PublicUpdateState,
    TextRotation,
    UpdateState,
)
from .models.firmware import Firmware, FirmwareVersion
from .models.serialized import SerializedGlasses
from .models.update import GlassesUpdate
from .protocol import MANUFACTURER_ID, CommandID
from .session import GlassesSession
from .updater import GlassesUpdater, UpdateParameters, UpdateServerConfig

__version__ = "0.1.0"

__all__ = [
    # Main API
    "ActiveLookGlasses",
    "GlassesSession",
    "GlassesInitializer",
    "GlassesUpdater",
    "discover_glasses",
    # Exceptions
    "ActiveLookError",
    "AbortedByCaller",
    "BLEConnectionError",
    "BLETimeoutError",
    "ClientError",
    "DecodeError",
    "DeviceNotConnected",
    "DowngradeForbidden",
    "FirmwareUpdateError",
    "InitializationError",
    "InitializationTimeout",
    "InvalidToken",
    "LowBattery",
    "NetworkUnavailable",
    "ProtocolFormatError",
    "QueryTimeout",
    "SerializationError",
    "ServerError",
    "UpdateError",
    "UpdateForbidden",
    "VersionCheckError",
    # Models
    "ConfigurationDescription",
    "ConfigurationElementsInfo",
    "DeviceInformation",
    "DiscoveredGlasses",
    "Firmware",
    "FirmwareVersion",
    "FreeSpace",
    "GlassesSettings",
    "GlassesUpdate",
    "GlassesVersion",
    "SerializedGlasses",
    "UpdateParameters",
    "UpdateServerConfig",
    # Enums
    "CommandID",
    "DemoPattern",
    "FlowControlState",
    "InitializerState",
    "LedState",
    "PublicUpdateState",
    "TextRotation",
    "UpdateState",
    # Constants
    "MANUFACTURER_ID",
]
