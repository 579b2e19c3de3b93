from __future__ import annotations

from enum import Enum, IntEnum


class FlowControlState(IntEnum):
    """Values notified on the flow control characteristic.

    ON and OFF gate the transmission queue and are handled internally.
    The other values are reported to the application.
    """
    ON = 1
    OFF = 2
    ERROR = 3
    OVERFLOW = 4
    UNEXPECTED_DATA_TYPE = 5
    MISSING_CONFIGURATION = 6


class WriteChannelState(IntEnum):
    """State of the RX (write) characteristic: one write in flight at most."""
    AVAILABLE = 0
    BUSY = 1


class DemoPattern(IntEnum):
    """Demonstration patterns."""
    FILL = 0
    CROSS = 1
    IMAGE = 2


class LedState(IntEnum):
    """Green LED states."""
    OFF = 0
    ON = 1
    TOGGLE = 2
    BLINK = 3


class SoftwareClass(str, Enum):
    """Asset classes served by the update server (URL path component)."""
    FIRMWARES = "firmwares"
    CONFIGURATIONS = "configurations"


class UpdateState(str, Enum):
    """Internal lifecycle phases of an update session."""
    NOT_INITIALIZED = "not_initialized"
    STARTING_UPDATE = "starting_update"
    RETRIEVING_DEVICE_INFORMATIONS = "retrieving_device_informations"
    DEVICE_INFORMATIONS_RETRIEVED = "device_informations_retrieved"
    CHECKING_FW_VERSION = "checking_fw_version"
    LOW_BATTERY = "low_battery"
    DOWNLOADING_FW = "downloading_fw"
    UPDATING_FW = "updating_fw"
    REBOOTING = "rebooting"
    CHECKING_CONFIG_VERSION = "checking_config_version"
    DOWNLOADING_CONFIG = "downloading_config"
    UPDATING_CONFIG = "updating_config"
    UP_TO_DATE = "up_to_date"
    UPDATE_FAILED = "update_failed"


class PublicUpdateState(IntEnum):
    """Coarse update states reported to the embedding application."""
    DOWNLOADING_FIRMWARE = 0
    UPDATING_FIRMWARE = 1
    DOWNLOADING_CONFIGURATION = 2
    UPDATING_CONFIGURATION = 3
    ERROR_UPDATE_FAIL = 4
    ERROR_UPDATE_FAIL_LOW_BATTERY = 5
    ERROR_UPDATE_FORBIDDEN = 6
    ERROR_DOWNGRADE_FORBIDDEN = 7


class TextRotation(IntEnum):
    """Text orientation for the ``txt`` command."""
    BOTTOM_RL = 0
    BOTTOM_LR = 1
    LEFT_BT = 2
    LEFT_TB = 3
    TOP_LR = 4
    TOP_RL = 5
    RIGHT_TB = 6
    RIGHT_BT = 7
