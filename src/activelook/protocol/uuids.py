"""GATT service and characteristic identifiers used by ActiveLook glasses."""

from __future__ import annotations

from typing import Final

# Generic access
GENERIC_ACCESS_SERVICE: Final = "00001800-0000-1000-8000-00805f9b34fb"

# Device information
DEVICE_INFORMATION_SERVICE: Final = "0000180a-0000-1000-8000-00805f9b34fb"
MANUFACTURER_NAME_CHAR: Final = "00002a29-0000-1000-8000-00805f9b34fb"
MODEL_NUMBER_CHAR: Final = "00002a24-0000-1000-8000-00805f9b34fb"
SERIAL_NUMBER_CHAR: Final = "00002a25-0000-1000-8000-00805f9b34fb"
HARDWARE_VERSION_CHAR: Final = "00002a27-0000-1000-8000-00805f9b34fb"
FIRMWARE_VERSION_CHAR: Final = "00002a26-0000-1000-8000-00805f9b34fb"
SOFTWARE_VERSION_CHAR: Final = "00002a28-0000-1000-8000-00805f9b34fb"

DEVICE_INFORMATION_CHARS: Final = (
    MANUFACTURER_NAME_CHAR,
    MODEL_NUMBER_CHAR,
    SERIAL_NUMBER_CHAR,
    HARDWARE_VERSION_CHAR,
    FIRMWARE_VERSION_CHAR,
    SOFTWARE_VERSION_CHAR,
)

# Battery
BATTERY_SERVICE: Final = "0000180f-0000-1000-8000-00805f9b34fb"
BATTERY_LEVEL_CHAR: Final = "00002a19-0000-1000-8000-00805f9b34fb"

# ActiveLook commands interface
COMMANDS_INTERFACE_SERVICE: Final = "0783b03e-8535-b5a0-7140-a304d2495cb7"
TX_CHAR: Final = "0783b03e-8535-b5a0-7140-a304d2495cb8"  # device -> central (notify)
FLOW_CONTROL_CHAR: Final = "0783b03e-8535-b5a0-7140-a304d2495cb9"
RX_CHAR: Final = "0783b03e-8535-b5a0-7140-a304d2495cba"  # central -> device (write)
SENSOR_INTERFACE_CHAR: Final = "0783b03e-8535-b5a0-7140-a304d2495cbb"
UI_CHAR: Final = "0783b03e-8535-b5a0-7140-a304d2495cbc"

COMMANDS_INTERFACE_CHARS: Final = (
    TX_CHAR,
    RX_CHAR,
    UI_CHAR,
    FLOW_CONTROL_CHAR,
    SENSOR_INTERFACE_CHAR,
)

# SUOTA (software update over the air)
SPOTA_SERVICE: Final = "0000fef5-0000-1000-8000-00805f9b34fb"
SPOTA_SERV_STATUS_CHAR: Final = "5f78df94-798c-46f5-990a-b3eb6a065c88"
SPOTA_MEM_DEV_CHAR: Final = "8082caa8-41a6-4021-91c6-56f9b954cc34"
SPOTA_GPIO_MAP_CHAR: Final = "724249f0-5ec3-4b5f-8804-42345af08651"
SPOTA_PATCH_LEN_CHAR: Final = "9d84b9a3-000c-49d8-9183-855b673fda31"
SPOTA_PATCH_DATA_CHAR: Final = "457871e8-d516-4ca1-9116-57d0b17b9cb2"
SUOTA_VERSION_CHAR: Final = "64b4e8b5-0de5-401b-a21d-acc8db3b913a"
SUOTA_PATCH_DATA_CHAR_SIZE_CHAR: Final = "42c3dfdd-77be-4d9c-8454-8f875267fb3b"
SUOTA_MTU_CHAR: Final = "b7de1eea-823d-43bb-a3af-c4903dfce23c"
SUOTA_L2CAP_PSM_CHAR: Final = "61c8849c-f639-4765-946e-5c3419bebb2a"

# Manufacturer data prefix advertised by ActiveLook glasses (0xDAFA little-endian)
MANUFACTURER_ID: Final = 0xDAFA
