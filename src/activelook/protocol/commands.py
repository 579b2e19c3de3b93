"""BLE command framing for ActiveLook glasses."""

from __future__ import annotations

from enum import IntEnum


class CommandID(IntEnum):
    """Command identifiers understood by the glasses firmware."""

    # General commands
    POWER = 0x00
    CLEAR = 0x01
    GREY = 0x02
    DEMO = 0x03
    BATTERY = 0x05
    VERS = 0x06
    LED = 0x08
    SHIFT = 0x09
    SETTINGS = 0x0A

    # Display luminance
    LUMA = 0x10

    # Optical sensor commands
    SENSOR = 0x20
    GESTURE = 0x21
    ALS = 0x22

    # Graphics commands
    COLOR = 0x30
    POINT = 0x31
    LINE = 0x32
    RECT = 0x33
    RECTF = 0x34
    CIRC = 0x35
    CIRCF = 0x36
    TXT = 0x37
    POLYLINE = 0x38

    # Image commands
    IMG_SAVE = 0x41
    IMG_DISPLAY = 0x42
    IMG_STREAM = 0x44
    IMG_SAVE_1BPP = 0x45
    IMG_DELETE = 0x46
    IMG_LIST = 0x47

    # Font commands
    FONT_LIST = 0x50
    FONT_SAVE = 0x51
    FONT_SELECT = 0x52
    FONT_DELETE = 0x53

    # Layout commands
    LAYOUT_SAVE = 0x60
    LAYOUT_DELETE = 0x61
    LAYOUT_DISPLAY = 0x62
    LAYOUT_CLEAR = 0x63
    LAYOUT_LIST = 0x64
    LAYOUT_POSITION = 0x65
    LAYOUT_DISPLAY_EXTENDED = 0x66
    LAYOUT_GET = 0x67

    # Gauge commands
    GAUGE_DISPLAY = 0x70
    GAUGE_SAVE = 0x71
    GAUGE_DELETE = 0x72
    GAUGE_LIST = 0x73
    GAUGE_GET = 0x74

    # Page commands
    PAGE_SAVE = 0x80
    PAGE_GET = 0x81
    PAGE_DELETE = 0x82
    PAGE_DISPLAY = 0x83
    PAGE_CLEAR = 0x84
    PAGE_LIST = 0x85

    # Statistics commands
    PIXEL_COUNT = 0xA5
    GET_CHARGING_COUNTER = 0xA7
    GET_CHARGING_TIME = 0xA8
    RESET_CHARGING_PARAM = 0xAA

    # Legacy configuration commands
    W_CONFIG_ID = 0xA1
    R_CONFIG_ID = 0xA2
    SET_CONFIG_ID = 0xA3

    # Configuration commands
    CFG_WRITE = 0xD0
    CFG_READ = 0xD1
    CFG_SET = 0xD2
    CFG_LIST = 0xD3
    CFG_RENAME = 0xD4
    CFG_DELETE = 0xD5
    CFG_DELETE_LESS_USED = 0xD6
    CFG_FREE_SPACE = 0xD7
    CFG_GET_NB = 0xD8

    # Device commands
    SHUTDOWN = 0xE0
    RESET = 0xE1

    # External flash access (firmware 4.12.0 update path)
    QSPI_ERASE = 0xE2
    QSPI_WRITE = 0xE3


# Frame constants
FRAME_HEADER = 0xFF
FRAME_FOOTER = 0xAA

FORMAT_QUERY_ID = 0x01  # bit 0: query id present, always on 1 byte
FORMAT_LONG_LENGTH = 0x10  # bit 4: length encoded on 2 bytes

# Header + command id + format + 1-byte length + footer
FRAME_OVERHEAD = 5
QUERY_ID_LENGTH = 1

# Query ids wrap around after 254
QUERY_ID_MODULO = 255

# Payload size that keeps an image chunk inside a 128-byte long-length frame
IMG_SAVE_CHUNK_SIZE = 121

# Shutdown requires a fixed key
SHUTDOWN_KEY = b"\x6F\x7F\xC4\xEE"

# Layout cleared on screen while the glasses are being updated
UPDATE_LAYOUT_ID = 0x09

# Largest qspi_write frame payload: partition (1) + address (4) + data
QSPI_DATA_SIZE_MAX = 512
QSPI_WRITE_OVERHEAD = 5


def frame_length(payload_length: int) -> int:
    """Compute the total length of a frame carrying ``payload_length`` bytes.

    Args:
        payload_length: Number of payload bytes

    Returns:
        Total frame length, including the extra length byte when the frame
        exceeds 255 bytes
    """
    total = FRAME_OVERHEAD + QUERY_ID_LENGTH + payload_length
    if total > 255:
        total += 1  # Length encoded on 2 bytes
    return total


def build_command_frame(command_id: int, query_id: int, payload: bytes = b"") -> bytes:
    """Build a command frame.

    Args:
        command_id: Command identifier (see CommandID)
        query_id: Query id used to match the response (0-254)
        payload: Command payload

    Returns:
        Frame bytes

    Format:
        [0xFF][cmd:1][format:1][length:1|2][query_id:1][payload][0xAA]
        - format: 0x01, or 0x11 when length is on 2 bytes
        - length: total frame length, big-endian when on 2 bytes

    Raises:
        ValueError: If an argument is out of range
    """
    if not 0 <= command_id <= 0xFF:
        raise ValueError(f"Command id out of range: {command_id}")
    if not 0 <= query_id < QUERY_ID_MODULO:
        raise ValueError(f"Query id out of range: {query_id}")

    total = frame_length(len(payload))
    if total > 0xFFFF:
        raise ValueError(f"Payload too large: {len(payload)} bytes")

    long_length = total > 255
    command_format = (FORMAT_LONG_LENGTH if long_length else 0x00) | QUERY_ID_LENGTH

    frame = bytearray([FRAME_HEADER, command_id, command_format])
    if long_length:
        frame += total.to_bytes(2, byteorder="big")
    else:
        frame.append(total)
    frame.append(query_id)
    frame += payload
    frame.append(FRAME_FOOTER)
    return bytes(frame)


def encode_bool(value: bool) -> bytes:
    """Encode a boolean command argument."""
    return b"\x01" if value else b"\x00"


def encode_string(value: str) -> bytes:
    """Encode a string argument as null-terminated ASCII."""
    return value.encode("ascii") + b"\x00"
