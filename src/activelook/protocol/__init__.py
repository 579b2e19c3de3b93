"""BLE protocol implementation."""

from .chunking import ResponseAssembler
from .commands import (
    FRAME_FOOTER,
    FRAME_HEADER,
    IMG_SAVE_CHUNK_SIZE,
    QUERY_ID_MODULO,
    CommandID,
    build_command_frame,
    frame_length,
)
from .queue import DEFAULT_MTU, TransmissionQueue, parse_hex_script
from .responses import (
    ResponseFrame,
    parse_battery_level,
    parse_expected_length,
    parse_response_frame,
)
from .uuids import MANUFACTURER_ID

__all__ = [
    "CommandID",
    "DEFAULT_MTU",
    "FRAME_FOOTER",
    "FRAME_HEADER",
    "IMG_SAVE_CHUNK_SIZE",
    "MANUFACTURER_ID",
    "QUERY_ID_MODULO",
    "ResponseAssembler",
    "ResponseFrame",
    "TransmissionQueue",
    "build_command_frame",
    "frame_length",
    "parse_battery_level",
    "parse_expected_length",
    "parse_hex_script",
    "parse_response_frame",
]
