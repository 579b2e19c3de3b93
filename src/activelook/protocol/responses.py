"""BLE response frame validation and parsing."""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import ProtocolFormatError
from .commands import FORMAT_LONG_LENGTH, FORMAT_QUERY_ID, FRAME_FOOTER, FRAME_HEADER

# Header + command id + format + length + query id + footer
MIN_FRAME_LENGTH = 6

VALID_FORMATS = (FORMAT_QUERY_ID, FORMAT_QUERY_ID | FORMAT_LONG_LENGTH)


@dataclass(frozen=True, slots=True)
class ResponseFrame:
    """A complete, validated response frame."""

    command_id: int
    query_id: int
    payload: bytes


def _header_size(command_format: int) -> int:
    """Bytes before the payload: header, cmd, format, length (1|2), query id."""
    return 6 if command_format & FORMAT_LONG_LENGTH else 5


def parse_expected_length(data: bytes) -> int:
    """Read the declared total length from the first notification of a frame.

    Args:
        data: First notification bytes of a response

    Returns:
        Total frame length declared by the device

    Raises:
        ProtocolFormatError: If the header is malformed
    """
    if len(data) < MIN_FRAME_LENGTH:
        raise ProtocolFormatError(
            f"Response too short: {len(data)} bytes (need at least {MIN_FRAME_LENGTH})"
        )
    if data[0] != FRAME_HEADER:
        raise ProtocolFormatError(f"Invalid frame header: 0x{data[0]:02x}")

    command_format = data[2]
    if command_format not in VALID_FORMATS:
        raise ProtocolFormatError(f"Unsupported command format: 0x{command_format:02x}")

    if command_format & FORMAT_LONG_LENGTH:
        total = int.from_bytes(data[3:5], byteorder="big")
    else:
        total = data[3]

    if total < _header_size(command_format) + 1:
        raise ProtocolFormatError(f"Declared length {total} shorter than frame header")

    return total


def parse_response_frame(frame: bytes) -> ResponseFrame:
    """Validate a complete frame and extract its query id and payload.

    Args:
        frame: Complete response frame

    Returns:
        Parsed ResponseFrame

    Raises:
        ProtocolFormatError: If header, footer, format or length are invalid
    """
    if len(frame) < MIN_FRAME_LENGTH:
        raise ProtocolFormatError(
            f"Frame too short: {len(frame)} bytes (need at least {MIN_FRAME_LENGTH})"
        )
    if frame[0] != FRAME_HEADER:
        raise ProtocolFormatError(f"Invalid frame header: 0x{frame[0]:02x}")
    if frame[-1] != FRAME_FOOTER:
        raise ProtocolFormatError(f"Invalid frame footer: 0x{frame[-1]:02x}")

    command_format = frame[2]
    if command_format not in VALID_FORMATS:
        raise ProtocolFormatError(f"Unsupported command format: 0x{command_format:02x}")

    header_size = _header_size(command_format)
    if len(frame) < header_size + 1:
        raise ProtocolFormatError(f"Frame too short for its format: {len(frame)} bytes")

    return ResponseFrame(
        command_id=frame[1],
        query_id=frame[header_size - 1],
        payload=bytes(frame[header_size:-1]),
    )


def parse_battery_level(payload: bytes) -> int:
    """Parse a battery response: [level:1] in percent."""
    if len(payload) < 1:
        raise ProtocolFormatError("Empty battery response")
    return payload[0]


def parse_uint32(payload: bytes) -> int:
    """Parse a 4-byte big-endian counter response."""
    if len(payload) < 4:
        raise ProtocolFormatError(f"Counter response too short: {len(payload)} bytes (need 4)")
    return int.from_bytes(payload[0:4], byteorder="big")
