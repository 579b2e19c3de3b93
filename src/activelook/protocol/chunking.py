"""Multi-notification response reassembly for the BLE protocol."""

from __future__ import annotations

from ..exceptions import ProtocolFormatError
from .responses import parse_expected_length


class ResponseAssembler:
    """Reassembles responses the glasses split over several notifications.

    The first notification carries the frame header, from which the total
    frame length is read. Following notifications carry raw continuation
    bytes with no header of their own, so they are appended until the
    declared length is reached:
    - Notification 0: [0xFF][cmd][format][length:1|2][query_id][data...]
    - Notification N: [data...] (last one ends with 0xAA)
    """

    def __init__(self) -> None:
        self._buffer: bytearray | None = None
        self._expected_length = 0

    @property
    def in_progress(self) -> bool:
        """Check if a partial frame is being reassembled."""
        return self._buffer is not None

    @property
    def expected_length(self) -> int:
        """Total length of the frame being reassembled (0 when idle)."""
        return self._expected_length

    @property
    def bytes_received(self) -> int:
        """Number of bytes buffered so far."""
        return len(self._buffer) if self._buffer is not None else 0

    def reset(self) -> None:
        """Drop any partial frame."""
        self._buffer = None
        self._expected_length = 0

    def feed(self, data: bytes) -> bytes | None:
        """Add one notification to the assembly.

        Args:
            data: Raw notification bytes from the TX characteristic

        Returns:
            The complete frame once all bytes are received, else None

        Raises:
            ProtocolFormatError: If the header is invalid or the buffer would
                exceed the declared length. The partial frame is dropped.
        """
        if self._buffer is None:
            try:
                expected = parse_expected_length(data)
            except ProtocolFormatError:
                self.reset()
                raise

            if len(data) == expected:
                return bytes(data)
            if len(data) > expected:
                raise ProtocolFormatError(
                    f"Notification longer than declared frame: {len(data)} > {expected}"
                )

            self._buffer = bytearray(data)
            self._expected_length = expected
            return None

        if len(self._buffer) + len(data) > self._expected_length:
            overflow = len(self._buffer) + len(data)
            expected = self._expected_length
            self.reset()
            raise ProtocolFormatError(
                f"Response buffer overflow: {overflow} > {expected} bytes"
            )

        self._buffer += data
        if len(self._buffer) < self._expected_length:
            return None

        frame = bytes(self._buffer)
        self.reset()
        return frame
