"""MTU-bounded transmission queue for outbound command bytes."""

from __future__ import annotations

import threading
from collections import deque

# The glasses accept 256-byte writes minus the 3-byte ATT header
DEFAULT_MTU = 256 - 3


def parse_hex_script(script: str) -> list[bytes]:
    """Split a newline-delimited hex command script into frames.

    Blank lines are skipped. The whole script is validated before anything
    is returned.

    Raises:
        ValueError: If a line is not valid hexadecimal
    """
    frames: list[bytes] = []
    for number, line in enumerate(script.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            frames.append(bytes.fromhex(line))
        except ValueError as e:
            raise ValueError(f"Invalid hex on line {number}: {line[:32]!r}") from e
    return frames


class TransmissionQueue:
    """Ordered buffer of pending outbound byte sequences.

    Producers may enqueue from any thread; a single consumer dequeues.
    Entries longer than the MTU are split on dequeue: the head fragment is
    returned and the remainder goes back to the front of the queue, so the
    byte order on the wire is preserved.
    """

    def __init__(self, mtu: int = DEFAULT_MTU):
        if mtu <= 0:
            raise ValueError(f"MTU must be positive, got {mtu}")
        self._mtu = mtu
        self._elements: deque[bytes] = deque()
        self._lock = threading.Lock()

    @property
    def mtu(self) -> int:
        return self._mtu

    def __len__(self) -> int:
        with self._lock:
            return len(self._elements)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def enqueue(self, data: bytes) -> bool:
        """Append bytes to the tail.

        Returns:
            True if the queue was empty before this call
        """
        with self._lock:
            was_empty = not self._elements
            self._elements.append(bytes(data))
            return was_empty

    def enqueue_many(self, items: list[bytes]) -> bool:
        """Append several byte sequences atomically, in order.

        Returns:
            True if the queue was empty before this call
        """
        with self._lock:
            was_empty = not self._elements
            self._elements.extend(bytes(item) for item in items)
            return was_empty

    def enqueue_lines(self, script: str) -> int:
        """Append every frame of a newline-delimited hex script.

        Nothing is enqueued if any line is invalid.

        Returns:
            Number of frames enqueued
        """
        frames = parse_hex_script(script)
        self.enqueue_many(frames)
        return len(frames)

    def dequeue(self) -> bytes | None:
        """Pop at most MTU bytes from the head, or None when empty."""
        with self._lock:
            if not self._elements:
                return None

            first = self._elements.popleft()
            if len(first) <= self._mtu:
                return first

            self._elements.appendleft(first[self._mtu:])
            return first[:self._mtu]

    def clear(self) -> None:
        """Drop everything still queued."""
        with self._lock:
            self._elements.clear()
