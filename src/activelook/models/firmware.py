"""Firmware artifact and version models for SUOTA updates."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import reduce

# Default SUOTA block size (unit of patch length negotiation)
DEFAULT_BLOCK_SIZE = 240

_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True, order=True, slots=True)
class FirmwareVersion:
    """Semantic firmware version, ordered by (major, minor, patch).

    ``path`` holds the server api path of a remote version and does not
    take part in comparisons.
    """

    major: int
    minor: int = 0
    patch: int = 0
    path: str | None = field(default=None, compare=False)

    @classmethod
    def parse(cls, value: str, path: str | None = None) -> FirmwareVersion:
        """Parse a version string such as ``"v4.12.0b"`` or ``"4.3"``.

        Non-digit characters are separators; missing components are 0.

        Raises:
            ValueError: If the string contains no number at all
        """
        numbers = [int(n) for n in _DIGITS.findall(value)]
        if not numbers:
            raise ValueError(f"No version number in {value!r}")
        numbers += [0, 0]
        return cls(numbers[0], numbers[1], numbers[2], path=path)

    @classmethod
    def from_list(cls, values: list[int], path: str | None = None) -> FirmwareVersion:
        """Build from the ``[major, minor, patch, ...]`` list used by the update server."""
        if len(values) < 3:
            raise ValueError(f"Version list too short: {values}")
        return cls(int(values[0]), int(values[1]), int(values[2]), path=path)

    @property
    def min_version(self) -> str:
        """Version formatted for the update server query string."""
        return f"{self.major}.{self.minor}.{self.patch}"

    def __str__(self) -> str:
        return self.min_version


@dataclass(frozen=True, slots=True)
class Block:
    """One SUOTA block: the unit sent between two patch length negotiations."""

    chunks: tuple[bytes, ...]

    @property
    def size(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)


def xor_checksum(data: bytes) -> int:
    """Running XOR of all bytes, as verified by the SUOTA bootloader."""
    return reduce(lambda acc, byte: acc ^ byte, data, 0)


def partition(data: bytes, block_size: int, chunk_size: int) -> list[Block]:
    """Split ``data`` into blocks of at most ``block_size`` bytes, each made of
    chunks of at most ``chunk_size`` bytes.

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError("Chunk size must be set")
    if not data:
        return []

    block_size = min(len(data), max(block_size, chunk_size))
    chunk_size = min(block_size, chunk_size)

    blocks: list[Block] = []
    for block_offset in range(0, len(data), block_size):
        block = data[block_offset:block_offset + block_size]
        chunks = tuple(
            block[chunk_offset:chunk_offset + chunk_size]
            for chunk_offset in range(0, len(block), chunk_size)
        )
        blocks.append(Block(chunks))
    return blocks


class Firmware:
    """Downloaded firmware image with its trailing SUOTA checksum byte."""

    def __init__(self, content: bytes, version: FirmwareVersion | None = None):
        self.version = version
        self._bytes = bytes(content) + bytes([xor_checksum(content)])

    @property
    def data(self) -> bytes:
        """Firmware bytes followed by the checksum byte."""
        return self._bytes

    @property
    def checksum(self) -> int:
        return self._bytes[-1]

    def __len__(self) -> int:
        return len(self._bytes)

    def blocks(self, block_size: int = DEFAULT_BLOCK_SIZE, chunk_size: int = 20) -> list[Block]:
        """Partition the image for transfer."""
        return partition(self._bytes, block_size, chunk_size)

    def __repr__(self) -> str:
        return f"Firmware(version={self.version}, size={len(self._bytes)})"
