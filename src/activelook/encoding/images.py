"""Image conversion to the glasses' 4-bit greyscale format."""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image

_LOGGER = logging.getLogger(__name__)

# ITU-R BT.601 luma weights
_LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def to_grey_levels(image: Image.Image) -> np.ndarray:
    """Convert an image to a matrix of 4-bit grey levels (0-15).

    The image is rotated by 180 degrees, as the display is mounted upside
    down, then converted with weighted luma and quantized to 16 levels.

    Args:
        image: Source PIL Image, any mode

    Returns:
        uint8 array of shape (height, width)
    """
    rgb = image.convert("RGB").rotate(180)
    pixels = np.asarray(rgb, dtype=np.float64)
    r, g, b = _LUMA_WEIGHTS
    grey = pixels[..., 0] * r + pixels[..., 1] * g + pixels[..., 2] * b
    return (grey.astype(np.uint8) // 16).astype(np.uint8)


def encode_4bpp(levels: np.ndarray) -> bytes:
    """Pack grey levels two pixels per byte, low nibble first.

    Each row starts on a byte boundary; an odd trailing pixel fills the
    low nibble of the last byte of its row.

    Args:
        levels: Matrix of grey levels (0-15), shape (height, width)

    Returns:
        Encoded bytes
    """
    if levels.ndim != 2:
        raise ValueError(f"Expected a 2D matrix, got shape {levels.shape}")

    height, width = levels.shape
    bytes_per_row = (width + 1) // 2
    output = bytearray(bytes_per_row * height)

    for y in range(height):
        for x in range(width):
            byte_idx = y * bytes_per_row + x // 2
            level = int(levels[y, x]) & 0x0F
            if x % 2 == 0:
                output[byte_idx] |= level
            else:
                output[byte_idx] |= level << 4

    return bytes(output)


def encode_image(image: Image.Image) -> tuple[bytes, int]:
    """Encode an image for ``img_save``.

    Returns:
        Tuple of (encoded bytes, width in pixels)
    """
    levels = to_grey_levels(image)
    data = encode_4bpp(levels)
    _LOGGER.debug("Encoded %dx%d image: %d bytes", image.width, image.height, len(data))
    return data, image.width
