"""Image encoding."""

from .images import encode_4bpp, encode_image, to_grey_levels

__all__ = [
    "encode_4bpp",
    "encode_image",
    "to_grey_levels",
]
