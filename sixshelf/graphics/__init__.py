# sixshelf graphics package
"""
Image normalization, sixel encoding, image I/O and terminal geometry.
"""

from .images import create_placeholder, decode_image, load_image, save_image
from .normalizer import scale_aspect_fit, standardize_to_square
from .sixel import encode, render_icon

__all__ = [
    "create_placeholder",
    "decode_image",
    "load_image",
    "save_image",
    "scale_aspect_fit",
    "standardize_to_square",
    "encode",
    "render_icon",
]
