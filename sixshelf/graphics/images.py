"""
Image I/O helpers: decode from files or bytes, save PNGs, placeholders.
"""

import io
import os
import tempfile
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from sixshelf.errors import DecodeFailure, NotFound


def decode_image(data: bytes, source: str = "<bytes>") -> Image.Image:
    """
    Decode raw bytes (PNG, WebP, JPEG, GIF...) into a fully loaded image.

    Raises:
        DecodeFailure: The bytes are not a readable image
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeFailure(f"could not decode {source}: {e}") from e
    return img


def load_image(path: str | Path) -> Image.Image:
    """
    Load an image from disk.

    Raises:
        NotFound: The file does not exist
        DecodeFailure: The file exists but is not a readable image
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except FileNotFoundError as e:
        raise NotFound(f"image not found: {path}") from e
    except OSError as e:
        raise DecodeFailure(f"could not read {path}: {e}") from e
    return decode_image(data, str(path))


def save_image(img: Image.Image, path: str | Path) -> None:
    """
    Save an image as PNG.

    Writes to a temp file in the same directory and renames it into place,
    so a crash mid-write never leaves a truncated PNG behind.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            img.save(f, format="PNG")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def create_placeholder(width: int = 64, height: int = 64) -> Image.Image:
    """Solid white stand-in for apps whose icon could not be loaded."""
    return Image.new("RGBA", (width, height), (255, 255, 255, 255))
