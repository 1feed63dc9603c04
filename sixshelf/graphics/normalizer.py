"""
Image Normalizer - bring icons of any shape to a common footprint.

Icons are first padded to a transparent square so that wide, tall and
square icons render at the same visual size, then aspect-fit into the
target pixel box of their grid cell. Resampling is bicubic throughout;
nearest-neighbor makes small icons illegible.
"""

from PIL import Image

DEFAULT_STANDARD_SIZE = 256

_RESAMPLE = Image.Resampling.BICUBIC


def _as_rgba(img: Image.Image) -> Image.Image:
    # Pillow silently falls back to nearest-neighbor for palette images.
    if img.mode != "RGBA":
        return img.convert("RGBA")
    return img


def scale_image(img: Image.Image, width: int, height: int) -> Image.Image:
    """Resize to exactly width x height. Non-positive targets return img unchanged."""
    if width <= 0 or height <= 0:
        return img
    return _as_rgba(img).resize((width, height), _RESAMPLE)


def _fit(src_w: int, src_h: int, max_w: int, max_h: int) -> tuple[int, int]:
    # Integer cross-multiplication so the limiting side lands exactly on its bound
    if max_w * src_h <= max_h * src_w:
        return max_w, max(1, src_h * max_w // src_w)
    return max(1, src_w * max_h // src_h), max_h


def scale_aspect_fit(img: Image.Image, max_w: int, max_h: int) -> Image.Image:
    """
    Scale img so it fits inside (max_w, max_h) preserving aspect ratio.

    The limiting dimension fills its bound exactly; the other shrinks
    proportionally. Neither dimension is ever zero.
    """
    if max_w <= 0 or max_h <= 0:
        return img

    target_w, target_h = _fit(img.width, img.height, max_w, max_h)
    return scale_image(img, target_w, target_h)


def standardize_to_square(img: Image.Image, size: int) -> Image.Image:
    """
    Center img on a transparent size x size canvas.

    The source is scaled (up or down) to fit the square, so every icon
    ends up occupying the same box regardless of its native size.
    """
    if size <= 0:
        size = DEFAULT_STANDARD_SIZE

    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))

    scaled_w, scaled_h = _fit(img.width, img.height, size, size)
    scaled = scale_image(img, scaled_w, scaled_h)

    offset_x = (size - scaled_w) // 2
    offset_y = (size - scaled_h) // 2
    canvas.paste(scaled, (offset_x, offset_y))
    return canvas
