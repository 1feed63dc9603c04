"""
Bitmap Encoder - convert images to DEC sixel strings.

Output layout:
  ESC P 0;1;0 q          DCS, transparent background for unset pixels
  "1;1;W;H               raster attributes (1:1 aspect, pixel size)
  #n;2;r;g;b             palette registers, RGB in percent
  #n<data>$#m<data>-     six-pixel bands, one pass per color, $ = CR, - = LF
  ESC \\                  string terminator

Pixels with alpha below 128 are left unset so the terminal background
shows through. Runs of four or more identical sixels use !<count><char>.
"""

from itertools import groupby

from loguru import logger
from PIL import Image

from sixshelf.graphics.normalizer import scale_aspect_fit, standardize_to_square
from sixshelf.models import RenderedBitmap, TerminalGeometry

DCS = "\x1bP0;1;0q"
ST = "\x1b\\"

MAX_COLORS = 255
_TRANSPARENT = 255  # palette index never produced by quantize(colors=255)
_ALPHA_CUTOFF = 128


def _rle(mask: bytearray) -> str:
    out = []
    for value, run in groupby(mask):
        char = chr(63 + value)
        count = len(list(run))
        out.append(f"!{count}{char}" if count > 3 else char * count)
    return "".join(out)


def _encode(img: Image.Image) -> RenderedBitmap:
    rgba = img.convert("RGBA")
    width, height = rgba.size
    if width == 0 or height == 0:
        return RenderedBitmap()

    quantized = rgba.convert("RGB").quantize(
        colors=MAX_COLORS,
        method=Image.Quantize.MEDIANCUT,
        dither=Image.Dither.NONE,
    )
    palette = quantized.getpalette() or []

    indices = bytearray(quantized.tobytes())
    alpha = rgba.getchannel("A").tobytes()
    for i, a in enumerate(alpha):
        if a < _ALPHA_CUTOFF:
            indices[i] = _TRANSPARENT

    used = sorted(set(indices) - {_TRANSPARENT})
    parts = [DCS, f'"1;1;{width};{height}']
    for c in used:
        r, g, b = palette[c * 3:c * 3 + 3]
        parts.append(f"#{c};2;{round(r * 100 / 255)};{round(g * 100 / 255)};{round(b * 100 / 255)}")

    bands = []
    for top in range(0, height, 6):
        masks: dict[int, bytearray] = {}
        for dy in range(min(6, height - top)):
            row = indices[(top + dy) * width:(top + dy + 1) * width]
            bit = 1 << dy
            for x, c in enumerate(row):
                if c == _TRANSPARENT:
                    continue
                mask = masks.get(c)
                if mask is None:
                    mask = masks[c] = bytearray(width)
                mask[x] |= bit
        bands.append("$".join(f"#{c}{_rle(masks[c])}" for c in sorted(masks)))

    parts.append("-".join(bands))
    parts.append(ST)
    return RenderedBitmap("".join(parts), width, height)


def encode(img: Image.Image) -> RenderedBitmap:
    """
    Encode an image as a sixel string.

    Returns:
        RenderedBitmap with the encoded string and pixel size. On encoder
        failure the result is empty, which callers treat as nothing to draw.
    """
    try:
        return _encode(img)
    except Exception as e:
        logger.warning(f"Sixel encoding failed for {img.width}x{img.height} image: {e}")
        return RenderedBitmap()


def render_icon(img: Image.Image, width_cells: int, height_cells: int,
                geometry: TerminalGeometry) -> RenderedBitmap:
    """
    Size an icon for a width_cells x height_cells box and encode it.

    The icon is standardized to a square of the larger target dimension
    first, then aspect-fit into the target box.
    """
    target_w = width_cells * geometry.cell_pixel_width
    target_h = height_cells * geometry.cell_pixel_height
    if target_w <= 0 or target_h <= 0:
        return RenderedBitmap()

    standardized = standardize_to_square(img, max(target_w, target_h))
    scaled = scale_aspect_fit(standardized, target_w, target_h)
    return encode(scaled)
