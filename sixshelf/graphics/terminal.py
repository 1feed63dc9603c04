"""
Terminal geometry query and escape sequences.

Geometry comes from the TIOCGWINSZ ioctl, which reports both the cell
grid and (on terminals that support it) the window size in pixels.
"""

import fcntl
import os
import struct
import sys
import termios

from loguru import logger

from sixshelf.models import TerminalGeometry

FALLBACK_CELL_WIDTH = 10
FALLBACK_CELL_HEIGHT = 20

CURSOR_TO = "\x1b[{row};{col}H"  # 1-indexed
CURSOR_HOME = "\x1b[H"
HIDE_CURSOR = "\x1b[?25l"
SHOW_CURSOR = "\x1b[?25h"
SYNC_START = "\x1b[?2026h"
SYNC_END = "\x1b[?2026l"
ALT_SCREEN_ON = "\x1b[?1049h"
ALT_SCREEN_OFF = "\x1b[?1049l"
CLEAR_SCREEN = "\x1b[2J"
MOUSE_ON = "\x1b[?1000h\x1b[?1006h"
MOUSE_OFF = "\x1b[?1006l\x1b[?1000l"
RESET = "\x1b[0m"


def cursor_to(row: int, col: int) -> str:
    return CURSOR_TO.format(row=row, col=col)


def geometry_from_winsize(rows: int, columns: int, x_pixels: int, y_pixels: int) -> TerminalGeometry:
    """Derive cell pixel size from a winsize struct, with fallbacks for 0 pixel fields."""
    cell_w = x_pixels // columns if columns and x_pixels else FALLBACK_CELL_WIDTH
    cell_h = y_pixels // rows if rows and y_pixels else FALLBACK_CELL_HEIGHT
    return TerminalGeometry(columns, rows, cell_w, cell_h)


def query_geometry(fd: int | None = None) -> TerminalGeometry:
    """
    Query the terminal's cell grid and cell pixel size.

    Falls back to os.get_terminal_size() and a 10x20 cell when the ioctl
    is unavailable (not a tty) or reports no pixel size.
    """
    if fd is None:
        fd = sys.stdout.fileno()

    try:
        packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, struct.pack("HHHH", 0, 0, 0, 0))
        rows, columns, x_pixels, y_pixels = struct.unpack("HHHH", packed)
    except OSError as e:
        logger.debug(f"TIOCGWINSZ failed ({e}), using fallback geometry")
        try:
            size = os.get_terminal_size(fd)
            columns, rows = size.columns, size.lines
        except OSError:
            columns, rows = 80, 24
        x_pixels = y_pixels = 0

    geometry = geometry_from_winsize(rows, columns, x_pixels, y_pixels)
    logger.debug(f"Terminal geometry: {geometry}")
    return geometry
