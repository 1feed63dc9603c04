"""
Grid Panel - lay out app cells and position sixel icons inside them.

Cell geometry:
  cell (chars)  = terminal columns // grid columns, (terminal rows - 1) // grid rows
  icon (chars)  = cell - 2 * padding - 2 (border), at least 1
  icon (pixels) = icon chars * cell pixel size * app icon scale

Each icon is centered in its icon area using the size of the bitmap the
encoder actually produced, since aspect-fit rarely fills the requested box.

Sixels are drawn once per geometry epoch and then left in the terminal's
buffer. Frames are cheap text and are redrawn on every pass.
"""

from typing import Callable, Optional

from loguru import logger
from PIL import Image

from sixshelf.config import ShelfConfig
from sixshelf.graphics import terminal
from sixshelf.graphics.sixel import render_icon
from sixshelf.models import AppIdentity, RenderedBitmap, RenderKey, TerminalGeometry
from sixshelf.services.cache import RenderCache

ERROR_COLOR = "196"

TOP_LEFT, TOP_RIGHT, BOTTOM_LEFT, BOTTOM_RIGHT = "╭", "╮", "╰", "╯"
HORIZONTAL, VERTICAL = "─", "│"


class GridLayout:
    """Cell arithmetic for a rows x columns grid."""

    def __init__(self, config: ShelfConfig):
        self.config = config

    @property
    def border_size(self) -> int:
        return 1 if self.config.border else 0

    def grid_cell_size(self, geometry: TerminalGeometry) -> tuple[int, int]:
        if self.config.columns <= 0 or self.config.rows <= 0:
            return 0, 0
        # One row is kept free so the bottom border is never cut off
        return geometry.columns // self.config.columns, (geometry.rows - 1) // self.config.rows

    def icon_cell_size(self, geometry: TerminalGeometry) -> tuple[int, int]:
        cell_w, cell_h = self.grid_cell_size(geometry)
        inset = 2 * self.config.padding + 2 * self.border_size
        return max(1, cell_w - inset), max(1, cell_h - inset)

    def hit_test(self, x: int, y: int, geometry: TerminalGeometry, app_count: int) -> int:
        """App index under 0-based terminal coordinates (x, y), or -1."""
        cell_w, cell_h = self.grid_cell_size(geometry)
        if cell_w <= 0 or cell_h <= 0 or x < 0 or y < 0:
            return -1

        col, row = x // cell_w, y // cell_h
        if col >= self.config.columns or row >= self.config.rows:
            return -1

        index = row * self.config.columns + col
        return index if index < app_count else -1


class GeometryGate:
    """
    Decide which window-size signals to act on.

    Only the first window-size observation is accepted; it triggers one
    follow-up geometry query. Later resizes (soft keyboard toggles on
    Termux) are ignored for the rest of the session.
    """

    def __init__(self):
        self.window_observed = False

    def on_window_size(self) -> bool:
        if self.window_observed:
            return False
        self.window_observed = True
        return True


class GridRenderer:
    """
    Render the launcher grid for the current geometry epoch.

    Methods:
        accept_geometry(geometry): start a new epoch if geometry changed
        set_icons(icons): install loaded icons
        draw_icons(): cursor-addressed sixels, once per epoch
        draw_frame(index, color): one cell border
        view(): full frame including icons when not yet drawn
    """

    def __init__(self, config: ShelfConfig, apps: list[AppIdentity],
                 render_cache: RenderCache | None = None,
                 render: Callable[[Image.Image, int, int, TerminalGeometry], RenderedBitmap] = render_icon):
        self.config = config
        self.layout = GridLayout(config)
        self.apps = apps
        self.render_cache = render_cache if render_cache is not None else RenderCache()
        self.render = render
        self.geometry: Optional[TerminalGeometry] = None
        self.icons: list[Optional[Image.Image]] = []
        self.icons_drawn = False
        self.error_cells: set[int] = set()

    @property
    def ready(self) -> bool:
        return self.geometry is not None

    def accept_geometry(self, geometry: TerminalGeometry) -> bool:
        """
        Returns:
            True if a new geometry epoch started (cache cleared, redraw forced)
        """
        if geometry == self.geometry:
            return False

        logger.debug(f"Geometry changed {self.geometry} -> {geometry}, clearing render cache")
        self.geometry = geometry
        self.render_cache.clear()
        self.icons_drawn = False
        return True

    def set_icons(self, icons: list[Optional[Image.Image]]) -> None:
        self.icons = icons
        self.render_cache.clear()
        self.icons_drawn = False

    def _bitmap_for(self, index: int, width_cells: int, height_cells: int, scale: float) -> RenderedBitmap:
        key = RenderKey.build(index, width_cells, height_cells, scale)
        img = self.icons[index]
        return self.render_cache.get_or_render(
            key, lambda: self.render(img, width_cells, height_cells, self.geometry)
        )

    def draw_icons(self) -> str:
        """Cursor-positioned sixels for every visible app slot, row-major."""
        geometry = self.geometry
        if geometry is None or not any(icon is not None for icon in self.icons):
            return ""

        cell_w, cell_h = self.layout.grid_cell_size(geometry)
        if cell_w <= 0 or cell_h <= 0:
            return ""
        icon_w, icon_h = self.layout.icon_cell_size(geometry)
        offset = self.layout.border_size + self.config.padding

        out = []
        visible = min(len(self.apps), self.config.rows * self.config.columns)
        for index in range(visible):
            if index >= len(self.icons) or self.icons[index] is None:
                continue

            scale = self.config.effective_icon_scale(self.apps[index])
            scaled_w = max(1, int(icon_w * scale))
            scaled_h = max(1, int(icon_h * scale))

            bitmap = self._bitmap_for(index, scaled_w, scaled_h, scale)
            if not bitmap:
                continue

            bitmap_w_cells = bitmap.pixel_width // geometry.cell_pixel_width
            bitmap_h_cells = bitmap.pixel_height // geometry.cell_pixel_height
            center_x = (icon_w - bitmap_w_cells) // 2
            center_y = (icon_h - bitmap_h_cells) // 2

            row, col = divmod(index, self.config.columns)
            pos_x = max(1, col * cell_w + offset + center_x + 1)
            pos_y = max(1, row * cell_h + offset + center_y + 1)

            out.append(terminal.cursor_to(pos_y, pos_x))
            out.append(bitmap.encoded)

        self.icons_drawn = True
        return "".join(out)

    def draw_frame(self, index: int, color: str) -> str:
        """Rounded border around cell `index` in a 256-color foreground."""
        if not self.config.border or self.geometry is None:
            return ""
        cell_w, cell_h = self.layout.grid_cell_size(self.geometry)
        if cell_w < 2 or cell_h < 2:
            return ""

        row, col = divmod(index, self.config.columns)
        x, y = col * cell_w + 1, row * cell_h + 1
        inner = HORIZONTAL * (cell_w - 2)

        out = [terminal.cursor_to(y, x), f"\x1b[38;5;{color}m", TOP_LEFT, inner, TOP_RIGHT]
        for dy in range(1, cell_h - 1):
            out.append(terminal.cursor_to(y + dy, x) + VERTICAL)
            out.append(terminal.cursor_to(y + dy, x + cell_w - 1) + VERTICAL)
        out += [terminal.cursor_to(y + cell_h - 1, x), BOTTOM_LEFT, inner, BOTTOM_RIGHT, terminal.RESET]
        return "".join(out)

    def draw_frames(self) -> str:
        out = []
        for index in range(self.config.rows * self.config.columns):
            color = ERROR_COLOR if index in self.error_cells else self.config.get_border_color()
            out.append(self.draw_frame(index, color))
        return "".join(out)

    def view(self) -> str:
        """Full redraw: frames every time, sixels only when not yet drawn this epoch."""
        if self.geometry is None:
            return "Loading..."
        if not self.apps:
            return "No apps configured. Edit ~/.config/sixshelf/config.toml"
        cell_w, cell_h = self.layout.grid_cell_size(self.geometry)
        if cell_w <= 0 or cell_h <= 0:
            return "Terminal too small"

        out = [terminal.SYNC_START, terminal.HIDE_CURSOR, terminal.CURSOR_HOME, self.draw_frames()]
        if not self.icons_drawn:
            out.append(self.draw_icons())
        out += [terminal.cursor_to(self.geometry.rows, 1), terminal.SYNC_END]
        return "".join(out)
