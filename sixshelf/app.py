"""
sixshelf application shell - terminal setup, input loop and app launching.

Lifecycle:
  1. Enter the alternate screen, raw mode and SGR mouse reporting
  2. Query geometry, then issue the single follow-up query
  3. Load icons in the background, draw frames, draw sixels once loaded
  4. Mouse release on a cell launches its app; q / Esc / Ctrl-C quit

Background work (icon loading, launches, delayed border restores) is
tracked by a TaskRegistry so shutdown can wait for or cancel it.
"""

import os
import re
import selectors
import signal
import sys
import termios
import threading
import tty
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from loguru import logger

from sixshelf.config import ShelfConfig
from sixshelf.errors import ShelfError
from sixshelf.graphics import terminal
from sixshelf.models import AppIdentity
from sixshelf.panels.grid import ERROR_COLOR, GeometryGate, GridRenderer

FLASH_MS = 150
POLL_INTERVAL = 0.1

_SGR_MOUSE = re.compile(r"\x1b\[<(\d+);(\d+);(\d+)([Mm])")
_QUIT_KEYS = {"q", "\x1b", "\x03"}


class TaskRegistry:
    """Explicit handles for background work started by the shell."""

    def __init__(self, max_workers: int = 4):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="shelf")
        self._lock = threading.Lock()
        self._futures: set[Future] = set()
        self._timers: set[threading.Timer] = set()

    def submit(self, fn: Callable, *args) -> Future:
        future = self._pool.submit(fn, *args)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)

    def schedule(self, delay_ms: int, fn: Callable) -> threading.Timer:
        def run():
            with self._lock:
                self._timers.discard(timer)
            fn()

        timer = threading.Timer(delay_ms / 1000, run)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()
        return timer

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._futures) + len(self._timers)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        self._pool.shutdown(wait=wait, cancel_futures=not wait)


def parse_mouse_release(data: str) -> Optional[tuple[int, int]]:
    """
    Return 0-based (x, y) of the first SGR mouse button release in data.

    Presses and motion are ignored so a click launches exactly once.
    """
    for match in _SGR_MOUSE.finditer(data):
        button, x, y, kind = match.groups()
        if kind == "m" and int(button) & 0b11 == 0:
            return int(x) - 1, int(y) - 1
    return None


class ShelfApp:
    """
    Interactive launcher grid.

    Args:
        config: Loaded, validated configuration
        system: AndroidSystem for launches
        loader: IconLoader for the grid icons
    """

    def __init__(self, config: ShelfConfig, system, loader, out=None):
        self.config = config
        self.system = system
        self.loader = loader
        self.apps = config.display_apps()
        self.renderer = GridRenderer(config, self.apps)
        self.gate = GeometryGate()
        self.tasks = TaskRegistry()
        self.out = out or sys.stdout
        self._write_lock = threading.Lock()
        self._running = False
        self._resize_pending = False
        self._icons_future: Optional[Future] = None

    def write(self, text: str) -> None:
        with self._write_lock:
            self.out.write(text)
            self.out.flush()

    def redraw(self) -> None:
        self.write(self.renderer.view())

    def update_geometry(self, geometry) -> None:
        if self.renderer.accept_geometry(geometry):
            self.write(terminal.CLEAR_SCREEN)
            self.redraw()

    def on_resize(self, *_args) -> None:
        # SIGWINCH handler: no logging or output here, the main loop applies it
        if self.gate.on_window_size():
            self._resize_pending = True

    def apply_pending_resize(self) -> None:
        if not self._resize_pending:
            return
        self._resize_pending = False
        self.update_geometry(terminal.query_geometry())

    def start(self) -> None:
        """Initial geometry, its follow-up query, and background icon loading."""
        self.on_resize()
        self.apply_pending_resize()
        self.update_geometry(terminal.query_geometry())
        self._icons_future = self.tasks.submit(self.loader.load_all, self.apps)

    def poll_icons(self) -> None:
        future = self._icons_future
        if future is None or not future.done():
            return
        self._icons_future = None
        try:
            icons = future.result()
        except Exception:
            logger.exception("Icon loading failed")
            return
        self.renderer.set_icons(icons)
        self.redraw()

    def launch(self, app: AppIdentity) -> None:
        if app.is_command:
            self.system.run_command(app.command)
        else:
            self.system.start_app(app.package, app.entry_point)

    def _launch_in_background(self, index: int) -> None:
        app = self.apps[index]
        try:
            self.launch(app)
        except ShelfError as e:
            logger.warning(f"Failed to launch {app.name}: {e}")
            self.renderer.error_cells.add(index)
            self.write(self.renderer.draw_frame(index, ERROR_COLOR))
            return
        self.renderer.error_cells.discard(index)

    def on_click(self, x: int, y: int) -> None:
        if self.renderer.geometry is None:
            return
        index = self.renderer.layout.hit_test(x, y, self.renderer.geometry, len(self.apps))
        if index < 0:
            return

        logger.info(f"Launching {self.apps[index].name}")
        self.write(self.renderer.draw_frame(index, self.config.get_highlight_color()))
        self.tasks.schedule(FLASH_MS, lambda: self._restore_frame(index))
        self.tasks.submit(self._launch_in_background, index)

        if self.config.close_on_launch:
            self._running = False

    def _restore_frame(self, index: int) -> None:
        color = ERROR_COLOR if index in self.renderer.error_cells else self.config.get_border_color()
        self.write(self.renderer.draw_frame(index, color))

    def handle_input(self, data: str) -> None:
        release = parse_mouse_release(data)
        if release is not None:
            self.on_click(*release)
            return
        if data in _QUIT_KEYS:
            self._running = False

    def run(self) -> None:
        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        previous_handler = signal.signal(signal.SIGWINCH, self.on_resize)
        selector = selectors.DefaultSelector()
        selector.register(fd, selectors.EVENT_READ)

        self.write(terminal.ALT_SCREEN_ON + terminal.HIDE_CURSOR + terminal.MOUSE_ON)
        try:
            tty.setraw(fd)
            self._running = True
            self.start()
            while self._running:
                if selector.select(timeout=POLL_INTERVAL):
                    data = os.read(fd, 1024).decode(errors="replace")
                    self.handle_input(data)
                self.apply_pending_resize()
                self.poll_icons()
        finally:
            selector.close()
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            signal.signal(signal.SIGWINCH, previous_handler)
            self.write(terminal.MOUSE_OFF + terminal.SHOW_CURSOR + terminal.ALT_SCREEN_OFF)
            self.tasks.shutdown(wait=True)
