"""
Cache Service - in-memory and on-disk caches for resolution and icons.

Tiers:
  - ExpiringCache: in-process map with a fixed TTL (resolver results, 24h)
  - IconCache: decoded icons as <root>/icons/<package>.png, no expiry
  - ResourcePathCache: icon paths inside archives as
    <root>/icon-paths/<package>.txt, expiry by file mtime (7 days)
  - RenderCache: encoded sixels keyed by RenderKey, cleared per geometry epoch

All caches are safe to share between the icon loader's worker threads.
Disk reads treat missing, unreadable or corrupt files as misses.
"""

import threading
import time
from pathlib import Path
from typing import Callable, Generic, Hashable, Optional, TypeVar

from loguru import logger
from PIL import Image

from sixshelf.errors import ShelfError
from sixshelf.graphics.images import load_image, save_image
from sixshelf.models import RenderedBitmap, RenderKey, ResourcePathHint

RESOLVER_TTL = 24 * 3600
RESOURCE_PATH_TTL = 7 * 24 * 3600

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiringCache(Generic[K, V]):
    """
    Thread-safe mapping whose entries expire a fixed time after insertion.

    Expired entries are never served, even though they stay in the map
    until overwritten or cleared.
    """

    def __init__(self, ttl: float = RESOLVER_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[K, tuple[V, float]] = {}

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            return None
        return value

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class IconCache:
    """Decoded icons on disk, one PNG per package. Presence is validity."""

    def __init__(self, root: Path):
        self.dir = Path(root) / "icons"

    def path_for(self, package: str) -> Path:
        return self.dir / f"{package}.png"

    def load(self, package: str) -> Optional[Image.Image]:
        path = self.path_for(package)
        if not path.exists():
            return None
        try:
            return load_image(path)
        except ShelfError as e:
            logger.warning(f"Ignoring unreadable cached icon {path}: {e}")
            return None

    def save(self, package: str, img: Image.Image) -> None:
        path = self.path_for(package)
        try:
            save_image(img, path)
        except OSError:
            logger.exception(f"Failed to cache icon for {package} at {path}")

    def clear(self) -> int:
        return _clear_dir(self.dir, "*.png")


class ResourcePathCache:
    """Icon resource paths discovered by the introspection query."""

    def __init__(self, root: Path, ttl: float = RESOURCE_PATH_TTL,
                 clock: Callable[[], float] = time.time):
        self.dir = Path(root) / "icon-paths"
        self.ttl = ttl
        self._clock = clock

    def path_for(self, package: str) -> Path:
        return self.dir / f"{package}.txt"

    def get(self, package: str) -> Optional[ResourcePathHint]:
        """Return the cached hint, or None if missing, expired, or unreadable."""
        path = self.path_for(package)
        try:
            cached_at = path.stat().st_mtime
            if self._clock() - cached_at > self.ttl:
                logger.debug(f"Resource path hint for {package} expired")
                return None
            hint = path.read_text().strip()
        except (OSError, UnicodeDecodeError):
            return None

        if not hint:
            return None
        return ResourcePathHint(package=package, path=hint, cached_at=cached_at)

    def put(self, package: str, icon_path: str) -> None:
        path = self.path_for(package)
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
            path.write_text(icon_path)
        except OSError as e:
            logger.warning(f"Could not cache resource path for {package}: {e}")

    def clear(self) -> int:
        return _clear_dir(self.dir, "*.txt")


class RenderCache:
    """
    Encoded sixels for the current geometry epoch.

    Must be cleared whenever the cell pixel size changes; a bitmap encoded
    for the old cell size would be drawn at positions computed for the new one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[RenderKey, RenderedBitmap] = {}

    def get_or_render(self, key: RenderKey, render: Callable[[], RenderedBitmap]) -> RenderedBitmap:
        with self._lock:
            cached = self._entries.get(key)
        if cached is not None:
            return cached

        result = render()
        with self._lock:
            self._entries[key] = result
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[RenderKey]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _clear_dir(directory: Path, pattern: str) -> int:
    removed = 0
    if not directory.exists():
        return removed
    for path in directory.glob(pattern):
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")
    return removed
