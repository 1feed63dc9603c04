"""
Data types passed between the resolver, extractor, caches and grid renderer.
"""

from dataclasses import dataclass, replace
from typing import Optional

from PIL import Image


@dataclass(frozen=True)
class AppIdentity:
    """A configured launcher entry. Immutable once loaded."""
    name: str
    package: Optional[str] = None
    entry_point: Optional[str] = None
    command: Optional[str] = None
    icon_source: Optional[str] = None  # dashboard:<name>, http(s) URL, or local path
    icon_scale: Optional[float] = None

    @property
    def is_command(self) -> bool:
        """Commands take priority over packages when both are set."""
        return bool(self.command)

    def with_resolved(self, package: str | None, entry_point: str | None) -> "AppIdentity":
        """Return a copy with package/entry point filled in where missing."""
        return replace(
            self,
            package=self.package or package,
            entry_point=self.entry_point or entry_point,
        )


@dataclass
class ResolvedEntry:
    package: str
    entry_point: str
    resolved_at: float


@dataclass
class ExtractedIcon:
    """A decoded icon plus the archive member it came from."""
    image: Image.Image
    source_path: str


@dataclass
class ResourcePathHint:
    package: str
    path: str
    cached_at: float


@dataclass(frozen=True)
class RenderedBitmap:
    """Encoder output. An empty encoded string means nothing to draw."""
    encoded: str = ""
    pixel_width: int = 0
    pixel_height: int = 0

    def __bool__(self) -> bool:
        return bool(self.encoded)


@dataclass(frozen=True)
class TerminalGeometry:
    columns: int
    rows: int
    cell_pixel_width: int
    cell_pixel_height: int


@dataclass(frozen=True)
class RenderKey:
    """Render cache key. Scale is kept as its two-decimal string form."""
    index: int
    width_cells: int
    height_cells: int
    scale: str

    @classmethod
    def build(cls, index: int, width_cells: int, height_cells: int, scale: float) -> "RenderKey":
        return cls(index, width_cells, height_cells, f"{scale:.2f}")
