"""
Icon Extraction Pipeline - pull an app's launcher icon out of its APKs.

The decoded-icon cache is consulted first; a hit skips everything below.
Otherwise every archive of the package (base APK, then splits) is opened
and the strategies run in order until one returns an image:

  1. mipmap       - conventional mipmap paths, highest density first
  2. pm-dump      - icon resource reported by pm dump over rish
                    (path cached on disk for 7 days)
  3. aapt2        - icon resource declared in aapt2 badging output
  4. drawable     - conventional drawable paths, highest density first
  5. largest      - largest mipmap image, base APK only

A strategy failure is never fatal; NotFound is raised only once every
strategy has failed on every archive. Successful results are written to
the decoded-icon cache.
"""

import zipfile
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger

from sixshelf.errors import DecodeFailure, NotFound, ShelfError
from sixshelf.graphics.images import decode_image
from sixshelf.models import ExtractedIcon
from sixshelf.services.cache import IconCache, ResourcePathCache

DENSITIES = ["xxxhdpi", "xxhdpi", "xhdpi", "hdpi", "mdpi"]

DENSITY_DPI = {
    "xxxhdpi": 640,
    "xxhdpi": 480,
    "xhdpi": 320,
    "hdpi": 240,
    "mdpi": 160,
    "ldpi": 120,
}

IMAGE_SUFFIXES = (".png", ".webp")


def convention_paths(category: str, basenames: tuple[str, ...], formats: tuple[str, ...]) -> list[str]:
    """Density-ordered candidate paths, e.g. res/mipmap-xxxhdpi-v4/ic_launcher.webp."""
    paths = []
    for basename in basenames:
        for fmt in formats:
            for density in DENSITIES:
                paths.append(f"res/{category}-{density}-v4/{basename}.{fmt}")
                paths.append(f"res/{category}-{density}/{basename}.{fmt}")
            paths.append(f"res/{category}/{basename}.{fmt}")
    return paths


MIPMAP_PATHS = convention_paths("mipmap", ("ic_launcher", "app_icon"), ("webp", "png"))
DRAWABLE_PATHS = convention_paths("drawable", ("ic_launcher",), ("png", "webp"))


def density_of(path: str) -> int:
    """Approximate DPI of a density-qualified resource path, 0 if unqualified."""
    for name, dpi in DENSITY_DPI.items():
        if f"-{name}" in path:
            return dpi
    return 0


def _raster_variant(path: str) -> str:
    # Adaptive icons are XML; most APKs ship a PNG of the same name alongside.
    if path.endswith(".xml"):
        return path[:-len(".xml")] + ".png"
    return path


def _pick_icon(paths: list[str]) -> Optional[str]:
    """Highest-density PNG, else the first XML resource mapped to PNG."""
    best_png, best_dpi = None, -1
    first_xml = None
    for path in paths:
        if path.endswith(".png"):
            dpi = density_of(path)
            if dpi > best_dpi:
                best_png, best_dpi = path, dpi
        elif path.endswith(".xml") and first_xml is None:
            first_xml = path
    if best_png:
        return best_png
    if first_xml:
        return _raster_variant(first_xml)
    return None


def parse_icon_from_dump(output: str) -> Optional[str]:
    """
    Find the icon resource in pm dump text.

    Looks at every "icon=<path>" assignment, e.g.
    "icon=res/mipmap-xxxhdpi/ic_launcher.png labelRes=0x7f120001".
    """
    found = []
    for line in output.splitlines():
        if "icon=" not in line:
            continue
        value = line.split("icon=", 1)[1].strip()
        if not value:
            continue
        found.append(value.split(" ", 1)[0])
    return _pick_icon(found)


def parse_badging_icon(output: str) -> Optional[str]:
    """
    Find the icon resource in aapt2 dump badging text.

    The icon='...' attribute of the application: line wins. Otherwise the
    application-icon-<density>:'...' lines are used, highest density first.
    """
    lines = output.splitlines()

    for line in lines:
        if not line.startswith("application:"):
            continue
        idx = line.find("icon='")
        if idx == -1:
            continue
        start = idx + len("icon='")
        end = line.find("'", start)
        if end == -1:
            continue
        path = line[start:end]
        if path.endswith(".xml") or path.endswith(".png"):
            return _raster_variant(path)

    best_png, best_density = None, -1
    first_xml = None
    for line in lines:
        if not line.startswith("application-icon-"):
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        try:
            density = int(key.removeprefix("application-icon-"))
        except ValueError:
            density = 0
        path = value.strip().strip("'")
        if path.endswith(".png") and density > best_density:
            best_png, best_density = path, density
        elif path.endswith(".xml") and first_xml is None:
            first_xml = path

    if best_png:
        return best_png
    if first_xml:
        return _raster_variant(first_xml)
    return None


def _log(package: str, step: str, *details: str) -> None:
    detail = f" - {', '.join(details)}" if details else ""
    logger.debug(f"[icon:{package}] {step}{detail}")


@dataclass
class ArchiveContext:
    """One opened archive of the package being extracted."""
    package: str
    archive_path: str
    archive: zipfile.ZipFile
    index: dict[str, zipfile.ZipInfo] = field(default_factory=dict)

    @classmethod
    def open(cls, package: str, archive_path: str, archive: zipfile.ZipFile) -> "ArchiveContext":
        return cls(package, archive_path, archive, {info.filename: info for info in archive.infolist()})

    @property
    def is_split(self) -> bool:
        return Path(self.archive_path).name.startswith("split_")

    def decode(self, name: str) -> ExtractedIcon:
        """
        Raises:
            NotFound: No such member
            DecodeFailure: Member is not a readable image
        """
        info = self.index.get(name)
        if info is None:
            raise NotFound(f"{name} not in {self.archive_path}")
        try:
            data = self.archive.read(info)
        except (OSError, zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as e:
            raise DecodeFailure(f"could not read {name} from {self.archive_path}: {e}") from e
        img = decode_image(data, f"{self.archive_path}!{name}")
        return ExtractedIcon(image=img, source_path=name)

    def decode_resource(self, path: str) -> ExtractedIcon:
        """Decode path, or its raster variant when path is an XML resource."""
        candidates = [path]
        if path.endswith(".xml"):
            candidates.append(_raster_variant(path))
        last_error: ShelfError = NotFound(f"{path} not in {self.archive_path}")
        for candidate in candidates:
            try:
                return self.decode(candidate)
            except ShelfError as e:
                last_error = e
        raise last_error


class ExtractionStrategy(ABC):
    """One way of finding the icon inside an archive."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def attempt(self, ctx: ArchiveContext) -> ExtractedIcon:
        """Return the icon or raise a ShelfError (usually NotFound)."""
        ...


class ConventionLookup(ExtractionStrategy):
    """Probe a fixed, density-ordered list of member paths."""

    def __init__(self, category: str, paths: list[str]):
        self.category = category
        self.paths = paths

    @property
    def name(self) -> str:
        return self.category

    def attempt(self, ctx: ArchiveContext) -> ExtractedIcon:
        for path in self.paths:
            if path not in ctx.index:
                continue
            _log(ctx.package, f"Found {self.category} icon", path)
            try:
                return ctx.decode(path)
            except ShelfError as e:
                _log(ctx.package, "Failed to decode", path, str(e))
        raise NotFound(f"no conventional {self.category} icon")


class IntrospectionLookup(ExtractionStrategy):
    """Ask pm dump (through rish) where the icon lives. Slow, so cached on disk."""

    name = "pm-dump"

    def __init__(self, system, hint_cache: ResourcePathCache):
        self.system = system
        self.hint_cache = hint_cache

    def resource_path(self, package: str) -> str:
        hint = self.hint_cache.get(package)
        if hint:
            return hint.path

        path = parse_icon_from_dump(self.system.privileged_dump(package))
        if not path:
            raise NotFound("no icon in pm dump output")
        self.hint_cache.put(package, path)
        return path

    def attempt(self, ctx: ArchiveContext) -> ExtractedIcon:
        path = self.resource_path(ctx.package)
        _log(ctx.package, "pm dump returned path", path)
        return ctx.decode_resource(path)


class ArchiveToolLookup(ExtractionStrategy):
    """Ask aapt2 for the icon declared in the archive's manifest."""

    name = "aapt2"

    def __init__(self, system):
        self.system = system

    def attempt(self, ctx: ArchiveContext) -> ExtractedIcon:
        path = parse_badging_icon(self.system.dump_badging(ctx.archive_path))
        if not path:
            raise NotFound("no icon in aapt2 badging output")
        _log(ctx.package, "aapt2 returned path", path)
        return ctx.decode_resource(path)


class LargestAssetLookup(ExtractionStrategy):
    """
    Largest mipmap image in the archive.

    Split APKs are skipped: they carry unrelated density-specific images
    that would be picked up as false positives.
    """

    name = "largest"

    def attempt(self, ctx: ArchiveContext) -> ExtractedIcon:
        if ctx.is_split:
            raise NotFound("largest-asset search skipped for split archive")

        largest = None
        for name, info in ctx.index.items():
            if "mipmap" in name and name.endswith(IMAGE_SUFFIXES):
                if largest is None or info.file_size > largest.file_size:
                    largest = info

        if largest is None:
            raise NotFound("no mipmap images in archive")
        _log(ctx.package, "Found largest mipmap", largest.filename)
        return ctx.decode(largest.filename)


def default_strategies(system, hint_cache: ResourcePathCache) -> list[ExtractionStrategy]:
    return [
        ConventionLookup("mipmap", MIPMAP_PATHS),
        IntrospectionLookup(system, hint_cache),
        ArchiveToolLookup(system),
        ConventionLookup("drawable", DRAWABLE_PATHS),
        LargestAssetLookup(),
    ]


class IconExtractor:
    """
    Extract and cache launcher icons for installed packages.

    Methods:
        extract_icon(package): cached or freshly extracted icon
    """

    def __init__(self, system, icon_cache: IconCache, hint_cache: ResourcePathCache,
                 strategies: list[ExtractionStrategy] | None = None):
        self.system = system
        self.icon_cache = icon_cache
        self.strategies = strategies if strategies is not None else default_strategies(system, hint_cache)

    def extract_icon(self, package: str) -> ExtractedIcon:
        """
        Raises:
            NotFound: Every strategy failed on every archive
            ExternalToolFailure: The archive paths could not be listed
        """
        if not package:
            raise NotFound("empty package name")

        _log(package, "Starting icon extraction")
        cached = self.icon_cache.load(package)
        if cached is not None:
            _log(package, "Icon cache hit")
            return ExtractedIcon(image=cached, source_path=str(self.icon_cache.path_for(package)))

        archives = self.system.package_paths(package)
        if not archives:
            raise NotFound(f"could not find APK for package {package}")
        _log(package, "Found APKs", f"{len(archives)} paths")

        for archive_path in archives:
            try:
                icon = self._extract_from_archive(package, archive_path)
            except NotFound as e:
                _log(package, "Failed to extract from APK", archive_path, str(e))
                continue

            _log(package, "Icon extracted", icon.source_path)
            self.icon_cache.save(package, icon.image)
            return icon

        raise NotFound(f"could not extract icon for {package} from {len(archives)} APK(s)")

    def _extract_from_archive(self, package: str, archive_path: str) -> ExtractedIcon:
        try:
            archive = zipfile.ZipFile(archive_path)
        except (OSError, zipfile.BadZipFile) as e:
            raise NotFound(f"failed to open {archive_path}: {e}") from e

        with archive:
            ctx = ArchiveContext.open(package, archive_path, archive)
            for strategy in self.strategies:
                try:
                    icon = strategy.attempt(ctx)
                except ShelfError as e:
                    _log(package, f"Strategy {strategy.name} failed", str(e))
                    continue
                _log(package, f"Strategy {strategy.name} succeeded", icon.source_path)
                return icon

        raise NotFound(f"no icon found in {archive_path}")
