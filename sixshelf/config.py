"""
Launcher configuration - load, complete and validate config.toml.

Example config.toml:
    display = ["Chrome", "Terminal"]

    [grid]
    rows = 2
    columns = 4

    [style]
    border = true
    padding = 1
    icon_scale = 0.8

    [[apps]]
    name = "Chrome"                 # package/activity auto-detected

    [[apps]]
    name = "Terminal"
    command = "htop"
    icon = "dashboard:htop"

Apps without a command and without package/activity are resolved through
the Identity Resolver at load time. Validation failures are fatal.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from loguru import logger

from sixshelf.errors import ConfigError, ShelfError
from sixshelf.models import AppIdentity
from sixshelf.services.icons import is_remote_source
from sixshelf.utils.helpers import _deep_merge, config_root, expand_path

DEFAULT_BORDER_COLOR = "240"
DEFAULT_HIGHLIGHT_COLOR = "96"
MIN_SCALE = 0.1
MAX_SCALE = 1.0

DEFAULTS: Dict[str, Any] = {
    "display": [],
    "grid": {
        "rows": 1,
        "columns": 5,
    },
    "style": {
        "border": True,
        "padding": 1,
        "icon_scale": 1.0,
        "border_color": DEFAULT_BORDER_COLOR,
        "highlight_color": DEFAULT_HIGHLIGHT_COLOR,
    },
    "behavior": {
        "close_on_launch": False,
    },
    "apps": [],
}


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


@dataclass
class ShelfConfig:
    rows: int = 1
    columns: int = 5
    border: bool = True
    padding: int = 1
    icon_scale: float = 1.0
    border_color: str = DEFAULT_BORDER_COLOR
    highlight_color: str = DEFAULT_HIGHLIGHT_COLOR
    close_on_launch: bool = False
    display: list[str] = field(default_factory=list)
    apps: list[AppIdentity] = field(default_factory=list)

    def effective_icon_scale(self, app: AppIdentity) -> float:
        """Per-app scale, else global scale, else 1.0; clamped to [0.1, 1.0]."""
        if app.icon_scale and app.icon_scale > 0:
            return clamp_scale(app.icon_scale)
        if self.icon_scale and self.icon_scale > 0:
            return clamp_scale(self.icon_scale)
        return 1.0

    def display_apps(self) -> list[AppIdentity]:
        """Apps in display order. An empty display list shows every app."""
        if not self.display:
            return list(self.apps)
        by_name = {app.name: app for app in self.apps}
        return [by_name[name] for name in self.display if name in by_name]

    def get_border_color(self) -> str:
        if not self.border_color or self.border_color == "default":
            return DEFAULT_BORDER_COLOR
        return self.border_color

    def get_highlight_color(self) -> str:
        if not self.highlight_color or self.highlight_color == "default":
            return DEFAULT_HIGHLIGHT_COLOR
        return self.highlight_color


def config_path() -> Path:
    return config_root() / "config.toml"


def load_settings(path: Path) -> Dict[str, Any]:
    """
    Read config.toml merged over DEFAULTS.

    A missing file yields the defaults.

    Raises:
        ConfigError: The file exists but cannot be read or parsed
    """
    if not path.exists():
        logger.info(f"Config file not found at {path}, using defaults")
        return _deep_merge(DEFAULTS, {})

    try:
        loaded = toml.load(path)
    except (OSError, toml.TomlDecodeError) as e:
        raise ConfigError(f"failed to read config {path}: {e}") from e
    return _deep_merge(DEFAULTS, loaded)


def _optional_str(entry: dict, key: str) -> Optional[str]:
    value = entry.get(key)
    return str(value) if value else None


def parse_config(settings: Dict[str, Any]) -> ShelfConfig:
    """
    Build a ShelfConfig from merged settings.

    Raises:
        ConfigError: A value has the wrong type
    """
    try:
        apps = []
        for i, entry in enumerate(settings["apps"]):
            if not isinstance(entry, dict) or not entry.get("name"):
                raise ConfigError(f"app {i}: every app needs a name")
            icon = _optional_str(entry, "icon")
            apps.append(AppIdentity(
                name=str(entry["name"]),
                package=_optional_str(entry, "package"),
                entry_point=_optional_str(entry, "activity"),
                command=_optional_str(entry, "command"),
                icon_source=expand_path(icon) if icon else None,
                icon_scale=float(entry["icon_scale"]) if entry.get("icon_scale") else None,
            ))

        grid, style = settings["grid"], settings["style"]
        return ShelfConfig(
            rows=int(grid["rows"]),
            columns=int(grid["columns"]),
            border=bool(style["border"]),
            padding=int(style["padding"]),
            icon_scale=float(style["icon_scale"] or 0),
            border_color=str(style["border_color"]),
            highlight_color=str(style["highlight_color"]),
            close_on_launch=bool(settings["behavior"]["close_on_launch"]),
            display=[str(name) for name in settings["display"]],
            apps=apps,
        )
    except (TypeError, ValueError, KeyError) as e:
        raise ConfigError(f"invalid config value: {e}") from e


def validate(config: ShelfConfig) -> None:
    """
    Raises:
        ConfigError: Grid too small, launch target missing, or icon file missing
    """
    if config.rows < 1:
        raise ConfigError("grid.rows must be at least 1")
    if config.columns < 1:
        raise ConfigError("grid.columns must be at least 1")

    for i, app in enumerate(config.apps):
        if not app.is_command:
            if not app.package:
                raise ConfigError(
                    f"app {i} ({app.name}): package name is required for Android apps "
                    "(or use auto-detect by omitting package/activity)"
                )
            if not app.entry_point:
                raise ConfigError(
                    f"app {i} ({app.name}): activity is required for Android apps "
                    "(or use auto-detect by omitting package/activity)"
                )
        if app.icon_source and not is_remote_source(app.icon_source):
            if not os.path.exists(app.icon_source):
                raise ConfigError(f"app {i} ({app.name}): icon file not found: {app.icon_source}")


def complete_apps(config: ShelfConfig, resolver) -> ShelfConfig:
    """Auto-detect missing package/activity. Failures are warnings here; validate() decides."""
    completed = []
    for app in config.apps:
        if not app.is_command and not (app.package and app.entry_point):
            logger.info(f"Auto-detecting package/activity for '{app.name}'...")
            try:
                app = resolver.complete(app)
                logger.info(f"  Found {app.package}/{app.entry_point}")
            except ShelfError as e:
                logger.warning(f"Could not auto-detect '{app.name}': {e}")
        completed.append(app)
    config.apps = completed
    return config


def load_config(path: Path | None = None, resolver=None) -> ShelfConfig:
    """
    Load, auto-complete and validate the launcher configuration.

    Args:
        path: config.toml location (default: <config-root>/config.toml)
        resolver: IdentityResolver for auto-detection (default: shared instance)

    Raises:
        ConfigError: Unreadable file or failed validation
    """
    path = path or config_path()
    config = parse_config(load_settings(path))

    needs_resolution = any(
        not app.is_command and not (app.package and app.entry_point) for app in config.apps
    )
    if needs_resolution:
        if resolver is None:
            from sixshelf.services.resolver import get_resolver
            resolver = get_resolver()
        complete_apps(config, resolver)

    validate(config)
    return config
