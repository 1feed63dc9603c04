"""
Helper utilities for the sixshelf launcher.

Provides common functions used across services:
- Config root and path expansion
- External tool invocation
- Logging setup
- Dictionary deep merge for settings
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import Dict, Sequence

from loguru import logger

from sixshelf.errors import ExternalToolFailure


def config_root() -> Path:
    """
    Directory holding config.toml, the icon caches and the log file.

    Returns:
        $SIXSHELF_HOME if set, else ~/.config/sixshelf
    """
    override = os.environ.get("SIXSHELF_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "sixshelf"


def expand_path(path: str) -> str:
    """Expand a leading ~/ to the user's home directory."""
    if path.startswith("~/"):
        return str(Path.home() / path[2:])
    return path


def run_tool(args: Sequence[str], timeout: float | None = None) -> str:
    """
    Run an external tool and return its stdout as text.

    Args:
        args: Command and arguments
        timeout: Optional time bound in seconds (None waits indefinitely)

    Raises:
        ExternalToolFailure: Missing binary, non-zero exit, or timeout
    """
    try:
        result = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ExternalToolFailure(f"{args[0]} not found") from e
    except subprocess.TimeoutExpired as e:
        raise ExternalToolFailure(f"{args[0]} timed out") from e

    if result.returncode != 0:
        raise ExternalToolFailure(
            f"{' '.join(args)} exited with {result.returncode}: {result.stderr.strip()[:200]}"
        )
    return result.stdout


def setup_logging(debug: bool = False, console: bool = True) -> None:
    """
    Configure loguru sinks.

    The file sink is always installed. The stderr sink is skipped while the
    grid owns the terminal, since log lines would land on top of the sixels.
    """
    level = "DEBUG" if debug or os.environ.get("SIXSHELF_DEBUG") == "1" else "INFO"

    logger.remove()
    log_dir = config_root()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(log_dir / "sixshelf.log", level=level, rotation="1 MB", retention=3)
    except OSError as e:
        print(f"Warning: could not open log file in {log_dir}: {e}", file=sys.stderr)

    if console:
        logger.add(sys.stderr, level=level, format="<level>{level: <8}</level> {message}")


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary with defaults
        override: Dictionary with overrides

    Returns:
        Merged dictionary (override takes precedence)
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
