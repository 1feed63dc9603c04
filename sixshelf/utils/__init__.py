# sixshelf utilities package
"""
Shared utility functions and helpers for the sixshelf launcher.
"""

from .helpers import config_root, expand_path, run_tool, setup_logging

__all__ = ["config_root", "expand_path", "run_tool", "setup_logging"]
