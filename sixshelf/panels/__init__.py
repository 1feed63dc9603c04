# sixshelf panels package
"""
Terminal panels for the sixshelf launcher.

Panels:
  - Grid: app cells with sixel icons and rounded frames
"""

from .grid import GeometryGate, GridLayout, GridRenderer

__all__ = ["GeometryGate", "GridLayout", "GridRenderer"]
