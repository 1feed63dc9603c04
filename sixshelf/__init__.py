# sixshelf package
"""
Terminal app launcher that draws a grid of sixel app icons.

Subpackages:
  - services: package resolution, icon extraction, caches, OS collaborators
  - graphics: image normalization, sixel encoding, terminal geometry
  - panels: grid layout and icon positioning
"""

__version__ = "0.1.0-dev"
