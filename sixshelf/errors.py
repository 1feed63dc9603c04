"""
Error taxonomy shared by the resolver, extraction pipeline and icon loader.

Fallback stages catch ShelfError subclasses and move on to the next
strategy; only ConfigError is fatal at startup.
"""


class ShelfError(Exception):
    """Base class for all sixshelf errors."""


class NotFound(ShelfError):
    """No matching package, entry point, icon, or cache entry."""


class ExternalToolFailure(ShelfError):
    """An OS query or archive tool exited non-zero or produced unreadable output."""


class DecodeFailure(ShelfError):
    """Bytes were present but did not decode as an image."""


class FetchTimeout(ShelfError):
    """A remote icon fetch exceeded its time bound."""


class ConfigError(ShelfError):
    """Configuration is unreadable or fails validation."""


class LaunchError(ShelfError):
    """An app start or command execution failed."""
