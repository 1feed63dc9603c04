# sixshelf services package
"""
Backend services for the sixshelf launcher.

Services handle OS integration, name resolution, icon extraction and caching.
"""

from .android import AndroidSystem, get_android_system
from .cache import ExpiringCache, IconCache, RenderCache, ResourcePathCache
from .extraction import IconExtractor
from .icons import IconLoader
from .resolver import IdentityResolver, get_resolver

__all__ = [
    "AndroidSystem",
    "get_android_system",
    "ExpiringCache",
    "IconCache",
    "RenderCache",
    "ResourcePathCache",
    "IconExtractor",
    "IconLoader",
    "IdentityResolver",
    "get_resolver",
]
