"""
Identity Resolver - map human app names to installed packages and entry points.

Package matching scores every installed package id against the
normalized app name (lower-cased, spaces and hyphens removed):

  exact match, dots stripped   -> 100, wins immediately
  id contains the name         -> +50
  name contains the id         -> +30
  each 3-char window of name
  found in the id              -> +5
  length penalty               -> -len(id) // 10

The highest score wins (first seen on ties); anything below 2 is no match.
Partial scores are capped below the exact-match score.

Entry points come from the package's pm dump: the first activity block
that declares both the MAIN action and the LAUNCHER category.

Results are cached for 24 hours in lock-guarded ExpiringCaches.
"""

import time
from typing import Callable, Optional

from loguru import logger
from rapidfuzz import fuzz, process

from sixshelf.errors import NotFound
from sixshelf.models import AppIdentity, ResolvedEntry
from sixshelf.services.cache import RESOLVER_TTL, ExpiringCache

EXACT_SCORE = 100
MIN_SCORE = 2

MAIN_ACTION = "android.intent.action.MAIN"
LAUNCHER_CATEGORY = "android.intent.category.LAUNCHER"
COMPONENT_HEADER = "Activity #"


def normalize_name(name: str) -> str:
    return name.lower().replace(" ", "").replace("-", "")


def score_candidate(package: str, search: str) -> int:
    """
    Score how well a package id matches a normalized search string.

    Args:
        package: Installed package id, e.g. "com.android.chrome"
        search: Output of normalize_name()

    Returns:
        EXACT_SCORE for a dot-stripped exact match, otherwise a partial
        score strictly below it (may be negative)
    """
    package = package.lower()
    stripped = package.replace(".", "")
    if stripped == search:
        return EXACT_SCORE

    score = 0
    if search in stripped:
        score += 50
    if stripped in search:
        score += 30
    for i in range(len(search) - 2):
        if search[i:i + 3] in stripped:
            score += 5

    score -= len(package) // 10
    return min(score, EXACT_SCORE - 1)


def best_match(candidates: list[str], search: str) -> tuple[Optional[str], int]:
    """Return (package, score) of the best candidate, or (None, 0)."""
    best, best_score = None, 0
    for package in candidates:
        score = score_candidate(package, search)
        if score == EXACT_SCORE:
            return package, score
        if score > best_score:
            best, best_score = package, score
    return best, best_score


def _component_name(line: str, package: str) -> Optional[str]:
    # "Activity #0: com.example.app/.MainActivity filter 1a2b"
    idx = line.find(package)
    if idx == -1:
        return None
    token = line[idx:].split(" ", 1)[0]
    parts = token.split("/")
    if len(parts) != 2:
        return None
    owner, name = parts
    if name.startswith("."):
        return owner + name
    return name


def parse_entry_point(dump: str, package: str) -> Optional[str]:
    """
    Find the launcher activity in pm dump output.

    A block starts at each "Activity #" header. The first block showing
    the MAIN action followed by the LAUNCHER category wins. If the input
    ends while the last block has shown MAIN, that block is returned.
    """
    in_main = False
    current = None

    for raw in dump.splitlines():
        line = raw.strip()

        if line.startswith(COMPONENT_HEADER):
            in_main = False
            current = _component_name(line, package)

        if MAIN_ACTION in line:
            in_main = True

        if LAUNCHER_CATEGORY in line and in_main and current:
            return current

    if in_main and current:
        return current
    return None


class IdentityResolver:
    """
    Resolve app names to packages and packages to entry points.

    Methods:
        resolve_package(name): best matching installed package
        resolve_entry_point(package): MAIN/LAUNCHER activity
        resolve(name): both, as a ResolvedEntry
        cached_info(name): cached results only, no OS queries
        clear_cache(): drop all cached results
    """

    def __init__(self, system, ttl: float = RESOLVER_TTL, clock: Callable[[], float] = time.time):
        self.system = system
        self._clock = clock
        self.package_cache: ExpiringCache[str, str] = ExpiringCache(ttl, clock)
        self.entry_cache: ExpiringCache[str, str] = ExpiringCache(ttl, clock)

    def resolve_package(self, app_name: str) -> str:
        """
        Raises:
            NotFound: No installed package scores at least MIN_SCORE
            ExternalToolFailure: The package listing failed
        """
        cached = self.package_cache.get(app_name)
        if cached:
            return cached

        search = normalize_name(app_name)
        if not search:
            raise NotFound(f"empty app name {app_name!r}")

        candidates = self.system.list_packages()
        package, score = best_match(candidates, search)

        if package is None or score < MIN_SCORE:
            raise NotFound(
                f"no matching package found for '{app_name}'{self._suggestions(search, candidates)}"
            )

        logger.debug(f"Resolved '{app_name}' -> {package} (score {score})")
        self.package_cache.put(app_name, package)
        return package

    def resolve_entry_point(self, package: str) -> str:
        """
        Raises:
            NotFound: No MAIN/LAUNCHER activity in the package dump
            ExternalToolFailure: pm dump failed
        """
        cached = self.entry_cache.get(package)
        if cached:
            return cached

        entry_point = parse_entry_point(self.system.dump_package(package), package)
        if not entry_point:
            raise NotFound(f"no main activity found for package {package}")

        logger.debug(f"Resolved entry point for {package}: {entry_point}")
        self.entry_cache.put(package, entry_point)
        return entry_point

    def resolve(self, app_name: str) -> ResolvedEntry:
        package = self.resolve_package(app_name)
        entry_point = self.resolve_entry_point(package)
        return ResolvedEntry(package=package, entry_point=entry_point, resolved_at=self._clock())

    def complete(self, app: AppIdentity) -> AppIdentity:
        """
        Fill in a missing package and/or entry point for a non-command app.

        Raises:
            NotFound, ExternalToolFailure: Resolution failed
        """
        if app.is_command or (app.package and app.entry_point):
            return app

        package = app.package or self.resolve_package(app.name)
        entry_point = app.entry_point or self.resolve_entry_point(package)
        return app.with_resolved(package, entry_point)

    def cached_info(self, app_name: str) -> tuple[str, str, bool]:
        package = self.package_cache.get(app_name)
        if not package:
            return "", "", False
        entry_point = self.entry_cache.get(package)
        if not entry_point:
            return package, "", False
        return package, entry_point, True

    def clear_cache(self) -> None:
        self.package_cache.clear()
        self.entry_cache.clear()

    def _suggestions(self, search: str, candidates: list[str]) -> str:
        if not candidates:
            return ""
        choices = {package: package.lower().replace(".", "") for package in candidates}
        matches = process.extract(search, choices, scorer=fuzz.partial_ratio, limit=3)
        if not matches:
            return ""
        return " (closest: " + ", ".join(key for _matched, _score, key in matches) + ")"


# Singleton accessor
_resolver_instance = None


def get_resolver() -> IdentityResolver:
    """
    Get the shared IdentityResolver instance.

    Returns:
        IdentityResolver: The global instance, backed by the Android system service
    """
    global _resolver_instance
    if _resolver_instance is None:
        from sixshelf.services.android import get_android_system
        _resolver_instance = IdentityResolver(get_android_system())
    return _resolver_instance
