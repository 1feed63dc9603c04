"""
Icon Loader - produce one image per configured app.

Sources, in priority order:
  1. Dashboard Icons catalog  (icon = "dashboard:<name>")
  2. Direct URL               (icon = "https://...")
  3. Local file path          (icon = "~/icons/app.png")
  4. Extraction from the installed package (decoded-icon cache first)
  5. Placeholder

Any failure is logged and falls through to the next source, so one broken
app never keeps the grid from drawing. All apps load in parallel, one
worker per app; load_all() returns once every worker has reported.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

import httpx
from loguru import logger
from PIL import Image

from sixshelf.errors import ExternalToolFailure, FetchTimeout, ShelfError
from sixshelf.graphics.images import create_placeholder, decode_image, load_image
from sixshelf.models import AppIdentity

DASHBOARD_PREFIX = "dashboard:"
DASHBOARD_URL = "https://cdn.jsdelivr.net/gh/homarr-labs/dashboard-icons/png/{name}.png"
FETCH_TIMEOUT = 10.0
PLACEHOLDER_SIZE = 64


def is_remote_source(source: str) -> bool:
    return source.startswith((DASHBOARD_PREFIX, "http://", "https://"))


def dashboard_url(icon_name: str) -> str:
    return DASHBOARD_URL.format(name=icon_name)


def fetch_icon(url: str) -> Image.Image:
    """
    Download and decode an icon.

    Raises:
        FetchTimeout: No complete response within FETCH_TIMEOUT seconds
        ExternalToolFailure: Connection or HTTP status error
        DecodeFailure: Response body is not an image
    """
    if not url:
        raise ExternalToolFailure("empty URL")
    try:
        response = httpx.get(url, timeout=FETCH_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
    except httpx.TimeoutException as e:
        raise FetchTimeout(f"timed out fetching {url}") from e
    except httpx.HTTPError as e:
        raise ExternalToolFailure(f"failed to fetch icon from {url}: {e}") from e
    return decode_image(response.content, url)


class IconLoader:
    """
    Load icons for apps, falling back through the source chain.

    Args:
        extractor: IconExtractor used for package icons
        fetch: Callable(url) -> Image for remote sources
    """

    def __init__(self, extractor, fetch: Callable[[str], Image.Image] = fetch_icon):
        self.extractor = extractor
        self.fetch = fetch

    def _load_source(self, source: str) -> Image.Image:
        if source.startswith(DASHBOARD_PREFIX):
            return self.fetch(dashboard_url(source.removeprefix(DASHBOARD_PREFIX)))
        if source.startswith(("http://", "https://")):
            return self.fetch(source)
        return load_image(source)

    def load_icon(self, app: AppIdentity) -> Image.Image:
        if app.icon_source:
            try:
                return self._load_source(app.icon_source)
            except ShelfError as e:
                logger.warning(f"Failed to load icon '{app.icon_source}' for {app.name}: {e}")

        if app.package:
            try:
                return self.extractor.extract_icon(app.package).image
            except ShelfError as e:
                logger.warning(f"Failed to extract icon for {app.name}: {e}")

        return create_placeholder(PLACEHOLDER_SIZE, PLACEHOLDER_SIZE)

    def load_all(self, apps: list[AppIdentity]) -> list[Image.Image]:
        """Load every app's icon concurrently, preserving app order."""
        icons: list[Image.Image | None] = [None] * len(apps)
        if not apps:
            return []

        with ThreadPoolExecutor(max_workers=len(apps), thread_name_prefix="icon") as pool:
            futures = {pool.submit(self.load_icon, app): i for i, app in enumerate(apps)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    icons[index] = future.result()
                except Exception:
                    logger.exception(f"Unexpected error loading icon for {apps[index].name}")
                    icons[index] = create_placeholder(PLACEHOLDER_SIZE, PLACEHOLDER_SIZE)

        return icons
