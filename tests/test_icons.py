"""
Tests for icon source selection and parallel loading.
"""

import threading
from unittest.mock import MagicMock, patch

import httpx
import pytest
from PIL import Image

from sixshelf.config import ShelfConfig
from sixshelf.errors import ExternalToolFailure, FetchTimeout, NotFound
from sixshelf.graphics import sixel, terminal
from sixshelf.models import AppIdentity, ExtractedIcon, TerminalGeometry
from sixshelf.panels.grid import GridRenderer
from sixshelf.services import icons
from sixshelf.services.cache import IconCache, ResourcePathCache
from sixshelf.services.extraction import IconExtractor
from sixshelf.services.icons import IconLoader, dashboard_url, is_remote_source

WHITE = (255, 255, 255, 255)


def _solid(color, size=(32, 32)):
    return Image.new("RGBA", size, color)


@pytest.fixture
def extractor():
    mock = MagicMock()
    mock.extract_icon.side_effect = NotFound("no icon")
    return mock


class TestSources:
    """Test source classification and URL building."""

    def test_remote_sources(self):
        assert is_remote_source("dashboard:firefox")
        assert is_remote_source("https://example.com/a.png")
        assert not is_remote_source("/sdcard/icons/a.png")

    def test_dashboard_url(self):
        assert dashboard_url("home-assistant") == (
            "https://cdn.jsdelivr.net/gh/homarr-labs/dashboard-icons/png/home-assistant.png"
        )


class TestFetchIcon:
    """Test HTTP fetch error mapping."""

    def test_timeout_maps_to_fetch_timeout(self):
        with patch.object(httpx, "get", side_effect=httpx.ReadTimeout("slow")):
            with pytest.raises(FetchTimeout):
                icons.fetch_icon("https://example.com/a.png")

    def test_connection_error_maps_to_tool_failure(self):
        with patch.object(httpx, "get", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(ExternalToolFailure):
                icons.fetch_icon("https://example.com/a.png")

    def test_uses_ten_second_timeout(self, image_bytes):
        response = httpx.Response(200, content=image_bytes((8, 8)),
                                  request=httpx.Request("GET", "https://example.com/a.png"))
        with patch.object(httpx, "get", return_value=response) as get:
            img = icons.fetch_icon("https://example.com/a.png")
        assert img.size == (8, 8)
        assert get.call_args.kwargs["timeout"] == 10.0


class TestLoadIcon:
    """Test the per-app source precedence."""

    def test_dashboard_source_is_fetched(self, extractor):
        fetch = MagicMock(return_value=_solid((0, 0, 255, 255)))
        loader = IconLoader(extractor, fetch=fetch)

        img = loader.load_icon(AppIdentity(name="HA", package="io.ha", icon_source="dashboard:home-assistant"))

        fetch.assert_called_once_with(dashboard_url("home-assistant"))
        assert img.getpixel((0, 0)) == (0, 0, 255, 255)
        extractor.extract_icon.assert_not_called()

    def test_url_source_is_fetched_directly(self, extractor):
        fetch = MagicMock(return_value=_solid((0, 0, 255, 255)))
        IconLoader(extractor, fetch=fetch).load_icon(AppIdentity(name="x", icon_source="https://e.com/x.png"))
        fetch.assert_called_once_with("https://e.com/x.png")

    def test_failed_source_falls_back_to_extraction(self, extractor):
        extractor.extract_icon.side_effect = None
        extractor.extract_icon.return_value = ExtractedIcon(_solid((9, 9, 9, 255)), "res/a.png")
        fetch = MagicMock(side_effect=FetchTimeout("slow"))

        img = IconLoader(extractor, fetch=fetch).load_icon(
            AppIdentity(name="Chrome", package="com.android.chrome", icon_source="dashboard:chrome")
        )

        assert img.getpixel((0, 0)) == (9, 9, 9, 255)
        extractor.extract_icon.assert_called_once_with("com.android.chrome")

    def test_local_file_source(self, extractor, tmp_path):
        path = tmp_path / "icon.png"
        _solid((1, 2, 3, 255)).save(path)
        img = IconLoader(extractor).load_icon(AppIdentity(name="x", icon_source=str(path)))
        assert img.convert("RGBA").getpixel((0, 0)) == (1, 2, 3, 255)

    def test_placeholder_when_everything_fails(self, extractor, tmp_path):
        app = AppIdentity(name="x", package="com.x", icon_source=str(tmp_path / "missing.png"))
        img = IconLoader(extractor).load_icon(app)
        assert img.size == (64, 64)
        assert img.getpixel((0, 0)) == WHITE

    def test_command_without_icon_gets_placeholder(self, extractor):
        img = IconLoader(extractor).load_icon(AppIdentity(name="htop", command="htop"))
        assert img.getpixel((0, 0)) == WHITE
        extractor.extract_icon.assert_not_called()


class TestLoadAll:
    """Test parallel loading."""

    def test_preserves_app_order(self, extractor):
        colors = {"a": (255, 0, 0, 255), "b": (0, 255, 0, 255), "c": (0, 0, 255, 255)}
        fetch = MagicMock(side_effect=lambda url: _solid(colors[url.rsplit("/", 1)[1]]))
        apps = [AppIdentity(name=n, icon_source=f"https://e.com/{n}") for n in "cab"]

        result = IconLoader(extractor, fetch=fetch).load_all(apps)

        assert [img.getpixel((0, 0)) for img in result] == [colors["c"], colors["a"], colors["b"]]

    def test_runs_in_parallel(self, extractor):
        barrier = threading.Barrier(3, timeout=5)

        def fetch(url):
            barrier.wait()
            return _solid(WHITE)

        apps = [AppIdentity(name=str(i), icon_source=f"https://e.com/{i}") for i in range(3)]
        assert len(IconLoader(extractor, fetch=fetch).load_all(apps)) == 3

    def test_unexpected_error_yields_placeholder(self, extractor):
        fetch = MagicMock(side_effect=RuntimeError("bug"))
        result = IconLoader(extractor, fetch=fetch).load_all([AppIdentity(name="x", icon_source="https://e.com/x")])
        assert result[0].getpixel((0, 0)) == WHITE

    def test_no_apps(self, extractor):
        assert IconLoader(extractor).load_all([]) == []


class TestEndToEnd:
    """A local-icon app plus a package app, loaded twice."""

    def test_second_run_uses_decoded_icon_cache(self, tmp_path, fake_system, make_apk, image_bytes):
        local = tmp_path / "terminal.png"
        _solid((10, 20, 30, 255), (48, 48)).save(local)
        apk = make_apk("base.apk", {
            "res/mipmap-xxhdpi-v4/ic_launcher.png": image_bytes((144, 144), color=(200, 0, 0, 255)),
        })
        fake_system.package_paths.return_value = [apk]

        apps = [
            AppIdentity(name="Terminal", command="htop", icon_source=str(local)),
            AppIdentity(name="Example", package="com.example.app", entry_point="com.example.app.Main"),
        ]
        root = tmp_path / "cache"

        def loader():
            extractor = IconExtractor(fake_system, IconCache(root), ResourcePathCache(root))
            return IconLoader(extractor, fetch=MagicMock(side_effect=AssertionError("no network")))

        first = loader().load_all(apps)
        assert first[0].convert("RGBA").getpixel((0, 0)) == (10, 20, 30, 255)
        assert first[1].size == (144, 144)
        assert (root / "icons" / "com.example.app.png").exists()

        second = loader().load_all(apps)
        assert second[1].convert("RGBA").getpixel((0, 0)) == (200, 0, 0, 255)
        assert fake_system.package_paths.call_count == 1

        renderer = GridRenderer(ShelfConfig(rows=1, columns=2), apps)
        renderer.accept_geometry(TerminalGeometry(columns=40, rows=11, cell_pixel_width=10, cell_pixel_height=20))
        renderer.set_icons(second)
        out = renderer.draw_icons()

        # 16x6 icon cells -> 160x120 px target, fit to 120x120 (12x6 cells), centered 2 cells in
        assert out.startswith(terminal.cursor_to(3, 5) + sixel.DCS + '"1;1;120;120')
        assert terminal.cursor_to(3, 25) + sixel.DCS + '"1;1;120;120' in out
        assert out.count(sixel.ST) == 2
