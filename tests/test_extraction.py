"""
Tests for the icon extraction pipeline.

Archives are real zip files built by the make_apk fixture; the OS
collaborator is a MagicMock whose privileged queries fail by default.
"""

from pathlib import Path

import pytest

from sixshelf.errors import NotFound
from sixshelf.services.cache import IconCache, ResourcePathCache
from sixshelf.services.extraction import (
    MIPMAP_PATHS,
    IconExtractor,
    density_of,
    parse_badging_icon,
    parse_icon_from_dump,
)

PKG = "com.example.app"

# Central directory record field offsets
FLAG_BITS = 8
COMPRESS_TYPE = 10


def _set_member_field(apk, member, offset, value):
    """Overwrite a 2-byte field in a member's central directory record."""
    path = Path(apk)
    data = bytearray(path.read_bytes())
    name = member.encode()
    pos = data.find(b"PK\x01\x02")
    while pos != -1:
        name_len = int.from_bytes(data[pos + 28:pos + 30], "little")
        if data[pos + 46:pos + 46 + name_len] == name:
            data[pos + offset:pos + offset + 2] = value.to_bytes(2, "little")
        pos = data.find(b"PK\x01\x02", pos + 4)
    path.write_bytes(bytes(data))


@pytest.fixture
def caches(tmp_path):
    root = tmp_path / "cache"
    return IconCache(root), ResourcePathCache(root)


@pytest.fixture
def extractor(fake_system, caches):
    icon_cache, hint_cache = caches
    return IconExtractor(fake_system, icon_cache, hint_cache)


class TestParsers:
    """Test pm dump and aapt2 output parsing."""

    def test_dump_prefers_highest_density_png(self):
        output = (
            "  icon=res/mipmap-hdpi-v4/ic_launcher.png labelRes=0x7f\n"
            "  icon=res/mipmap-xxhdpi-v4/ic_launcher.png\n"
            "  icon=res/mipmap-mdpi-v4/ic_launcher.png\n"
        )
        assert parse_icon_from_dump(output) == "res/mipmap-xxhdpi-v4/ic_launcher.png"

    def test_dump_maps_adaptive_xml_to_png(self):
        output = "  icon=res/mipmap-anydpi-v26/ic_launcher.xml\n"
        assert parse_icon_from_dump(output) == "res/mipmap-anydpi-v26/ic_launcher.png"

    def test_dump_without_icon(self):
        assert parse_icon_from_dump("Packages:\n  versionName=1.0\n") is None

    def test_badging_application_line_wins(self):
        output = (
            "package: name='com.example.app' versionCode='1'\n"
            "application-icon-640:'res/mipmap-xxxhdpi-v4/ic_launcher.png'\n"
            "application: label='Example' icon='res/mipmap-anydpi-v26/ic_launcher.xml'\n"
        )
        assert parse_badging_icon(output) == "res/mipmap-anydpi-v26/ic_launcher.png"

    def test_badging_density_lines(self):
        output = (
            "application-icon-160:'res/mipmap-mdpi-v4/ic_launcher.png'\n"
            "application-icon-480:'res/mipmap-xxhdpi-v4/ic_launcher.png'\n"
            "application-icon-240:'res/mipmap-hdpi-v4/ic_launcher.png'\n"
        )
        assert parse_badging_icon(output) == "res/mipmap-xxhdpi-v4/ic_launcher.png"

    def test_badging_without_icon(self):
        assert parse_badging_icon("package: name='x'\n") is None

    def test_density_of(self):
        assert density_of("res/mipmap-xxxhdpi-v4/a.png") == 640
        assert density_of("res/mipmap-xxhdpi/a.png") == 480
        assert density_of("res/drawable/a.png") == 0


class TestConventionOrder:
    """Test candidate path ordering."""

    def test_mipmap_paths_start_with_highest_density_webp(self):
        assert MIPMAP_PATHS[0] == "res/mipmap-xxxhdpi-v4/ic_launcher.webp"

    def test_webp_precedes_png(self):
        webp = MIPMAP_PATHS.index("res/mipmap-mdpi/ic_launcher.webp")
        png = MIPMAP_PATHS.index("res/mipmap-xxxhdpi-v4/ic_launcher.png")
        assert webp < png


class TestIconExtractor:
    """Test the strategy chain across archives."""

    def test_mipmap_highest_density_wins(self, extractor, fake_system, make_apk, image_bytes):
        apk = make_apk("base.apk", {
            "res/mipmap-hdpi-v4/ic_launcher.png": image_bytes((72, 72)),
            "res/mipmap-xxxhdpi-v4/ic_launcher.png": image_bytes((192, 192)),
        })
        fake_system.package_paths.return_value = [apk]

        icon = extractor.extract_icon(PKG)

        assert icon.source_path == "res/mipmap-xxxhdpi-v4/ic_launcher.png"
        assert icon.image.size == (192, 192)

    def test_mipmap_webp_before_png(self, extractor, fake_system, make_apk, image_bytes):
        apk = make_apk("base.apk", {
            "res/mipmap-xxxhdpi-v4/ic_launcher.png": image_bytes((192, 192)),
            "res/mipmap-xxhdpi-v4/ic_launcher.webp": image_bytes((144, 144), fmt="WEBP"),
        })
        fake_system.package_paths.return_value = [apk]

        assert extractor.extract_icon(PKG).source_path == "res/mipmap-xxhdpi-v4/ic_launcher.webp"

    def test_drawable_only_archive_without_tools(self, extractor, fake_system, make_apk, image_bytes):
        apk = make_apk("base.apk", {
            "res/drawable-xhdpi/ic_launcher.png": image_bytes((96, 96)),
            # Would be picked by the largest-asset search if drawable were skipped
            "res/mipmap-xxxhdpi/splash_big.png": image_bytes((512, 512)),
        })
        fake_system.package_paths.return_value = [apk]

        icon = extractor.extract_icon(PKG)

        assert icon.source_path == "res/drawable-xhdpi/ic_launcher.png"
        fake_system.privileged_dump.assert_called_once_with(PKG)
        fake_system.dump_badging.assert_called_once_with(apk)

    def test_pm_dump_path_is_used_and_cached(self, fake_system, caches, make_apk, image_bytes):
        icon_cache, hint_cache = caches
        apk = make_apk("base.apk", {"res/mipmap-xxhdpi-v4/custom.png": image_bytes((144, 144))})
        fake_system.package_paths.return_value = [apk]
        fake_system.privileged_dump.side_effect = None
        fake_system.privileged_dump.return_value = "  icon=res/mipmap-xxhdpi-v4/custom.png\n"

        extractor = IconExtractor(fake_system, icon_cache, hint_cache)
        assert extractor.extract_icon(PKG).source_path == "res/mipmap-xxhdpi-v4/custom.png"
        assert hint_cache.get(PKG).path == "res/mipmap-xxhdpi-v4/custom.png"

        icon_cache.clear()
        extractor.extract_icon(PKG)
        assert fake_system.privileged_dump.call_count == 1

    def test_aapt2_maps_xml_to_png(self, extractor, fake_system, make_apk, image_bytes):
        apk = make_apk("base.apk", {"res/drawable/app.png": image_bytes((64, 64))})
        fake_system.package_paths.return_value = [apk]
        fake_system.dump_badging.side_effect = None
        fake_system.dump_badging.return_value = "application: label='App' icon='res/drawable/app.xml'\n"

        assert extractor.extract_icon(PKG).source_path == "res/drawable/app.png"

    def test_largest_mipmap_fallback(self, extractor, fake_system, make_apk, image_bytes):
        apk = make_apk("base.apk", {
            "res/mipmap-hdpi/round.png": image_bytes((32, 32)),
            "res/mipmap-xxhdpi/foreground.png": image_bytes((300, 300), color=(1, 2, 3, 255)),
        })
        fake_system.package_paths.return_value = [apk]

        icon = extractor.extract_icon(PKG)

        assert icon.source_path == "res/mipmap-xxhdpi/foreground.png"

    def test_largest_is_skipped_for_split_archives(self, extractor, fake_system, make_apk, image_bytes):
        base = make_apk("base.apk", {})
        split = make_apk("split_config.xxhdpi.apk", {"res/mipmap-xxhdpi/foreground.png": image_bytes()})
        fake_system.package_paths.return_value = [base, split]

        with pytest.raises(NotFound):
            extractor.extract_icon(PKG)

    def test_falls_through_to_next_archive(self, extractor, fake_system, make_apk, image_bytes, tmp_path):
        base = make_apk("base.apk", {})
        split = make_apk("split_config.xxhdpi.apk", {
            "res/mipmap-xxhdpi-v4/ic_launcher.png": image_bytes((144, 144)),
        })
        missing = str(tmp_path / "gone.apk")
        fake_system.package_paths.return_value = [missing, base, split]

        assert extractor.extract_icon(PKG).source_path == "res/mipmap-xxhdpi-v4/ic_launcher.png"

    def test_corrupt_member_falls_through(self, extractor, fake_system, make_apk, image_bytes):
        apk = make_apk("base.apk", {
            "res/mipmap-xxxhdpi-v4/ic_launcher.webp": b"not an image",
            "res/mipmap-xxhdpi-v4/ic_launcher.webp": image_bytes((144, 144), fmt="WEBP"),
        })
        fake_system.package_paths.return_value = [apk]

        assert extractor.extract_icon(PKG).source_path == "res/mipmap-xxhdpi-v4/ic_launcher.webp"

    @pytest.mark.parametrize("offset,value", [
        (COMPRESS_TYPE, 9),  # Deflate64, unsupported by zipfile
        (FLAG_BITS, 1),      # encrypted
    ])
    def test_unreadable_member_falls_through_to_drawable(
            self, extractor, fake_system, make_apk, image_bytes, offset, value):
        mipmap = "res/mipmap-xxxhdpi-v4/ic_launcher.webp"
        apk = make_apk("base.apk", {
            mipmap: image_bytes((192, 192), fmt="WEBP"),
            "res/drawable-xhdpi/ic_launcher.png": image_bytes((96, 96)),
        })
        _set_member_field(apk, mipmap, offset, value)
        fake_system.package_paths.return_value = [apk]

        icon = extractor.extract_icon(PKG)

        assert icon.source_path == "res/drawable-xhdpi/ic_launcher.png"
        assert icon.image.size == (96, 96)

    def test_all_strategies_fail(self, extractor, fake_system, make_apk):
        fake_system.package_paths.return_value = [make_apk("base.apk", {"classes.dex": b"dex"})]
        with pytest.raises(NotFound):
            extractor.extract_icon(PKG)

    def test_no_archives(self, extractor):
        with pytest.raises(NotFound):
            extractor.extract_icon(PKG)

    def test_success_is_cached_and_skips_os_queries(self, extractor, fake_system, caches, make_apk, image_bytes):
        icon_cache, _ = caches
        apk = make_apk("base.apk", {"res/mipmap-xxhdpi-v4/ic_launcher.png": image_bytes((144, 144))})
        fake_system.package_paths.return_value = [apk]

        extractor.extract_icon(PKG)
        assert icon_cache.path_for(PKG).exists()

        icon = extractor.extract_icon(PKG)
        assert fake_system.package_paths.call_count == 1
        assert icon.image.size == (144, 144)
