"""
Shared test fixtures for the sixshelf test suite.

Provides temporary config roots, TOML config files, real PNG/WebP bytes
and real zip archives shaped like APKs (no mocking of the filesystem).
"""

import io
import zipfile
from unittest.mock import MagicMock

import pytest
import toml
from PIL import Image


def _image_bytes(size=(48, 48), color=(200, 30, 30, 255), fmt="PNG") -> bytes:
    """Encode a solid-color image."""
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    """Factory for encoded solid-color images."""
    return _image_bytes


@pytest.fixture
def config_root(tmp_path, monkeypatch):
    """Point SIXSHELF_HOME at a fresh directory."""
    root = tmp_path / "sixshelf"
    root.mkdir()
    monkeypatch.setenv("SIXSHELF_HOME", str(root))
    return root


@pytest.fixture
def make_apk(tmp_path):
    """Factory writing a zip archive with the given members."""
    def _make(name: str, members: dict[str, bytes]) -> str:
        path = tmp_path / "apks" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("AndroidManifest.xml", b"<manifest/>")
            for member, data in members.items():
                zf.writestr(member, data)
        return str(path)
    return _make


@pytest.fixture
def fake_system():
    """AndroidSystem stand-in; every OS query fails unless a test configures it."""
    from sixshelf.errors import ExternalToolFailure

    system = MagicMock()
    system.list_packages.return_value = []
    system.package_paths.return_value = []
    system.dump_package.return_value = ""
    system.privileged_dump.side_effect = ExternalToolFailure("rish not found")
    system.dump_badging.side_effect = ExternalToolFailure("aapt2 not found")
    return system


@pytest.fixture
def tmp_config(tmp_path):
    """Write a config.toml from a dict and return its path."""
    def _write(data: dict):
        path = tmp_path / "config.toml"
        path.write_text(toml.dumps(data))
        return path
    return _write
