"""
Android System Service - OS queries and launch primitives.

Wraps the Android package manager (pm), the archive inspector (aapt2),
the activity manager (am) and the rish privileged shell. Every query
returns raw text; parsing lives with the resolver and extractor so the
parsers can be tested without a device.
"""

import subprocess
from pathlib import Path

from loguru import logger

from sixshelf.errors import ExternalToolFailure, LaunchError
from sixshelf.utils.helpers import run_tool


class AndroidSystem:
    """
    OS collaborator used by the resolver, extractor and launcher shell.

    Methods:
        list_packages(): installed package ids
        dump_package(pkg): pm dump text
        package_paths(pkg): archive paths (base + split APKs)
        dump_badging(apk): aapt2 badging text
        privileged_dump(pkg): pm dump via rish, for icon resources
        start_app(pkg, entry_point): am start, synchronous
        run_command(cmd): sh -c, fire-and-forget
    """

    def __init__(self, rish_path: Path | None = None):
        self.rish_path = rish_path or Path.home() / ".rish" / "rish"

    def list_packages(self) -> list[str]:
        output = run_tool(["pm", "list", "packages"])
        return _strip_package_lines(output)

    def dump_package(self, package: str) -> str:
        return run_tool(["pm", "dump", package])

    def package_paths(self, package: str) -> list[str]:
        """
        Archive paths for a package. App bundles return the base APK
        followed by its split APKs.
        """
        output = run_tool(["pm", "path", package])
        return _strip_package_lines(output)

    def dump_badging(self, archive_path: str) -> str:
        return run_tool(["aapt2", "dump", "badging", archive_path])

    def privileged_dump(self, package: str) -> str:
        if not self.rish_path.exists():
            raise ExternalToolFailure(f"rish not found at {self.rish_path}")
        return run_tool([str(self.rish_path), "-c", f"pm dump {package}"])

    def start_app(self, package: str, entry_point: str | None = None) -> None:
        """
        Start an app and wait for am to return.

        Raises:
            LaunchError: am failed or reported an error on stderr
        """
        if entry_point:
            args = ["am", "start", "-n", f"{package}/{entry_point}"]
        else:
            args = ["am", "start", package]

        try:
            result = subprocess.run(args, capture_output=True, text=True, errors="replace")
        except FileNotFoundError as e:
            raise LaunchError("am not found") from e

        if result.returncode != 0 or "Error" in result.stderr:
            raise LaunchError(result.stderr.strip() or f"am exited with {result.returncode}")
        logger.debug(f"Started {package}/{entry_point or '<default>'}")

    def run_command(self, command: str) -> subprocess.Popen:
        """
        Start a shell command in the background and return immediately.

        Raises:
            LaunchError: The shell could not be spawned
        """
        try:
            proc = subprocess.Popen(
                ["sh", "-c", command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise LaunchError(str(e)) from e
        logger.debug(f"Spawned command (pid {proc.pid}): {command}")
        return proc


def _strip_package_lines(output: str) -> list[str]:
    lines = []
    for line in output.splitlines():
        line = line.strip().removeprefix("package:")
        if line:
            lines.append(line)
    return lines


# Singleton accessor
_system_instance = None


def get_android_system() -> AndroidSystem:
    """
    Get the shared AndroidSystem instance.

    Returns:
        AndroidSystem: The global instance
    """
    global _system_instance
    if _system_instance is None:
        _system_instance = AndroidSystem()
    return _system_instance
