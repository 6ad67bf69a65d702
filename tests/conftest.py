"""
Pytest configuration and fixtures for WinTidy tests.
"""

import sys
import tempfile
import threading
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from wintidy.platform.base import CommandResult  # noqa: E402

WINGET_NOT_FOUND = -1978335212


def winget_table(packages: dict[str, str]) -> str:
    """Render packages (id -> name) the way ``winget list`` prints them."""
    name_width = max([len("Name")] + [len(n) for n in packages.values()]) + 2
    id_width = max([len("Id")] + [len(i) for i in packages]) + 2
    lines = [
        f"{'Name'.ljust(name_width)}{'Id'.ljust(id_width)}Version",
        "-" * (name_width + id_width + 10),
    ]
    for package_id, name in packages.items():
        lines.append(f"{name.ljust(name_width)}{package_id.ljust(id_width)}1.0.0")
    return "\n".join(lines) + "\n"


class FakeWinget:
    """
    In-memory stand-in for winget.

    Answers ``winget list`` (full and ``--id``), ``uninstall`` and
    ``install`` against a mutable package set. Every other tool is
    reported as missing.
    """

    def __init__(
        self,
        packages: dict[str, str] | None = None,
        fail: set[str] | None = None,
        no_effect: set[str] | None = None,
        catalog: dict[str, str] | None = None,
    ) -> None:
        self.packages: dict[str, str] = dict(packages or {})
        self.fail = fail or set()
        self.no_effect = no_effect or set()
        self.catalog = catalog or {}
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()

    def commands(self, verb: str) -> list[list[str]]:
        return [c for c in self.calls if len(c) > 1 and c[0] == "winget" and c[1] == verb]

    def run_command(self, command: list[str], timeout: int = 300) -> CommandResult:
        with self._lock:
            self.calls.append(list(command))
            return self._handle(command)

    def _handle(self, command: list[str]) -> CommandResult:
        if not command or command[0] != "winget":
            return CommandResult(1, "", f"{command[0]} is not installed", command)

        verb = command[1]
        package_id = command[command.index("--id") + 1] if "--id" in command else None

        if verb == "list":
            if package_id is None:
                return CommandResult(0, winget_table(self.packages), "", command)
            found = {k: v for k, v in self.packages.items() if k.casefold() == package_id.casefold()}
            if found:
                return CommandResult(0, winget_table(found), "", command)
            return CommandResult(
                WINGET_NOT_FOUND,
                "No installed package found matching input criteria.",
                "",
                command,
            )

        if package_id in self.fail:
            return CommandResult(1, "", f"Failed to {verb} {package_id}", command)

        if verb == "uninstall":
            if package_id not in self.no_effect:
                self.packages.pop(package_id, None)
            return CommandResult(0, "Successfully uninstalled", "", command)

        if verb == "install":
            if package_id not in self.no_effect:
                self.packages[package_id] = self.catalog.get(package_id, package_id)
            return CommandResult(0, "Successfully installed", "", command)

        return CommandResult(1, "", f"Unknown winget command {verb}", command)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> "WinTidyConfig":
    """Create a sample configuration rooted in a temporary directory."""
    from wintidy.core.config import WinTidyConfig

    config = WinTidyConfig(
        snapshot_directory=temp_dir / "snapshots",
        report_directory=temp_dir / "reports",
    )
    config.logging.log_directory = temp_dir / "logs"
    config.logging.console_enabled = False
    config.logging.file_enabled = False
    config.ensure_directories()
    return config


@pytest.fixture
def fake_winget() -> FakeWinget:
    """A winget with a typical OEM image installed."""
    return FakeWinget(
        packages={
            "Microsoft.XboxApp": "Xbox",
            "Microsoft.BingWeather": "MSN Weather",
            "Google.Chrome": "Google Chrome",
            "Notepad++.Notepad++": "Notepad++",
        },
        catalog={"Mozilla.Firefox": "Mozilla Firefox", "7zip.7zip": "7-Zip"},
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
