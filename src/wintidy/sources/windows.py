"""
Windows inventory sources.

One source per origin. Package managers are parsed from their text output,
everything else from PowerShell JSON, services through psutil and Start Menu
shortcuts from the filesystem.
"""

from __future__ import annotations

import os
from abc import abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psutil

from wintidy.core.errors import SourceUnavailableError
from wintidy.core.models import Origin
from wintidy.platform.windows import commands
from wintidy.platform.windows.parsers import (
    parse_choco_limit_output,
    parse_powershell_json,
    parse_winget_table,
)
from wintidy.sources.base import InventorySource

if TYPE_CHECKING:
    from wintidy.platform.base import CommandRunner


class WingetSource(InventorySource):
    origin = Origin.WINGET
    name = "winget"

    def query(self) -> Iterable[dict[str, Any]]:
        result = self.run(commands.winget_list())
        return parse_winget_table(result.stdout)


class ChocolateySource(InventorySource):
    origin = Origin.CHOCOLATEY
    name = "chocolatey"

    def query(self) -> Iterable[dict[str, Any]]:
        result = self.run(commands.choco_list())
        return parse_choco_limit_output(result.stdout)


class _PowerShellJsonSource(InventorySource):
    """Sources whose query command prints ``ConvertTo-Json`` output."""

    @abstractmethod
    def command(self) -> list[str]:
        """Return the PowerShell invocation that lists this origin."""

    def query(self) -> Iterable[dict[str, Any]]:
        result = self.run(self.command())
        return parse_powershell_json(result.stdout)


class AppxPackageSource(_PowerShellJsonSource):
    origin = Origin.APPX_PACKAGE
    name = "appx"

    def command(self) -> list[str]:
        return commands.appx_list()


class ProvisionedPackageSource(_PowerShellJsonSource):
    origin = Origin.PROVISIONED_PACKAGE
    name = "provisioned"

    def command(self) -> list[str]:
        return commands.provisioned_list()


class RegistryUninstallSource(_PowerShellJsonSource):
    origin = Origin.REGISTRY_UNINSTALL
    name = "registry-uninstall"

    def command(self) -> list[str]:
        return commands.registry_uninstall_list()


class WindowsFeatureSource(_PowerShellJsonSource):
    origin = Origin.WINDOWS_FEATURE
    name = "optional-features"

    def command(self) -> list[str]:
        return commands.windows_feature_list()


class ScheduledTaskSource(_PowerShellJsonSource):
    origin = Origin.SCHEDULED_TASK
    name = "scheduled-tasks"

    def command(self) -> list[str]:
        return commands.scheduled_task_list()


class StartupEntrySource(_PowerShellJsonSource):
    origin = Origin.STARTUP_ENTRY
    name = "startup-entries"

    def command(self) -> list[str]:
        return commands.startup_entry_list()


class ServiceSource(InventorySource):
    """Services that are not disabled, read through psutil."""

    origin = Origin.SERVICE
    name = "services"

    def query(self) -> Iterable[dict[str, Any]]:
        iter_services = getattr(psutil, "win_service_iter", None)
        if iter_services is None:
            raise SourceUnavailableError("Service enumeration requires Windows")

        rows = []
        for service in iter_services():
            try:
                info = service.as_dict()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
            if info.get("start_type") == "disabled":
                continue
            rows.append(
                {
                    "Name": info.get("name"),
                    "DisplayName": info.get("display_name"),
                    "StartType": info.get("start_type"),
                    "Status": info.get("status"),
                    "BinaryPath": info.get("binpath"),
                }
            )
        return rows


class StartMenuShortcutSource(InventorySource):
    """``.lnk`` files under the machine and user Start Menu roots."""

    origin = Origin.START_MENU_SHORTCUT
    name = "start-menu"

    def __init__(
        self,
        runner: CommandRunner | None = None,
        timeout: int = 120,
        roots: list[Path] | None = None,
    ) -> None:
        super().__init__(runner, timeout)
        self.roots = roots if roots is not None else self.default_roots()

    @staticmethod
    def default_roots() -> list[Path]:
        roots = []
        for env_var in ("ProgramData", "APPDATA"):
            base = os.environ.get(env_var)
            if base:
                roots.append(Path(base) / "Microsoft" / "Windows" / "Start Menu" / "Programs")
        return roots

    def query(self) -> Iterable[dict[str, Any]]:
        existing = [root for root in self.roots if root.is_dir()]
        if not existing:
            raise SourceUnavailableError("No Start Menu directory found")

        rows = []
        for root in existing:
            for shortcut in sorted(root.rglob("*.lnk")):
                rows.append(
                    {
                        "Name": shortcut.stem,
                        "FullName": str(shortcut),
                        "Folder": str(shortcut.parent.relative_to(root)),
                    }
                )
        return rows


SOURCE_CLASSES: dict[Origin, type[InventorySource]] = {
    Origin.WINGET: WingetSource,
    Origin.CHOCOLATEY: ChocolateySource,
    Origin.APPX_PACKAGE: AppxPackageSource,
    Origin.PROVISIONED_PACKAGE: ProvisionedPackageSource,
    Origin.REGISTRY_UNINSTALL: RegistryUninstallSource,
    Origin.WINDOWS_FEATURE: WindowsFeatureSource,
    Origin.SERVICE: ServiceSource,
    Origin.SCHEDULED_TASK: ScheduledTaskSource,
    Origin.START_MENU_SHORTCUT: StartMenuShortcutSource,
    Origin.STARTUP_ENTRY: StartupEntrySource,
}


def build_sources(
    runner: CommandRunner,
    origins: Iterable[Origin],
    timeout: int = 120,
) -> list[InventorySource]:
    """Instantiate the sources for the enabled origins, in enum order."""
    enabled = set(origins)
    return [cls(runner, timeout) for origin, cls in SOURCE_CLASSES.items() if origin in enabled]
