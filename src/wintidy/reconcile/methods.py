"""
Removal and installation method tables.

Each origin maps to an ordered list of methods that are tried one after
another, plus the presence probes used to verify the effect of each. A
command builder returns None when the item lacks the metadata the method
needs; the executor records that as a failed, not-applicable attempt.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from wintidy.core.models import ActionMode, InventoryItem, Origin
from wintidy.platform.base import CommandResult
from wintidy.platform.windows import commands
from wintidy.platform.windows.parsers import (
    choco_output_lists,
    parse_bool_output,
    parse_powershell_json,
    parse_state_output,
    winget_output_lists,
)

CommandBuilder = Callable[[InventoryItem], list[str] | None]

TOOL_WINGET = "winget"
TOOL_CHOCOLATEY = "chocolatey"
TOOL_SERVICING = "dism"
TOOL_MSIEXEC = "msiexec"


@dataclass(frozen=True)
class ActionMethod:
    """One way of removing or installing an item."""

    name: str
    build: CommandBuilder
    tool: str | None = None
    long_running: bool = False


@dataclass(frozen=True)
class PresenceProbe:
    """Re-query one source of truth for whether an item is still present."""

    name: str
    build: CommandBuilder
    check: Callable[[CommandResult, InventoryItem], bool]
    tool: str | None = None
    trust_exit_code: bool = True

    def evaluate(self, result: CommandResult, item: InventoryItem) -> bool | None:
        """True/False for present/absent, None when the query itself failed."""
        if result.returncode == -1:
            return None
        if self.trust_exit_code and not result.success:
            return None
        return self.check(result, item)


def requirement_item(package_id: str, chocolatey_id: str | None = None) -> InventoryItem:
    """Synthesize the item to install for a missing essential-app pattern."""
    metadata = {"package_id": package_id}
    if chocolatey_id:
        metadata["chocolatey_id"] = chocolatey_id
    return InventoryItem(primary_name=package_id, origin=Origin.WINGET, metadata=metadata)


# ==================== Metadata accessors ====================

def _meta(item: InventoryItem, key: str, fallback: bool = False) -> str | None:
    value = item.metadata.get(key)
    if value:
        return value
    if fallback and item.primary_name:
        return item.primary_name
    return None


def _package_id(item: InventoryItem) -> str | None:
    return _meta(item, "package_id", fallback=True)


def _with(value: str | None, build: Callable[[str], list[str]]) -> list[str] | None:
    return build(value) if value else None


def _quiet_uninstall(item: InventoryItem) -> list[str] | None:
    return _with(item.metadata.get("quiet_uninstall_string"), commands.run_uninstall_string)


def _msiexec_uninstall(item: InventoryItem) -> list[str] | None:
    for key in ("uninstall_string", "key_name"):
        code = commands.extract_product_code(item.metadata.get(key, ""))
        if code:
            return commands.msiexec_uninstall(code)
    return None


def _registry_fallback(item: InventoryItem) -> list[str] | None:
    """Uninstall string recorded for a package-manager item, if known."""
    return _quiet_uninstall(item) or _msiexec_uninstall(item)


def _provisioned_name(item: InventoryItem) -> str | None:
    return _meta(item, "package_name")


def _remove_provisioned(item: InventoryItem) -> list[str] | None:
    package_name = _provisioned_name(item)
    if package_name:
        return commands.remove_provisioned_package(package_name)
    return _with(item.primary_name, commands.remove_provisioned_by_display_name)


def _deprovision(item: InventoryItem) -> list[str] | None:
    family = _meta(item, "package_family_name")
    if not family and item.origin is Origin.PROVISIONED_PACKAGE:
        # PackageName is <Name>_<Version>_<Arch>_<ResourceId>_<PublisherId>
        parts = (_provisioned_name(item) or "").split("_")
        if len(parts) >= 5:
            family = f"{parts[0]}_{parts[-1]}"
    return _with(family, commands.add_deprovisioned_key)


def _task(item: InventoryItem, build: Callable[[str, str], list[str]]) -> list[str] | None:
    path = item.metadata.get("task_path")
    name = item.metadata.get("task_name") or item.primary_name
    return build(path, name) if path and name else None


def _startup(item: InventoryItem, build: Callable[[str, str], list[str]]) -> list[str] | None:
    location = item.metadata.get("location")
    name = item.metadata.get("value_name") or item.primary_name
    return build(location, name) if location and name else None


# ==================== Removal methods ====================

_WINGET_UNINSTALL = ActionMethod(
    "winget-uninstall",
    lambda item: _with(_package_id(item), commands.winget_uninstall),
    tool=TOOL_WINGET,
)

_REGISTRY_UNINSTALL_STRING = ActionMethod(
    "registry-uninstall-string",
    _registry_fallback,
    tool=TOOL_MSIEXEC,
)

_REMOVE_PROVISIONED = ActionMethod(
    "remove-provisioned-package",
    _remove_provisioned,
    tool=TOOL_SERVICING,
)

_DEPROVISION_KEY = ActionMethod("deprovision-registry-key", _deprovision)

REMOVAL_METHODS: dict[Origin, tuple[ActionMethod, ...]] = {
    Origin.WINGET: (_WINGET_UNINSTALL, _REGISTRY_UNINSTALL_STRING),
    Origin.CHOCOLATEY: (
        ActionMethod(
            "choco-uninstall",
            lambda item: _with(_package_id(item), commands.choco_uninstall),
            tool=TOOL_CHOCOLATEY,
        ),
        _REGISTRY_UNINSTALL_STRING,
    ),
    Origin.APPX_PACKAGE: (
        ActionMethod(
            "remove-appx-package",
            lambda item: _with(_meta(item, "package_full_name"), commands.remove_appx_package),
        ),
        _REMOVE_PROVISIONED,
        _DEPROVISION_KEY,
    ),
    Origin.PROVISIONED_PACKAGE: (
        _REMOVE_PROVISIONED,
        ActionMethod(
            "dism-remove-provisioned",
            lambda item: _with(_provisioned_name(item), commands.dism_remove_provisioned),
            tool=TOOL_SERVICING,
            long_running=True,
        ),
        _DEPROVISION_KEY,
    ),
    Origin.REGISTRY_UNINSTALL: (
        ActionMethod("quiet-uninstall-string", _quiet_uninstall, tool=TOOL_MSIEXEC),
        ActionMethod("msiexec-uninstall", _msiexec_uninstall, tool=TOOL_MSIEXEC),
        ActionMethod(
            "winget-uninstall-by-name",
            lambda item: _with(item.primary_name, commands.winget_uninstall_by_name),
            tool=TOOL_WINGET,
        ),
    ),
    Origin.WINDOWS_FEATURE: (
        ActionMethod(
            "disable-optional-feature",
            lambda item: _with(_meta(item, "feature_name", True), commands.disable_optional_feature),
            tool=TOOL_SERVICING,
            long_running=True,
        ),
        ActionMethod(
            "dism-disable-feature",
            lambda item: _with(_meta(item, "feature_name", True), commands.dism_disable_feature),
            tool=TOOL_SERVICING,
            long_running=True,
        ),
    ),
    Origin.SERVICE: (
        ActionMethod(
            "disable-service",
            lambda item: _with(_meta(item, "service_name"), commands.disable_service),
        ),
        ActionMethod(
            "sc-config-disabled",
            lambda item: _with(_meta(item, "service_name"), commands.sc_disable),
        ),
    ),
    Origin.SCHEDULED_TASK: (
        ActionMethod(
            "disable-scheduled-task",
            lambda item: _task(item, commands.disable_scheduled_task),
        ),
        ActionMethod("schtasks-disable", lambda item: _task(item, commands.schtasks_disable)),
    ),
    Origin.START_MENU_SHORTCUT: (
        ActionMethod(
            "remove-shortcut",
            lambda item: _with(_meta(item, "path"), commands.remove_path),
        ),
    ),
    Origin.STARTUP_ENTRY: (
        ActionMethod(
            "remove-startup-value",
            lambda item: _startup(item, commands.remove_registry_value),
        ),
    ),
}


# ==================== Install methods ====================

INSTALL_METHODS: dict[Origin, tuple[ActionMethod, ...]] = {
    Origin.WINGET: (
        ActionMethod(
            "winget-install",
            lambda item: _with(_package_id(item), commands.winget_install),
            tool=TOOL_WINGET,
        ),
        ActionMethod(
            "choco-install",
            lambda item: _with(_meta(item, "chocolatey_id"), commands.choco_install),
            tool=TOOL_CHOCOLATEY,
        ),
    ),
    Origin.CHOCOLATEY: (
        ActionMethod(
            "choco-install",
            lambda item: _with(_package_id(item), commands.choco_install),
            tool=TOOL_CHOCOLATEY,
        ),
    ),
}


# ==================== Presence probes ====================

def _lists_json(result: CommandResult, item: InventoryItem) -> bool:
    return bool(parse_powershell_json(result.stdout))


def _lists_package(result: CommandResult, item: InventoryItem) -> bool:
    """Present if the query lists this exact package, or any package when its full name is unknown."""
    rows = parse_powershell_json(result.stdout)
    full_name = item.metadata.get("package_full_name")
    if not full_name:
        return bool(rows)
    return any(str(row.get("PackageFullName", "")).casefold() == full_name.casefold() for row in rows)


def _prints_true(result: CommandResult, item: InventoryItem) -> bool:
    return parse_bool_output(result.stdout)


def _state_active(result: CommandResult, item: InventoryItem) -> bool:
    return parse_state_output(result.stdout, inactive=("disabled", "disabledwithpayloadremoved"))


_WINGET_PROBE = PresenceProbe(
    "winget-list",
    lambda item: _with(_package_id(item), commands.winget_query),
    lambda result, item: winget_output_lists(result.stdout, _package_id(item) or ""),
    tool=TOOL_WINGET,
    trust_exit_code=False,
)

_CHOCO_ALIAS_PROBE = PresenceProbe(
    "choco-list",
    lambda item: _with(_meta(item, "chocolatey_id"), commands.choco_query),
    lambda result, item: choco_output_lists(result.stdout, item.metadata["chocolatey_id"]),
    tool=TOOL_CHOCOLATEY,
)

PRESENCE_PROBES: dict[Origin, tuple[PresenceProbe, ...]] = {
    Origin.WINGET: (_WINGET_PROBE, _CHOCO_ALIAS_PROBE),
    Origin.CHOCOLATEY: (
        PresenceProbe(
            "choco-list",
            lambda item: _with(_package_id(item), commands.choco_query),
            lambda result, item: choco_output_lists(result.stdout, _package_id(item) or ""),
            tool=TOOL_CHOCOLATEY,
        ),
    ),
    Origin.APPX_PACKAGE: (
        PresenceProbe(
            "appx-query",
            lambda item: _with(item.primary_name, commands.appx_query),
            _lists_package,
        ),
    ),
    Origin.PROVISIONED_PACKAGE: (
        PresenceProbe(
            "provisioned-query",
            lambda item: _with(_meta(item, "package_name", True), commands.provisioned_query),
            _lists_json,
            tool=TOOL_SERVICING,
        ),
    ),
    Origin.REGISTRY_UNINSTALL: (
        PresenceProbe(
            "uninstall-key-query",
            lambda item: _with(_meta(item, "key_path"), commands.registry_key_query),
            _prints_true,
        ),
    ),
    Origin.WINDOWS_FEATURE: (
        PresenceProbe(
            "feature-query",
            lambda item: _with(_meta(item, "feature_name", True), commands.feature_query),
            _state_active,
            tool=TOOL_SERVICING,
        ),
    ),
    Origin.SERVICE: (
        PresenceProbe(
            "service-query",
            lambda item: _with(_meta(item, "service_name"), commands.service_query),
            _state_active,
        ),
    ),
    Origin.SCHEDULED_TASK: (
        PresenceProbe(
            "task-query",
            lambda item: _task(item, commands.scheduled_task_query),
            _state_active,
        ),
    ),
    Origin.START_MENU_SHORTCUT: (
        PresenceProbe(
            "path-query",
            lambda item: _with(_meta(item, "path"), commands.path_query),
            _prints_true,
        ),
    ),
    Origin.STARTUP_ENTRY: (
        PresenceProbe(
            "startup-value-query",
            lambda item: _startup(item, commands.registry_value_query),
            _prints_true,
        ),
    ),
}


METHOD_TABLE: dict[ActionMode, dict[Origin, tuple[ActionMethod, ...]]] = {
    ActionMode.REMOVE: REMOVAL_METHODS,
    ActionMode.INSTALL: INSTALL_METHODS,
}
