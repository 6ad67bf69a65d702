"""
Windows command builders.

Pure functions returning argument lists; nothing here runs a process.
PowerShell arguments are always passed through ``ps_quote``.
"""

from __future__ import annotations

import re

POWERSHELL = "powershell.exe"
WINGET = "winget"
CHOCO = "choco"
DISM = "dism.exe"
SC = "sc.exe"
SCHTASKS = "schtasks.exe"
MSIEXEC = "msiexec.exe"
CMD = "cmd.exe"

WINGET_AGREEMENTS = ["--accept-source-agreements", "--disable-interactivity"]

UNINSTALL_KEYS = (
    r"HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall\*",
    r"HKLM:\SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall\*",
    r"HKCU:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall\*",
)

STARTUP_RUN_KEYS = (
    r"HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Run",
    r"HKLM:\SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Run",
    r"HKCU:\SOFTWARE\Microsoft\Windows\CurrentVersion\Run",
)

DEPROVISIONED_KEY = (
    r"HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Appx\AppxAllUserStore\Deprovisioned"
)

_PRODUCT_CODE = re.compile(r"\{[0-9A-Fa-f]{8}(?:-[0-9A-Fa-f]{4}){3}-[0-9A-Fa-f]{12}\}")


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string literal."""
    return "'" + value.replace("'", "''") + "'"


def ps_list(values: tuple[str, ...] | list[str]) -> str:
    return ",".join(ps_quote(v) for v in values)


def powershell(script: str) -> list[str]:
    return [
        POWERSHELL,
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy", "Bypass",
        "-Command", script,
    ]


# ==================== Inventory queries ====================

def winget_list() -> list[str]:
    return [WINGET, "list", *WINGET_AGREEMENTS]


def choco_list() -> list[str]:
    return [CHOCO, "list", "--limit-output"]


def appx_list() -> list[str]:
    return powershell(
        "Get-AppxPackage -AllUsers | "
        "Select-Object Name, PackageFullName, PackageFamilyName, Publisher, Version | "
        "ConvertTo-Json -Compress"
    )


def provisioned_list() -> list[str]:
    return powershell(
        "Get-AppxProvisionedPackage -Online | "
        "Select-Object DisplayName, PackageName, Version | "
        "ConvertTo-Json -Compress"
    )


def registry_uninstall_list() -> list[str]:
    return powershell(
        f"Get-ItemProperty -Path {ps_list(UNINSTALL_KEYS)} -ErrorAction SilentlyContinue | "
        "Where-Object { $_.DisplayName } | "
        "Select-Object DisplayName, PSChildName, PSPath, Publisher, DisplayVersion, "
        "UninstallString, QuietUninstallString | "
        "ConvertTo-Json -Compress"
    )


def windows_feature_list() -> list[str]:
    return powershell(
        "Get-WindowsOptionalFeature -Online | "
        "Where-Object { $_.State -eq 'Enabled' } | "
        "Select-Object FeatureName, @{n='State';e={[string]$_.State}} | "
        "ConvertTo-Json -Compress"
    )


def scheduled_task_list() -> list[str]:
    return powershell(
        "Get-ScheduledTask | "
        "Where-Object { $_.State -ne 'Disabled' } | "
        "Select-Object TaskName, TaskPath, @{n='State';e={[string]$_.State}} | "
        "ConvertTo-Json -Compress"
    )


def startup_entry_list() -> list[str]:
    return powershell(
        f"foreach ($key in @({ps_list(STARTUP_RUN_KEYS)})) {{ "
        "$props = Get-ItemProperty -Path $key -ErrorAction SilentlyContinue; "
        "if ($props) { $props.PSObject.Properties | "
        "Where-Object { $_.Name -notlike 'PS*' } | "
        "ForEach-Object { [pscustomobject]@{ Location = $key; Name = $_.Name; "
        "Command = [string]$_.Value } } } } "
        "| ConvertTo-Json -Compress"
    )


# ==================== Package managers ====================

def winget_uninstall(package_id: str) -> list[str]:
    return [WINGET, "uninstall", "--id", package_id, "--exact", "--silent", *WINGET_AGREEMENTS]


def winget_uninstall_by_name(name: str) -> list[str]:
    return [WINGET, "uninstall", "--name", name, "--exact", "--silent", *WINGET_AGREEMENTS]


def winget_install(package_id: str) -> list[str]:
    return [
        WINGET, "install", "--id", package_id, "--exact", "--silent",
        "--accept-package-agreements", *WINGET_AGREEMENTS,
    ]


def winget_query(package_id: str) -> list[str]:
    return [WINGET, "list", "--id", package_id, "--exact", *WINGET_AGREEMENTS]


def choco_uninstall(package_id: str) -> list[str]:
    return [CHOCO, "uninstall", package_id, "-y", "--no-progress"]


def choco_install(package_id: str) -> list[str]:
    return [CHOCO, "install", package_id, "-y", "--no-progress"]


def choco_query(package_id: str) -> list[str]:
    return [CHOCO, "list", "--exact", package_id, "--limit-output"]


# ==================== Registry uninstall strings ====================

def extract_product_code(uninstall_string: str) -> str | None:
    """Return the MSI product code embedded in an uninstall string, if any."""
    match = _PRODUCT_CODE.search(uninstall_string)
    return match.group(0) if match else None


def run_uninstall_string(uninstall_string: str) -> list[str]:
    return [CMD, "/c", uninstall_string]


def msiexec_uninstall(product_code: str) -> list[str]:
    return [MSIEXEC, "/x", product_code, "/qn", "/norestart"]


def registry_key_query(key_path: str) -> list[str]:
    return powershell(f"Test-Path -LiteralPath {ps_quote(key_path)}")


# ==================== Appx and provisioned packages ====================

def remove_appx_package(package_full_name: str) -> list[str]:
    return powershell(
        f"Remove-AppxPackage -Package {ps_quote(package_full_name)} -AllUsers -ErrorAction Stop"
    )


def remove_provisioned_package(package_name: str) -> list[str]:
    return powershell(
        f"Remove-AppxProvisionedPackage -Online -PackageName {ps_quote(package_name)} "
        "-ErrorAction Stop | Out-Null"
    )


def remove_provisioned_by_display_name(display_name: str) -> list[str]:
    return powershell(
        "Get-AppxProvisionedPackage -Online | "
        f"Where-Object {{ $_.DisplayName -eq {ps_quote(display_name)} }} | "
        "Remove-AppxProvisionedPackage -Online -ErrorAction Stop | Out-Null"
    )


def dism_remove_provisioned(package_name: str) -> list[str]:
    return [DISM, "/Online", "/Remove-ProvisionedAppxPackage", f"/PackageName:{package_name}", "/Quiet"]


def add_deprovisioned_key(package_family_name: str) -> list[str]:
    key = f"{DEPROVISIONED_KEY}\\{package_family_name}"
    return powershell(f"New-Item -Path {ps_quote(key)} -Force -ErrorAction Stop | Out-Null")


def appx_query(name: str) -> list[str]:
    return powershell(
        f"Get-AppxPackage -AllUsers -Name {ps_quote(name)} | "
        "Select-Object PackageFullName | ConvertTo-Json -Compress"
    )


def provisioned_query(name: str) -> list[str]:
    quoted = ps_quote(name)
    return powershell(
        "Get-AppxProvisionedPackage -Online | "
        f"Where-Object {{ $_.PackageName -eq {quoted} -or $_.DisplayName -eq {quoted} }} | "
        "Select-Object PackageName | ConvertTo-Json -Compress"
    )


# ==================== Features, services, tasks ====================

def disable_optional_feature(feature_name: str) -> list[str]:
    return powershell(
        f"Disable-WindowsOptionalFeature -Online -FeatureName {ps_quote(feature_name)} "
        "-NoRestart -ErrorAction Stop | Out-Null"
    )


def dism_disable_feature(feature_name: str) -> list[str]:
    return [DISM, "/Online", "/Disable-Feature", f"/FeatureName:{feature_name}", "/NoRestart", "/Quiet"]


def feature_query(feature_name: str) -> list[str]:
    return powershell(
        f"(Get-WindowsOptionalFeature -Online -FeatureName {ps_quote(feature_name)} "
        "-ErrorAction SilentlyContinue).State"
    )


def disable_service(service_name: str) -> list[str]:
    quoted = ps_quote(service_name)
    return powershell(
        f"Stop-Service -Name {quoted} -Force -ErrorAction SilentlyContinue; "
        f"Set-Service -Name {quoted} -StartupType Disabled -ErrorAction Stop"
    )


def sc_disable(service_name: str) -> list[str]:
    return [SC, "config", service_name, "start=", "disabled"]


def service_query(service_name: str) -> list[str]:
    return powershell(
        f"$s = Get-Service -Name {ps_quote(service_name)} -ErrorAction SilentlyContinue; "
        "if ($s) { [string]$s.StartType }"
    )


def disable_scheduled_task(task_path: str, task_name: str) -> list[str]:
    return powershell(
        f"Disable-ScheduledTask -TaskPath {ps_quote(task_path)} "
        f"-TaskName {ps_quote(task_name)} -ErrorAction Stop | Out-Null"
    )


def schtasks_disable(task_path: str, task_name: str) -> list[str]:
    return [SCHTASKS, "/Change", "/TN", f"{task_path}{task_name}", "/Disable"]


def scheduled_task_query(task_path: str, task_name: str) -> list[str]:
    return powershell(
        f"$t = Get-ScheduledTask -TaskPath {ps_quote(task_path)} "
        f"-TaskName {ps_quote(task_name)} -ErrorAction SilentlyContinue; "
        "if ($t) { [string]$t.State }"
    )


# ==================== Shortcuts and startup entries ====================

def remove_path(path: str) -> list[str]:
    return powershell(f"Remove-Item -LiteralPath {ps_quote(path)} -Force -ErrorAction Stop")


def path_query(path: str) -> list[str]:
    return powershell(f"Test-Path -LiteralPath {ps_quote(path)}")


def remove_registry_value(location: str, name: str) -> list[str]:
    return powershell(
        f"Remove-ItemProperty -Path {ps_quote(location)} -Name {ps_quote(name)} -ErrorAction Stop"
    )


def registry_value_query(location: str, name: str) -> list[str]:
    return powershell(
        f"$null -ne (Get-ItemProperty -Path {ps_quote(location)} -Name {ps_quote(name)} "
        "-ErrorAction SilentlyContinue)"
    )
