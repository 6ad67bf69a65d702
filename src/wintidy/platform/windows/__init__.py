"""
WinTidy Windows Platform Backend.

Runs the native tooling the reconciliation core shells out to:
- winget and Chocolatey for package operations
- PowerShell Appx, optional feature, service and task cmdlets
- DISM, sc.exe, schtasks.exe and msiexec as fallbacks
"""

from wintidy.platform.windows.backend import WindowsBackend
from wintidy.platform.windows.parsers import (
    parse_choco_limit_output,
    parse_powershell_json,
    parse_winget_table,
)

__all__ = [
    "WindowsBackend",
    "parse_choco_limit_output",
    "parse_powershell_json",
    "parse_winget_table",
]
