"""
WinTidy Platform Abstraction Layer.

Provides the Windows command execution backend plus the command builders
and output parsers used by inventory sources and action methods.
"""

from __future__ import annotations

import platform

from wintidy.platform.base import CommandResult, CommandRunner, PlatformBackend


def get_platform_backend() -> PlatformBackend:
    """Get the appropriate platform backend for the current OS."""
    system = platform.system().lower()

    if system == "windows":
        from wintidy.platform.windows import WindowsBackend

        return WindowsBackend()
    raise RuntimeError(f"Unsupported platform: {system}")


__all__ = [
    "CommandResult",
    "CommandRunner",
    "PlatformBackend",
    "get_platform_backend",
]
