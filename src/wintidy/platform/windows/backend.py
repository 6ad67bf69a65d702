"""
Windows Platform Backend Implementation.

Runs native Windows tools as blocking subprocesses with a hidden console
window and a hard timeout.
"""

from __future__ import annotations

import ctypes
import subprocess
import time

from wintidy.core.logging import get_logger
from wintidy.platform.base import CommandResult, PlatformBackend

logger = get_logger(__name__)


class WindowsBackend(PlatformBackend):
    """Windows implementation of command execution."""

    @property
    def name(self) -> str:
        return "windows"

    @property
    def requires_admin(self) -> bool:
        return True

    def is_admin(self) -> bool:
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except Exception:
            return False

    def run_command(
        self,
        command: list[str],
        timeout: int = 300,
        check: bool = True,
    ) -> CommandResult:
        """Run a system command."""
        logger.debug("Running command", command=command, timeout=timeout)
        start_time = time.time()

        try:
            startupinfo = None
            if hasattr(subprocess, "STARTUPINFO"):
                startupinfo = subprocess.STARTUPINFO()
                startupinfo.dwFlags |= subprocess.STARTF_USESHOWWINDOW
                startupinfo.wShowWindow = subprocess.SW_HIDE

            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                startupinfo=startupinfo,
            )
            duration = time.time() - start_time

            cmd_result = CommandResult(
                returncode=result.returncode,
                stdout=result.stdout or "",
                stderr=result.stderr or "",
                command=command,
                duration_seconds=duration,
            )

            if check and result.returncode != 0:
                logger.warning(
                    "Command failed",
                    command=command,
                    returncode=result.returncode,
                    stderr=result.stderr[:500] if result.stderr else "",
                )

            return cmd_result
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out", command=command, timeout=timeout)
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                command=command,
                duration_seconds=timeout,
            )
        except Exception as e:
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=str(e),
                command=command,
                duration_seconds=time.time() - start_time,
            )
