"""
WinTidy Platform Backend Base.

Defines the command execution interface the reconciliation core depends on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        command: str | list[str],
        duration_seconds: float = 0.0,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.duration_seconds = duration_seconds

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def timed_out(self) -> bool:
        return self.returncode == -1 and self.stderr.startswith("Command timed out")

    def __repr__(self) -> str:
        cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"


class CommandRunner(Protocol):
    """Anything that can run a command line with a timeout."""

    def run_command(self, command: list[str], timeout: int = 300) -> CommandResult:
        """Run a command and return its result; never raises on timeout."""


class PlatformBackend(ABC):
    """Abstract base class for platform-specific command execution."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Platform name (e.g., 'windows')."""

    @property
    @abstractmethod
    def requires_admin(self) -> bool:
        """Whether admin privileges are required for mutations."""

    @abstractmethod
    def is_admin(self) -> bool:
        """Check if running with admin privileges."""

    @abstractmethod
    def run_command(self, command: list[str], timeout: int = 300) -> CommandResult:
        """Run a system command."""
