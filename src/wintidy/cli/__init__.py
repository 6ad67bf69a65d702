"""
WinTidy CLI Module.

Provides the command-line interface for WinTidy operations.
"""

from wintidy.cli.main import main, cli

__all__ = ["main", "cli"]
