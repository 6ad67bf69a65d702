"""
WinTidy - Diff-based Windows software reconciliation.

Removes bloatware and installs essential applications by reconciling a
multi-source software inventory against configured pattern lists, only
revisiting what changed since the previous run.
"""

__version__ = "1.0.0"
__author__ = "WinTidy Team"

from wintidy.core.config import WinTidyConfig
from wintidy.core.session import Session

__all__ = ["WinTidyConfig", "Session", "__version__"]
