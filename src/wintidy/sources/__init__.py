"""
WinTidy inventory sources.

Pluggable read-only providers, one per origin.
"""

from wintidy.sources.base import InventorySource, SourceResult
from wintidy.sources.windows import SOURCE_CLASSES, build_sources

__all__ = [
    "InventorySource",
    "SourceResult",
    "SOURCE_CLASSES",
    "build_sources",
]
