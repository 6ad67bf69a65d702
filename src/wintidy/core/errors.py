"""
Error taxonomy.

Most of these are recovered close to where they are raised: an unavailable
source contributes nothing, a corrupt snapshot means a full rescan, a failed
method advances to the next fallback. Only a total absence of inventory
stops a run.
"""


class WinTidyError(Exception):
    """Base class for all WinTidy exceptions."""


class SourceUnavailableError(WinTidyError):
    """Raised when an inventory source cannot be queried."""


class SnapshotCorruptError(WinTidyError):
    """Raised when a persisted snapshot cannot be decoded."""


class SnapshotPersistenceError(WinTidyError):
    """Raised when a snapshot could not be written."""


class MethodFailedError(WinTidyError):
    """Raised when a single removal or install method attempt fails."""


class InventoryUnavailableError(WinTidyError):
    """Raised when no inventory source could be queried at all."""
