"""
WinTidy reconciliation engine.

Normalizes the collected inventory, diffs it against the previous snapshot,
matches the changed items against pattern lists and converges them.
"""

from wintidy.reconcile.diff import compute_diff, select_items, should_full_scan
from wintidy.reconcile.executor import ActionExecutor
from wintidy.reconcile.jobs import BloatwareRemovalJob, EssentialAppsJob
from wintidy.reconcile.matcher import PatternMatcher, normalize_identifier
from wintidy.reconcile.normalizer import normalize
from wintidy.reconcile.pipeline import (
    CollectedInventory,
    InventoryCollector,
    Reconciler,
    ReconcileReport,
    RunContext,
)
from wintidy.reconcile.reporter import ConvergenceReporter
from wintidy.reconcile.snapshot import SnapshotKind, SnapshotStore

__all__ = [
    "ActionExecutor",
    "BloatwareRemovalJob",
    "CollectedInventory",
    "ConvergenceReporter",
    "EssentialAppsJob",
    "InventoryCollector",
    "PatternMatcher",
    "ReconcileReport",
    "Reconciler",
    "RunContext",
    "SnapshotKind",
    "SnapshotStore",
    "compute_diff",
    "normalize",
    "normalize_identifier",
    "select_items",
    "should_full_scan",
]
