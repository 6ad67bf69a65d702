"""
Convergence reporter.

Aggregates per-item outcomes into a run summary and persists the current
snapshot once all executor work has finished.
"""

from __future__ import annotations

from collections.abc import Iterable

from wintidy.core.errors import SnapshotPersistenceError
from wintidy.core.logging import get_logger
from wintidy.core.models import (
    ActionOutcome,
    CanonicalIdentifierSet,
    OutcomeStatus,
    RunSummary,
)
from wintidy.reconcile.snapshot import SnapshotStore

logger = get_logger(__name__)


class ConvergenceReporter:
    """Summarizes outcomes and writes the snapshot for the next run."""

    def __init__(self, store: SnapshotStore) -> None:
        self.store = store

    def summarize(self, outcomes: Iterable[ActionOutcome]) -> RunSummary:
        summary = RunSummary()

        for outcome in outcomes:
            if outcome.status is OutcomeStatus.SUCCESS:
                summary.succeeded += 1
                if outcome.method_used:
                    summary.methods[outcome.method_used] += 1
            elif outcome.status is OutcomeStatus.PARTIAL:
                summary.partial += 1
                if outcome.method_used:
                    summary.methods[f"{outcome.method_used} (unverified)"] += 1
            elif outcome.status is OutcomeStatus.FAILED:
                summary.failed += 1
                summary.failures.append({
                    "item": outcome.item.display_name,
                    "origin": outcome.item.origin.value,
                    "method": outcome.method_used,
                    "error": outcome.error,
                })
            else:
                summary.skipped += 1

        logger.info(
            "Run summarized",
            kind=self.store.kind.value,
            total=summary.total,
            succeeded=summary.succeeded,
            partial=summary.partial,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    def persist(self, identifiers: CanonicalIdentifierSet) -> bool:
        """
        Save the full current identifier set.

        A write failure is reported, not raised: the actions already taken
        stand and the next run simply diffs against the older snapshot.
        """
        try:
            self.store.save(identifiers)
        except SnapshotPersistenceError as e:
            logger.warning(
                "Snapshot not persisted",
                kind=self.store.kind.value,
                error=str(e),
            )
            return False
        return True
