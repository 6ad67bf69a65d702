"""
Diff engine.

Computes which identifiers are new since the previous snapshot and provides
the single scope filter between the diff and the pattern matcher.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from wintidy.core.models import CanonicalIdentifierSet, DiffResult, InventoryItem

FullScanPolicy = Literal["never", "when_empty", "always"]


def compute_diff(
    current: CanonicalIdentifierSet,
    previous: CanonicalIdentifierSet | None,
) -> DiffResult:
    """
    Diff the current identifiers against the previous snapshot.

    Without a previous snapshot everything is newly observed. An empty
    previous snapshot is still a snapshot.
    """
    if previous is None:
        return DiffResult(
            newly_observed=CanonicalIdentifierSet(current),
            previously_observed=CanonicalIdentifierSet(),
            unchanged=CanonicalIdentifierSet(),
            first_run=True,
        )

    return DiffResult(
        newly_observed=current.difference(previous),
        previously_observed=previous.difference(current),
        unchanged=current.intersection(previous),
    )


def should_full_scan(diff: DiffResult, policy: FullScanPolicy) -> bool:
    """Decide whether the matcher should see the whole inventory."""
    if policy == "always":
        return True
    if policy == "when_empty":
        return not diff.first_run and not diff.newly_observed
    return False


def select_items(
    items: Iterable[InventoryItem],
    diff: DiffResult,
    full_scan: bool = False,
) -> list[InventoryItem]:
    """Items with at least one newly observed identifier (or all, for a full scan)."""
    if full_scan:
        return list(items)
    newly_observed = diff.newly_observed
    return [
        item
        for item in items
        if any(identifier in newly_observed for identifier in item.identifiers)
    ]
