"""
Reconciliation pipeline.

Wires the stages together for one run:

    sources -> normalize -> diff (vs snapshot) -> scope -> match
            -> execute -> summarize -> persist snapshot

Everything a run needs travels in an explicit RunContext.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from wintidy.core.errors import InventoryUnavailableError
from wintidy.core.logging import OperationLogger, get_logger
from wintidy.core.models import (
    ActionMode,
    ActionOutcome,
    CanonicalIdentifierSet,
    DiffResult,
    InventoryItem,
    MatchRecord,
    MatchStrategy,
    RunSummary,
)
from wintidy.reconcile.diff import compute_diff, select_items, should_full_scan
from wintidy.reconcile.executor import ActionExecutor
from wintidy.reconcile.matcher import PatternMatcher
from wintidy.reconcile.methods import requirement_item
from wintidy.reconcile.normalizer import normalize_records
from wintidy.reconcile.reporter import ConvergenceReporter
from wintidy.reconcile.snapshot import SnapshotKind, SnapshotStore
from wintidy.sources.base import InventorySource, SourceResult
from wintidy.sources.windows import build_sources

if TYPE_CHECKING:
    from wintidy.core.config import WinTidyConfig
    from wintidy.core.job import JobContext
    from wintidy.platform.base import CommandRunner

logger = get_logger(__name__)


@dataclass
class RunContext:
    """Configuration and collaborators for one reconciliation run."""

    config: WinTidyConfig
    runner: CommandRunner
    sources: list[InventorySource]
    bloatware_store: SnapshotStore
    essentials_store: SnapshotStore
    job_context: JobContext | None = None
    dry_run: bool = False
    full_scan: bool | None = None

    @classmethod
    def create(
        cls,
        config: WinTidyConfig,
        runner: CommandRunner,
        *,
        sources: list[InventorySource] | None = None,
        job_context: JobContext | None = None,
        dry_run: bool | None = None,
        full_scan: bool | None = None,
    ) -> RunContext:
        if sources is None:
            sources = build_sources(
                runner,
                config.sources.origins,
                timeout=config.timeouts.query_seconds,
            )
        return cls(
            config=config,
            runner=runner,
            sources=sources,
            bloatware_store=SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE),
            essentials_store=SnapshotStore.for_kind(config, SnapshotKind.ESSENTIALS),
            job_context=job_context,
            dry_run=config.execution.dry_run if dry_run is None else dry_run,
            full_scan=full_scan,
        )

    @property
    def cancelled(self) -> bool:
        return self.job_context is not None and self.job_context.is_cancelled

    def store(self, kind: SnapshotKind) -> SnapshotStore:
        if kind is SnapshotKind.BLOATWARE:
            return self.bloatware_store
        return self.essentials_store

    def patterns(self, kind: SnapshotKind) -> list[str]:
        if kind is SnapshotKind.BLOATWARE:
            return self.config.bloatware.patterns
        return self.config.essentials.patterns


@dataclass
class CollectedInventory:
    """One run's normalized inventory."""

    items: list[InventoryItem]
    identifiers: CanonicalIdentifierSet
    sources: list[SourceResult] = field(default_factory=list)
    skipped_records: int = 0

    @property
    def unavailable_sources(self) -> list[str]:
        return [s.name for s in self.sources if not s.available]

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": len(self.items),
            "identifiers": len(self.identifiers),
            "skipped_records": self.skipped_records,
            "sources": [s.to_dict() for s in self.sources],
        }


class InventoryCollector:
    """Queries every enabled source and normalizes the results."""

    def __init__(self, sources: list[InventorySource]) -> None:
        self.sources = sources

    def collect(self) -> CollectedInventory:
        results = [source.collect_result() for source in self.sources]

        if not any(result.available for result in results):
            raise InventoryUnavailableError(
                "No inventory source could be queried: "
                + ", ".join(f"{r.name} ({r.error})" for r in results)
            )

        normalized = normalize_records(r.records for r in results if r.available)
        identifiers = CanonicalIdentifierSet.from_items(normalized.items)

        logger.info(
            "Inventory collected",
            items=len(normalized.items),
            identifiers=len(identifiers),
            unavailable=[r.name for r in results if not r.available],
        )
        return CollectedInventory(
            items=normalized.items,
            identifiers=identifiers,
            sources=results,
            skipped_records=normalized.skipped,
        )


@dataclass
class ReconcileReport:
    """Everything one reconciliation pass decided and did."""

    kind: SnapshotKind
    diff: DiffResult
    full_scan: bool = False
    scope: int = 0
    matches: list[MatchRecord] = field(default_factory=list)
    outcomes: list[ActionOutcome] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)
    persisted: bool = False
    cancelled: bool = False
    dry_run: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "diff": self.diff.to_dict(),
            "full_scan": self.full_scan,
            "scope": self.scope,
            "matches": [m.to_dict() for m in self.matches],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "summary": self.summary.to_dict(),
            "persisted": self.persisted,
            "cancelled": self.cancelled,
            "dry_run": self.dry_run,
            "warnings": self.warnings,
        }


class Reconciler:
    """Runs bloatware removal and essential-app installation passes."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self._inventory: CollectedInventory | None = None

    def collect(self) -> CollectedInventory:
        """Collect the inventory once per run."""
        if self._inventory is None:
            with OperationLogger("inventory collection", logger, sources=len(self.context.sources)):
                self._inventory = InventoryCollector(self.context.sources).collect()
        return self._inventory

    def _executor(self) -> ActionExecutor:
        config = self.context.config
        return ActionExecutor(
            self.context.runner,
            config.timeouts,
            max_workers=config.execution.max_workers,
            dry_run=self.context.dry_run,
            verify_first=config.execution.verify_before_action,
            context=self.context.job_context,
        )

    def _diff(self, kind: SnapshotKind, inventory: CollectedInventory) -> DiffResult:
        previous = self.context.store(kind).load()
        diff = compute_diff(inventory.identifiers, previous)
        logger.info("Inventory diffed", kind=kind.value, **diff.to_dict())
        return diff

    def _full_scan(self, diff: DiffResult) -> bool:
        if self.context.full_scan is not None:
            return self.context.full_scan
        return should_full_scan(diff, self.context.config.diff.full_scan_policy)

    def _new_report(self, kind: SnapshotKind, diff: DiffResult, inventory: CollectedInventory) -> ReconcileReport:
        report = ReconcileReport(kind=kind, diff=diff, dry_run=self.context.dry_run)
        for name in inventory.unavailable_sources:
            report.warnings.append(f"Inventory source unavailable: {name}")
        return report

    def _finish(
        self,
        report: ReconcileReport,
        inventory: CollectedInventory,
        outcomes: list[ActionOutcome],
    ) -> ReconcileReport:
        reporter = ConvergenceReporter(self.context.store(report.kind))
        report.outcomes = outcomes
        report.summary = reporter.summarize(outcomes)
        report.cancelled = self.context.cancelled

        if report.cancelled:
            report.warnings.append("Run cancelled; snapshot not updated")
        elif report.dry_run:
            report.warnings.append("Dry run; snapshot not updated")
        else:
            report.persisted = reporter.persist(inventory.identifiers)
            if not report.persisted:
                report.warnings.append("Snapshot could not be saved")

        if self.context.job_context is not None:
            for warning in report.warnings:
                self.context.job_context.add_warning(warning)
        return report

    def preview(self, kind: SnapshotKind) -> ReconcileReport:
        """Diff and match without acting or saving anything."""
        inventory = self.collect()
        diff = self._diff(kind, inventory)
        report = self._new_report(kind, diff, inventory)

        if kind is SnapshotKind.ESSENTIALS:
            report.full_scan = True
            report.scope = len(inventory.items)
            report.matches = self._missing_essentials(inventory)
        else:
            report.full_scan = self._full_scan(diff)
            scope = select_items(inventory.items, diff, full_scan=report.full_scan)
            report.scope = len(scope)
            report.matches = PatternMatcher(self.context.patterns(kind)).match(scope)
        return report

    def remove_bloatware(self) -> ReconcileReport:
        """Remove newly observed items matching a bloatware pattern."""
        kind = SnapshotKind.BLOATWARE
        inventory = self.collect()

        with OperationLogger("bloatware removal", logger, dry_run=self.context.dry_run) as op:
            diff = self._diff(kind, inventory)
            report = self._new_report(kind, diff, inventory)
            report.full_scan = self._full_scan(diff)

            scope = select_items(inventory.items, diff, full_scan=report.full_scan)
            report.scope = len(scope)
            report.matches = PatternMatcher(self.context.patterns(kind)).match(scope)
            op.update(scope=report.scope, matches=len(report.matches))

            outcomes = self._executor().execute_all(report.matches, ActionMode.REMOVE)
            return self._finish(report, inventory, outcomes)

    def install_essentials(self) -> ReconcileReport:
        """Install every essential-app pattern with no satisfying item."""
        kind = SnapshotKind.ESSENTIALS
        inventory = self.collect()

        with OperationLogger("essential apps installation", logger, dry_run=self.context.dry_run) as op:
            diff = self._diff(kind, inventory)
            report = self._new_report(kind, diff, inventory)
            report.full_scan = True
            report.scope = len(inventory.items)

            # Absence cannot be diffed, so presence is checked against everything.
            report.matches = self._missing_essentials(inventory)
            op.update(missing=len(report.matches))

            outcomes = self._executor().execute_all(report.matches, ActionMode.INSTALL)
            return self._finish(report, inventory, outcomes)

    def _missing_essentials(self, inventory: CollectedInventory) -> list[MatchRecord]:
        aliases = {
            key.casefold(): value
            for key, value in self.context.config.essentials.chocolatey_aliases.items()
        }
        requirements = PatternMatcher(self.context.patterns(SnapshotKind.ESSENTIALS)).requirements(
            inventory.items
        )

        missing = []
        for pattern, record in requirements.items():
            if record is not None:
                logger.debug(
                    "Essential app present",
                    pattern=pattern,
                    item=record.item.display_name,
                    strategy=record.strategy.name,
                )
                continue
            item = requirement_item(pattern, aliases.get(pattern.casefold()))
            missing.append(
                MatchRecord(
                    pattern=pattern,
                    item=item,
                    strategy=MatchStrategy.MISSING,
                )
            )

        logger.info(
            "Essential apps checked",
            required=len(requirements),
            missing=len(missing),
        )
        return missing
