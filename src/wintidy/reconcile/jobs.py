"""
Reconciliation jobs.

Wrap the Reconciler passes as Jobs so they run through the JobRunner with
progress reporting and cancellation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from wintidy.core.job import Job, JobContext
from wintidy.reconcile.pipeline import Reconciler, ReconcileReport
from wintidy.reconcile.snapshot import SnapshotKind

if TYPE_CHECKING:
    from wintidy.core.session import Session


class ReconcileJob(Job[ReconcileReport]):
    """Base for jobs running one reconciliation pass."""

    kind: SnapshotKind

    def __init__(
        self,
        name: str,
        description: str,
        dry_run: bool | None = None,
        full_scan: bool | None = None,
    ) -> None:
        super().__init__(name=name, description=description)
        self.dry_run = dry_run
        self.full_scan = full_scan
        self._session: Session | None = None

    def set_session(self, session: Session) -> None:
        """Set the session for platform and configuration access."""
        self._session = session

    def reconciler(self, context: JobContext) -> Reconciler:
        if self._session is None:
            raise RuntimeError("Session not set")
        run_context = self._session.build_context(
            job_context=context,
            dry_run=self.dry_run,
            full_scan=self.full_scan,
        )
        return Reconciler(run_context)

    def validate(self) -> list[str]:
        errors = []
        if self._session is None:
            errors.append("Session not set")
        elif not self._session.patterns(self.kind):
            errors.append(f"No {self.kind.value} patterns configured")
        return errors


class BloatwareRemovalJob(ReconcileJob):
    """Remove newly installed software matching the bloatware patterns."""

    kind = SnapshotKind.BLOATWARE

    def __init__(self, dry_run: bool | None = None, full_scan: bool | None = None) -> None:
        super().__init__(
            name="bloatware_removal",
            description="Remove newly observed bloatware",
            dry_run=dry_run,
            full_scan=full_scan,
        )

    def execute(self, context: JobContext) -> ReconcileReport:
        context.update_progress(stage="inventory", message="Collecting installed software...")
        reconciler = self.reconciler(context)
        reconciler.collect()

        context.update_progress(stage="remove", message="Removing bloatware...")
        report = reconciler.remove_bloatware()
        context.check_cancelled(partial=report)

        context.update_progress(
            stage="done",
            message=f"{report.summary.succeeded} removed, {report.summary.failed} failed",
        )
        return report

    def get_plan(self) -> str:
        scope = "the whole inventory" if self.full_scan else "items new since the last run"
        return f"""Bloatware Removal
=================
Scope: {scope}
Dry run: {"yes" if self.dry_run else "no"}

Steps:
1. Collect installed software from every enabled source
2. Diff identifiers against the previous bloatware snapshot
3. Match the scoped items against the bloatware patterns
4. Remove each match, trying fallback methods until removal is verified
5. Save the current inventory as the new snapshot"""


class EssentialAppsJob(ReconcileJob):
    """Install essential applications that are not present."""

    kind = SnapshotKind.ESSENTIALS

    def __init__(self, dry_run: bool | None = None) -> None:
        super().__init__(
            name="essential_apps",
            description="Install missing essential applications",
            dry_run=dry_run,
        )

    def execute(self, context: JobContext) -> ReconcileReport:
        context.update_progress(stage="inventory", message="Collecting installed software...")
        reconciler = self.reconciler(context)
        reconciler.collect()

        context.update_progress(stage="install", message="Installing essential apps...")
        report = reconciler.install_essentials()
        context.check_cancelled(partial=report)

        context.update_progress(
            stage="done",
            message=f"{report.summary.succeeded} installed, {report.summary.failed} failed",
        )
        return report

    def get_plan(self) -> str:
        return f"""Essential Apps Installation
===========================
Dry run: {"yes" if self.dry_run else "no"}

Steps:
1. Collect installed software from every enabled source
2. Check each essential-app pattern against the full inventory
3. Install each missing app, falling back to Chocolatey where an alias exists
4. Save the current inventory as the new snapshot"""
