"""
End-to-end reconciliation runs against an in-memory winget.
"""

import pytest

from wintidy.core.errors import InventoryUnavailableError, SnapshotPersistenceError
from wintidy.core.job import JobContext, JobStatus
from wintidy.core.models import MatchStrategy, OutcomeStatus
from wintidy.core.session import Session
from wintidy.reconcile.jobs import BloatwareRemovalJob, EssentialAppsJob
from wintidy.reconcile.pipeline import Reconciler, RunContext
from wintidy.reconcile.snapshot import SnapshotKind, SnapshotStore
from wintidy.sources.windows import ChocolateySource, WingetSource

pytestmark = pytest.mark.integration


@pytest.fixture
def config(sample_config):
    sample_config.bloatware.builtin_patterns = [
        "Microsoft.XboxApp",
        "Microsoft.BingWeather",
        "king.com.CandyCrush*",
    ]
    sample_config.essentials.builtin_patterns = ["Google.Chrome", "Mozilla.Firefox"]
    return sample_config


def reconciler(config, winget, **kwargs) -> Reconciler:
    kwargs.setdefault("sources", [WingetSource(winget)])
    return Reconciler(RunContext.create(config, winget, **kwargs))


def uninstalled(winget) -> list[str]:
    return [c[c.index("--id") + 1] for c in winget.commands("uninstall")]


class TestBloatwareRemoval:
    """Tests for the diff-scoped removal pass."""

    def test_first_run_removes_matches_and_persists(self, config, fake_winget) -> None:
        report = reconciler(config, fake_winget).remove_bloatware()

        assert report.diff.first_run is True
        assert report.scope == 4
        assert {m.pattern for m in report.matches} == {"Microsoft.XboxApp", "Microsoft.BingWeather"}
        assert all(m.strategy == MatchStrategy.EXACT for m in report.matches)
        assert {o.status for o in report.outcomes} == {OutcomeStatus.SUCCESS}
        assert {o.method_used for o in report.outcomes} == {"winget-uninstall"}
        assert sorted(uninstalled(fake_winget)) == ["Microsoft.BingWeather", "Microsoft.XboxApp"]
        assert set(fake_winget.packages) == {"Google.Chrome", "Notepad++.Notepad++"}

        assert report.persisted is True
        snapshot = SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).load()
        assert "Microsoft.XboxApp" in snapshot
        assert "Google Chrome" in snapshot

    def test_second_run_is_idempotent(self, config, fake_winget) -> None:
        reconciler(config, fake_winget).remove_bloatware()
        fake_winget.calls.clear()

        report = reconciler(config, fake_winget).remove_bloatware()

        assert len(report.diff.newly_observed) == 0
        assert "microsoft.xboxapp" in report.diff.previously_observed
        assert report.matches == []
        assert report.outcomes == []
        assert fake_winget.commands("uninstall") == []

        snapshot = SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).load()
        assert "Microsoft.XboxApp" not in snapshot

    def test_externally_removed_item(self, config, fake_winget) -> None:
        reconciler(config, fake_winget).remove_bloatware()
        del fake_winget.packages["Google.Chrome"]

        report = reconciler(config, fake_winget).remove_bloatware()

        assert "Google.Chrome" in report.diff.previously_observed
        assert report.outcomes == []
        assert "Google.Chrome" not in SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).load()

    def test_only_new_items_are_matched(self, config, fake_winget) -> None:
        reconciler(config, fake_winget).remove_bloatware()
        fake_winget.packages["king.com.CandyCrushSaga"] = "Candy Crush Saga"
        fake_winget.packages["VideoLAN.VLC"] = "VLC media player"

        report = reconciler(config, fake_winget).remove_bloatware()

        assert report.scope == 2
        assert [m.item.display_name for m in report.matches] == ["Candy Crush Saga"]
        assert report.outcomes[0].status == OutcomeStatus.SUCCESS
        assert "king.com.CandyCrushSaga" not in fake_winget.packages

    def test_reinstalled_item_needs_full_scan(self, config, fake_winget) -> None:
        reconciler(config, fake_winget).remove_bloatware()
        fake_winget.packages["Microsoft.XboxApp"] = "Xbox"

        assert reconciler(config, fake_winget).remove_bloatware().matches == []

        report = reconciler(config, fake_winget, full_scan=True).remove_bloatware()
        assert report.full_scan is True
        assert [m.pattern for m in report.matches] == ["Microsoft.XboxApp"]
        assert "Microsoft.XboxApp" not in fake_winget.packages

    def test_when_empty_policy(self, config, fake_winget) -> None:
        config.diff.full_scan_policy = "when_empty"
        reconciler(config, fake_winget).remove_bloatware()
        fake_winget.packages["Microsoft.XboxApp"] = "Xbox"

        report = reconciler(config, fake_winget).remove_bloatware()

        assert report.full_scan is True
        assert [m.pattern for m in report.matches] == ["Microsoft.XboxApp"]

    def test_failure_does_not_block_others(self, config, fake_winget) -> None:
        fake_winget.fail.add("Microsoft.XboxApp")

        report = reconciler(config, fake_winget).remove_bloatware()

        statuses = {o.item.display_name: o.status for o in report.outcomes}
        assert statuses == {"Xbox": OutcomeStatus.FAILED, "MSN Weather": OutcomeStatus.SUCCESS}
        assert report.summary.failed == 1
        assert report.summary.failures[0]["method"] == "registry-uninstall-string"
        assert report.persisted is True

    def test_unverified_removal_is_partial(self, config, fake_winget) -> None:
        fake_winget.no_effect.add("Microsoft.BingWeather")

        report = reconciler(config, fake_winget).remove_bloatware()

        weather = next(o for o in report.outcomes if o.item.display_name == "MSN Weather")
        assert weather.status == OutcomeStatus.PARTIAL
        assert report.summary.methods["winget-uninstall (unverified)"] == 1

    def test_dry_run_changes_nothing(self, config, fake_winget) -> None:
        report = reconciler(config, fake_winget, dry_run=True).remove_bloatware()

        assert len(report.matches) == 2
        assert {o.method_used for o in report.outcomes} == {"dry-run"}
        assert fake_winget.commands("uninstall") == []
        assert report.persisted is False
        assert "Dry run; snapshot not updated" in report.warnings
        assert not SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists

    def test_dry_run_from_config(self, config, fake_winget) -> None:
        config.execution.dry_run = True
        report = reconciler(config, fake_winget).remove_bloatware()
        assert report.dry_run is True

    def test_cancelled_run_keeps_snapshot(self, config, fake_winget) -> None:
        reconciler(config, fake_winget).remove_bloatware()
        fake_winget.packages["king.com.CandyCrushSaga"] = "Candy Crush Saga"
        before = SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).load()

        job_context = JobContext()
        job_context.cancel()
        report = reconciler(config, fake_winget, job_context=job_context).remove_bloatware()

        assert report.cancelled is True
        assert [o.error for o in report.outcomes] == ["cancelled"]
        assert report.persisted is False
        assert SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).load() == before
        assert "Run cancelled; snapshot not updated" in job_context.get_warnings()

    def test_persistence_failure_is_warning(self, config, fake_winget, mocker) -> None:
        mocker.patch.object(SnapshotStore, "save", side_effect=SnapshotPersistenceError("read-only"))

        report = reconciler(config, fake_winget).remove_bloatware()

        assert report.summary.succeeded == 2
        assert report.persisted is False
        assert "Snapshot could not be saved" in report.warnings

    def test_corrupt_snapshot_is_first_run(self, config, fake_winget) -> None:
        path = config.snapshot_path(SnapshotKind.BLOATWARE)
        path.write_text("{truncated", encoding="utf-8")

        report = reconciler(config, fake_winget).remove_bloatware()

        assert report.diff.first_run is True
        assert report.persisted is True


class TestEssentialApps:
    """Tests for the essential-app installation pass."""

    def test_installs_missing(self, config, fake_winget) -> None:
        report = reconciler(config, fake_winget).install_essentials()

        assert report.full_scan is True
        assert [m.pattern for m in report.matches] == ["Mozilla.Firefox"]
        assert report.matches[0].strategy == MatchStrategy.MISSING
        outcome = report.outcomes[0]
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.method_used == "winget-install"
        assert fake_winget.packages["Mozilla.Firefox"] == "Mozilla Firefox"
        assert SnapshotStore.for_kind(config, SnapshotKind.ESSENTIALS).exists
        assert not SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists

    def test_second_run_installs_nothing(self, config, fake_winget) -> None:
        reconciler(config, fake_winget).install_essentials()
        fake_winget.calls.clear()

        report = reconciler(config, fake_winget).install_essentials()

        assert report.matches == []
        assert fake_winget.commands("install") == []

    def test_removed_essential_is_reinstalled(self, config, fake_winget) -> None:
        reconciler(config, fake_winget).install_essentials()
        del fake_winget.packages["Google.Chrome"]

        report = reconciler(config, fake_winget).install_essentials()

        assert [m.pattern for m in report.matches] == ["Google.Chrome"]
        assert "Google.Chrome" in fake_winget.packages

    def test_chocolatey_fallback_attempted(self, config, fake_winget) -> None:
        fake_winget.fail.add("Mozilla.Firefox")

        report = reconciler(config, fake_winget).install_essentials()

        outcome = report.outcomes[0]
        assert outcome.status == OutcomeStatus.FAILED
        assert [a.method for a in outcome.attempts] == ["winget-install", "choco-install"]
        assert ["choco", "install", "firefox", "-y", "--no-progress"] in fake_winget.calls


class TestSources:
    """Tests for source availability handling."""

    def test_all_sources_unavailable(self, config, fake_winget) -> None:
        with pytest.raises(InventoryUnavailableError):
            reconciler(config, fake_winget, sources=[ChocolateySource(fake_winget)]).remove_bloatware()
        assert not SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists

    def test_partial_availability_is_warning(self, config, fake_winget) -> None:
        sources = [WingetSource(fake_winget), ChocolateySource(fake_winget)]
        report = reconciler(config, fake_winget, sources=sources).remove_bloatware()

        assert report.summary.succeeded == 2
        assert "Inventory source unavailable: chocolatey" in report.warnings

    def test_preview_acts_on_nothing(self, config, fake_winget) -> None:
        report = reconciler(config, fake_winget).preview(SnapshotKind.BLOATWARE)

        assert len(report.matches) == 2
        assert report.outcomes == []
        assert fake_winget.commands("uninstall") == []
        assert not SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists


class TestSessionJobs:
    """Tests for running passes as session jobs."""

    @pytest.fixture
    def session(self, config, fake_winget):
        session = Session(config=config, runner=fake_winget, sources=[WingetSource(fake_winget)])
        yield session
        session.close()

    def test_bloatware_job(self, session, fake_winget) -> None:
        job = BloatwareRemovalJob()
        result = session.run_job(job)

        assert result.success is True
        assert job.status == JobStatus.COMPLETED
        assert result.data.summary.succeeded == 2
        assert job.context.get_progress().stage == "done"

        operation = session.get_report().operations[0]
        assert operation["job_name"] == "bloatware_removal"
        assert operation["report"]["summary"]["succeeded"] == 2

    def test_cancelled_job_returns_partial_report(self, session, config, fake_winget) -> None:
        job = BloatwareRemovalJob()
        job.context.cancel()

        result = session.run_job(job)

        assert job.status == JobStatus.CANCELLED
        assert result.success is False
        assert result.data.cancelled is True
        assert result.data.persisted is False
        assert fake_winget.commands("uninstall") == []
        assert not SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists
        assert session.get_report().operations[0]["status"] == "CANCELLED"

    def test_essentials_job_in_background(self, session, fake_winget) -> None:
        job_id = session.submit_job(EssentialAppsJob())
        result = session.wait_job(job_id, timeout=10)

        assert result.success is True
        assert "Mozilla.Firefox" in fake_winget.packages

    def test_no_patterns_fails_validation(self, session, config) -> None:
        config.bloatware.builtin_patterns = []

        result = session.run_job(BloatwareRemovalJob())

        assert result.success is False
        assert "No bloatware patterns configured" in result.error

    def test_dry_run_job(self, session, fake_winget) -> None:
        result = session.run_job(BloatwareRemovalJob(dry_run=True))

        assert result.data.dry_run is True
        assert "Dry run; snapshot not updated" in result.warnings
        assert fake_winget.commands("uninstall") == []

    def test_close_writes_audit_report(self, session, config) -> None:
        session.run_job(EssentialAppsJob())
        path = session.close()

        assert path.parent == config.report_directory
        assert path.exists()
