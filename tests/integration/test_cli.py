"""
Tests for the wintidy command-line interface.
"""

import json

import pytest
from click.testing import CliRunner

from wintidy import __version__
from wintidy.cli.main import cli
from wintidy.core.job import JobContext
from wintidy.core.session import Session
from wintidy.reconcile.snapshot import SnapshotKind, SnapshotStore
from wintidy.sources.windows import WingetSource

pytestmark = pytest.mark.integration


@pytest.fixture
def config(sample_config):
    sample_config.bloatware.builtin_patterns = ["Microsoft.XboxApp", "Microsoft.BingWeather"]
    sample_config.bloatware.custom_patterns = ["Contoso.*"]
    sample_config.essentials.builtin_patterns = ["Google.Chrome", "Mozilla.Firefox"]
    return sample_config


@pytest.fixture
def invoke(config, fake_winget):
    """Invoke the CLI against a session backed by the in-memory winget."""
    runner = CliRunner()

    def _invoke(*args: str):
        session = Session(config=config, runner=fake_winget, sources=[WingetSource(fake_winget)])
        try:
            return runner.invoke(cli, list(args), obj={"session": session})
        finally:
            session.close()

    return _invoke


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"], obj={})
    assert result.exit_code == 0
    assert __version__ in result.output


class TestInspection:
    """Tests for read-only commands."""

    def test_patterns_json(self, invoke) -> None:
        result = invoke("--json", "patterns")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data == {
            "kind": "bloatware",
            "patterns": ["Microsoft.XboxApp", "Microsoft.BingWeather", "Contoso.*"],
        }

    def test_patterns_table(self, invoke) -> None:
        result = invoke("patterns", "--kind", "essentials")
        assert result.exit_code == 0
        assert "Mozilla.Firefox" in result.output

    def test_inventory_json(self, invoke) -> None:
        result = invoke("--json", "inventory", "--origin", "winget")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert len(data["items"]) == 4
        assert data["sources"][0]["available"] is True

    def test_diff_json(self, invoke, fake_winget) -> None:
        result = invoke("--json", "diff")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["diff"]["first_run"] is True
        assert len(data["matches"]) == 2
        assert fake_winget.commands("uninstall") == []


class TestReconciliation:
    """Tests for the removal and installation commands."""

    def test_bloatware_json(self, invoke, config, fake_winget) -> None:
        result = invoke("--json", "bloatware")

        assert result.exit_code == 0, result.output
        report = json.loads(result.output)["reports"][0]
        assert report["kind"] == "bloatware"
        assert report["summary"]["succeeded"] == 2
        assert report["persisted"] is True
        assert "Microsoft.XboxApp" not in fake_winget.packages
        assert SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists

    def test_bloatware_table(self, invoke) -> None:
        result = invoke("bloatware")
        assert result.exit_code == 0
        assert "Succeeded" in result.output

    def test_dry_run(self, invoke, config, fake_winget) -> None:
        result = invoke("--json", "--dry-run", "bloatware")

        assert result.exit_code == 0
        report = json.loads(result.output)["reports"][0]
        assert report["dry_run"] is True
        assert report["persisted"] is False
        assert fake_winget.commands("uninstall") == []
        assert not SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists

    def test_strict_exit_code(self, invoke, fake_winget) -> None:
        fake_winget.fail.add("Microsoft.XboxApp")

        assert invoke("bloatware").exit_code == 0
        fake_winget.packages["Microsoft.XboxApp"] = "Xbox"
        assert invoke("bloatware", "--full-scan", "--strict").exit_code == 2

    def test_essentials(self, invoke, fake_winget) -> None:
        result = invoke("--json", "essentials")

        assert result.exit_code == 0
        report = json.loads(result.output)["reports"][0]
        assert report["full_scan"] is True
        assert [o["item"] for o in report["outcomes"]] == ["Mozilla.Firefox"]
        assert "Mozilla.Firefox" in fake_winget.packages

    def test_run_does_both_passes(self, invoke, fake_winget) -> None:
        result = invoke("--json", "run")

        assert result.exit_code == 0
        kinds = [r["kind"] for r in json.loads(result.output)["reports"]]
        assert kinds == ["bloatware", "essentials"]

    def test_cancelled_exit_code(self, invoke, fake_winget, mocker) -> None:
        mocker.patch.object(JobContext, "is_cancelled", new_callable=mocker.PropertyMock, return_value=True)

        result = invoke("--json", "run")

        assert result.exit_code == 130
        reports = json.loads(result.output)["reports"]
        assert [r["kind"] for r in reports] == ["bloatware"]
        assert reports[0]["cancelled"] is True
        assert fake_winget.commands("uninstall") == []

    def test_failed_job_exit_code(self, invoke, config) -> None:
        config.bloatware.builtin_patterns = []
        config.bloatware.custom_patterns = []

        result = invoke("--json", "bloatware")

        assert result.exit_code == 1
        assert "No bloatware patterns configured" in json.loads(result.output)["errors"][0]


class TestSnapshotCommands:
    """Tests for snapshot show/clear."""

    def test_show_missing(self, invoke) -> None:
        result = invoke("--json", "snapshot", "show")
        assert result.exit_code == 0
        assert json.loads(result.output)["exists"] is False

    def test_show_after_run(self, invoke) -> None:
        invoke("bloatware")
        result = invoke("--json", "snapshot", "show")

        data = json.loads(result.output)
        assert data["exists"] is True
        assert data["kind"] == "bloatware"
        assert "Microsoft.XboxApp" in data["identifiers"]

    def test_show_corrupt(self, invoke, config) -> None:
        config.snapshot_path(SnapshotKind.ESSENTIALS).write_text("[1, 2", encoding="utf-8")
        result = invoke("snapshot", "show", "--kind", "essentials")
        assert result.exit_code == 1

    def test_clear(self, invoke, config) -> None:
        invoke("bloatware")
        result = invoke("snapshot", "clear", "--yes")

        assert result.exit_code == 0
        assert not SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists

    def test_clear_requires_confirmation(self, invoke, config) -> None:
        invoke("bloatware")
        result = CliRunner().invoke(
            cli,
            ["snapshot", "clear"],
            input="n\n",
            obj={"session": Session(config=config)},
        )

        assert result.exit_code == 1
        assert SnapshotStore.for_kind(config, SnapshotKind.BLOATWARE).exists


class TestInitConfig:
    """Tests for init-config."""

    def test_writes_default_config(self, temp_dir) -> None:
        path = temp_dir / "wintidy.json"
        result = CliRunner().invoke(cli, ["init-config", "--path", str(path)], obj={"config": None})

        assert result.exit_code == 0
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["diff"]["full_scan_policy"] == "never"

    def test_refuses_to_overwrite(self, temp_dir) -> None:
        path = temp_dir / "wintidy.json"
        path.write_text("{}", encoding="utf-8")

        result = CliRunner().invoke(cli, ["init-config", "--path", str(path)], obj={"config": None})

        assert result.exit_code == 1
        assert path.read_text(encoding="utf-8") == "{}"
