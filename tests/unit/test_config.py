"""
Tests for wintidy.core.config module.
"""

import json
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from wintidy.core.config import (
    BloatwareConfig,
    DiffConfig,
    EssentialsConfig,
    ExecutionConfig,
    LoggingConfig,
    SourcesConfig,
    TimeoutConfig,
    WinTidyConfig,
    load_config,
    merge_patterns,
)
from wintidy.core.models import Origin
from wintidy.reconcile.snapshot import SnapshotKind


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is True
        assert config.console_enabled is True
        assert config.json_format is False

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_directory="~/logs")
        assert "~" not in str(config.log_directory)


class TestTimeoutConfig:
    """Tests for TimeoutConfig."""

    def test_default_values(self) -> None:
        config = TimeoutConfig()
        assert config.package_seconds == 300
        assert config.long_operation_seconds == 3600
        assert config.query_seconds == 120

    def test_bounds(self) -> None:
        with pytest.raises(ValidationError):
            TimeoutConfig(package_seconds=0)


class TestExecutionConfig:
    """Tests for ExecutionConfig."""

    def test_default_values(self) -> None:
        config = ExecutionConfig()
        assert config.max_workers == 8
        assert config.dry_run is False
        assert config.verify_before_action is True

    def test_worker_bounds(self) -> None:
        assert ExecutionConfig(max_workers=1).max_workers == 1
        with pytest.raises(ValidationError):
            ExecutionConfig(max_workers=0)
        with pytest.raises(ValidationError):
            ExecutionConfig(max_workers=64)


class TestDiffConfig:
    """Tests for DiffConfig."""

    def test_default_never_falls_back(self) -> None:
        assert DiffConfig().full_scan_policy == "never"

    def test_rejects_unknown_policy(self) -> None:
        with pytest.raises(ValidationError):
            DiffConfig(full_scan_policy="sometimes")


class TestPatterns:
    """Tests for pattern list merging."""

    def test_merge_dedupes_case_insensitively(self) -> None:
        merged = merge_patterns(["Google.Chrome", "7zip.7zip"], ["google.chrome", "VLC"])
        assert merged == ["Google.Chrome", "7zip.7zip", "VLC"]

    def test_merge_exclusions(self) -> None:
        merged = merge_patterns(["A", "B", "C"], exclude=["b"])
        assert merged == ["A", "C"]

    def test_bloatware_custom_and_excluded(self) -> None:
        config = BloatwareConfig(
            builtin_patterns=["Microsoft.XboxApp", "Microsoft.BingNews"],
            custom_patterns=["Acme.Toolbar"],
            excluded_patterns=["microsoft.bingnews"],
        )
        assert config.patterns == ["Microsoft.XboxApp", "Acme.Toolbar"]

    def test_bloatware_defaults_present(self) -> None:
        assert "Microsoft.XboxApp" in BloatwareConfig().patterns

    def test_essentials_aliases(self) -> None:
        config = EssentialsConfig()
        assert "Google.Chrome" in config.patterns
        assert config.chocolatey_aliases["Google.Chrome"] == "googlechrome"


class TestSourcesConfig:
    """Tests for SourcesConfig."""

    def test_all_enabled_by_default(self) -> None:
        assert SourcesConfig().origins == list(Origin)

    def test_subset(self) -> None:
        config = SourcesConfig(enabled=["winget", "APPX-PACKAGE"])
        assert config.origins == [Origin.WINGET, Origin.APPX_PACKAGE]

    def test_rejects_unknown_origin(self) -> None:
        with pytest.raises(ValidationError):
            SourcesConfig(enabled=["snap"])


class TestWinTidyConfig:
    """Tests for WinTidyConfig."""

    def test_default_config(self) -> None:
        config = WinTidyConfig()
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.execution, ExecutionConfig)
        assert isinstance(config.bloatware, BloatwareConfig)

    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"

            original = WinTidyConfig(
                execution=ExecutionConfig(max_workers=4),
                diff=DiffConfig(full_scan_policy="when_empty"),
                bloatware=BloatwareConfig(custom_patterns=["Acme.Toolbar"]),
            )
            original.save(config_path)

            loaded = WinTidyConfig.load(config_path)

            assert loaded.execution.max_workers == 4
            assert loaded.diff.full_scan_policy == "when_empty"
            assert "Acme.Toolbar" in loaded.bloatware.patterns

    def test_saved_file_is_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            WinTidyConfig().save(config_path)
            data = json.loads(config_path.read_text(encoding="utf-8"))
            assert data["execution"]["max_workers"] == 8

    def test_load_nonexistent(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = WinTidyConfig.load(Path(tmpdir) / "nonexistent.json")
            assert config.execution.dry_run is False

    def test_snapshot_paths_are_per_kind(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = WinTidyConfig(snapshot_directory=Path(tmpdir))
            bloatware = config.snapshot_path(SnapshotKind.BLOATWARE)
            essentials = config.snapshot_path(SnapshotKind.ESSENTIALS)
            assert bloatware.name == "bloatware_snapshot.json"
            assert essentials.name == "essentials_snapshot.json"
            assert bloatware.parent == essentials.parent

    def test_ensure_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = WinTidyConfig(
                logging=LoggingConfig(log_directory=Path(tmpdir) / "logs"),
                snapshot_directory=Path(tmpdir) / "snapshots",
                report_directory=Path(tmpdir) / "reports",
            )
            config.ensure_directories()

            assert config.logging.log_directory.exists()
            assert config.snapshot_directory.exists()
            assert config.report_directory.exists()

    def test_report_file_location(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = WinTidyConfig(report_directory=Path(tmpdir))
            report = config.get_report_file()
            assert report.parent == Path(tmpdir).resolve()
            assert report.suffix == ".json"

    def test_load_config_creates_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            WinTidyConfig(
                logging=LoggingConfig(log_directory=Path(tmpdir) / "logs"),
                snapshot_directory=Path(tmpdir) / "snapshots",
                report_directory=Path(tmpdir) / "reports",
            ).save(config_path)

            config = load_config(config_path)
            assert config.snapshot_directory.is_dir()
