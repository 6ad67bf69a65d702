"""
Tests for wintidy.sources module.
"""

from pathlib import Path

import pytest

from wintidy.core.models import Origin
from wintidy.platform.base import CommandResult
from wintidy.sources import build_sources
from wintidy.sources.windows import (
    AppxPackageSource,
    ChocolateySource,
    ServiceSource,
    StartMenuShortcutSource,
    WingetSource,
    _PowerShellJsonSource,
)


class ScriptedRunner:
    """Returns a fixed result for every command."""

    def __init__(self, result: CommandResult) -> None:
        self.result = result
        self.commands: list[list[str]] = []

    def run_command(self, command: list[str], timeout: int = 300) -> CommandResult:
        self.commands.append(command)
        return self.result


class TestCommandSources:
    """Tests for sources backed by external commands."""

    def test_winget(self, fake_winget) -> None:
        result = WingetSource(fake_winget).collect_result()

        assert result.available is True
        assert result.name == "winget"
        ids = {record.fields["Id"] for record in result.records}
        assert ids == {"Microsoft.XboxApp", "Microsoft.BingWeather", "Google.Chrome", "Notepad++.Notepad++"}
        assert all(record.origin == Origin.WINGET for record in result.records)

    def test_chocolatey(self) -> None:
        runner = ScriptedRunner(CommandResult(0, "7zip|23.1.0\nvlc|3.0.20\n", "", []))
        records = ChocolateySource(runner).collect()
        assert [r.fields["Id"] for r in records] == ["7zip", "vlc"]
        assert runner.commands[0][:2] == ["choco", "list"]

    def test_powershell_json(self) -> None:
        output = '[{"Name": "Microsoft.XboxApp", "PackageFullName": "Microsoft.XboxApp_48_x64__8wekyb3d8bbwe"}]'
        records = AppxPackageSource(ScriptedRunner(CommandResult(0, output, "", []))).collect()
        assert len(records) == 1
        assert records[0].origin == Origin.APPX_PACKAGE
        assert records[0].source == "appx"

    def test_powershell_sources_require_command(self) -> None:
        class Incomplete(_PowerShellJsonSource):
            origin = Origin.APPX_PACKAGE
            name = "incomplete"

        with pytest.raises(TypeError):
            Incomplete(None)

    def test_failed_command_is_unavailable(self) -> None:
        runner = ScriptedRunner(CommandResult(1, "", "'choco' is not recognized", []))
        result = ChocolateySource(runner).collect_result()

        assert result.available is False
        assert "not recognized" in result.error
        assert result.records == []

    def test_timeout_is_unavailable(self) -> None:
        runner = ScriptedRunner(CommandResult(-1, "", "Command timed out after 120s", []))
        assert WingetSource(runner).collect() == []

    def test_no_runner_is_unavailable(self) -> None:
        assert WingetSource(None).collect_result().available is False

    def test_timeout_passed_to_runner(self, mocker) -> None:
        runner = ScriptedRunner(CommandResult(0, "", "", []))
        spy = mocker.spy(runner, "run_command")
        ChocolateySource(runner, timeout=45).collect()
        assert spy.call_args.kwargs["timeout"] == 45


class TestStartMenuShortcutSource:
    """Tests for the filesystem-backed Start Menu source."""

    def test_lists_shortcuts(self, temp_dir: Path) -> None:
        root = temp_dir / "Programs"
        (root / "Games").mkdir(parents=True)
        (root / "Games" / "Candy Crush Saga.lnk").write_bytes(b"")
        (root / "Notepad++.lnk").write_bytes(b"")
        (root / "readme.txt").write_text("not a shortcut")

        records = StartMenuShortcutSource(roots=[root]).collect()

        names = sorted(r.fields["Name"] for r in records)
        assert names == ["Candy Crush Saga", "Notepad++"]
        crush = next(r for r in records if r.fields["Name"] == "Candy Crush Saga")
        assert crush.fields["Folder"] == "Games"
        assert crush.fields["FullName"].endswith("Candy Crush Saga.lnk")

    def test_missing_roots_unavailable(self, temp_dir: Path) -> None:
        result = StartMenuShortcutSource(roots=[temp_dir / "missing"]).collect_result()
        assert result.available is False

    def test_default_roots_from_environment(self, temp_dir: Path, monkeypatch) -> None:
        monkeypatch.setenv("ProgramData", str(temp_dir / "pd"))
        monkeypatch.delenv("APPDATA", raising=False)
        roots = StartMenuShortcutSource.default_roots()
        assert roots == [temp_dir / "pd" / "Microsoft" / "Windows" / "Start Menu" / "Programs"]


class TestServiceSource:
    """Tests for the psutil-backed service source."""

    def test_unavailable_without_service_api(self, mocker) -> None:
        mocker.patch("wintidy.sources.windows.psutil.win_service_iter", None, create=True)
        assert ServiceSource().collect_result().available is False

    def test_disabled_services_skipped(self, mocker) -> None:
        services = []
        for name, start_type in (("DiagTrack", "automatic"), ("XblGameSave", "disabled")):
            service = mocker.Mock()
            service.as_dict.return_value = {
                "name": name,
                "display_name": name,
                "start_type": start_type,
                "status": "running",
                "binpath": "svchost.exe",
            }
            services.append(service)
        mocker.patch(
            "wintidy.sources.windows.psutil.win_service_iter",
            return_value=iter(services),
            create=True,
        )

        records = ServiceSource().collect()
        assert [r.fields["Name"] for r in records] == ["DiagTrack"]


class TestBuildSources:
    """Tests for build_sources."""

    def test_enabled_origins_in_order(self, fake_winget) -> None:
        sources = build_sources(fake_winget, [Origin.SERVICE, Origin.WINGET], timeout=30)
        assert [type(s) for s in sources] == [WingetSource, ServiceSource]
        assert all(s.timeout == 30 for s in sources)

    @pytest.mark.parametrize("origin", list(Origin))
    def test_every_origin_has_source(self, origin: Origin, fake_winget) -> None:
        sources = build_sources(fake_winget, [origin])
        assert len(sources) == 1
        assert sources[0].origin == origin
