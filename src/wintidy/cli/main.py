"""
WinTidy CLI Main Entry Point.

Command-line interface for inventory inspection and the bloatware removal
and essential-app installation passes.
"""

from __future__ import annotations

import json
import sys
import time
from datetime import timedelta
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
import humanize

from wintidy import __version__
from wintidy.core.config import WinTidyConfig, default_config_path, get_default_config, load_config
from wintidy.core.errors import InventoryUnavailableError, SnapshotCorruptError
from wintidy.core.job import Job, JobResult, JobStatus
from wintidy.core.models import Origin, OutcomeStatus
from wintidy.core.session import Session
from wintidy.platform.base import PlatformBackend
from wintidy.reconcile.jobs import BloatwareRemovalJob, EssentialAppsJob
from wintidy.reconcile.pipeline import Reconciler, ReconcileReport
from wintidy.reconcile.snapshot import SnapshotKind, SnapshotStore

console = Console()

KIND_CHOICE = click.Choice([kind.value for kind in SnapshotKind])

STATUS_STYLES = {
    OutcomeStatus.SUCCESS: "green",
    OutcomeStatus.PARTIAL: "yellow",
    OutcomeStatus.FAILED: "red",
    OutcomeStatus.SKIPPED: "dim",
}

EXIT_JOB_FAILED = 1
EXIT_ITEM_FAILURES = 2
EXIT_CANCELLED = 130


def get_session(ctx: click.Context) -> Session:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        session = Session(config=config)
        ctx.obj["session"] = session
        ctx.call_on_close(session.close)
    return ctx.obj["session"]


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.version_option(version=__version__, prog_name="WinTidy")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--dry-run", is_flag=True, help="Report what would be done without changing anything")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
    dry_run: bool,
) -> None:
    """
    WinTidy - Diff-based Windows software reconciliation.

    Removes newly installed bloatware and installs missing essential
    applications, revisiting only what changed since the previous run.
    """
    ctx.ensure_object(dict)

    if config:
        loaded = WinTidyConfig.load(config)
        loaded.ensure_directories()
        ctx.obj["config"] = loaded
    elif "config" not in ctx.obj and "session" not in ctx.obj:
        ctx.obj["config"] = load_config()

    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet
    ctx.obj["dry_run"] = dry_run


# ==================== Inspection ====================

@cli.command("inventory")
@click.option(
    "--origin",
    "origins",
    multiple=True,
    type=click.Choice([origin.value for origin in Origin]),
    help="Only show items from this origin (repeatable)",
)
@click.pass_context
def inventory(ctx: click.Context, origins: tuple[str, ...]) -> None:
    """List installed software from every enabled source."""
    session = get_session(ctx)
    json_output = ctx.obj.get("json_output", False)

    try:
        with console.status("Collecting inventory..."):
            collected = Reconciler(session.build_context()).collect()
    except InventoryUnavailableError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    selected = {Origin(value) for value in origins}
    items = [item for item in collected.items if not selected or item.origin in selected]

    if json_output:
        _echo_json({
            "sources": [s.to_dict() for s in collected.sources],
            "items": [item.to_dict() for item in items],
        })
        return

    table = Table(title=f"Installed Software ({len(items)} items)")
    table.add_column("Name", style="cyan")
    table.add_column("Origin", style="yellow")
    table.add_column("Identifiers", style="white")
    table.add_column("Version", style="green")

    for item in sorted(items, key=lambda i: (i.origin.value, i.display_name.casefold())):
        table.add_row(
            item.display_name[:50],
            item.origin.value,
            ", ".join(sorted(item.alternate_identifiers))[:60],
            item.metadata.get("version", ""),
        )

    console.print(table)

    unavailable = collected.unavailable_sources
    if unavailable and not ctx.obj.get("quiet"):
        console.print(f"[yellow]Unavailable sources: {', '.join(unavailable)}[/yellow]")


@cli.command("diff")
@click.option("--kind", type=KIND_CHOICE, default=SnapshotKind.BLOATWARE.value, show_default=True)
@click.option("--full-scan", is_flag=True, help="Match against the whole inventory")
@click.pass_context
def diff(ctx: click.Context, kind: str, full_scan: bool) -> None:
    """Show what changed since the last run and what would be acted on."""
    session = get_session(ctx)
    json_output = ctx.obj.get("json_output", False)

    context = session.build_context(full_scan=True if full_scan else None)
    try:
        with console.status("Collecting inventory..."):
            report = Reconciler(context).preview(SnapshotKind(kind))
    except InventoryUnavailableError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if json_output:
        _echo_json(report.to_dict())
        return

    _print_diff(report)

    if not report.matches:
        console.print("[green]Nothing to do.[/green]")
        return

    table = Table(title="Planned Actions")
    table.add_column("Item", style="cyan")
    table.add_column("Origin", style="yellow")
    table.add_column("Pattern", style="white")
    table.add_column("Strategy", style="magenta")

    for match in report.matches:
        table.add_row(
            match.item.display_name[:50],
            match.item.origin.value,
            match.pattern,
            match.strategy.name,
        )
    console.print(table)


@cli.command("patterns")
@click.option("--kind", type=KIND_CHOICE, default=SnapshotKind.BLOATWARE.value, show_default=True)
@click.pass_context
def patterns(ctx: click.Context, kind: str) -> None:
    """List the effective pattern list."""
    config: WinTidyConfig = ctx.obj.get("config") or get_session(ctx).config
    snapshot_kind = SnapshotKind(kind)
    section = config.bloatware if snapshot_kind is SnapshotKind.BLOATWARE else config.essentials
    effective = section.patterns

    if ctx.obj.get("json_output", False):
        _echo_json({"kind": kind, "patterns": effective})
        return

    custom = {p.casefold() for p in section.custom_patterns}
    table = Table(title=f"{kind.capitalize()} Patterns ({len(effective)})")
    table.add_column("#", style="dim")
    table.add_column("Pattern", style="cyan")
    table.add_column("Source", style="yellow")
    for index, pattern in enumerate(effective, 1):
        table.add_row(str(index), pattern, "custom" if pattern.casefold() in custom else "built-in")
    console.print(table)


# ==================== Reconciliation ====================

def _run_job(ctx: click.Context, job: Job[Any]) -> JobResult[Any]:
    """Run a job in the background, turning Ctrl+C into a clean cancellation."""
    session = get_session(ctx)
    quiet = ctx.obj.get("quiet", False) or ctx.obj.get("json_output", False)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        disable=quiet,
        transient=True,
    ) as progress:
        task = progress.add_task(job.description, total=None)

        def update_progress(prog: Any) -> None:
            progress.update(
                task,
                description=prog.message or job.description,
                completed=prog.current,
                total=prog.total or None,
            )

        job.context.add_progress_callback(update_progress)
        job_id = session.submit_job(job)

        cancelling = False
        while session.get_job_status(job_id) in (JobStatus.PENDING, JobStatus.RUNNING):
            try:
                time.sleep(0.1)
            except KeyboardInterrupt:
                if cancelling:
                    raise
                cancelling = True
                session.cancel_job(job_id)
                progress.update(task, description="Cancelling, waiting for in-flight actions...")

    result = session.wait_job(job_id)
    if result is None:
        return JobResult(success=False, error=f"No result for job {job_id}")
    return result


def _print_diff(report: ReconcileReport) -> None:
    diff = report.diff
    console.print(Panel(
        f"""[cyan]Snapshot:[/cyan] {report.kind.value}
[cyan]First run:[/cyan] {"Yes" if diff.first_run else "No"}
[cyan]New since last run:[/cyan] {len(diff.newly_observed)}
[cyan]Gone since last run:[/cyan] {len(diff.previously_observed)}
[cyan]Unchanged:[/cyan] {len(diff.unchanged)}
[cyan]Scope:[/cyan] {report.scope} items{" (full scan)" if report.full_scan else ""}
[cyan]Matches:[/cyan] {len(report.matches)}""",
        title="Inventory Diff",
    ))


def _print_report(report: ReconcileReport, result: JobResult[Any]) -> None:
    if report.dry_run:
        console.print("[yellow]DRY RUN - No changes were made[/yellow]")

    _print_diff(report)

    if report.outcomes:
        table = Table(title="Actions")
        table.add_column("Item", style="cyan")
        table.add_column("Origin", style="yellow")
        table.add_column("Pattern", style="white")
        table.add_column("Status")
        table.add_column("Method", style="magenta")
        table.add_column("Error", style="red")

        for outcome in report.outcomes:
            style = STATUS_STYLES[outcome.status]
            table.add_row(
                outcome.item.display_name[:40],
                outcome.item.origin.value,
                outcome.pattern or "",
                f"[{style}]{outcome.status.name}[/{style}]",
                outcome.method_used or "",
                (outcome.error or "")[:60],
            )
        console.print(table)

    summary = report.summary
    duration = result.duration_seconds or 0
    console.print(Panel(
        f"""[green]Succeeded:[/green] {summary.succeeded}
[yellow]Partial:[/yellow] {summary.partial}
[red]Failed:[/red] {summary.failed}
[dim]Skipped:[/dim] {summary.skipped}
[cyan]Snapshot saved:[/cyan] {"Yes" if report.persisted else "No"}
[cyan]Duration:[/cyan] {humanize.precisedelta(timedelta(seconds=duration), minimum_unit="seconds")}""",
        title=f"{report.kind.value.capitalize()} Summary",
    ))

    for warning in report.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


def _exit_code(
    reports: list[ReconcileReport],
    results: list[JobResult[Any]],
    cancelled: bool,
    strict: bool,
) -> int:
    if cancelled:
        return EXIT_CANCELLED
    if any(not result.success for result in results):
        return EXIT_JOB_FAILED
    if strict and any(r.summary.failed or r.summary.partial for r in reports):
        return EXIT_ITEM_FAILURES
    return 0


def _warn_if_not_admin(ctx: click.Context) -> None:
    if ctx.obj.get("dry_run") or ctx.obj.get("json_output") or ctx.obj.get("quiet"):
        return
    runner = get_session(ctx).platform
    if isinstance(runner, PlatformBackend) and runner.requires_admin and not runner.is_admin():
        console.print(
            "[yellow]Not running as Administrator; machine-wide removals and installs "
            "are likely to fail.[/yellow]"
        )


def _run_passes(ctx: click.Context, jobs: list[Job[Any]], strict: bool) -> None:
    json_output = ctx.obj.get("json_output", False)
    reports: list[ReconcileReport] = []
    results: list[JobResult[Any]] = []
    cancelled = False

    _warn_if_not_admin(ctx)

    for job in jobs:
        result = _run_job(ctx, job)
        results.append(result)
        cancelled = job.status is JobStatus.CANCELLED

        if result.data is None:
            if not json_output:
                outcome = "cancelled" if cancelled else f"failed: {result.error}"
                console.print(f"[red]✗ {job.description} {outcome}[/red]")
            break

        report: ReconcileReport = result.data
        reports.append(report)
        if not json_output:
            _print_report(report, result)
        if cancelled:
            break

    if json_output:
        _echo_json({
            "reports": [report.to_dict() for report in reports],
            "errors": [result.error for result in results if result.error],
        })

    code = _exit_code(reports, results, cancelled, strict)
    if code:
        sys.exit(code)


def _dry_run(ctx: click.Context) -> bool | None:
    return True if ctx.obj.get("dry_run") else None


@cli.command("bloatware")
@click.option("--full-scan", is_flag=True, help="Match against the whole inventory, not only new items")
@click.option("--strict", is_flag=True, help="Exit with status 2 if any item failed")
@click.pass_context
def bloatware(ctx: click.Context, full_scan: bool, strict: bool) -> None:
    """Remove newly installed bloatware."""
    job = BloatwareRemovalJob(dry_run=_dry_run(ctx), full_scan=True if full_scan else None)
    _run_passes(ctx, [job], strict)


@cli.command("essentials")
@click.option("--strict", is_flag=True, help="Exit with status 2 if any item failed")
@click.pass_context
def essentials(ctx: click.Context, strict: bool) -> None:
    """Install missing essential applications."""
    _run_passes(ctx, [EssentialAppsJob(dry_run=_dry_run(ctx))], strict)


@cli.command("run")
@click.option("--full-scan", is_flag=True, help="Match bloatware against the whole inventory")
@click.option("--strict", is_flag=True, help="Exit with status 2 if any item failed")
@click.pass_context
def run(ctx: click.Context, full_scan: bool, strict: bool) -> None:
    """Remove bloatware, then install missing essential applications."""
    dry_run = _dry_run(ctx)
    jobs: list[Job[Any]] = [
        BloatwareRemovalJob(dry_run=dry_run, full_scan=True if full_scan else None),
        EssentialAppsJob(dry_run=dry_run),
    ]
    _run_passes(ctx, jobs, strict)


# ==================== Snapshots ====================

@cli.group("snapshot")
def snapshot() -> None:
    """Inspect or reset the stored snapshots."""


def _store(ctx: click.Context, kind: str) -> SnapshotStore:
    config: WinTidyConfig = ctx.obj.get("config") or get_session(ctx).config
    return SnapshotStore.for_kind(config, SnapshotKind(kind))


@snapshot.command("show")
@click.option("--kind", type=KIND_CHOICE, default=SnapshotKind.BLOATWARE.value, show_default=True)
@click.pass_context
def snapshot_show(ctx: click.Context, kind: str) -> None:
    """Show the stored snapshot."""
    store = _store(ctx, kind)
    json_output = ctx.obj.get("json_output", False)

    if not store.exists:
        if json_output:
            _echo_json({"kind": kind, "path": str(store.path), "exists": False})
        else:
            console.print(f"No {kind} snapshot yet; the next run will treat everything as new.")
        return

    try:
        document = store.read()
    except SnapshotCorruptError as e:
        console.print(f"[red]Snapshot unreadable: {e}[/red]")
        sys.exit(1)

    if json_output:
        _echo_json({"path": str(store.path), "exists": True, **document.model_dump(mode="json")})
        return

    console.print(Panel(
        f"""[cyan]Kind:[/cyan] {document.kind}
[cyan]Path:[/cyan] {store.path}
[cyan]Saved:[/cyan] {document.saved_at:%Y-%m-%d %H:%M:%S} ({humanize.naturaltime(document.saved_at)})
[cyan]Identifiers:[/cyan] {len(document.identifiers)}""",
        title="Snapshot",
    ))

    if not ctx.obj.get("quiet"):
        for identifier in document.identifiers:
            console.print(f"  {identifier}")


@snapshot.command("clear")
@click.option("--kind", type=KIND_CHOICE, default=SnapshotKind.BLOATWARE.value, show_default=True)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def snapshot_clear(ctx: click.Context, kind: str, yes: bool) -> None:
    """Delete a snapshot so the next run processes everything."""
    store = _store(ctx, kind)

    if not yes:
        click.confirm(
            f"Delete the {kind} snapshot? The next run will treat every item as new",
            abort=True,
        )

    if store.clear():
        console.print(f"[green]✓ Cleared {kind} snapshot[/green]")
    else:
        console.print(f"No {kind} snapshot to clear.")


# ==================== Configuration ====================

@cli.command("init-config")
@click.option("--path", type=click.Path(path_type=Path), default=None, help="Where to write the file")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init_config(path: Path | None, force: bool) -> None:
    """Write a default configuration file."""
    path = path or default_config_path()
    if path.exists() and not force:
        console.print(f"[red]{path} already exists (use --force to overwrite)[/red]")
        sys.exit(1)

    get_default_config().save(path)
    console.print(f"[green]✓ Wrote default configuration to {path}[/green]")


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(EXIT_CANCELLED)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
