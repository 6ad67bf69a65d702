"""
WinTidy Session Management.

Manages a maintenance session with logging, job tracking and an audit
report written when the session closes.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from wintidy.core.config import WinTidyConfig, load_config
from wintidy.core.job import Job, JobContext, JobResult, JobRunner, JobStatus
from wintidy.core.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from wintidy.platform.base import CommandRunner
    from wintidy.reconcile.pipeline import RunContext
    from wintidy.reconcile.snapshot import SnapshotKind
    from wintidy.sources.base import InventorySource

logger = get_logger(__name__)


@dataclass
class AuditReport:
    """Session report for audit and review."""

    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    operations: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    config_snapshot: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": (
                (self.ended_at - self.started_at).total_seconds()
                if self.ended_at
                else None
            ),
            "operations": self.operations,
            "errors": self.errors,
            "warnings": self.warnings,
            "config_snapshot": self.config_snapshot,
            "summary": {
                "total_operations": len(self.operations),
                "successful_operations": sum(
                    1 for op in self.operations if op.get("success", False)
                ),
                "failed_operations": sum(
                    1 for op in self.operations if not op.get("success", True)
                ),
                "total_errors": len(self.errors),
                "total_warnings": len(self.warnings),
            },
        }

    def save(self, path: Path) -> None:
        """Save report to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class Session:
    """
    Manages a WinTidy session with configuration and job execution.

    This is the main entry point for all WinTidy operations.
    """

    def __init__(
        self,
        config: WinTidyConfig | None = None,
        session_id: str | None = None,
        runner: CommandRunner | None = None,
        sources: list[InventorySource] | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        setup_logging(self.config.logging)

        self.job_runner = JobRunner()
        self._sources = sources

        self._report = AuditReport(
            session_id=self.id,
            started_at=self.started_at,
            config_snapshot=self.config.model_dump(mode="json"),
        )

        # Platform backend (lazily loaded)
        self._runner: CommandRunner | None = runner

        logger.info("Session started", session_id=self.id)

    @property
    def platform(self) -> CommandRunner:
        """Get the platform command runner."""
        if self._runner is None:
            from wintidy.platform import get_platform_backend

            self._runner = get_platform_backend()
        return self._runner

    def patterns(self, kind: SnapshotKind) -> list[str]:
        from wintidy.reconcile.snapshot import SnapshotKind

        if kind is SnapshotKind.BLOATWARE:
            return self.config.bloatware.patterns
        return self.config.essentials.patterns

    def build_context(
        self,
        job_context: JobContext | None = None,
        dry_run: bool | None = None,
        full_scan: bool | None = None,
    ) -> RunContext:
        """Assemble everything one reconciliation run needs."""
        from wintidy.reconcile.pipeline import RunContext

        return RunContext.create(
            self.config,
            self.platform,
            sources=list(self._sources) if self._sources is not None else None,
            job_context=job_context,
            dry_run=dry_run,
            full_scan=full_scan,
        )

    def _prepare(self, job: Job[Any]) -> None:
        if hasattr(job, "set_session"):
            job.set_session(self)
        logger.info(
            "Executing job",
            job_id=job.id,
            job_name=job.name,
            plan=job.get_plan(),
        )

    def run_job(self, job: Job[Any]) -> JobResult[Any]:
        """Run a job synchronously and track in session."""
        self._prepare(job)
        result = self.job_runner.run_sync(job)
        self._track_operation(job, result)
        return result

    def submit_job(self, job: Job[Any]) -> str:
        """Submit a job for async execution."""
        self._prepare(job)
        job_id = self.job_runner.submit(job)
        self.job_runner.start(job_id)
        return job_id

    def wait_job(self, job_id: str, timeout: float | None = None) -> JobResult[Any] | None:
        """Wait for a submitted job and track its result."""
        result = self.job_runner.wait(job_id, timeout)
        job = self.job_runner.get_job(job_id)
        if result is not None and job is not None:
            self._track_operation(job, result)
        return result

    def get_job_status(self, job_id: str) -> JobStatus | None:
        """Get job status."""
        return self.job_runner.get_status(job_id)

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a running job."""
        return self.job_runner.cancel(job_id)

    def _track_operation(self, job: Job[Any], result: JobResult[Any]) -> None:
        """Track an operation in the session report."""
        operation_record: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "job_id": job.id,
            "job_name": job.name,
            "job_description": job.description,
            "status": job.status.name,
            "success": result.success,
            "duration_seconds": result.duration_seconds,
        }

        if result.data is not None and hasattr(result.data, "to_dict"):
            operation_record["report"] = result.data.to_dict()

        if result.error:
            operation_record["error"] = result.error
            self._report.errors.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "job_id": job.id,
                    "error": result.error,
                }
            )

        if result.warnings:
            operation_record["warnings"] = result.warnings
            self._report.warnings.extend(result.warnings)

        self._report.operations.append(operation_record)

        if result.success:
            logger.info("Operation completed", job_id=job.id, job_name=job.name)
        else:
            logger.error(
                "Operation failed",
                job_id=job.id,
                job_name=job.name,
                error=result.error,
            )

    def close(self) -> Path:
        """Close the session and save the audit report."""
        self._report.ended_at = datetime.now()

        report_path = self.config.get_report_file()
        self._report.save(report_path)

        logger.info(
            "Session closed",
            session_id=self.id,
            duration_seconds=(self._report.ended_at - self.started_at).total_seconds(),
            report_path=str(report_path),
        )

        return report_path

    def get_report(self) -> AuditReport:
        """Get the current audit report."""
        return self._report

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
