"""
WinTidy Job Runner.

Runs reconciliation jobs with progress tracking, cooperative cancellation
and error capture.
"""

from __future__ import annotations

import threading
import traceback
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from wintidy.core.logging import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


class JobStatus(Enum):
    """Status of a job execution."""

    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()


@dataclass
class JobProgress:
    """Progress information for a running job."""

    current: int = 0
    total: int = 0
    message: str = ""
    stage: str = ""

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return min(100.0, (self.current / self.total) * 100)


@dataclass
class JobResult(Generic[T]):
    """Result of a completed job."""

    success: bool
    data: T | None = None
    error: str | None = None
    error_traceback: str | None = None
    warnings: list[str] = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None


class JobCancelledException(Exception):
    """Raised when a job is cancelled; carries what the job finished before stopping."""

    def __init__(self, message: str = "Job was cancelled", partial: Any = None) -> None:
        super().__init__(message)
        self.partial = partial


class JobContext:
    """Context passed to job execution for progress and cancellation."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._progress = JobProgress()
        self._progress_callbacks: list[Callable[[JobProgress], None]] = []
        self._lock = threading.Lock()
        self._warnings: list[str] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Request cancellation of the job."""
        self._cancelled.set()

    def check_cancelled(self, partial: Any = None) -> None:
        """Raise JobCancelledException, carrying ``partial``, if cancellation was requested."""
        if self.is_cancelled:
            raise JobCancelledException(partial=partial)

    def update_progress(
        self,
        current: int | None = None,
        total: int | None = None,
        message: str | None = None,
        stage: str | None = None,
        advance: int = 0,
    ) -> None:
        """Update progress information."""
        with self._lock:
            if current is not None:
                self._progress.current = current
            if total is not None:
                self._progress.total = total
            if message is not None:
                self._progress.message = message
            if stage is not None:
                self._progress.stage = stage
            self._progress.current += advance

            progress_copy = JobProgress(
                current=self._progress.current,
                total=self._progress.total,
                message=self._progress.message,
                stage=self._progress.stage,
            )

        # Notify callbacks outside lock
        for callback in self._progress_callbacks:
            try:
                callback(progress_copy)
            except Exception as e:
                logger.warning("Progress callback error", error=str(e))

    def add_progress_callback(self, callback: Callable[[JobProgress], None]) -> None:
        """Add a callback to be notified of progress updates."""
        self._progress_callbacks.append(callback)

    def get_progress(self) -> JobProgress:
        """Get current progress snapshot."""
        with self._lock:
            return JobProgress(
                current=self._progress.current,
                total=self._progress.total,
                message=self._progress.message,
                stage=self._progress.stage,
            )

    def add_warning(self, warning: str) -> None:
        """Add a warning to the job result."""
        with self._lock:
            self._warnings.append(warning)

    def get_warnings(self) -> list[str]:
        """Get all warnings."""
        with self._lock:
            return self._warnings.copy()


class Job(ABC, Generic[T]):
    """Base class for all WinTidy jobs."""

    def __init__(self, name: str, description: str) -> None:
        self.id = str(uuid.uuid4())
        self.name = name
        self.description = description
        self.status = JobStatus.PENDING
        self.context = JobContext()
        self.result: JobResult[T] | None = None
        self.created_at = datetime.now()
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None

    @abstractmethod
    def execute(self, context: JobContext) -> T:
        """Execute the job. Subclasses must implement this."""

    @abstractmethod
    def get_plan(self) -> str:
        """Return a human-readable execution plan."""

    def validate(self) -> list[str]:
        """
        Validate job parameters before execution.
        Returns a list of validation errors (empty if valid).
        """
        return []


class JobRunner:
    """Executes jobs with proper lifecycle management."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job[Any]] = {}
        self._running_threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def submit(self, job: Job[T]) -> str:
        """Submit a job for execution. Returns job ID."""
        with self._lock:
            self._jobs[job.id] = job

        logger.info("Job submitted", job_id=job.id, job_name=job.name)
        return job.id

    def start(self, job_id: str) -> None:
        """Start executing a submitted job on a background thread."""
        job = self._get_job(job_id)

        if self._fail_validation(job):
            return

        thread = threading.Thread(
            target=self._execute_job,
            args=(job,),
            name=f"job-{job_id[:8]}",
            daemon=True,
        )

        with self._lock:
            self._running_threads[job_id] = thread

        thread.start()

    def run_sync(self, job: Job[T]) -> JobResult[T]:
        """Run a job synchronously and return result."""
        self.submit(job)

        if self._fail_validation(job):
            return job.result  # type: ignore[return-value]

        self._execute_job(job)
        return job.result  # type: ignore[return-value]

    def _fail_validation(self, job: Job[Any]) -> bool:
        errors = job.validate()
        if not errors:
            return False

        now = datetime.now()
        job.status = JobStatus.FAILED
        job.result = JobResult(
            success=False,
            error="Validation failed: " + "; ".join(errors),
            start_time=now,
            end_time=now,
        )
        return True

    def _execute_job(self, job: Job[Any]) -> None:
        """Internal job execution."""
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()

        logger.info("Job started", job_id=job.id, job_name=job.name)

        try:
            result_data = job.execute(job.context)
            job.status = JobStatus.COMPLETED
            job.result = JobResult(
                success=True,
                data=result_data,
                warnings=job.context.get_warnings(),
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.info(
                "Job completed",
                job_id=job.id,
                job_name=job.name,
                duration_seconds=job.result.duration_seconds,
            )

        except JobCancelledException as e:
            job.status = JobStatus.CANCELLED
            job.result = JobResult(
                success=False,
                data=e.partial,
                error=str(e),
                warnings=job.context.get_warnings(),
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.info("Job cancelled", job_id=job.id, job_name=job.name)

        except Exception as e:
            job.status = JobStatus.FAILED
            job.result = JobResult(
                success=False,
                error=str(e),
                error_traceback=traceback.format_exc(),
                warnings=job.context.get_warnings(),
                start_time=job.started_at,
                end_time=datetime.now(),
            )
            logger.error(
                "Job failed",
                job_id=job.id,
                job_name=job.name,
                error=str(e),
            )

        finally:
            job.completed_at = datetime.now()

            with self._lock:
                self._running_threads.pop(job.id, None)

    def cancel(self, job_id: str) -> bool:
        """Request cancellation of a job."""
        job = self._get_job(job_id)

        if job.status not in (JobStatus.PENDING, JobStatus.RUNNING):
            return False

        job.context.cancel()
        logger.info("Job cancellation requested", job_id=job_id)
        return True

    def get_job(self, job_id: str) -> Job[Any] | None:
        """Get a job by ID."""
        return self._jobs.get(job_id)

    def get_status(self, job_id: str) -> JobStatus | None:
        """Get the status of a job."""
        job = self._jobs.get(job_id)
        return job.status if job else None

    def wait(self, job_id: str, timeout: float | None = None) -> JobResult[Any] | None:
        """Wait for a job to complete."""
        with self._lock:
            thread = self._running_threads.get(job_id)
        if thread:
            thread.join(timeout)

        job = self._jobs.get(job_id)
        return job.result if job else None

    def _get_job(self, job_id: str) -> Job[Any]:
        """Get a job or raise KeyError."""
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(f"Job not found: {job_id}")
        return job
