"""
WinTidy Core - Backend service layer.

Contains configuration, data models, job execution, logging and session
management shared by the reconciliation pipeline.
"""

from wintidy.core.config import WinTidyConfig
from wintidy.core.job import Job, JobRunner, JobStatus, JobResult
from wintidy.core.session import Session
from wintidy.core.logging import get_logger, setup_logging

__all__ = [
    "WinTidyConfig",
    "Job",
    "JobRunner",
    "JobStatus",
    "JobResult",
    "Session",
    "get_logger",
    "setup_logging",
]
