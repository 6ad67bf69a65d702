"""
WinTidy structured logging.

Provides structured output for debugging and for the audit trail of
system mutations performed during a reconciliation run.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from wintidy.core.config import LoggingConfig


_configured = False


def add_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO format timestamp to log events."""
    event_dict["timestamp"] = datetime.now().isoformat()
    return event_dict


def add_log_level(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add log level to event dict."""
    event_dict["level"] = method_name.upper()
    return event_dict


def setup_logging(config: LoggingConfig) -> None:
    """Configure structured logging for WinTidy."""
    global _configured

    if _configured:
        return

    handlers: list[logging.Handler] = []

    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, config.level))
        handlers.append(console_handler)

    if config.file_enabled:
        config.log_directory.mkdir(parents=True, exist_ok=True)
        log_file = config.log_directory / f"wintidy_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG,
        handlers=handlers,
        format="%(message)s",
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if config.json_format:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name or "wintidy")


class OperationLogger:
    """Context manager for logging operations with start/end tracking."""

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.context = context
        self.start_time: datetime | None = None

    def __enter__(self) -> OperationLogger:
        self.start_time = datetime.now()
        self.logger.info(
            f"Starting {self.operation}",
            operation=self.operation,
            **self.context,
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0

        if exc_type is not None:
            self.logger.error(
                f"Failed {self.operation}",
                operation=self.operation,
                duration_seconds=duration,
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context,
            )
        else:
            self.logger.info(
                f"Completed {self.operation}",
                operation=self.operation,
                duration_seconds=duration,
                **self.context,
            )

    def update(self, **additional_context: Any) -> None:
        """Update the operation context."""
        self.context.update(additional_context)
