"""
Inventory source interface.

A source is a read-only provider of raw records from one origin. Sources
never raise for "unavailable": the failure is logged and the source
contributes nothing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from wintidy.core.errors import SourceUnavailableError
from wintidy.core.logging import get_logger
from wintidy.core.models import Origin, RawRecord

if TYPE_CHECKING:
    from wintidy.platform.base import CommandResult, CommandRunner

logger = get_logger(__name__)


@dataclass
class SourceResult:
    """Records from one source plus whether the source could be queried."""

    name: str
    origin: Origin
    records: list[RawRecord] = field(default_factory=list)
    available: bool = True
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "origin": self.origin.value,
            "records": len(self.records),
            "available": self.available,
            "error": self.error,
        }


class InventorySource(ABC):
    """Base class for all inventory sources."""

    origin: Origin
    name: str = ""

    def __init__(self, runner: CommandRunner | None = None, timeout: int = 120) -> None:
        self.runner = runner
        self.timeout = timeout

    @abstractmethod
    def query(self) -> Iterable[dict[str, Any]]:
        """
        Return raw rows for this origin.

        Raise SourceUnavailableError (or anything else) when the origin
        cannot be read.
        """

    def collect_result(self) -> SourceResult:
        """Collect records, capturing unavailability instead of raising."""
        source_name = self.name or self.origin.value
        try:
            rows = list(self.query())
        except Exception as e:
            logger.warning(
                "Inventory source unavailable",
                source=source_name,
                error=str(e),
            )
            return SourceResult(
                name=source_name,
                origin=self.origin,
                available=False,
                error=str(e),
            )

        records = [RawRecord(origin=self.origin, fields=row, source=source_name) for row in rows]
        logger.debug("Inventory source collected", source=source_name, records=len(records))
        return SourceResult(name=source_name, origin=self.origin, records=records)

    def collect(self) -> list[RawRecord]:
        """Collect raw records; an unavailable source yields an empty list."""
        return self.collect_result().records

    def run(self, command: list[str]) -> CommandResult:
        """Run a query command, raising SourceUnavailableError on failure."""
        if self.runner is None:
            raise SourceUnavailableError(f"{self.origin.value}: no command runner")
        result = self.runner.run_command(command, timeout=self.timeout)
        if not result.success:
            detail = (result.stderr or result.stdout).strip()[:200]
            raise SourceUnavailableError(
                f"{command[0]} exited with {result.returncode}: {detail}"
            )
        return result
