"""
Snapshot store.

Persists the identifiers observed in one run so the next run can diff
against them. Writes are atomic: a crash mid-save leaves the previous
snapshot intact. Anything unreadable loads as "no snapshot".
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, ValidationError

from wintidy.core.errors import SnapshotCorruptError, SnapshotPersistenceError
from wintidy.core.logging import get_logger
from wintidy.core.models import CanonicalIdentifierSet

if TYPE_CHECKING:
    from wintidy.core.config import WinTidyConfig

logger = get_logger(__name__)


class SnapshotKind(Enum):
    """Independent snapshot per reconciliation purpose."""

    BLOATWARE = "bloatware"
    ESSENTIALS = "essentials"


class SnapshotDocument(BaseModel):
    """On-disk snapshot format."""

    version: Literal[1] = 1
    kind: str
    saved_at: datetime = Field(default_factory=datetime.now)
    identifiers: list[str] = Field(default_factory=list)


class SnapshotStore:
    """Single-writer store for one kind of snapshot."""

    def __init__(self, path: Path, kind: SnapshotKind) -> None:
        self.path = path
        self.kind = kind

    @classmethod
    def for_kind(cls, config: WinTidyConfig, kind: SnapshotKind) -> SnapshotStore:
        return cls(config.snapshot_path(kind), kind)

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> SnapshotDocument:
        """Read and validate the snapshot, raising SnapshotCorruptError."""
        try:
            raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw)
            if isinstance(data, list):
                data = {"kind": self.kind.value, "identifiers": data}
            return SnapshotDocument.model_validate(data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            raise SnapshotCorruptError(f"{self.path}: {e}") from e

    def load(self) -> CanonicalIdentifierSet | None:
        """Load the previous identifier set, or None for a first run."""
        if not self.exists:
            logger.info("No previous snapshot", kind=self.kind.value, path=str(self.path))
            return None

        try:
            document = self.read()
        except SnapshotCorruptError as e:
            logger.warning(
                "Snapshot unreadable, treating as first run",
                kind=self.kind.value,
                error=str(e),
            )
            return None

        if document.kind != self.kind.value:
            logger.warning(
                "Snapshot belongs to a different purpose, treating as first run",
                expected=self.kind.value,
                found=document.kind,
            )
            return None

        identifiers = CanonicalIdentifierSet(document.identifiers)
        logger.debug(
            "Loaded snapshot",
            kind=self.kind.value,
            identifiers=len(identifiers),
            saved_at=document.saved_at.isoformat(),
        )
        return identifiers

    def save(self, identifiers: CanonicalIdentifierSet) -> None:
        """Atomically replace the snapshot with ``identifiers``."""
        document = SnapshotDocument(kind=self.kind.value, identifiers=identifiers.to_list())
        payload = document.model_dump_json(indent=2)

        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise SnapshotPersistenceError(f"Failed to write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        logger.info(
            "Snapshot saved",
            kind=self.kind.value,
            identifiers=len(identifiers),
            path=str(self.path),
        )

    def clear(self) -> bool:
        """Delete the snapshot so the next run processes everything."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Snapshot cleared", kind=self.kind.value, path=str(self.path))
        return True
