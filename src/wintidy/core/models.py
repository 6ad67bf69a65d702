"""
WinTidy data models.

Defines the inventory, diff, match and outcome structures shared by the
reconciliation pipeline.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class Origin(Enum):
    """Where an inventory item was observed."""

    WINGET = "winget"
    CHOCOLATEY = "chocolatey"
    APPX_PACKAGE = "appx_package"
    PROVISIONED_PACKAGE = "provisioned_package"
    REGISTRY_UNINSTALL = "registry_uninstall"
    WINDOWS_FEATURE = "windows_feature"
    SERVICE = "service"
    SCHEDULED_TASK = "scheduled_task"
    START_MENU_SHORTCUT = "start_menu_shortcut"
    STARTUP_ENTRY = "startup_entry"

    @classmethod
    def from_string(cls, value: str) -> Origin:
        """Create Origin from its value or name, case-insensitively."""
        value_lower = value.lower().strip().replace("-", "_")
        for origin in cls:
            if origin.value == value_lower or origin.name.lower() == value_lower:
                return origin
        raise ValueError(f"Unknown origin: {value}")

    @property
    def is_package_manager(self) -> bool:
        return self in (Origin.WINGET, Origin.CHOCOLATEY)


class ActionMode(Enum):
    """Direction of convergence for an item."""

    REMOVE = "remove"
    INSTALL = "install"


class MatchStrategy(Enum):
    """How a pattern matched an item, in precedence order."""

    EXACT = auto()
    NORMALIZED = auto()
    PARTIAL_PUBLISHER = auto()
    # no installed item satisfies the pattern; the item is synthesized for installation
    MISSING = auto()


class OutcomeStatus(Enum):
    """Terminal state of one item's action."""

    SUCCESS = auto()
    PARTIAL = auto()
    FAILED = auto()
    SKIPPED = auto()


@dataclass(frozen=True)
class RawRecord:
    """One row returned by an inventory source, before normalization."""

    origin: Origin
    fields: Mapping[str, Any]
    source: str = ""


@dataclass(frozen=True)
class InventoryItem:
    """One observed installed entity."""

    primary_name: str
    alternate_identifiers: frozenset[str] = frozenset()
    origin: Origin = Origin.REGISTRY_UNINSTALL
    metadata: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def identifiers(self) -> tuple[str, ...]:
        """Primary name first, then alternates in a stable order."""
        ids = [self.primary_name] if self.primary_name else []
        ids.extend(sorted(i for i in self.alternate_identifiers if i))
        return tuple(ids)

    @property
    def display_name(self) -> str:
        ids = self.identifiers
        return ids[0] if ids else "(unnamed)"

    @property
    def key(self) -> str:
        """Origin-qualified identity over every identifier, used to act on each entity at most once."""
        folded = sorted({i.casefold() for i in self.identifiers})
        return f"{self.origin.value}:{'|'.join(folded) or self.display_name.casefold()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_name": self.primary_name,
            "alternate_identifiers": sorted(self.alternate_identifiers),
            "origin": self.origin.value,
            "metadata": dict(self.metadata),
        }


class CanonicalIdentifierSet:
    """
    Case-insensitive set of identifier strings.

    Membership and equality compare case-folded values; iteration yields
    the first spelling that was added.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[str] = ()) -> None:
        self._values: dict[str, str] = {}
        self.update(values)

    @classmethod
    def from_items(cls, items: Iterable[InventoryItem]) -> CanonicalIdentifierSet:
        result = cls()
        for item in items:
            result.update(item.identifiers)
        return result

    @staticmethod
    def fold(value: str) -> str:
        return value.strip().casefold()

    def add(self, value: str) -> None:
        value = value.strip()
        if value:
            self._values.setdefault(value.casefold(), value)

    def update(self, values: Iterable[str]) -> None:
        for value in values:
            self.add(value)

    def keys(self) -> set[str]:
        return set(self._values)

    def difference(self, other: CanonicalIdentifierSet) -> CanonicalIdentifierSet:
        result = CanonicalIdentifierSet()
        result._values = {k: v for k, v in self._values.items() if k not in other._values}
        return result

    def intersection(self, other: CanonicalIdentifierSet) -> CanonicalIdentifierSet:
        result = CanonicalIdentifierSet()
        result._values = {k: v for k, v in self._values.items() if k in other._values}
        return result

    def union(self, other: CanonicalIdentifierSet) -> CanonicalIdentifierSet:
        result = CanonicalIdentifierSet(self)
        result.update(other)
        return result

    def isdisjoint(self, other: CanonicalIdentifierSet) -> bool:
        return self._values.keys().isdisjoint(other._values.keys())

    def to_list(self) -> list[str]:
        return sorted(self._values.values(), key=str.casefold)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, str) and self.fold(value) in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values.values()))

    def __len__(self) -> int:
        return len(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CanonicalIdentifierSet):
            return self._values.keys() == other._values.keys()
        if isinstance(other, (set, frozenset)):
            return self._values.keys() == {self.fold(v) for v in other}
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"CanonicalIdentifierSet({self.to_list()!r})"


@dataclass
class DiffResult:
    """Set difference between this run's identifiers and the previous snapshot."""

    newly_observed: CanonicalIdentifierSet
    previously_observed: CanonicalIdentifierSet  # seen last run, gone now
    unchanged: CanonicalIdentifierSet
    first_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "first_run": self.first_run,
            "newly_observed": len(self.newly_observed),
            "previously_observed": len(self.previously_observed),
            "unchanged": len(self.unchanged),
        }


@dataclass(frozen=True)
class MatchRecord:
    """A pattern that matched one inventory item, and how."""

    pattern: str
    item: InventoryItem
    strategy: MatchStrategy
    matched_identifier: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "item": self.item.display_name,
            "origin": self.item.origin.value,
            "strategy": self.strategy.name,
            "matched_identifier": self.matched_identifier,
        }


@dataclass
class MethodAttempt:
    """One removal/install method attempt and its verification."""

    method: str
    returncode: int | None = None
    reported_success: bool = False
    verified: bool = False
    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "returncode": self.returncode,
            "reported_success": self.reported_success,
            "verified": self.verified,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class ActionOutcome:
    """Result of converging one item."""

    item: InventoryItem
    mode: ActionMode
    status: OutcomeStatus
    method_used: str | None = None
    error: str | None = None
    pattern: str | None = None
    attempts: list[MethodAttempt] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "item": self.item.display_name,
            "origin": self.item.origin.value,
            "mode": self.mode.value,
            "status": self.status.name,
            "method_used": self.method_used,
            "error": self.error,
            "pattern": self.pattern,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class RunSummary:
    """Aggregate counts for one reconciliation pass."""

    succeeded: int = 0
    failed: int = 0
    partial: int = 0
    skipped: int = 0
    methods: Counter[str] = field(default_factory=Counter)
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.partial + self.skipped

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "partial": self.partial,
            "skipped": self.skipped,
            "methods": dict(self.methods),
            "failures": self.failures,
        }
