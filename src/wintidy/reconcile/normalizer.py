"""
Inventory normalizer.

Turns raw source rows into InventoryItems using a per-origin field profile.
Records from different sources describing the same software are kept
separate; matching and diffing work over the union of their identifiers.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from wintidy.core.logging import get_logger
from wintidy.core.models import InventoryItem, Origin, RawRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class FieldProfile:
    """Which raw fields name, identify and describe an item of one origin."""

    name_fields: tuple[str, ...]
    id_fields: tuple[str, ...] = ()
    metadata_fields: Mapping[str, str] = field(default_factory=dict)
    derived_ids: tuple[Callable[[Mapping[str, Any]], str], ...] = ()


def _task_uri(fields: Mapping[str, Any]) -> str:
    path, name = _text(fields.get("TaskPath")), _text(fields.get("TaskName"))
    return f"{path}{name}" if path and name else ""


def _startup_value_path(fields: Mapping[str, Any]) -> str:
    location, name = _text(fields.get("Location")), _text(fields.get("Name"))
    return f"{location}\\{name}" if location and name else ""


FIELD_PROFILES: dict[Origin, FieldProfile] = {
    Origin.WINGET: FieldProfile(
        name_fields=("Name",),
        id_fields=("Id",),
        metadata_fields={"package_id": "Id", "version": "Version", "source": "Source"},
    ),
    Origin.CHOCOLATEY: FieldProfile(
        name_fields=("Title",),
        id_fields=("Id",),
        metadata_fields={"package_id": "Id", "version": "Version"},
    ),
    Origin.APPX_PACKAGE: FieldProfile(
        name_fields=("Name",),
        id_fields=("PackageFullName", "PackageFamilyName"),
        metadata_fields={
            "package_full_name": "PackageFullName",
            "package_family_name": "PackageFamilyName",
            "publisher": "Publisher",
            "version": "Version",
        },
    ),
    Origin.PROVISIONED_PACKAGE: FieldProfile(
        name_fields=("DisplayName",),
        id_fields=("PackageName",),
        metadata_fields={
            "package_name": "PackageName",
            "display_name": "DisplayName",
            "version": "Version",
        },
    ),
    Origin.REGISTRY_UNINSTALL: FieldProfile(
        name_fields=("DisplayName",),
        id_fields=("PSChildName",),
        metadata_fields={
            "key_name": "PSChildName",
            "key_path": "PSPath",
            "publisher": "Publisher",
            "version": "DisplayVersion",
            "uninstall_string": "UninstallString",
            "quiet_uninstall_string": "QuietUninstallString",
        },
    ),
    Origin.WINDOWS_FEATURE: FieldProfile(
        name_fields=("FeatureName",),
        metadata_fields={"feature_name": "FeatureName", "state": "State"},
    ),
    Origin.SERVICE: FieldProfile(
        name_fields=("DisplayName",),
        id_fields=("Name",),
        metadata_fields={
            "service_name": "Name",
            "start_type": "StartType",
            "status": "Status",
            "binary_path": "BinaryPath",
        },
    ),
    Origin.SCHEDULED_TASK: FieldProfile(
        name_fields=("TaskName",),
        metadata_fields={"task_name": "TaskName", "task_path": "TaskPath", "state": "State"},
        derived_ids=(_task_uri,),
    ),
    Origin.START_MENU_SHORTCUT: FieldProfile(
        name_fields=("Name",),
        id_fields=("FullName",),
        metadata_fields={"path": "FullName", "folder": "Folder"},
    ),
    Origin.STARTUP_ENTRY: FieldProfile(
        name_fields=("Name",),
        metadata_fields={"location": "Location", "value_name": "Name", "command": "Command"},
        derived_ids=(_startup_value_path,),
    ),
}


@dataclass
class NormalizationResult:
    """Normalized items plus the number of unidentifiable records dropped."""

    items: list[InventoryItem] = field(default_factory=list)
    skipped: int = 0


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return ""
    return str(value).strip()


def normalize_record(record: RawRecord) -> InventoryItem | None:
    """Build one InventoryItem, or None if the record has no identifier."""
    profile = FIELD_PROFILES[record.origin]
    fields = record.fields

    primary = next(
        (text for text in (_text(fields.get(name)) for name in profile.name_fields) if text),
        "",
    )

    candidates = [_text(fields.get(name)) for name in profile.id_fields]
    candidates.extend(derive(fields) for derive in profile.derived_ids)
    alternates = [c for c in candidates if c]

    if not primary and alternates:
        primary = alternates[0]
    if not primary:
        return None

    primary_key = primary.casefold()
    alternate_set = frozenset(a for a in alternates if a.casefold() != primary_key)

    metadata = {
        key: text
        for key, source_field in profile.metadata_fields.items()
        if (text := _text(fields.get(source_field)))
    }

    return InventoryItem(
        primary_name=primary,
        alternate_identifiers=alternate_set,
        origin=record.origin,
        metadata=metadata,
    )


def normalize_records(batches: Iterable[Iterable[RawRecord]]) -> NormalizationResult:
    """Normalize raw records from every source, dropping unidentifiable ones."""
    result = NormalizationResult()

    for batch in batches:
        for record in batch:
            item = normalize_record(record)
            if item is None:
                result.skipped += 1
                logger.debug(
                    "Skipped record without identifiers",
                    origin=record.origin.value,
                    source=record.source,
                )
                continue
            result.items.append(item)

    if result.skipped:
        logger.info("Dropped unidentifiable records", skipped=result.skipped)

    result.items = link_uninstall_entries(result.items)
    return result


def normalize(batches: Iterable[Iterable[RawRecord]]) -> list[InventoryItem]:
    """Normalize raw records into canonical inventory items."""
    return normalize_records(batches).items


UNINSTALL_FIELDS = ("uninstall_string", "quiet_uninstall_string", "key_name")


def _arp_key_name(package_id: str) -> str:
    # winget names unmanaged programs ARP\<Scope>\<Arch>\<uninstall key>
    parts = package_id.split("\\")
    if len(parts) >= 2 and parts[0].casefold() == "arp":
        return parts[-1]
    return ""


def link_uninstall_entries(items: list[InventoryItem]) -> list[InventoryItem]:
    """
    Copy Add/Remove Programs uninstall data onto package-manager items.

    A winget or Chocolatey item is linked to the uninstall key named by its
    winget ``ARP\\...`` id, or else to the uninstall entry with the same
    display name. Identifiers are left untouched; only metadata is added.
    """
    by_key: dict[str, InventoryItem] = {}
    by_name: dict[str, InventoryItem] = {}
    for item in items:
        if item.origin is not Origin.REGISTRY_UNINSTALL:
            continue
        key_name = item.metadata.get("key_name")
        if key_name:
            by_key.setdefault(key_name.casefold(), item)
        by_name.setdefault(item.primary_name.casefold(), item)

    linked = []
    for item in items:
        if not item.origin.is_package_manager:
            linked.append(item)
            continue

        arp_key = _arp_key_name(item.metadata.get("package_id", ""))
        entry = by_key.get(arp_key.casefold()) if arp_key else None
        if entry is None:
            entry = by_name.get(item.primary_name.casefold())

        extra = {}
        if entry is not None:
            extra = {k: entry.metadata[k] for k in UNINSTALL_FIELDS if entry.metadata.get(k)}
        elif arp_key:
            extra = {"key_name": arp_key}

        metadata = {**extra, **item.metadata}
        if metadata != dict(item.metadata):
            item = replace(item, metadata=metadata)
        linked.append(item)

    return linked
