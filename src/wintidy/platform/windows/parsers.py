"""
Windows output parsers.

Parsers for PowerShell JSON, winget tables and Chocolatey output.
"""

from __future__ import annotations

import json
import re
from typing import Any

_SEPARATOR = re.compile(r"^-{10,}\s*$")
_POSITIONAL_COLUMNS = ("Name", "Id", "Version")


def parse_powershell_json(output: str) -> list[dict[str, Any]]:
    """Parse JSON output from PowerShell commands."""
    output = output.strip()
    if not output:
        return []

    try:
        data = json.loads(output)
        if isinstance(data, list):
            return [row for row in data if isinstance(row, dict)]
        if isinstance(data, dict):
            return [data]
        return []
    except json.JSONDecodeError:
        return []


def _clean_line(line: str) -> str:
    # winget redraws its progress spinner with carriage returns
    return line.rsplit("\r", 1)[-1].rstrip()


def _column_starts(header: str) -> list[int]:
    starts = []
    for index, char in enumerate(header):
        if char != " " and (index == 0 or header[index - 1] == " "):
            starts.append(index)
    return starts


def parse_winget_table(output: str) -> list[dict[str, str]]:
    """
    Parse the fixed-width table printed by ``winget list``.

    Column boundaries come from the header line preceding the dashed
    separator. The first three columns are always exposed as Name, Id and
    Version regardless of the display language. Rows without an Id and
    summary lines are dropped.
    """
    lines = [_clean_line(line) for line in output.splitlines()]

    separator_index = next(
        (i for i, line in enumerate(lines) if _SEPARATOR.match(line)),
        None,
    )
    if separator_index is None or separator_index == 0:
        return []

    header = lines[separator_index - 1]
    starts = _column_starts(header)
    if len(starts) < 2:
        return []

    names = [header[start:].split(" ", 1)[0] for start in starts]
    for position, name in enumerate(_POSITIONAL_COLUMNS[: len(names)]):
        names[position] = name

    rows: list[dict[str, str]] = []
    for line in lines[separator_index + 1 :]:
        # free text such as "2 upgrades available." does not break at the Id column
        if not line.strip() or line[starts[1] - 1 : starts[1]] != " ":
            continue
        row: dict[str, str] = {}
        for index, start in enumerate(starts):
            end = starts[index + 1] if index + 1 < len(starts) else None
            row[names[index]] = line[start:end].strip()
        if row.get("Id"):
            rows.append(row)

    return rows


def parse_choco_limit_output(output: str) -> list[dict[str, str]]:
    """Parse ``choco list --limit-output`` lines of the form ``name|version``."""
    rows = []
    for line in output.splitlines():
        line = line.strip()
        if "|" not in line:
            continue
        name, _, version = line.partition("|")
        if name:
            rows.append({"Id": name.strip(), "Version": version.strip()})
    return rows


def parse_bool_output(output: str) -> bool:
    """Interpret the last line of PowerShell output as a boolean."""
    lines = [line.strip() for line in output.strip().splitlines() if line.strip()]
    return bool(lines) and lines[-1].lower() == "true"


def parse_state_output(output: str, inactive: tuple[str, ...] = ("disabled",)) -> bool:
    """
    Interpret a printed state as "still active".

    Empty output means the entity does not exist.
    """
    state = output.strip().lower()
    if not state:
        return False
    return state not in inactive


def winget_output_lists(output: str, package_id: str) -> bool:
    """Whether ``winget list --id`` output contains the package."""
    return any(
        row.get("Id", "").casefold() == package_id.casefold()
        for row in parse_winget_table(output)
    )


def choco_output_lists(output: str, package_id: str) -> bool:
    """Whether ``choco list --exact`` output contains the package."""
    return any(
        row["Id"].casefold() == package_id.casefold()
        for row in parse_choco_limit_output(output)
    )
