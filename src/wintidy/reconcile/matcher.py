"""
Pattern matcher.

Matches inventory items against an ordered pattern list. For each
item/pattern pair the strategies are tried in precedence order:

1. Exact: case-insensitive equality with any identifier. Patterns holding
   ``*`` or ``?`` are case-insensitive globs under this strategy.
2. Normalized: equality after removing ``.``, ``-``, ``_`` and whitespace
   and case folding.
3. PartialPublisher: for ``Publisher.AppName`` patterns, one identifier
   contains both the publisher and the app name (normalized).

Each item is matched at most once, by the earliest pattern in the list.
"""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from fnmatch import fnmatchcase

from wintidy.core.models import InventoryItem, MatchRecord, MatchStrategy

_SEPARATORS = re.compile(r"[.\-_\s]+")
_WILDCARD_CHARS = ("*", "?")


def normalize_identifier(value: str) -> str:
    """Strip separators and case-fold."""
    return _SEPARATORS.sub("", value).casefold()


def is_wildcard(pattern: str) -> bool:
    return any(char in pattern for char in _WILDCARD_CHARS)


def split_publisher(pattern: str) -> tuple[str, str] | None:
    """Split ``Publisher.AppName`` into normalized parts, or None."""
    if "." not in pattern:
        return None
    publisher, _, app_name = pattern.partition(".")
    for char in _WILDCARD_CHARS:
        publisher = publisher.replace(char, "")
        app_name = app_name.replace(char, "")
    publisher, app_name = normalize_identifier(publisher), normalize_identifier(app_name)
    if not publisher or not app_name:
        return None
    return publisher, app_name


def dedupe_patterns(patterns: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    result = []
    for pattern in patterns:
        pattern = pattern.strip()
        if pattern and pattern.casefold() not in seen:
            seen.add(pattern.casefold())
            result.append(pattern)
    return tuple(result)


class _IdentifierIndex:
    """Lookup tables built once per matching pass."""

    def __init__(self, items: Sequence[InventoryItem]) -> None:
        self.items = items
        self.folded: list[list[tuple[str, str]]] = []
        self.normalized_ids: list[list[tuple[str, str]]] = []
        self.exact: dict[str, list[tuple[int, str]]] = defaultdict(list)
        self.normalized: dict[str, list[tuple[int, str]]] = defaultdict(list)

        for position, item in enumerate(items):
            folded, normalized = [], []
            for identifier in item.identifiers:
                folded_id = identifier.casefold()
                normalized_id = normalize_identifier(identifier)
                folded.append((folded_id, identifier))
                normalized.append((normalized_id, identifier))
                self.exact[folded_id].append((position, identifier))
                if normalized_id:
                    self.normalized[normalized_id].append((position, identifier))
            self.folded.append(folded)
            self.normalized_ids.append(normalized)

    def exact_hits(self, pattern: str, positions: Iterable[int]) -> dict[int, str]:
        folded_pattern = pattern.casefold()
        if is_wildcard(pattern):
            hits = {}
            for position in positions:
                for folded_id, original in self.folded[position]:
                    if fnmatchcase(folded_id, folded_pattern):
                        hits[position] = original
                        break
            return hits
        return self._first_per_item(self.exact.get(folded_pattern, ()))

    def normalized_hits(self, pattern: str) -> dict[int, str]:
        if is_wildcard(pattern):
            return {}
        normalized_pattern = normalize_identifier(pattern)
        if not normalized_pattern:
            return {}
        return self._first_per_item(self.normalized.get(normalized_pattern, ()))

    def partial_hits(self, pattern: str, positions: Iterable[int]) -> dict[int, str]:
        parts = split_publisher(pattern)
        if parts is None:
            return {}
        publisher, app_name = parts
        hits = {}
        for position in positions:
            for normalized_id, original in self.normalized_ids[position]:
                if publisher in normalized_id and app_name in normalized_id:
                    hits[position] = original
                    break
        return hits

    @staticmethod
    def _first_per_item(entries: Iterable[tuple[int, str]]) -> dict[int, str]:
        hits: dict[int, str] = {}
        for position, original in entries:
            hits.setdefault(position, original)
        return hits


class PatternMatcher:
    """Matches inventory items against an ordered pattern list."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = dedupe_patterns(patterns)

    def match(self, items: Iterable[InventoryItem]) -> list[MatchRecord]:
        """Return one MatchRecord per matched item, in input order."""
        candidates = [item for item in items if item.identifiers]
        index = _IdentifierIndex(candidates)
        assigned: dict[int, MatchRecord] = {}

        for pattern in self.patterns:
            unmatched = [p for p in range(len(candidates)) if p not in assigned]
            if not unmatched:
                break
            self._assign(assigned, pattern, MatchStrategy.EXACT,
                         index.exact_hits(pattern, unmatched), candidates)
            self._assign(assigned, pattern, MatchStrategy.NORMALIZED,
                         index.normalized_hits(pattern), candidates)
            remaining = [p for p in unmatched if p not in assigned]
            self._assign(assigned, pattern, MatchStrategy.PARTIAL_PUBLISHER,
                         index.partial_hits(pattern, remaining), candidates)

        return [assigned[position] for position in sorted(assigned)]

    def requirements(self, items: Iterable[InventoryItem]) -> dict[str, MatchRecord | None]:
        """For each pattern, the strongest item satisfying it, or None."""
        candidates = [item for item in items if item.identifiers]
        index = _IdentifierIndex(candidates)
        everything = range(len(candidates))
        result: dict[str, MatchRecord | None] = {}

        for pattern in self.patterns:
            result[pattern] = None
            for strategy, hits in (
                (MatchStrategy.EXACT, index.exact_hits(pattern, everything)),
                (MatchStrategy.NORMALIZED, index.normalized_hits(pattern)),
                (MatchStrategy.PARTIAL_PUBLISHER, index.partial_hits(pattern, everything)),
            ):
                if hits:
                    position = min(hits)
                    result[pattern] = MatchRecord(
                        pattern=pattern,
                        item=candidates[position],
                        strategy=strategy,
                        matched_identifier=hits[position],
                    )
                    break

        return result

    @staticmethod
    def _assign(
        assigned: dict[int, MatchRecord],
        pattern: str,
        strategy: MatchStrategy,
        hits: dict[int, str],
        candidates: Sequence[InventoryItem],
    ) -> None:
        for position, identifier in hits.items():
            if position in assigned:
                continue
            assigned[position] = MatchRecord(
                pattern=pattern,
                item=candidates[position],
                strategy=strategy,
                matched_identifier=identifier,
            )


def match(items: Iterable[InventoryItem], patterns: Iterable[str]) -> list[MatchRecord]:
    """Match items against patterns."""
    return PatternMatcher(patterns).match(items)
