"""
Filter parsing shared by the datastore and every adapter.

A raw filter mixes two kinds of keys:
- control metadata: $select, $limit, $offset, $startCursor, $endCursor, $sort
- predicate fields: entity field conditions, e.g. {"age": {"$gt": 3}}

Pagination, sort and projection are handled the same way everywhere, while
each adapter translates predicate fields into its own query language.

Pure functions with no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import InvalidFilterError

CONTROL_KEYS = ("$select", "$limit", "$offset", "$startCursor", "$endCursor", "$sort")

ASCENDING = 1
DESCENDING = -1


def _parse_non_negative_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidFilterError(f"{key} must be an integer, got bool", key)
    try:
        return abs(int(value))
    except (TypeError, ValueError):
        raise InvalidFilterError(f"{key} must be an integer, got {value!r}", key)


@dataclass(frozen=True)
class FilterQuery:
    """A filter split into control metadata and predicate fields.

    Attributes:
        filters: Control metadata present in the raw filter
        query: Predicate fields only
    """

    filters: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)

    def to_filter(self) -> dict[str, Any]:
        """Recombine into a single adapter-facing filter."""
        return {**self.query, **self.filters}


def parse_filter_query(raw: Mapping[str, Any] | None) -> FilterQuery:
    """Split a raw filter into control metadata and predicate fields.

    ``$limit`` and ``$offset`` are coerced to non-negative integers. A
    ``$limit`` of 0 means "no limit" in every bundled adapter. Absent
    control keys are dropped. The input is never mutated.

    Args:
        raw: Raw filter mapping (None is treated as empty)

    Returns:
        FilterQuery with ``filters`` and ``query``

    Raises:
        InvalidFilterError: If $limit/$offset cannot be read as an integer

    Example:
        >>> parse_filter_query({"name": "x", "$limit": "10", "$sort": "-name"})
        FilterQuery(filters={'$limit': 10, '$sort': '-name'}, query={'name': 'x'})
    """
    raw = raw or {}
    filters: dict[str, Any] = {}

    for key in CONTROL_KEYS:
        value = raw.get(key)
        if value is None:
            continue
        if key in ("$limit", "$offset"):
            value = _parse_non_negative_int(key, value)
        filters[key] = value

    query = {key: value for key, value in raw.items() if key not in CONTROL_KEYS}
    return FilterQuery(filters=filters, query=query)


def parse_select(select: str | None) -> list[str]:
    """Parse a comma separated ``$select`` into field paths."""
    if not select:
        return []
    return [part.strip() for part in select.split(",") if part.strip()]


def parse_sort(sort: str | None) -> list[tuple[str, int]]:
    """Parse a comma separated ``$sort`` into (field, direction) pairs.

    ``-field`` sorts descending; ``+field`` and bare ``field`` ascending.
    """
    result: list[tuple[str, int]] = []
    if not sort:
        return result

    for token in sort.split(","):
        token = token.strip()
        if not token:
            continue
        if token.startswith("-"):
            result.append((token[1:], DESCENDING))
        elif token.startswith("+"):
            result.append((token[1:], ASCENDING))
        else:
            result.append((token, ASCENDING))
    return result
