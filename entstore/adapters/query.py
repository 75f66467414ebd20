"""
Predicate evaluation for adapters that filter documents in Python.

Supported predicate forms:
    {"field": value}                          equality
    {"field": {"$ne": v, "$gt": v, ...}}      operators, combined with AND
    {"$or": [{...}, {...}]}                   any sub-filter matches
    {"$and": [{...}, {...}]}                  every sub-filter matches

Operators: $eq, $ne, $gt, $gte, $lt, $lte, $in, $nin.
Dotted field names address nested values ("address.state").

Pure functions with no I/O.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Iterable, Mapping

from ..errors import InvalidFilterError
from ..filter_query import DESCENDING

_MISSING = object()


def get_path(document: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path from a nested document."""
    node: Any = document
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]
    return node


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, operand: Any) -> bool:
        if value is None or value is _MISSING:
            return False
        try:
            return compare(value, operand)
        except TypeError:
            return False

    return check


def _membership(value: Any, operand: Any) -> bool:
    if not isinstance(operand, (list, tuple, set, frozenset)):
        raise InvalidFilterError(f"$in/$nin expects a list, got {type(operand).__name__}")
    return value in operand


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": lambda value, operand: value == operand,
    "$ne": lambda value, operand: value != operand,
    "$gt": _ordered(lambda value, operand: value > operand),
    "$gte": _ordered(lambda value, operand: value >= operand),
    "$lt": _ordered(lambda value, operand: value < operand),
    "$lte": _ordered(lambda value, operand: value <= operand),
    "$in": _membership,
    "$nin": lambda value, operand: not _membership(value, operand),
}


def is_operator_condition(condition: Any) -> bool:
    """True for {"$op": operand, ...} mappings."""
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(str(key).startswith("$") for key in condition)
    )


def match_document(document: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    """Evaluate predicate fields against a document.

    Raises:
        InvalidFilterError: On unknown operators or malformed operands
    """
    for key, condition in query.items():
        if key in ("$or", "$and"):
            if not isinstance(condition, (list, tuple)):
                raise InvalidFilterError(f"{key} expects a list of filters", key)
            results = (match_document(document, sub) for sub in condition)
            if key == "$or" and not any(results):
                return False
            if key == "$and" and not all(results):
                return False
            continue

        if str(key).startswith("$"):
            raise InvalidFilterError(f"Unsupported filter key '{key}'", key)

        value = get_path(document, key)

        if is_operator_condition(condition):
            for operator, operand in condition.items():
                check = OPERATORS.get(operator)
                if check is None:
                    raise InvalidFilterError(f"Unsupported operator '{operator}'", key)
                if not check(value, operand):
                    return False
        elif value != condition:
            return False

    return True


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts first, then numbers, then strings, then everything else
    if value is None:
        return (0, 0)
    if isinstance(value, (bool, int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, repr(value))


def sort_documents(documents: Iterable[Mapping[str, Any]], sort_spec: list[tuple[str, int]]) -> list[Any]:
    """Stable multi-key sort; later keys break ties of earlier ones."""
    result = list(documents)
    for path, direction in reversed(sort_spec):
        result.sort(
            key=lambda doc: _sort_key(get_path(doc, path)),
            reverse=direction == DESCENDING,
        )
    return result


def project_document(document: Mapping[str, Any], fields: list[str]) -> dict[str, Any]:
    """Copy only the selected dotted paths (plus ``id``) from a document."""
    if not fields:
        return copy.deepcopy(dict(document))

    projected: dict[str, Any] = {}
    if "id" in document:
        projected["id"] = document["id"]

    for path in fields:
        value = get_path(document, path, _MISSING)
        if value is _MISSING:
            continue
        parts = path.split(".")
        node = projected
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = copy.deepcopy(value)

    return projected
