"""
Update normalization.

Callers may express an update as bare fields, as explicit ``$set``/``$inc``
operators, or as a mix of both. convert_update() reduces all of them to one
canonical descriptor:

    {"$set": {<dotted path>: value}, "$inc": {<dotted path>: number}}

Storage engines want flat mutation paths while JSON schema validators want
nested objects, so the conversion also returns a nested ``validate`` view of
the same change. This module is the only place the two are reconciled.

Examples:
    {"name": "a", "state": "b"}
        update:   {"$set": {"name": "a", "state": "b"}}
        validate: {"name": "a", "state": "b"}

    {"name": "a", "$set": {"suburb": "c"}, "$inc": {"total": 10}}
        update:   {"$set": {"name": "a", "suburb": "c"}, "$inc": {"total": 10}}
        validate: {"name": "a", "suburb": "c", "total": 10}

    {"address": {"city": "x"}}
        update:   {"$set": {"address.city": "x"}}
        validate: {"address": {"city": "x"}}

Invariants:
    - An update with no $set and no $inc entry is rejected
    - $set/$inc buckets are flat: values are never non-empty mappings
    - Lists and empty mappings are leaf values
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Mapping

from .errors import InvalidUpdateError

SET = "$set"
INC = "$inc"


@dataclass(frozen=True)
class ConvertedUpdate:
    """Result of convert_update().

    Attributes:
        update: Canonical adapter-facing descriptor with flat buckets
        validate: Nested object for schema validation
    """

    update: dict[str, dict[str, Any]]
    validate: dict[str, Any]


def flatten(mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Flatten nested mappings into dotted paths.

    >>> flatten({"name": {"first": "a"}, "tags": ["x"]})
    {'name.first': 'a', 'tags': ['x']}
    """
    flat: dict[str, Any] = {}

    def walk(value: Mapping[str, Any], prefix: str) -> None:
        for key, item in value.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(item, Mapping) and item:
                walk(item, path)
            else:
                flat[path] = item

    walk(mapping, "")
    return flat


def unflatten(flat: Mapping[str, Any]) -> dict[str, Any]:
    """Inverse of flatten(). Values are deep-copied."""
    result: dict[str, Any] = {}
    for path, value in flat.items():
        parts = path.split(".")
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[parts[-1]] = copy.deepcopy(value)
    return result


def _deep_merge(target: dict[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        if isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = target[key] = {}
            _deep_merge(existing, value)
        else:
            target[key] = value
    return target


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def convert_update(update: Mapping[str, Any] | None) -> ConvertedUpdate:
    """Convert a user supplied update into the canonical descriptor.

    Args:
        update: Bare fields and/or ``$set``/``$inc`` operators

    Returns:
        ConvertedUpdate with the flat descriptor and nested validate view

    Raises:
        InvalidUpdateError: If the update is empty, is not a mapping, or
            holds a malformed operator
    """
    if not update:
        raise InvalidUpdateError()
    if not isinstance(update, Mapping):
        raise InvalidUpdateError(f"update must be a mapping, got {type(update).__name__}")

    set_bucket: dict[str, Any] = {}
    inc_bucket: Mapping[str, Any] = {}

    for key, value in update.items():
        if key == SET:
            if not isinstance(value, Mapping):
                raise InvalidUpdateError(f"{SET} must be a mapping, got {type(value).__name__}")
            _deep_merge(set_bucket, value)
        elif key == INC:
            if not isinstance(value, Mapping):
                raise InvalidUpdateError(f"{INC} must be a mapping, got {type(value).__name__}")
            inc_bucket = value
        elif not str(key).startswith("$"):
            set_bucket[key] = copy.deepcopy(value)

    flat_set = flatten(set_bucket)
    flat_inc = flatten(inc_bucket)

    if not flat_set and not flat_inc:
        raise InvalidUpdateError()

    for path, delta in flat_inc.items():
        if not _is_number(delta):
            raise InvalidUpdateError(f"{INC} value for '{path}' must be a number, got {delta!r}")

    converted: dict[str, dict[str, Any]] = {}
    if flat_set:
        converted[SET] = flat_set
    if flat_inc:
        converted[INC] = flat_inc

    return ConvertedUpdate(
        update=converted,
        # schema validators need the nested shape, not dotted paths
        validate=unflatten({**flat_set, **flat_inc}),
    )


def _resolve_parent(document: dict[str, Any], path: str) -> tuple[dict[str, Any], str]:
    parts = path.split(".")
    node = document
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            child = node[part] = {}
        elif not isinstance(child, dict):
            raise TypeError(f"Cannot traverse non-object field '{part}' in path '{path}'")
        node = child
    return node, parts[-1]


def apply_update(document: dict[str, Any], update: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
    """Apply a canonical descriptor to a nested document in place.

    Missing intermediate objects are created. ``$inc`` on a missing field
    starts from zero.

    Raises:
        TypeError: If a path crosses a non-object value, or ``$inc``
            targets a non-numeric field
    """
    for path, value in (update.get(SET) or {}).items():
        parent, key = _resolve_parent(document, path)
        parent[key] = copy.deepcopy(value)

    for path, delta in (update.get(INC) or {}).items():
        parent, key = _resolve_parent(document, path)
        current = parent.get(key)
        if current is None:
            current = 0
        elif not _is_number(current):
            raise TypeError(f"Cannot apply {INC} to non-numeric field '{path}'")
        parent[key] = current + delta

    return document
