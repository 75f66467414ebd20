"""
Entity schema: per entity type validation rules.

An EntitySchema carries the entity name (used for adapter table/collection
names and lifecycle event names) and three compiled validators:
- entity: the canonical entity shape
- create: rules for inserts (defaults to the entity shape)
- update: rules for updates (defaults to permissive)

Updates are validated against the nested view of the update descriptor, so
they may omit fields that are required on create.

Example:
    >>> schema = EntitySchema(
    ...     name="user",
    ...     entity={
    ...         "type": "object",
    ...         "properties": {"name": {"type": "string"}},
    ...         "required": ["name"],
    ...     },
    ... )
    >>> await schema.validate({"name": "ada"})
    >>> await schema.validate({"age": 3}, is_update=True)
"""

from __future__ import annotations

import copy
from typing import Any

from .validator import JSONSchemaValidator


class EntitySchema:
    """Immutable validation rules for one entity type.

    Attributes:
        name: Entity type name
        entity_schema: Canonical entity JSON schema
        create_schema: JSON schema applied on insert
        update_schema: JSON schema applied on update
    """

    def __init__(
        self,
        name: str,
        entity: dict[str, Any] | None = None,
        on_create: dict[str, Any] | None = None,
        on_update: dict[str, Any] | None = None,
    ) -> None:
        if not name:
            raise ValueError("Schema name cannot be empty")

        self.name = name
        # Copies keep caller-owned dicts out of the compiled validators
        self.entity_schema = copy.deepcopy(entity) if entity is not None else {}
        self.create_schema = copy.deepcopy(on_create) if on_create is not None else self.entity_schema
        self.update_schema = copy.deepcopy(on_update) if on_update is not None else {}

        self._entity_validator = JSONSchemaValidator(self.entity_schema)
        self._create_validator = (
            self._entity_validator
            if self.create_schema is self.entity_schema
            else JSONSchemaValidator(self.create_schema)
        )
        self._update_validator = JSONSchemaValidator(self.update_schema)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntitySchema:
        """Build from ``{"name", "entity", "validators": {"onCreate", "onUpdate"}}``."""
        schema_validators = data.get("validators") or {}
        return cls(
            name=data["name"],
            entity=data.get("entity"),
            on_create=schema_validators.get("onCreate"),
            on_update=schema_validators.get("onUpdate"),
        )

    async def validate_entity(self, data: Any) -> Any:
        return await self._entity_validator.validate(data)

    async def validate_create(self, data: Any) -> Any:
        return await self._create_validator.validate(data)

    async def validate_update(self, data: Any) -> Any:
        return await self._update_validator.validate(data)

    async def validate(self, data: Any, is_update: bool = False) -> Any:
        """Validate with create rules, or update rules when ``is_update``.

        Raises:
            ValidationError: If data violates the selected rules
        """
        if is_update:
            return await self.validate_update(data)
        return await self.validate_create(data)

    def __repr__(self) -> str:
        return f"EntitySchema(name={self.name!r})"
