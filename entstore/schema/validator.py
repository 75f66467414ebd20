"""
JSON schema validation for entity payloads.

Wraps a ``jsonschema`` validator so that:
- All violations are collected in a single pass
- Declared ``default`` values are written into the validated data in place
- Failures surface as a single ValidationError (code 422)

Invariants:
    - The schema is checked once at construction, never at validate time
    - Error records are reported in discovery order
    - validate() returns the same object it was given (defaults populated)

How to change safely:
    - Keep the error record shape {keyword, path, params, message}; callers
      map it onto API responses
    - Default population must stay idempotent
"""

from __future__ import annotations

import copy
import logging
from collections import defaultdict
from typing import Any, Iterator

from jsonschema import Draft7Validator, validators
from jsonschema import exceptions as jsonschema_exceptions

from ..errors import SchemaError, ValidationError

logger = logging.getLogger(__name__)


def _extend_with_default(validator_class: Any) -> Any:
    """Return a validator class that fills in property defaults."""
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema) -> Iterator[Any]:
        if validator.is_type(instance, "object"):
            for prop, subschema in properties.items():
                if isinstance(subschema, dict) and "default" in subschema and prop not in instance:
                    instance[prop] = copy.deepcopy(subschema["default"])

        yield from validate_properties(validator, properties, instance, schema)

    return validators.extend(validator_class, {"properties": set_defaults})


def _json_pointer(path: Any) -> str:
    return "".join(f"/{part}" for part in path)


class JSONSchemaValidator:
    """Validator for a single JSON schema.

    Draft-07 is used unless the schema declares ``$schema``.

    Example:
        >>> validator = JSONSchemaValidator({
        ...     "type": "object",
        ...     "properties": {"name": {"type": "string"}},
        ... })
        >>> await validator.validate({"name": "x"})
        {'name': 'x'}
    """

    def __init__(self, schema: dict[str, Any], format_checker: bool = True) -> None:
        """Compile the schema.

        Args:
            schema: JSON schema document
            format_checker: Whether ``format`` keywords are enforced

        Raises:
            SchemaError: If the schema is not a valid JSON schema
        """
        self.schema = schema
        base_class = validators.validator_for(schema, default=Draft7Validator)

        try:
            base_class.check_schema(schema)
        except jsonschema_exceptions.SchemaError as e:
            raise SchemaError(f"Invalid JSON schema: {e.message}", schema.get("title")) from e

        validator_class = _extend_with_default(base_class)
        self._validator = validator_class(
            schema,
            format_checker=base_class.FORMAT_CHECKER if format_checker else None,
        )

    def collect_errors(self, data: Any) -> list[dict[str, Any]]:
        """Validate data and return every violation found.

        Args:
            data: Value to validate (defaults are populated in place)

        Returns:
            List of error records, empty when data is valid
        """
        # First pass only fills defaults, so that keywords evaluated before
        # "properties" (e.g. "required") see the populated data
        for _ in self._validator.iter_errors(data):
            pass

        records: list[dict[str, Any]] = []
        # jsonschema yields one "required" error per missing property,
        # in the order the property is listed in the schema
        required_seen: dict[tuple[str, int], int] = defaultdict(int)

        for error in self._validator.iter_errors(data):
            path = _json_pointer(error.absolute_path)

            if error.validator == "required":
                key = (path, id(error.validator_value))
                missing = [
                    prop for prop in error.validator_value
                    if isinstance(error.instance, dict) and prop not in error.instance
                ]
                index = required_seen[key]
                required_seen[key] += 1
                params = {"missingProperty": missing[index] if index < len(missing) else None}
            else:
                params = {error.validator: error.validator_value}

            records.append({
                "keyword": error.validator,
                "path": path,
                "params": params,
                "message": error.message,
            })

        return records

    async def validate(self, data: Any) -> Any:
        """Validate data against the schema.

        Args:
            data: Value to validate

        Returns:
            The same data, with schema defaults populated

        Raises:
            ValidationError: If any constraint is violated
        """
        errors = self.collect_errors(data)
        if errors:
            logger.debug(
                "Schema validation failed",
                extra={"error_count": len(errors), "keywords": [e["keyword"] for e in errors]},
            )
            raise ValidationError(errors)
        return data
