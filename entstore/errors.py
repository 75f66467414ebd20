"""
Error types for entstore.

This module defines the exception taxonomy raised by the datastore layer:
- DatastoreError: Base exception
- ValidationError: Entity or update failed schema validation
- InvalidUpdateError: Update descriptor is empty or malformed
- InvalidFilterError: Filter control metadata cannot be interpreted
- PreconditionError: Required call context (tenant) is missing
- NotImplementedError: Adapter does not support an operation
- SchemaError: Schema definition itself is invalid

Invariants:
    - All errors raised by this layer inherit from DatastoreError
    - Errors raised by adapters/backends are never wrapped
    - Validation and precondition errors are raised before any side effect
"""

from __future__ import annotations

from typing import Any


class DatastoreError(Exception):
    """Base exception for all entstore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: int | str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DATASTORE_ERROR"
        self.details = details or {}


class ValidationError(DatastoreError):
    """Data failed schema validation.

    Every violated constraint is reported, not only the first one.

    Attributes:
        type: Always ``"validation_error"``
        data: Ordered list of ``{keyword, path, params, message}`` records
    """

    def __init__(
        self,
        data: list[dict[str, Any]],
        message: str = "Parameters validation error!",
    ) -> None:
        super().__init__(message, code=422, details={"errors": data})
        self.type = "validation_error"
        self.data = data


class InvalidUpdateError(DatastoreError):
    """Update descriptor is empty or malformed.

    Raised when:
    - Update is None or empty
    - Update only contains unknown ``$`` operators
    - ``$set``/``$inc`` is not a mapping or ``$inc`` holds a non-number
    """

    def __init__(self, message: str = "update is empty. You must specify at least one field") -> None:
        super().__init__(message, code="INVALID_UPDATE")


class InvalidFilterError(DatastoreError):
    """Filter control metadata has an unusable value."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message, code="INVALID_FILTER", details={"key": key})
        self.key = key


class PreconditionError(DatastoreError):
    """Call is missing context required to run it (e.g. tenant id)."""

    def __init__(self, message: str, missing: str | None = None) -> None:
        super().__init__(message, code="PRECONDITION_FAILED", details={"missing": missing})
        self.missing = missing


class NotImplementedError(DatastoreError):
    """Adapter does not implement the requested operation.

    Attributes:
        adapter: Adapter class name
        operation: Operation name
    """

    def __init__(self, operation: str, adapter: str | None = None) -> None:
        msg = f"Operation '{operation}' is not implemented"
        if adapter:
            msg += f" by {adapter}"
        super().__init__(
            msg,
            code="NOT_IMPLEMENTED",
            details={"operation": operation, "adapter": adapter},
        )
        self.operation = operation
        self.adapter = adapter


class SchemaError(DatastoreError):
    """Schema definition is not a valid JSON schema."""

    def __init__(self, message: str, schema_name: str | None = None) -> None:
        super().__init__(message, code="SCHEMA_ERROR", details={"schema_name": schema_name})
        self.schema_name = schema_name
