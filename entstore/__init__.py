"""
entstore - backend-agnostic entity datastore.

This package provides a single CRUD/query surface over pluggable storage
backends:
- EntitySchema: JSON schema validation per entity type
- Datastore: validation, update normalization, adapter selection, events
- TenantAwareDatastore: strict per-tenant isolation on top of a Datastore
- Adapters: in-memory and SQLite backends, plus the adapter contract

Example:
    >>> from entstore import Datastore, EntitySchema, InMemoryAdapter
    >>>
    >>> schema = EntitySchema(
    ...     name="task",
    ...     entity={
    ...         "type": "object",
    ...         "properties": {
    ...             "title": {"type": "string"},
    ...             "status": {"type": "string", "default": "todo"},
    ...         },
    ...         "required": ["title"],
    ...     },
    ... )
    >>> tasks = Datastore(schema=schema, adapter=InMemoryAdapter())
    >>> task = await tasks.insert_one({"title": "Write docs"})
    >>> await tasks.update_by_id(task["id"], {"status": "done"})

Invariants:
    - Invalid data never reaches an adapter
    - Updates reach adapters only as flat {"$set", "$inc"} descriptors
    - Lifecycle listeners can never fail a CRUD call

Version: 1.0.0
"""

__version__ = "1.0.0"

from .adapters import (
    AdapterFactory,
    BaseStorageAdapter,
    FixedAdapter,
    InMemoryAdapter,
    SQLiteAdapter,
    StorageAdapter,
    sqlite_adapter_per_tenant,
)
from .config import Backend, DatastoreSettings
from .datastore import Datastore
from .errors import (
    DatastoreError,
    InvalidFilterError,
    InvalidUpdateError,
    NotImplementedError,
    PreconditionError,
    SchemaError,
    ValidationError,
)
from .events import EventNotifier
from .factory import create_adapter, create_datastore
from .filter_query import FilterQuery, parse_filter_query
from .log import setup_logging
from .schema import EntitySchema, JSONSchemaValidator
from .tenant import TenantAwareDatastore
from .update import ConvertedUpdate, convert_update

__all__ = [
    # Version
    "__version__",
    # Core
    "Datastore",
    "TenantAwareDatastore",
    "EntitySchema",
    "JSONSchemaValidator",
    "EventNotifier",
    # Normalization
    "convert_update",
    "ConvertedUpdate",
    "parse_filter_query",
    "FilterQuery",
    # Adapters
    "StorageAdapter",
    "BaseStorageAdapter",
    "FixedAdapter",
    "AdapterFactory",
    "InMemoryAdapter",
    "SQLiteAdapter",
    "sqlite_adapter_per_tenant",
    # Configuration
    "Backend",
    "DatastoreSettings",
    "create_adapter",
    "create_datastore",
    "setup_logging",
    # Errors
    "DatastoreError",
    "ValidationError",
    "InvalidUpdateError",
    "InvalidFilterError",
    "PreconditionError",
    "NotImplementedError",
    "SchemaError",
]
