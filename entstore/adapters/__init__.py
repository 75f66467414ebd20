"""
Storage adapters.

This module provides the adapter contract and the bundled backends:
- StorageAdapter: Protocol every backend implements
- InMemoryAdapter: Dict-backed backend for tests and local development
- SQLiteAdapter: One table per entity type, optionally one file per tenant
"""

from .base import (
    AdapterFactory,
    AdapterSource,
    BaseStorageAdapter,
    FixedAdapter,
    StorageAdapter,
    as_adapter_source,
)
from .memory import DuplicateIdError, InMemoryAdapter
from .sqlite import SQLiteAdapter, compile_query, sqlite_adapter_per_tenant

__all__ = [
    "StorageAdapter",
    "BaseStorageAdapter",
    "FixedAdapter",
    "AdapterFactory",
    "AdapterSource",
    "as_adapter_source",
    "InMemoryAdapter",
    "DuplicateIdError",
    "SQLiteAdapter",
    "compile_query",
    "sqlite_adapter_per_tenant",
]
