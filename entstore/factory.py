"""
Datastore wiring from settings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .adapters import InMemoryAdapter, SQLiteAdapter, sqlite_adapter_per_tenant
from .config import Backend, DatastoreSettings
from .datastore import Datastore
from .events import EventNotifier
from .schema import EntitySchema
from .tenant import TenantAwareDatastore

logger = logging.getLogger(__name__)


def create_adapter(settings: DatastoreSettings) -> Any:
    """Create an adapter (or per-tenant adapter factory) from settings.

    Raises:
        ValueError: If the backend is not supported
    """
    if settings.backend == Backend.MEMORY:
        return InMemoryAdapter()

    if settings.backend == Backend.SQLITE:
        options = {
            "busy_timeout_ms": settings.sqlite_busy_timeout_ms,
            "wal_mode": settings.sqlite_wal_mode,
        }
        if settings.sqlite_per_tenant:
            return sqlite_adapter_per_tenant(
                settings.data_dir,
                tenant_identifier=settings.tenant_identifier,
                **options,
            )
        return SQLiteAdapter(Path(settings.data_dir) / settings.sqlite_filename, **options)

    raise ValueError(f"Unsupported backend: {settings.backend}")


def create_datastore(
    schema: EntitySchema,
    settings: DatastoreSettings | None = None,
    notifier: EventNotifier | None = None,
) -> Datastore | TenantAwareDatastore:
    """Build a datastore for ``schema`` as configured.

    Args:
        schema: Entity schema
        settings: Settings (loaded from env if not provided)
        notifier: Optional event notifier to share between datastores

    Returns:
        Datastore, wrapped in TenantAwareDatastore when ``tenant_aware``
    """
    settings = settings or DatastoreSettings()
    datastore = Datastore(schema=schema, adapter=create_adapter(settings), notifier=notifier)

    logger.info(
        "Datastore created",
        extra={
            "schema": schema.name,
            "backend": settings.backend.value,
            "tenant_aware": settings.tenant_aware,
            "per_tenant_files": settings.sqlite_per_tenant,
        },
    )

    if settings.tenant_aware:
        return TenantAwareDatastore(datastore, tenant_identifier=settings.tenant_identifier)
    return datastore
