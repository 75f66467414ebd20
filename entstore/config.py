"""
Configuration for entstore.

Settings are read from ``ENTSTORE_*`` environment variables, with defaults
suitable for local development (in-memory backend, text logs).
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Backend(str, Enum):
    """Bundled storage backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class DatastoreSettings(BaseSettings):
    """Datastore configuration."""

    backend: Backend = Field(default=Backend.MEMORY)

    # SQLite backend
    data_dir: str = Field(default="./data")
    sqlite_filename: str = Field(default="entstore.db")
    sqlite_busy_timeout_ms: int = Field(default=5000, ge=0)
    sqlite_wal_mode: bool = Field(default=True)
    # One database file per tenant instead of one shared file
    sqlite_per_tenant: bool = Field(default=False)

    # Tenancy
    tenant_aware: bool = Field(default=False)
    tenant_identifier: str = Field(default="tenantId", min_length=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", pattern="^(json|text)$")

    model_config = SettingsConfigDict(env_prefix="ENTSTORE_")
