"""
Unit tests for settings, logging setup and datastore wiring.
"""

import logging
import tempfile

import json_log_formatter
import pytest
from pydantic import ValidationError as SettingsValidationError

from entstore.adapters import InMemoryAdapter, SQLiteAdapter
from entstore.config import Backend, DatastoreSettings
from entstore.datastore import Datastore
from entstore.factory import create_adapter, create_datastore
from entstore.log import setup_logging
from entstore.schema import EntitySchema
from entstore.tenant import TenantAwareDatastore


@pytest.fixture
def schema():
    """Create a permissive item schema."""
    return EntitySchema(name="item", entity={"type": "object"})


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


class TestDatastoreSettings:
    """Tests for DatastoreSettings."""

    def test_defaults(self, monkeypatch):
        """Defaults select the in-memory backend and text logs."""
        monkeypatch.delenv("ENTSTORE_BACKEND", raising=False)
        monkeypatch.delenv("ENTSTORE_LOG_FORMAT", raising=False)

        settings = DatastoreSettings()

        assert settings.backend == Backend.MEMORY
        assert settings.tenant_identifier == "tenantId"
        assert settings.log_format == "text"

    def test_from_env(self, monkeypatch):
        """ENTSTORE_* environment variables override defaults."""
        monkeypatch.setenv("ENTSTORE_BACKEND", "sqlite")
        monkeypatch.setenv("ENTSTORE_SQLITE_PER_TENANT", "true")
        monkeypatch.setenv("ENTSTORE_TENANT_IDENTIFIER", "orgId")

        settings = DatastoreSettings()

        assert settings.backend == Backend.SQLITE
        assert settings.sqlite_per_tenant is True
        assert settings.tenant_identifier == "orgId"

    def test_invalid_log_format(self):
        """Only json and text log formats are accepted."""
        with pytest.raises(SettingsValidationError):
            DatastoreSettings(log_format="xml")


class TestFactory:
    """Tests for create_adapter and create_datastore."""

    def test_memory_backend(self, schema):
        """Memory backend builds a plain datastore."""
        datastore = create_datastore(schema, DatastoreSettings(backend="memory"))

        assert isinstance(datastore, Datastore)
        assert isinstance(datastore.adapter, InMemoryAdapter)

    def test_sqlite_backend(self, data_dir):
        """SQLite backend uses one file in data_dir."""
        adapter = create_adapter(DatastoreSettings(
            backend="sqlite",
            data_dir=data_dir,
            sqlite_filename="app.db",
            sqlite_wal_mode=False,
        ))

        assert isinstance(adapter, SQLiteAdapter)
        assert adapter.path.name == "app.db"
        assert adapter.wal_mode is False

    def test_sqlite_per_tenant_backend(self, data_dir):
        """Per-tenant SQLite returns a factory keyed by the tenant identifier."""
        adapter = create_adapter(DatastoreSettings(
            backend="sqlite",
            data_dir=data_dir,
            sqlite_per_tenant=True,
            tenant_identifier="orgId",
        ))

        resolved = adapter({"meta": {"orgId": "o1"}})
        assert resolved.path.name == "tenant_o1.db"

    def test_tenant_aware(self, schema):
        """tenant_aware wraps the datastore."""
        datastore = create_datastore(schema, DatastoreSettings(
            backend="memory",
            tenant_aware=True,
            tenant_identifier="orgId",
        ))

        assert isinstance(datastore, TenantAwareDatastore)
        assert datastore.tenant_identifier == "orgId"
        assert datastore.schema is schema


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        """Restore root logger handlers after each test."""
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        """JSON format installs a JSONFormatter handler."""
        setup_logging(DatastoreSettings(log_format="json", log_level="debug"))

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert root.level == logging.DEBUG

    def test_text_format(self):
        """Text format installs a plain formatter."""
        setup_logging(DatastoreSettings(log_format="text", log_level="WARNING"))

        root = logging.getLogger()
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert root.level == logging.WARNING
