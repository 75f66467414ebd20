"""
Unit tests for the bundled storage adapters.

Tests cover:
- InMemoryAdapter copy semantics and duplicate ids
- SQLiteAdapter id handling, rollback and per-tenant files
- Cursor pagination rejection
"""

import os
import tempfile

import pytest

from entstore.adapters import DuplicateIdError, InMemoryAdapter, SQLiteAdapter, sqlite_adapter_per_tenant
from entstore.adapters.sqlite import tenant_db_filename
from entstore.errors import NotImplementedError, PreconditionError
from entstore.schema import EntitySchema


@pytest.fixture
def schema():
    """Create a permissive note schema."""
    return EntitySchema(name="note", entity={"type": "object"})


class TestInMemoryAdapter:
    """Tests for InMemoryAdapter."""

    @pytest.fixture
    def adapter(self):
        """Create adapter."""
        return InMemoryAdapter()

    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, adapter, schema):
        """Documents without id get a generated one."""
        await adapter.init(schema)

        doc = await adapter.insert_one({"text": "hi"})

        assert doc["id"]
        assert await adapter.find_by_id(doc["id"]) == doc

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, adapter, schema):
        """Mutating a returned document does not change stored state."""
        await adapter.init(schema)
        doc = await adapter.insert_one({"id": "n1", "meta": {"v": 1}})

        doc["meta"]["v"] = 2
        found = await adapter.find_by_id("n1")
        found["meta"]["v"] = 3

        assert (await adapter.find_by_id("n1"))["meta"] == {"v": 1}

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, adapter, schema):
        """Inserting an existing id fails and a failed batch inserts nothing."""
        await adapter.init(schema)
        await adapter.insert_one({"id": "n1"})

        with pytest.raises(DuplicateIdError):
            await adapter.insert_one({"id": "n1"})

        with pytest.raises(DuplicateIdError):
            await adapter.insert_many([{"id": "n2"}, {"id": "n1"}])

        assert await adapter.count({}) == 1

    @pytest.mark.asyncio
    async def test_update_keeps_id(self, adapter, schema):
        """An update cannot change the document id."""
        await adapter.insert_one({"id": "n1", "text": "a"})

        updated = await adapter.update_by_id("n1", {"$set": {"id": "other", "text": "b"}})

        assert updated == {"id": "n1", "text": "b"}

    @pytest.mark.asyncio
    async def test_cursor_rejected(self, adapter):
        """Cursor pagination is not supported."""
        with pytest.raises(NotImplementedError):
            await adapter.find({"$endCursor": "abc"})

    def test_clear(self, adapter):
        """clear() drops every document."""
        adapter._docs["n1"] = {"id": "n1"}

        adapter.clear()

        assert adapter._docs == {}


class TestSQLiteAdapter:
    """Tests for SQLiteAdapter."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def adapter(self, data_dir):
        """Create adapter on a fresh database file."""
        return SQLiteAdapter(os.path.join(data_dir, "notes.db"), wal_mode=False)

    @pytest.mark.asyncio
    async def test_init_creates_table(self, adapter, schema, data_dir):
        """init() creates the database file and uses the schema name as table."""
        await adapter.init(schema)

        assert adapter.table_name == "note"
        assert os.path.exists(os.path.join(data_dir, "notes.db"))

    @pytest.mark.asyncio
    async def test_ids_are_strings(self, adapter, schema):
        """Numeric ids are stored and returned as strings."""
        await adapter.init(schema)

        doc = await adapter.insert_one({"id": 7, "text": "a"})

        assert doc == {"id": "7", "text": "a"}
        assert await adapter.find_by_id(7) == {"id": "7", "text": "a"}
        assert await adapter.delete_by_id(7) == "7"

    @pytest.mark.asyncio
    async def test_failed_update_many_rolls_back(self, adapter, schema):
        """A failing update leaves every row unchanged."""
        await adapter.init(schema)
        await adapter.insert_many([
            {"id": "a", "kind": "x", "n": 1},
            {"id": "b", "kind": "x", "n": "text"},
        ])

        with pytest.raises(TypeError):
            await adapter.update_many({"kind": "x"}, {"$inc": {"n": 1}})

        assert (await adapter.find_by_id("a"))["n"] == 1

    @pytest.mark.asyncio
    async def test_nested_and_boolean_values(self, adapter, schema):
        """Nested objects and booleans round trip through json_extract filters."""
        await adapter.init(schema)
        await adapter.insert_one({"id": "a", "flags": {"pinned": True}, "labels": ["x"]})
        await adapter.insert_one({"id": "b", "flags": {"pinned": False}})

        pinned = await adapter.find({"flags.pinned": True})

        assert [doc["id"] for doc in pinned] == ["a"]
        assert pinned[0]["labels"] == ["x"]

    @pytest.mark.asyncio
    async def test_cursor_rejected(self, adapter, schema):
        """Cursor pagination is not supported."""
        await adapter.init(schema)

        with pytest.raises(NotImplementedError):
            await adapter.find({"$startCursor": "abc"})

    @pytest.mark.asyncio
    async def test_used_before_init(self, adapter):
        """Operations before init() fail clearly."""
        with pytest.raises(RuntimeError):
            await adapter.count({})


class TestSQLitePerTenant:
    """Tests for the per-tenant SQLite adapter factory."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    def test_pooled_per_tenant(self, data_dir):
        """The same tenant always gets the same adapter."""
        factory = sqlite_adapter_per_tenant(data_dir, wal_mode=False)

        a1 = factory({"meta": {"tenantId": "t1"}})
        a2 = factory({"meta": {"tenantId": "t1"}})
        b = factory({"meta": {"tenantId": "t2"}})

        assert a1 is a2
        assert a1 is not b
        assert a1.path.name == "tenant_t1.db"
        assert a1.wal_mode is False

    def test_missing_tenant(self, data_dir):
        """A call without tenant cannot pick a database."""
        factory = sqlite_adapter_per_tenant(data_dir)

        with pytest.raises(PreconditionError):
            factory({})

    def test_unsafe_tenant_names_sanitized(self):
        """Tenant ids never escape the data directory."""
        name = tenant_db_filename("../etc/passwd")

        assert "/" not in name
        assert name.startswith("tenant_etcpasswd_")
        assert tenant_db_filename("../etc/passwd") != tenant_db_filename("etcpasswd")
