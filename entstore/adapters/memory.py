"""
In-memory storage adapter.

This module provides a dict-backed adapter for:
- Unit tests
- Integration tests of application code built on a Datastore
- Local development without a database

Invariants:
    - All data is lost on process exit
    - Returned documents are copies; callers cannot mutate stored state
    - Implements the full adapter contract except cursor pagination

How to change safely:
    - This is test/dev code, changes don't affect production backends
    - Keep behavior aligned with SQLiteAdapter so tests can swap them
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from typing import Any, TYPE_CHECKING

from ..filter_query import parse_filter_query, parse_select, parse_sort
from ..update import apply_update
from .base import BaseStorageAdapter, Document, Options
from .query import match_document, project_document, sort_documents

if TYPE_CHECKING:
    from ..schema import EntitySchema

logger = logging.getLogger(__name__)


class DuplicateIdError(Exception):
    """A document with this id already exists."""

    pass


def reject_cursors(filters: dict[str, Any], adapter: BaseStorageAdapter) -> None:
    """Raise NotImplementedError if cursor pagination was requested."""
    for key in ("$startCursor", "$endCursor"):
        if key in filters:
            raise adapter._not_implemented(f"find with {key}")


class InMemoryAdapter(BaseStorageAdapter):
    """Dict-backed implementation of the storage adapter contract.

    Attributes:
        init_count: Number of times init() was called (useful in tests)

    Thread safety:
        Uses an asyncio lock around every read-modify-write. Safe to use
        from multiple coroutines.

    Example:
        >>> adapter = InMemoryAdapter()
        >>> datastore = Datastore(schema=schema, adapter=adapter)
        >>> await datastore.insert_one({"name": "ada"})
        {'name': 'ada', 'id': '5f0c...'}
    """

    def __init__(self) -> None:
        self._docs: dict[Any, Document] = {}
        self._lock = asyncio.Lock()
        self.init_count = 0

    async def init(self, schema: "EntitySchema") -> None:
        self.schema = schema
        self.init_count += 1
        logger.debug("InMemoryAdapter initialized", extra={"schema": schema.name})

    def _store(self, doc: Document) -> Document:
        stored = copy.deepcopy(doc)
        if stored.get("id") is None:
            stored["id"] = uuid.uuid4().hex
        if stored["id"] in self._docs:
            raise DuplicateIdError(f"Document already exists: {stored['id']}")
        self._docs[stored["id"]] = stored
        return copy.deepcopy(stored)

    def _select(self, filter: dict[str, Any] | None) -> tuple[list[Document], dict[str, Any]]:
        parsed = parse_filter_query(filter)
        reject_cursors(parsed.filters, self)
        docs = [doc for doc in self._docs.values() if match_document(doc, parsed.query)]
        return docs, parsed.filters

    async def insert_one(self, doc: Document, options: Options = None) -> Document:
        async with self._lock:
            return self._store(doc)

    async def insert_many(self, docs: list[Document], options: Options = None) -> list[Document]:
        async with self._lock:
            ids = [doc.get("id") for doc in docs if doc.get("id") is not None]
            duplicates = [i for i in ids if i in self._docs]
            if duplicates or len(ids) != len(set(ids)):
                raise DuplicateIdError(f"Documents already exist: {duplicates or ids}")
            return [self._store(doc) for doc in docs]

    async def update_by_id(self, id: Any, update: dict[str, Any], options: Options = None) -> Document | None:
        async with self._lock:
            doc = self._docs.get(id)
            if doc is None:
                return None
            updated = apply_update(copy.deepcopy(doc), update)
            updated["id"] = id
            self._docs[id] = updated
            return copy.deepcopy(updated)

    async def update_many(self, filter: dict[str, Any], update: dict[str, Any], options: Options = None) -> int:
        async with self._lock:
            docs, _ = self._select(filter)
            # apply to copies first so a failing update changes nothing
            updated = [apply_update(copy.deepcopy(doc), update) for doc in docs]
            for doc, new_doc in zip(docs, updated):
                new_doc["id"] = doc["id"]
                self._docs[doc["id"]] = new_doc
            return len(updated)

    async def delete_by_id(self, id: Any, options: Options = None) -> Any:
        async with self._lock:
            if self._docs.pop(id, None) is None:
                return None
            return id

    async def delete_by_ids(self, ids: list[Any], options: Options = None) -> list[Any]:
        async with self._lock:
            return [id for id in ids if self._docs.pop(id, None) is not None]

    async def delete_many(self, filter: dict[str, Any], options: Options = None) -> int:
        async with self._lock:
            docs, _ = self._select(filter)
            for doc in docs:
                del self._docs[doc["id"]]
            return len(docs)

    async def find_by_id(self, id: Any, options: Options = None) -> Document | None:
        doc = self._docs.get(id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_by_ids(self, ids: list[Any], options: Options = None) -> list[Document]:
        return [copy.deepcopy(self._docs[id]) for id in ids if id in self._docs]

    async def find_one(self, filter: dict[str, Any], options: Options = None) -> Document | None:
        docs = await self.find({**(filter or {}), "$limit": 1}, options)
        return docs[0] if docs else None

    async def find(self, filter: dict[str, Any], options: Options = None) -> list[Document]:
        docs, filters = self._select(filter)
        docs = sort_documents(docs, parse_sort(filters.get("$sort")))

        offset = filters.get("$offset", 0)
        limit = filters.get("$limit")
        # $limit 0 means no limit
        docs = docs[offset:offset + limit] if limit else docs[offset:]

        fields = parse_select(filters.get("$select"))
        return [project_document(doc, fields) for doc in docs]

    async def count(self, filter: dict[str, Any], options: Options = None) -> int:
        docs, _ = self._select(filter)
        return len(docs)

    def clear(self) -> None:
        """Drop all documents (test helper)."""
        self._docs.clear()
