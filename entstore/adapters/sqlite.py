"""
SQLite storage adapter.

Stores one entity type per table, documents as JSON:

Table schema:
    <entity name>:
        - id TEXT PRIMARY KEY
        - doc_json TEXT (document without its id)
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)

Predicate fields compile to SQL over ``json_extract(doc_json, path)``; the
``id`` field maps to the primary key column. Updates are read-modify-write
inside a ``BEGIN IMMEDIATE`` transaction.

Invariants:
    - Ids are stored and returned as strings
    - A connection is opened per operation; SQLite handles concurrent
      access via WAL mode
    - Cursor pagination is not supported ($startCursor/$endCursor raise
      NotImplementedError)

How to change safely:
    - Keep predicate semantics aligned with adapters/query.py
    - Schema changes must keep reading tables created by older versions
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, TYPE_CHECKING

from ..errors import InvalidFilterError, PreconditionError
from ..filter_query import DESCENDING, parse_filter_query, parse_select, parse_sort
from ..update import apply_update
from .base import BaseStorageAdapter, Document, Options
from .memory import reject_cursors
from .query import is_operator_condition, project_document

if TYPE_CHECKING:
    from ..schema import EntitySchema

logger = logging.getLogger(__name__)

_COMPARISONS = {"$gt": ">", "$gte": ">=", "$lt": "<", "$lte": "<="}


def _json_path(field: str) -> str:
    parts = field.split(".")
    return "$" + "".join('."{}"'.format(part.replace('"', '\\"')) for part in parts)


def _column(field: str) -> tuple[str, list[Any]]:
    if field == "id":
        return "id", []
    return "json_extract(doc_json, ?)", [_json_path(field)]


def _bind(value: Any) -> Any:
    # json_extract() returns objects/arrays as minified JSON text
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return value


def _compile_membership(column: str, col_params: list[Any], operand: Any, negate: bool) -> tuple[str, list[Any]]:
    if not isinstance(operand, (list, tuple, set, frozenset)):
        raise InvalidFilterError(f"$in/$nin expects a list, got {type(operand).__name__}")

    values = [_bind(v) for v in operand if v is not None]
    has_null = len(values) != len(operand)
    placeholders = ", ".join("?" for _ in values)

    if negate:
        # a missing field is "not in" the list unless None is listed
        if has_null:
            clauses = [f"{column} IS NOT NULL"]
            params = list(col_params)
            if values:
                clauses.append(f"{column} NOT IN ({placeholders})")
                params += col_params + values
            return "(" + " AND ".join(clauses) + ")", params
        if not values:
            return "1", []
        return f"({column} IS NULL OR {column} NOT IN ({placeholders}))", col_params + col_params + values

    clauses = []
    params = []
    if values:
        clauses.append(f"{column} IN ({placeholders})")
        params += col_params + values
    if has_null:
        clauses.append(f"{column} IS NULL")
        params += col_params
    if not clauses:
        return "0", []
    return "(" + " OR ".join(clauses) + ")", params


def _compile_condition(field: str, operator: str, operand: Any) -> tuple[str, list[Any]]:
    column, col_params = _column(field)

    if operator == "$eq":
        if operand is None:
            return f"{column} IS NULL", col_params
        return f"{column} = ?", col_params + [_bind(operand)]

    if operator == "$ne":
        if operand is None:
            return f"{column} IS NOT NULL", col_params
        return f"({column} IS NULL OR {column} != ?)", col_params + col_params + [_bind(operand)]

    if operator in _COMPARISONS:
        return f"{column} {_COMPARISONS[operator]} ?", col_params + [_bind(operand)]

    if operator in ("$in", "$nin"):
        return _compile_membership(column, col_params, operand, negate=operator == "$nin")

    raise InvalidFilterError(f"Unsupported operator '{operator}'", field)


def compile_query(query: dict[str, Any]) -> tuple[str, list[Any]]:
    """Compile predicate fields into a SQL WHERE expression.

    Returns:
        Tuple of (sql, params); ``"1"`` when there are no predicates

    Raises:
        InvalidFilterError: On unknown operators or malformed operands
    """
    clauses: list[str] = []
    params: list[Any] = []

    for key, condition in query.items():
        if key in ("$or", "$and"):
            if not isinstance(condition, (list, tuple)):
                raise InvalidFilterError(f"{key} expects a list of filters", key)
            compiled = [compile_query(sub) for sub in condition]
            if not compiled:
                clauses.append("0" if key == "$or" else "1")
                continue
            joiner = " OR " if key == "$or" else " AND "
            clauses.append("(" + joiner.join(f"({sql})" for sql, _ in compiled) + ")")
            for _, sub_params in compiled:
                params.extend(sub_params)
            continue

        if str(key).startswith("$"):
            raise InvalidFilterError(f"Unsupported filter key '{key}'", key)

        conditions = condition.items() if is_operator_condition(condition) else [("$eq", condition)]
        for operator, operand in conditions:
            sql, sql_params = _compile_condition(key, operator, operand)
            clauses.append(sql)
            params.extend(sql_params)

    return " AND ".join(clauses) or "1", params


def _safe_name(value: str) -> str:
    """Sanitize a name for use as a file or table name.

    A hash suffix keeps distinct inputs distinct after sanitizing.
    """
    safe = "".join(c for c in value if c.isalnum() or c in "-_")
    if safe != value or not safe:
        digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]
        safe = f"{safe}_{digest}" if safe else digest
    return safe


class SQLiteAdapter(BaseStorageAdapter):
    """SQLite implementation of the storage adapter contract.

    Example:
        >>> adapter = SQLiteAdapter("/var/lib/entstore/app.db")
        >>> datastore = Datastore(schema=schema, adapter=adapter)
    """

    def __init__(
        self,
        path: str | Path,
        table_name: str | None = None,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        """Initialize the adapter (no I/O until init()).

        Args:
            path: SQLite database file
            table_name: Table to use (defaults to the schema name)
            busy_timeout_ms: SQLite busy timeout
            wal_mode: Enable SQLite WAL journal mode
        """
        self.path = Path(path)
        self.table_name = table_name
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_mode = wal_mode
        self._lock = asyncio.Lock()

    @property
    def _table(self) -> str:
        if not self.table_name:
            raise RuntimeError("SQLiteAdapter used before init()")
        return f'"{_safe_name(self.table_name)}"'

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    async def init(self, schema: "EntitySchema") -> None:
        self.schema = schema
        if not self.table_name:
            self.table_name = schema.name

        async with self._lock:
            with self._get_connection() as conn:
                conn.executescript(f"""
                    CREATE TABLE IF NOT EXISTS {self._table} (
                        id TEXT PRIMARY KEY,
                        doc_json TEXT NOT NULL DEFAULT '{{}}',
                        created_at INTEGER NOT NULL,
                        updated_at INTEGER NOT NULL
                    );
                """)

        logger.info(
            "Initialized SQLite table",
            extra={"path": str(self.path), "table": self.table_name},
        )

    @staticmethod
    def _row_to_doc(row: sqlite3.Row) -> Document:
        return {"id": row["id"], **json.loads(row["doc_json"])}

    @staticmethod
    def _split(doc: Document) -> tuple[str, str]:
        payload = {k: v for k, v in doc.items() if k != "id"}
        doc_id = doc.get("id")
        key = uuid.uuid4().hex if doc_id is None else str(doc_id)
        return key, json.dumps(payload)

    def _insert(self, conn: sqlite3.Connection, doc: Document, now: int) -> Document:
        key, doc_json = self._split(doc)
        conn.execute(
            f"INSERT INTO {self._table} (id, doc_json, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (key, doc_json, now, now),
        )
        return {"id": key, **json.loads(doc_json)}

    async def insert_one(self, doc: Document, options: Options = None) -> Document:
        now = int(time.time() * 1000)
        with self._transaction() as conn:
            inserted = self._insert(conn, doc, now)

        logger.debug("Inserted document", extra={"table": self.table_name, "id": inserted["id"]})
        return inserted

    async def insert_many(self, docs: list[Document], options: Options = None) -> list[Document]:
        now = int(time.time() * 1000)
        with self._transaction() as conn:
            return [self._insert(conn, doc, now) for doc in docs]

    def _apply(self, conn: sqlite3.Connection, row: sqlite3.Row, update: dict[str, Any], now: int) -> Document:
        payload = apply_update(json.loads(row["doc_json"]), update)
        payload.pop("id", None)
        conn.execute(
            f"UPDATE {self._table} SET doc_json = ?, updated_at = ? WHERE id = ?",
            (json.dumps(payload), now, row["id"]),
        )
        return {"id": row["id"], **payload}

    async def update_by_id(self, id: Any, update: dict[str, Any], options: Options = None) -> Document | None:
        now = int(time.time() * 1000)
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT id, doc_json FROM {self._table} WHERE id = ?", (str(id),)
            ).fetchone()
            if not row:
                return None
            return self._apply(conn, row, update, now)

    async def update_many(self, filter: dict[str, Any], update: dict[str, Any], options: Options = None) -> int:
        parsed = parse_filter_query(filter)
        where, params = compile_query(parsed.query)
        now = int(time.time() * 1000)

        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT id, doc_json FROM {self._table} WHERE {where}", params
            ).fetchall()
            for row in rows:
                self._apply(conn, row, update, now)

        return len(rows)

    async def delete_by_id(self, id: Any, options: Options = None) -> Any:
        with self._get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM {self._table} WHERE id = ?", (str(id),))
            return str(id) if cursor.rowcount > 0 else None

    async def delete_by_ids(self, ids: list[Any], options: Options = None) -> list[Any]:
        keys = [str(i) for i in ids]
        if not keys:
            return []

        placeholders = ", ".join("?" for _ in keys)
        with self._transaction() as conn:
            found = {
                row["id"]
                for row in conn.execute(
                    f"SELECT id FROM {self._table} WHERE id IN ({placeholders})", keys
                )
            }
            conn.execute(f"DELETE FROM {self._table} WHERE id IN ({placeholders})", keys)

        return [key for key in keys if key in found]

    async def delete_many(self, filter: dict[str, Any], options: Options = None) -> int:
        parsed = parse_filter_query(filter)
        where, params = compile_query(parsed.query)
        with self._get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM {self._table} WHERE {where}", params)
            return cursor.rowcount

    async def find_by_id(self, id: Any, options: Options = None) -> Document | None:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT id, doc_json FROM {self._table} WHERE id = ?", (str(id),)
            ).fetchone()
            return self._row_to_doc(row) if row else None

    async def find_by_ids(self, ids: list[Any], options: Options = None) -> list[Document]:
        return await self.find({"id": {"$in": [str(i) for i in ids]}}, options)

    async def find_one(self, filter: dict[str, Any], options: Options = None) -> Document | None:
        docs = await self.find({**(filter or {}), "$limit": 1}, options)
        return docs[0] if docs else None

    async def find(self, filter: dict[str, Any], options: Options = None) -> list[Document]:
        parsed = parse_filter_query(filter)
        reject_cursors(parsed.filters, self)
        where, params = compile_query(parsed.query)

        order_by: list[str] = []
        for field, direction in parse_sort(parsed.filters.get("$sort")):
            column, col_params = _column(field)
            order_by.append(f"{column} {'DESC' if direction == DESCENDING else 'ASC'}")
            params.extend(col_params)
        order_by.append("rowid ASC")

        sql = f"SELECT id, doc_json FROM {self._table} WHERE {where} ORDER BY {', '.join(order_by)}"
        limit = parsed.filters.get("$limit")
        offset = parsed.filters.get("$offset")
        # $limit 0 means no limit (-1 in SQLite)
        if limit or offset:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit or -1, offset or 0])

        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        fields = parse_select(parsed.filters.get("$select"))
        return [project_document(self._row_to_doc(row), fields) for row in rows]

    async def count(self, filter: dict[str, Any], options: Options = None) -> int:
        parsed = parse_filter_query(filter)
        where, params = compile_query(parsed.query)
        with self._get_connection() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS n FROM {self._table} WHERE {where}", params).fetchone()
            return row["n"]


def tenant_db_filename(tenant: Any) -> str:
    return f"tenant_{_safe_name(str(tenant))}.db"


def sqlite_adapter_per_tenant(
    data_dir: str | Path,
    tenant_identifier: str = "tenantId",
    **adapter_options: Any,
) -> Callable[[dict[str, Any]], SQLiteAdapter]:
    """Build an adapter factory with one SQLite file per tenant.

    Adapters are pooled per tenant, so each file is initialized once.

    Args:
        data_dir: Directory for tenant database files
        tenant_identifier: Key of the tenant id in ``options["meta"]``
        **adapter_options: Passed to every SQLiteAdapter

    Returns:
        Factory suitable for ``Datastore(adapter=...)``

    Raises:
        PreconditionError: (from the factory) if the call carries no tenant
    """
    root = Path(data_dir)
    pool: dict[str, SQLiteAdapter] = {}

    def factory(options: dict[str, Any]) -> SQLiteAdapter:
        tenant = ((options or {}).get("meta") or {}).get(tenant_identifier)
        if tenant is None:
            raise PreconditionError(
                f"meta.{tenant_identifier} is missing in options", tenant_identifier
            )

        filename = tenant_db_filename(tenant)
        adapter = pool.get(filename)
        if adapter is None:
            adapter = pool[filename] = SQLiteAdapter(root / filename, **adapter_options)
        return adapter

    return factory
