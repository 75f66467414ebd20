"""
Datastore: backend-agnostic CRUD for one entity type.

The Datastore ties together:
- EntitySchema validation (create rules on insert, update rules on update)
- Update normalization into canonical {"$set", "$inc"} descriptors
- Adapter selection and lazy, once-per-instance initialization
- Lifecycle events on a notifier owned by this instance

Events:
    "*"                 (event_name, data) for every event below
    "{name}.created"    {"entities": [...], "inserted_count": n}
    "{name}.updated"    {"entities": [...], "updated_count": n}
                        or {"filter": {...}, "updated_count": n} (update_many)
    "{name}.deleted"    {"ids": [...], "deleted_count": n}
                        or {"filter": {...}, "deleted_count": n} (delete_many)

Invariants:
    - Validation failures raise before any adapter call (no partial writes)
    - Events are emitted only when the adapter reports a change
    - Listener failures never reach the caller
    - Adapter errors propagate unchanged; nothing is retried here

Example:
    >>> schema = EntitySchema(
    ...     name="user",
    ...     entity={"type": "object", "properties": {"name": {"type": "string"}}},
    ... )
    >>> datastore = Datastore(schema=schema, adapter=InMemoryAdapter())
    >>> datastore.on("user.created", lambda data: print(data["inserted_count"]))
    >>> user = await datastore.insert_one({"name": "ada"})
    1
    >>> await datastore.insert_one({"name": 1})
    Traceback (most recent call last):
    ...
    ValidationError: Parameters validation error!
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any

from .adapters.base import as_adapter_source
from .errors import NotImplementedError
from .events import WILDCARD, EventNotifier, Listener
from .filter_query import parse_filter_query
from .schema import EntitySchema
from .update import ConvertedUpdate, convert_update

logger = logging.getLogger(__name__)


class Datastore:
    """CRUD orchestrator over a pluggable storage adapter.

    Every operation takes a trailing ``options`` dict that is forwarded to
    the adapter (tenant meta, transaction handles, backend hints).

    Attributes:
        schema: Entity schema
        adapter: Configured adapter instance or factory, as given
        events: Lifecycle event notifier
    """

    def __init__(
        self,
        schema: EntitySchema,
        adapter: Any,
        notifier: EventNotifier | None = None,
    ) -> None:
        """Initialize the datastore.

        Args:
            schema: Entity schema
            adapter: Adapter instance, ``fn(options) -> adapter`` factory,
                or an explicit FixedAdapter/AdapterFactory
            notifier: Event notifier (a new one is created if not given)
        """
        self.schema = schema
        self.adapter = adapter
        self.events = notifier if notifier is not None else EventNotifier()
        self._adapter_source = as_adapter_source(adapter)
        # adapter -> init task; entries go away with the adapter instance
        self._adapter_inits: weakref.WeakKeyDictionary[Any, asyncio.Future[None]] = weakref.WeakKeyDictionary()

    @property
    def name(self) -> str:
        return self.schema.name

    def on(self, event: str, listener: Listener) -> Listener:
        return self.events.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self.events.off(event, listener)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def convert_update(self, update: dict[str, Any] | None) -> ConvertedUpdate:
        """Convert a user update into the canonical descriptor (see update.py)."""
        return convert_update(update)

    async def _init_adapter(self, adapter: Any) -> None:
        init = getattr(adapter, "init", None)
        if init is not None:
            await init(schema=self.schema)
        logger.info(
            "Adapter initialized",
            extra={"schema": self.schema.name, "adapter": type(adapter).__name__},
        )

    async def get_adapter(self, options: dict[str, Any] | None = None) -> Any:
        """Resolve the adapter for a call and make sure it is initialized.

        Concurrent first calls share one in-flight init. A failed init is
        forgotten so the next call retries it. Init state is held weakly,
        so adapters a factory stops referencing can be collected (adapters
        must support weak references).

        Args:
            options: Call options (passed to adapter factories)

        Returns:
            Initialized adapter instance
        """
        adapter = self._adapter_source.resolve(options if options is not None else {})

        init = self._adapter_inits.get(adapter)
        if init is None:
            init = asyncio.ensure_future(self._init_adapter(adapter))
            self._adapter_inits[adapter] = init

        try:
            await asyncio.shield(init)
        except Exception:
            if self._adapter_inits.get(adapter) is init:
                del self._adapter_inits[adapter]
            raise

        return adapter

    async def invoke_adapter_method(self, method: str, *args: Any, options: dict[str, Any] | None = None) -> Any:
        """Call ``method`` on the resolved adapter with ``(*args, options)``.

        Raises:
            NotImplementedError: If the adapter does not provide ``method``
        """
        options = {} if options is None else options
        adapter = await self.get_adapter(options)

        operation = getattr(adapter, method, None)
        if operation is None:
            raise NotImplementedError(method, type(adapter).__name__)

        logger.debug(
            "Invoking adapter operation",
            extra={"schema": self.schema.name, "operation": method},
        )
        return await operation(*args, options)

    def notify(self, event_name: str, data: Any = None) -> None:
        """Emit ``event_name`` and the ``"*"`` wildcard. Never raises."""
        try:
            self.events.emit(WILDCARD, event_name, data)
            self.events.emit(event_name, data)
        except Exception:
            logger.exception("Event notification failed", extra={"event": event_name})

    def _event(self, action: str) -> str:
        return f"{self.schema.name}.{action}"

    @staticmethod
    def _normalize_filter(filter: dict[str, Any] | None) -> dict[str, Any]:
        return parse_filter_query(filter).to_filter()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_one(self, entity: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        """Validate and insert one entity.

        Returns:
            The inserted entity (with adapter-assigned id), or the adapter's
            falsy result if nothing was inserted

        Raises:
            ValidationError: If the entity violates the create rules
        """
        await self.schema.validate(entity)

        inserted = await self.invoke_adapter_method("insert_one", entity, options=options)

        if inserted:
            self.notify(self._event("created"), {
                "entities": [inserted],
                "inserted_count": 1,
            })

        return inserted

    async def insert_many(self, entities: list[dict[str, Any]], options: dict[str, Any] | None = None) -> Any:
        """Validate every entity, then insert them in one adapter call.

        Validation is sequential and fail-fast: if any entity is invalid
        nothing is inserted.
        """
        for entity in entities:
            await self.schema.validate(entity)

        inserted = await self.invoke_adapter_method("insert_many", entities, options=options)

        if inserted:
            self.notify(self._event("created"), {
                "entities": inserted,
                "inserted_count": len(inserted),
            })

        return inserted

    async def update_by_id(self, id: Any, update: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        """Update one entity by id.

        Raises:
            InvalidUpdateError: If the update is empty or malformed
            ValidationError: If the update violates the update rules
        """
        converted = self.convert_update(update)
        await self.schema.validate(converted.validate, True)

        updated = await self.invoke_adapter_method("update_by_id", id, converted.update, options=options)

        if updated:
            self.notify(self._event("updated"), {
                "entities": [updated],
                "updated_count": 1,
            })

        return updated

    async def update_many(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> int:
        """Update every entity matching ``filter``.

        Note: use with caution
        - the updated event carries only the filter and a count, not the
          changed entities
        - not every backend applies this transactionally
        """
        converted = self.convert_update(update)
        await self.schema.validate(converted.validate, True)

        updated_count = await self.invoke_adapter_method(
            "update_many",
            self._normalize_filter(filter),
            converted.update,
            options=options,
        )

        if updated_count:
            self.notify(self._event("updated"), {
                "filter": filter,
                "updated_count": updated_count,
            })

        return updated_count

    async def delete_by_id(self, id: Any, options: dict[str, Any] | None = None) -> Any:
        """Delete one entity. Returns the deleted id or a falsy value."""
        deleted_id = await self.invoke_adapter_method("delete_by_id", id, options=options)

        if deleted_id:
            self.notify(self._event("deleted"), {
                "ids": [deleted_id],
                "deleted_count": 1,
            })

        return deleted_id

    async def delete_by_ids(self, ids: list[Any], options: dict[str, Any] | None = None) -> list[Any]:
        """Delete entities by id. Returns the ids that actually existed."""
        deleted_ids = await self.invoke_adapter_method("delete_by_ids", ids, options=options)

        if deleted_ids:
            self.notify(self._event("deleted"), {
                "ids": deleted_ids,
                "deleted_count": len(deleted_ids),
            })

        return deleted_ids

    async def delete_many(self, filter: dict[str, Any], options: dict[str, Any] | None = None) -> int:
        """Delete every entity matching ``filter``.

        Note: like update_many, the deleted event only knows the filter and
        a count.
        """
        deleted_count = await self.invoke_adapter_method(
            "delete_many", self._normalize_filter(filter), options=options
        )

        if deleted_count:
            self.notify(self._event("deleted"), {
                "filter": filter,
                "deleted_count": deleted_count,
            })

        return deleted_count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, id: Any, options: dict[str, Any] | None = None) -> Any:
        return await self.invoke_adapter_method("find_by_id", id, options=options)

    async def find_by_ids(self, ids: list[Any], options: dict[str, Any] | None = None) -> list[Any]:
        return await self.invoke_adapter_method("find_by_ids", ids, options=options)

    async def find_one(self, filter: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        return await self.invoke_adapter_method("find_one", self._normalize_filter(filter), options=options)

    async def find(self, filter: dict[str, Any] | None = None, options: dict[str, Any] | None = None) -> list[Any]:
        """Find entities.

        Args:
            filter: Predicate fields plus optional $select, $limit, $offset,
                $sort, $startCursor, $endCursor
            options: Call options
        """
        return await self.invoke_adapter_method("find", self._normalize_filter(filter), options=options)

    async def count(self, filter: dict[str, Any] | None = None, options: dict[str, Any] | None = None) -> int:
        return await self.invoke_adapter_method("count", self._normalize_filter(filter), options=options)
