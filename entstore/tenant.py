"""
Tenant-aware datastore.

TenantAwareDatastore wraps a Datastore and scopes every call to the tenant
carried in ``options["meta"][tenant_identifier]``:
- Inserts: the tenant key is written into every document
- Filter operations: the tenant key is added as an equality predicate
- Id operations: ids are first checked for ownership with one projection
  query, and only owned ids reach the wrapped datastore
- Updates: the tenant key is forced, so an entity can never be moved to
  another tenant

Invariants:
    - A tenant can never read, mutate or delete another tenant's entity by id
    - "Not owned" is a falsy/empty result, not an exception
    - Missing tenant context raises PreconditionError before any I/O
    - ``meta["ignoreTenantId"] is True`` bypasses every check for that call
      only; it is never a default

How to change safely:
    - Any new Datastore operation must be re-derived here, otherwise it
      is unreachable through the tenant-aware surface
    - Keep ownership checks to a single read per call
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .datastore import Datastore
from .errors import PreconditionError
from .events import EventNotifier, Listener
from .update import INC, SET

logger = logging.getLogger(__name__)

DEFAULT_TENANT_IDENTIFIER = "tenantId"
IGNORE_TENANT_FLAG = "ignoreTenantId"


class TenantAwareDatastore:
    """Tenant scoping around a Datastore (composition, not inheritance).

    Example:
        >>> users = TenantAwareDatastore(Datastore(schema=schema, adapter=adapter))
        >>> await users.insert_one({"name": "ada"}, {"meta": {"tenantId": "t1"}})
        {'name': 'ada', 'tenantId': 't1', 'id': '...'}
        >>> await users.find_by_id(user_id, {"meta": {"tenantId": "t2"}})
        None
    """

    def __init__(self, datastore: Datastore, tenant_identifier: str | None = None) -> None:
        """Initialize the wrapper.

        Args:
            datastore: Datastore to delegate to
            tenant_identifier: Key of the tenant id in ``options["meta"]``
                and in stored documents
        """
        self.datastore = datastore
        self.tenant_identifier = tenant_identifier or DEFAULT_TENANT_IDENTIFIER

    @property
    def schema(self):
        return self.datastore.schema

    @property
    def events(self) -> EventNotifier:
        return self.datastore.events

    def on(self, event: str, listener: Listener) -> Listener:
        return self.datastore.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self.datastore.off(event, listener)

    # ------------------------------------------------------------------
    # Tenant resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _meta(options: Mapping[str, Any] | None) -> Mapping[str, Any]:
        return (options or {}).get("meta") or {}

    def get_tenant_from_options(self, options: Mapping[str, Any] | None) -> Any:
        return self._meta(options).get(self.tenant_identifier)

    def is_tenant_check_ignored(self, options: Mapping[str, Any] | None) -> bool:
        return self._meta(options).get(IGNORE_TENANT_FLAG) is True

    def assert_tenant_in_options(self, options: Mapping[str, Any] | None) -> None:
        """Raise PreconditionError unless the call carries a tenant or the bypass flag."""
        if self.is_tenant_check_ignored(options):
            return
        if self.get_tenant_from_options(options) is None:
            raise PreconditionError(
                f"meta.{self.tenant_identifier} is missing in options",
                self.tenant_identifier,
            )

    def _tenant(self, options: Mapping[str, Any] | None) -> Any:
        self.assert_tenant_in_options(options)
        return self.get_tenant_from_options(options)

    def ensure_tenant_on_doc(self, docs: Any, options: Mapping[str, Any] | None) -> Any:
        """Return copies of one document or a list of documents with the tenant key set."""
        tenant = self._tenant(options)
        if isinstance(docs, list):
            return [{**doc, self.tenant_identifier: tenant} for doc in docs]
        return {**docs, self.tenant_identifier: tenant}

    def ensure_tenant_on_filter(self, filter: Mapping[str, Any] | None, options: Mapping[str, Any] | None) -> dict[str, Any]:
        """Return a copy of the filter restricted to the call's tenant."""
        tenant = self._tenant(options)
        return {**(filter or {}), self.tenant_identifier: tenant}

    def ensure_tenant_on_update(self, update: Mapping[str, Any] | None, options: Mapping[str, Any] | None) -> dict[str, Any]:
        """Return a copy of the update that pins the tenant key.

        Any change the caller tried to make to the tenant key (bare, in
        $set or $inc, directly or through a dotted path below it) is
        dropped, and the key is set to the call's tenant.
        """
        tenant = self._tenant(options)
        key = self.tenant_identifier

        def touches_tenant(path: Any) -> bool:
            return path == key or str(path).startswith(f"{key}.")

        pinned = {k: v for k, v in (update or {}).items() if not touches_tenant(k)}
        for operator in (SET, INC):
            if isinstance(pinned.get(operator), Mapping):
                pinned[operator] = {
                    k: v for k, v in pinned[operator].items() if not touches_tenant(k)
                }
        pinned[key] = tenant
        return pinned

    async def get_doc_ids_owned_by_tenant(self, ids: Any, options: dict[str, Any] | None) -> list[Any]:
        """Return the subset of ``ids`` owned by the call's tenant.

        Issues a single projection-only find.

        Args:
            ids: One id or a list of ids
            options: Call options carrying the tenant

        Returns:
            Owned ids as reported by the adapter
        """
        tenant = self._tenant(options)
        requested = list(ids) if isinstance(ids, (list, tuple, set)) else [ids]
        if not requested:
            return []

        docs = await self.datastore.find({
            "$select": "id",
            "id": {"$in": requested},
            self.tenant_identifier: tenant,
        }, options)

        owned = [doc["id"] for doc in docs]
        if len(owned) < len(requested):
            logger.debug(
                "Ids not owned by tenant were dropped",
                extra={
                    "schema": self.schema.name,
                    "requested": len(requested),
                    "owned": len(owned),
                },
            )
        return owned

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_one(self, doc: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.insert_one(doc, options)
        return await self.datastore.insert_one(self.ensure_tenant_on_doc(doc, options), options)

    async def insert_many(self, docs: list[dict[str, Any]], options: dict[str, Any] | None = None) -> Any:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.insert_many(docs, options)
        return await self.datastore.insert_many(self.ensure_tenant_on_doc(list(docs), options), options)

    async def update_by_id(self, id: Any, update: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.update_by_id(id, update, options)

        owned = await self.get_doc_ids_owned_by_tenant(id, options)
        if not owned:
            return None

        return await self.datastore.update_by_id(
            owned[0],
            self.ensure_tenant_on_update(update, options),
            options,
        )

    async def update_many(
        self,
        filter: dict[str, Any],
        update: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> int:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.update_many(filter, update, options)

        return await self.datastore.update_many(
            self.ensure_tenant_on_filter(filter, options),
            self.ensure_tenant_on_update(update, options),
            options,
        )

    async def delete_by_id(self, id: Any, options: dict[str, Any] | None = None) -> Any:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.delete_by_id(id, options)

        owned = await self.get_doc_ids_owned_by_tenant(id, options)
        if not owned:
            return None

        return await self.datastore.delete_by_id(owned[0], options)

    async def delete_by_ids(self, ids: list[Any], options: dict[str, Any] | None = None) -> list[Any]:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.delete_by_ids(ids, options)

        owned = await self.get_doc_ids_owned_by_tenant(ids, options)
        if not owned:
            return []

        return await self.datastore.delete_by_ids(owned, options)

    async def delete_many(self, filter: dict[str, Any], options: dict[str, Any] | None = None) -> int:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.delete_many(filter, options)
        return await self.datastore.delete_many(self.ensure_tenant_on_filter(filter, options), options)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, id: Any, options: dict[str, Any] | None = None) -> Any:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.find_by_id(id, options)

        owned = await self.get_doc_ids_owned_by_tenant(id, options)
        if not owned:
            return None

        return await self.datastore.find_by_id(owned[0], options)

    async def find_by_ids(self, ids: list[Any], options: dict[str, Any] | None = None) -> list[Any]:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.find_by_ids(ids, options)

        owned = await self.get_doc_ids_owned_by_tenant(ids, options)
        if not owned:
            return []

        return await self.datastore.find_by_ids(owned, options)

    async def find_one(self, filter: dict[str, Any], options: dict[str, Any] | None = None) -> Any:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.find_one(filter, options)
        return await self.datastore.find_one(self.ensure_tenant_on_filter(filter, options), options)

    async def find(self, filter: dict[str, Any] | None = None, options: dict[str, Any] | None = None) -> list[Any]:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.find(filter, options)
        return await self.datastore.find(self.ensure_tenant_on_filter(filter, options), options)

    async def count(self, filter: dict[str, Any] | None = None, options: dict[str, Any] | None = None) -> int:
        if self.is_tenant_check_ignored(options):
            return await self.datastore.count(filter, options)
        return await self.datastore.count(self.ensure_tenant_on_filter(filter, options), options)
