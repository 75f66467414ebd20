"""
Storage adapter contract.

This module defines the StorageAdapter protocol that every backend plugin
implements, plus the two ways a Datastore can be given a backend:
- FixedAdapter: one shared adapter instance
- AdapterFactory: a function of the call options returning an instance
  (e.g. one physical database per tenant)

Contract:
    - Documents exchanged with the datastore use ``id`` as identifier;
      adapters translate to their native key at the boundary
    - Filters may carry control keys ($select, $limit, $offset, $sort,
      $startCursor, $endCursor); adapters strip them with
      parse_filter_query() before building a backend query
    - Updates arrive pre-normalized as flat {"$set", "$inc"} descriptors
    - Operations a backend cannot support raise NotImplementedError
      (entstore.errors), never silently no-op

How to change safely:
    - Protocol changes require updating all adapters
    - New operations go on BaseStorageAdapter with a raising default
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
    TYPE_CHECKING,
)

from ..errors import NotImplementedError

if TYPE_CHECKING:
    from ..schema import EntitySchema

Document = dict[str, Any]
Options = Optional[dict[str, Any]]


@runtime_checkable
class StorageAdapter(Protocol):
    """Protocol for storage backends.

    All methods are coroutines. Falsy returns mean "nothing matched".
    """

    async def init(self, schema: "EntitySchema") -> None:
        """Prepare the backend (connect, create tables). Called once per instance."""
        ...

    async def insert_one(self, doc: Document, options: Options = None) -> Document | None:
        ...

    async def insert_many(self, docs: list[Document], options: Options = None) -> list[Document]:
        ...

    async def update_by_id(self, id: Any, update: dict[str, Any], options: Options = None) -> Document | None:
        ...

    async def update_many(self, filter: dict[str, Any], update: dict[str, Any], options: Options = None) -> int:
        ...

    async def delete_by_id(self, id: Any, options: Options = None) -> Any:
        """Returns the deleted id, or a falsy value if nothing was deleted."""
        ...

    async def delete_by_ids(self, ids: list[Any], options: Options = None) -> list[Any]:
        ...

    async def delete_many(self, filter: dict[str, Any], options: Options = None) -> int:
        ...

    async def find_by_id(self, id: Any, options: Options = None) -> Document | None:
        ...

    async def find_by_ids(self, ids: list[Any], options: Options = None) -> list[Document]:
        ...

    async def find_one(self, filter: dict[str, Any], options: Options = None) -> Document | None:
        ...

    async def find(self, filter: dict[str, Any], options: Options = None) -> list[Document]:
        ...

    async def count(self, filter: dict[str, Any], options: Options = None) -> int:
        ...


class BaseStorageAdapter:
    """Convenience base class: every operation raises NotImplementedError.

    Backends override the operations they support.
    """

    schema: "EntitySchema | None" = None

    async def init(self, schema: "EntitySchema") -> None:
        self.schema = schema

    def _not_implemented(self, operation: str) -> NotImplementedError:
        return NotImplementedError(operation, type(self).__name__)

    async def insert_one(self, doc, options=None):
        raise self._not_implemented("insert_one")

    async def insert_many(self, docs, options=None):
        raise self._not_implemented("insert_many")

    async def update_by_id(self, id, update, options=None):
        raise self._not_implemented("update_by_id")

    async def update_many(self, filter, update, options=None):
        raise self._not_implemented("update_many")

    async def delete_by_id(self, id, options=None):
        raise self._not_implemented("delete_by_id")

    async def delete_by_ids(self, ids, options=None):
        raise self._not_implemented("delete_by_ids")

    async def delete_many(self, filter, options=None):
        raise self._not_implemented("delete_many")

    async def find_by_id(self, id, options=None):
        raise self._not_implemented("find_by_id")

    async def find_by_ids(self, ids, options=None):
        raise self._not_implemented("find_by_ids")

    async def find_one(self, filter, options=None):
        raise self._not_implemented("find_one")

    async def find(self, filter, options=None):
        raise self._not_implemented("find")

    async def count(self, filter, options=None):
        raise self._not_implemented("count")


@dataclass(frozen=True)
class FixedAdapter:
    """A single adapter instance shared by every call."""

    adapter: Any

    def resolve(self, options: dict[str, Any]) -> Any:
        return self.adapter


@dataclass(frozen=True)
class AdapterFactory:
    """Builds (or looks up) the adapter for a call from its options.

    The factory is responsible for pooling; the datastore initializes each
    distinct instance it returns exactly once.
    """

    factory: Callable[[dict[str, Any]], Any]

    def resolve(self, options: dict[str, Any]) -> Any:
        return self.factory(options)


AdapterSource = Union[FixedAdapter, AdapterFactory]


def as_adapter_source(adapter: Any) -> AdapterSource:
    """Normalize a configured backend into FixedAdapter or AdapterFactory.

    Plain callables without an ``init`` method are treated as factories;
    anything else is treated as an adapter instance.

    Raises:
        TypeError: If adapter is None
    """
    if isinstance(adapter, (FixedAdapter, AdapterFactory)):
        return adapter
    if adapter is None:
        raise TypeError("adapter is required")
    if callable(adapter) and not hasattr(adapter, "init"):
        return AdapterFactory(adapter)
    return FixedAdapter(adapter)
