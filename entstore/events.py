"""
Scoped lifecycle event notifier.

Each Datastore owns one EventNotifier; there is no process-wide bus.
Listeners are registered per event name, with ``"*"`` receiving every event
as ``(event_name, data)``.

Dispatch rules:
    - Synchronous listeners run inline, in registration order
    - A listener returning an awaitable is scheduled as a detached task
    - Exceptions from listeners (sync or async) are logged, never raised

Invariants:
    - emit() never raises because of a listener
    - Detached tasks stay referenced until they finish
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

WILDCARD = "*"

Listener = Callable[..., Any]


class EventNotifier:
    """Observer list with fire-and-forget dispatch.

    Example:
        >>> events = EventNotifier()
        >>> events.on("user.created", lambda data: print(data["inserted_count"]))
        >>> events.emit("user.created", {"entities": [], "inserted_count": 0})
        0
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._pending: set[asyncio.Future[Any]] = set()

    def on(self, event: str, listener: Listener) -> Listener:
        """Register a listener. Returns the listener so it can be used as a decorator target."""
        self._listeners[event].append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener (no-op if not registered)."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listeners(self, event: str) -> list[Listener]:
        return list(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> None:
        """Dispatch an event to its listeners.

        Args:
            event: Event name
            *args: Positional arguments passed to every listener
        """
        for listener in self.listeners(event):
            try:
                result = listener(*args)
            except Exception:
                logger.exception("Event listener failed", extra={"event": event})
                continue

            if inspect.isawaitable(result):
                self._detach(event, result)

    def _detach(self, event: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: nothing can drive the listener coroutine
            logger.error("Cannot schedule async listener without a running event loop", extra={"event": event})
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable, loop=loop)

        self._pending.add(task)

        def done(fut: asyncio.Future[Any]) -> None:
            self._pending.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(
                    "Async event listener failed",
                    exc_info=(type(exc), exc, exc.__traceback__),
                    extra={"event": event},
                )

        task.add_done_callback(done)

    @property
    def pending(self) -> int:
        """Number of async listener tasks still running."""
        return len(self._pending)

    async def join(self) -> None:
        """Wait for all detached listener tasks to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
