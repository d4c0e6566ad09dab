"""Event bus abstraction and in-memory implementation.

Design goals
------------
1.  **Type-routed dispatching**: subscribers register for an event-type
    string (``"RiskCreated"`` ...).  ``publish()`` routes the event to the
    handlers registered for ``event.event_type`` and then to the global
    handlers registered for every type.
2.  **Priority ordering**: within each list, handlers run in descending
    priority; equal priorities keep subscription order.
3.  **Failure isolation**: a handler that raises is logged, counted and
    dead-lettered; the remaining handlers still run and ``publish()``
    itself never raises because of a subscriber.
4.  **Explicit instance**: there is no module-level singleton.  The bus
    is constructed once at start-up and injected into repositories and
    subscribers; tests build a fresh one per test.

This module provides:

*  ``IEventBus``: the protocol (interface).
*  ``InMemoryEventBus``: sequential, awaited, in-process implementation.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Protocol, Union, runtime_checkable

from risk_register.domain.events import DomainEvent

logger = logging.getLogger(__name__)

# Handlers may be coroutine functions or plain callables.
EventHandler = Callable[[DomainEvent], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class _Subscription:
    handler: EventHandler
    priority: int


def _insert_by_priority(subs: list[_Subscription], sub: _Subscription) -> None:
    """Insert after every existing subscription of >= priority."""
    idx = len(subs)
    for i, existing in enumerate(subs):
        if existing.priority < sub.priority:
            idx = i
            break
    subs.insert(idx, sub)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class IEventBus(Protocol):
    """Publish/subscribe bus for ``DomainEvent`` instances."""

    async def publish(self, event: DomainEvent) -> None:
        """Dispatch *event* to type-specific then global handlers."""
        ...

    async def publish_all(self, events: Iterable[DomainEvent]) -> None:
        """Publish *events* one at a time, in order."""
        ...

    def subscribe(
        self, event_type: str, handler: EventHandler, priority: int = 0,
    ) -> None:
        ...

    def subscribe_all(self, handler: EventHandler, priority: int = 0) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventBus:
    """Deterministic, in-process event bus.

    Parameters
    ----------
    keep_history
        When ``True`` (default), every published event is kept for
        ``get_history()``.  Disable for long-running processes.
    """

    def __init__(self, *, keep_history: bool = True) -> None:
        self._handlers: dict[str, list[_Subscription]] = defaultdict(list)
        self._global_handlers: list[_Subscription] = []
        self._history: list[DomainEvent] = []
        self._keep_history = keep_history
        self._error_counts: dict[str, int] = defaultdict(int)
        self._dead_letters: list[tuple[DomainEvent, str]] = []
        self._messages_processed: int = 0

    # -- Subscription ------------------------------------------------------

    def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        priority: int = 0,
    ) -> None:
        """Register *handler* for events whose ``event_type`` is *event_type*."""
        _insert_by_priority(
            self._handlers[event_type], _Subscription(handler, priority),
        )

    def subscribe_all(self, handler: EventHandler, priority: int = 0) -> None:
        """Register *handler* for every event type."""
        _insert_by_priority(self._global_handlers, _Subscription(handler, priority))

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        subs = self._handlers.get(event_type)
        if not subs:
            return
        subs[:] = [s for s in subs if s.handler is not handler]
        if not subs:
            del self._handlers[event_type]

    def unsubscribe_all(self, handler: EventHandler) -> None:
        self._global_handlers[:] = [
            s for s in self._global_handlers if s.handler is not handler
        ]

    def clear(self) -> None:
        """Drop every subscription (testing helper)."""
        self._handlers.clear()
        self._global_handlers.clear()

    # -- Core API ----------------------------------------------------------

    async def publish(self, event: DomainEvent) -> None:
        """Publish *event* to all matching handlers, sequentially."""
        event_type = event.event_type
        if self._keep_history:
            self._history.append(event)

        # Snapshot so handlers may (un)subscribe during dispatch.
        subs = list(self._handlers.get(event_type, ())) + list(self._global_handlers)
        for sub in subs:
            try:
                result = sub.handler(event)
                if inspect.isawaitable(result):
                    await result
                self._messages_processed += 1
            except Exception as exc:
                self._error_counts[event_type] += 1
                self._dead_letters.append((event, str(exc)))
                logger.exception(
                    "Handler error on %s (event_id=%s): %s",
                    event_type, event.event_id, exc,
                )

    async def publish_all(self, events: Iterable[DomainEvent]) -> None:
        """Publish each event fully before starting the next."""
        for event in events:
            await self.publish(event)

    # -- Observability -----------------------------------------------------

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))

    def registered_event_types(self) -> list[str]:
        return list(self._handlers.keys())

    def get_history(self, event_type: str | None = None) -> list[DomainEvent]:
        """Return published events, optionally filtered by type tag."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.event_type == event_type]

    def clear_history(self) -> None:
        """Clear the event history (testing helper)."""
        self._history.clear()

    def get_error_counts(self) -> dict[str, int]:
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[tuple[DomainEvent, str]]:
        return list(self._dead_letters)

    def clear_dead_letters(self) -> list[tuple[DomainEvent, str]]:
        """Drain and return dead letters."""
        drained = self._dead_letters[:]
        self._dead_letters.clear()
        return drained

    @property
    def messages_processed(self) -> int:
        return self._messages_processed
