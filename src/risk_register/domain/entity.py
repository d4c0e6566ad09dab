"""Identity, timestamps and event buffering for aggregates.

Aggregates *compose* these two records rather than inheriting from a base
class: ``EntityIdentity`` carries the surrogate id and timestamps,
``EventBuffer`` holds events raised since the last drain.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from risk_register.core.ids import utc_now
from risk_register.domain.events import DomainEvent


@dataclass
class EntityIdentity:
    """Surrogate id (0 until persisted) plus creation/update timestamps."""

    id: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_transient(self) -> bool:
        """``True`` until the repository has assigned an id."""
        return self.id == 0

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or utc_now()

    def same_identity(self, other: EntityIdentity) -> bool:
        # Two unsaved entities are never the same entity.
        if self.is_transient or other.is_transient:
            return self is other
        return self.id == other.id


class EventBuffer:
    """Per-instance list of pending domain events."""

    __slots__ = ("_events",)

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []

    def record(self, event: DomainEvent) -> None:
        self._events.append(event)

    def pending(self) -> tuple[DomainEvent, ...]:
        return tuple(self._events)

    def rekey(self, aggregate_id: str) -> None:
        """Point events raised before the aggregate had an id at *aggregate_id*."""
        self._events = [
            replace(e, aggregate_id=aggregate_id) if e.aggregate_id == "0" else e
            for e in self._events
        ]

    def drain(self) -> list[DomainEvent]:
        """Return every buffered event and empty the buffer."""
        drained, self._events = self._events, []
        return drained

    def __len__(self) -> int:
        return len(self._events)
