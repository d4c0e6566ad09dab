"""Domain events raised by the risk aggregate.

Design invariants
-----------------
1.  Every event and every payload is **immutable** (``frozen=True``);
    collections inside payloads are tuples.
2.  ``event_id`` is a UUID4 generated at creation time; ``occurred_on``
    is stamped at construction.
3.  ``event_type`` is a stable string tag (``RiskCreated`` ...) used by
    the event bus for routing.
4.  Events are produced only by the aggregate that raised them.  The
    repository takes ownership when it drains them for publication.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from risk_register.core.enums import EventType
from risk_register.core.ids import new_id as _uuid
from risk_register.core.ids import utc_now as _now
from risk_register.domain.value_objects import ATTENTION_THRESHOLD, CRITICAL_THRESHOLD

_RESOLVED = ("mitigated", "accepted", "transferred", "avoided", "closed")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Immutable base for every domain event.

    Shared fields
    ~~~~~~~~~~~~~
    aggregate_id    Surrogate id of the aggregate, as a string.
    payload         Typed, frozen payload; shape depends on ``event_type``.
    event_id        Unique identity (UUID4).
    occurred_on     UTC creation time.
    """

    EVENT_TYPE: ClassVar[str] = ""

    aggregate_id: str
    payload: Any
    event_id: str = field(default_factory=_uuid)
    occurred_on: datetime = field(default_factory=_now)

    @property
    def event_type(self) -> str:
        return self.EVENT_TYPE

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly dict (timestamps stay ``datetime``)."""
        d = asdict(self)
        d["event_type"] = self.event_type
        return d


# =========================================================================
# Payloads
# =========================================================================

@dataclass(frozen=True)
class FieldChange:
    """Old and new value of one changed field."""

    field: str
    old: Any = None
    new: Any = None


@dataclass(frozen=True)
class RiskCreatedPayload:
    risk_id: str
    title: str
    description: str
    category: str
    probability: int
    impact: int
    risk_score: int
    risk_level: str
    status: str
    organization_id: int
    owner_id: int
    created_by: int
    risk_type: str


@dataclass(frozen=True)
class RiskUpdatedPayload:
    risk_id: str
    updated_fields: tuple[str, ...] = ()
    changes: tuple[FieldChange, ...] = ()
    updated_by: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class RiskStatusChangedPayload:
    risk_id: str
    old_status: str
    new_status: str
    risk_score: int
    is_critical: bool
    reason: str | None = None
    changed_by: int | None = None


@dataclass(frozen=True)
class RiskDeletedPayload:
    risk_id: str
    title: str
    category: str
    risk_score: int
    risk_level: str
    status: str
    organization_id: int
    owner_id: int
    deleted_at: datetime
    deleted_by: int | None = None
    reason: str | None = None


# =========================================================================
# Events
# =========================================================================

@dataclass(frozen=True)
class RiskCreated(DomainEvent):
    """A new risk was registered."""

    EVENT_TYPE: ClassVar[str] = EventType.RISK_CREATED.value

    payload: RiskCreatedPayload

    @property
    def is_critical_risk(self) -> bool:
        return self.payload.risk_score >= CRITICAL_THRESHOLD

    @property
    def needs_immediate_attention(self) -> bool:
        return self.payload.risk_score >= ATTENTION_THRESHOLD


@dataclass(frozen=True)
class RiskUpdated(DomainEvent):
    """Details, score or ownership of a risk changed."""

    EVENT_TYPE: ClassVar[str] = EventType.RISK_UPDATED.value

    payload: RiskUpdatedPayload

    def has_field_updated(self, name: str) -> bool:
        return name in self.payload.updated_fields

    @property
    def score_changed(self) -> bool:
        return any(
            self.has_field_updated(f) for f in ("probability", "impact", "score")
        )

    @property
    def category_changed(self) -> bool:
        return self.has_field_updated("category")

    def get_field_change(self, name: str) -> FieldChange | None:
        for change in self.payload.changes:
            if change.field == name:
                return change
        return None


@dataclass(frozen=True)
class RiskStatusChanged(DomainEvent):
    """A risk moved along its lifecycle."""

    EVENT_TYPE: ClassVar[str] = EventType.RISK_STATUS_CHANGED.value

    payload: RiskStatusChangedPayload

    @property
    def was_activated(self) -> bool:
        return self.payload.new_status == "active"

    @property
    def was_closed(self) -> bool:
        return self.payload.new_status == "closed"

    @property
    def was_mitigated(self) -> bool:
        return self.payload.new_status == "mitigated"

    @property
    def is_now_monitoring(self) -> bool:
        return self.payload.new_status == "monitoring"

    @property
    def was_resolved(self) -> bool:
        return self.payload.new_status in _RESOLVED

    @property
    def was_reopened(self) -> bool:
        return self.payload.old_status == "closed" and self.payload.new_status == "active"

    @property
    def is_critical_status_change(self) -> bool:
        return self.payload.is_critical and (self.was_activated or self.was_closed)


@dataclass(frozen=True)
class RiskDeleted(DomainEvent):
    """A risk was approved for deletion."""

    EVENT_TYPE: ClassVar[str] = EventType.RISK_DELETED.value

    payload: RiskDeletedPayload

    @property
    def was_critical(self) -> bool:
        return self.payload.risk_score >= CRITICAL_THRESHOLD

    @property
    def was_active(self) -> bool:
        return self.payload.status == "active"


ALL_RISK_EVENTS: tuple[type[DomainEvent], ...] = (
    RiskCreated,
    RiskUpdated,
    RiskStatusChanged,
    RiskDeleted,
)
