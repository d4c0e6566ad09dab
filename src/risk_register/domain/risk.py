"""Risk aggregate root.

The ``Risk`` is the only entry point for changing a risk.  Every mutation
goes through a method here, which enforces the business rules, touches
``updated_at`` and (where documented) buffers a domain event.  The
repository drains the buffer with ``pull_domain_events()`` after a
successful write and hands the events to the event bus.

Business rules
--------------
* ``score == probability * impact``; level thresholds 20/12/6.
* Status changes follow the ``RiskStatus`` transition table.
* A critical risk cannot be closed without a mitigation plan.
* A critical active risk cannot be deleted.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Union

from risk_register.core.clock import DEFAULT_CLOCK, IClock
from risk_register.core.config import ReviewConfig
from risk_register.core.errors import DomainException, ValidationException
from risk_register.core.ids import ensure_utc, format_timestamp, is_valid_risk_id
from risk_register.domain.entity import EntityIdentity, EventBuffer
from risk_register.domain.events import (
    DomainEvent,
    FieldChange,
    RiskCreated,
    RiskCreatedPayload,
    RiskDeleted,
    RiskDeletedPayload,
    RiskStatusChanged,
    RiskStatusChangedPayload,
    RiskUpdated,
    RiskUpdatedPayload,
)
from risk_register.domain.value_objects import RiskCategory, RiskScore, RiskStatus

logger = logging.getLogger(__name__)

MetadataValue = Union[
    None, bool, int, float, str, list["MetadataValue"], dict[str, "MetadataValue"]
]

TITLE_MAX = 200
DESCRIPTION_MAX = 2000
PLAN_MAX = 5000
DEFAULT_RISK_TYPE = "business"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _validate_text(field: str, value: Any, max_len: int, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationException.from_field(field, f"{label} is required", value)
    text = value.strip()
    if len(text) > max_len:
        raise ValidationException.from_field(
            field, f"{label} must be {max_len} characters or less", value,
        )
    return text


def _validate_plan(field: str, value: str | None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationException.from_field(field, "Plan must be a string", value)
    text = value.strip()
    if len(text) > PLAN_MAX:
        raise ValidationException.from_field(
            field, f"Plan must be {PLAN_MAX} characters or less", value,
        )
    return text or None


def _validate_risk_id(risk_id: Any) -> str:
    if not isinstance(risk_id, str) or not risk_id.strip():
        raise ValidationException.from_field("risk_id", "Risk ID is required", risk_id)
    if not is_valid_risk_id(risk_id):
        raise ValidationException.from_field(
            "risk_id",
            "Risk ID must be in format: PREFIX-NUMBER (e.g., RISK-001)",
            risk_id,
        )
    return risk_id


def _validate_positive(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationException.from_field(
            field, f"{field} must be a positive integer", value,
        )
    return value


def _normalize_tag(tag: str) -> str:
    return str(tag).strip().lower()


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Lower-case, trim, drop empties and duplicates (first occurrence wins)."""
    out: list[str] = []
    for tag in tags or ():
        t = _normalize_tag(tag)
        if t and t not in out:
            out.append(t)
    return out


def validate_metadata_value(value: Any, path: str = "metadata") -> MetadataValue:
    """Check *value* belongs to the closed ``MetadataValue`` union.

    Tuples are accepted and normalised to lists so values round-trip
    through JSON unchanged.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [validate_metadata_value(v, f"{path}[{i}]") for i, v in enumerate(value)]
    if isinstance(value, dict):
        out: dict[str, MetadataValue] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise ValidationException.from_field(
                    path, "Metadata keys must be strings", k,
                )
            out[k] = validate_metadata_value(v, f"{path}.{k}")
        return out
    raise ValidationException.from_field(
        path, f"Unsupported metadata value type: {type(value).__name__}", repr(value),
    )


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

class Risk:
    """Aggregate root for a single organizational risk.

    Do not call the constructor directly: use :meth:`create` for new
    risks and :meth:`reconstitute` when loading from storage.
    """

    def __init__(
        self,
        identity: EntityIdentity,
        *,
        risk_id: str,
        title: str,
        description: str,
        category: RiskCategory,
        score: RiskScore,
        status: RiskStatus,
        organization_id: int,
        owner_id: int,
        created_by: int,
        risk_type: str = DEFAULT_RISK_TYPE,
        mitigation_plan: str | None = None,
        contingency_plan: str | None = None,
        review_date: datetime | None = None,
        last_review_date: datetime | None = None,
        tags: list[str] | None = None,
        metadata: dict[str, MetadataValue] | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._identity = identity
        self._events = EventBuffer()
        self._clock = clock or DEFAULT_CLOCK
        self._risk_id = risk_id
        self._title = title
        self._description = description
        self._category = category
        self._score = score
        self._status = status
        self._organization_id = organization_id
        self._owner_id = owner_id
        self._created_by = created_by
        self._risk_type = risk_type
        self._mitigation_plan = mitigation_plan
        self._contingency_plan = contingency_plan
        self._review_date = review_date
        self._last_review_date = last_review_date
        self._tags: list[str] = list(tags or [])
        self._metadata: dict[str, MetadataValue] = copy.deepcopy(metadata) if metadata else {}

    # -- Factories ---------------------------------------------------------

    @classmethod
    def create(
        cls,
        *,
        risk_id: str,
        title: str,
        description: str,
        category: RiskCategory,
        probability: int,
        impact: int,
        organization_id: int,
        owner_id: int,
        created_by: int,
        risk_type: str | None = None,
        mitigation_plan: str | None = None,
        contingency_plan: str | None = None,
        review_date: datetime | None = None,
        tags: Iterable[str] | None = None,
        metadata: dict[str, Any] | None = None,
        clock: IClock | None = None,
    ) -> Risk:
        """Validate inputs and build a new, unsaved risk in status ``active``.

        Buffers one ``RiskCreated`` event.
        """
        risk_id = _validate_risk_id(risk_id)
        title = _validate_text("title", title, TITLE_MAX, "Title")
        description = _validate_text("description", description, DESCRIPTION_MAX, "Description")
        if not isinstance(category, RiskCategory):
            category = RiskCategory.create(category)
        score = RiskScore.create(probability, impact)
        organization_id = _validate_positive("organization_id", organization_id)
        owner_id = _validate_positive("owner_id", owner_id)
        created_by = _validate_positive("created_by", created_by)

        clock = clock or DEFAULT_CLOCK
        now = clock.now()
        risk = cls(
            EntityIdentity(id=0, created_at=now, updated_at=now),
            risk_id=risk_id,
            title=title,
            description=description,
            category=category,
            score=score,
            status=RiskStatus.create_active(),
            organization_id=organization_id,
            owner_id=owner_id,
            created_by=created_by,
            risk_type=(risk_type or "").strip() or DEFAULT_RISK_TYPE,
            mitigation_plan=_validate_plan("mitigation_plan", mitigation_plan),
            contingency_plan=_validate_plan("contingency_plan", contingency_plan),
            review_date=ensure_utc(review_date) if review_date else None,
            tags=normalize_tags(tags),
            metadata=validate_metadata_value(dict(metadata or {})),
            clock=clock,
        )
        risk._record(RiskCreated(
            aggregate_id=str(risk.id),
            payload=RiskCreatedPayload(
                risk_id=risk.risk_id,
                title=risk.title,
                description=risk.description,
                category=risk.category.value.value,
                probability=score.probability,
                impact=score.impact,
                risk_score=score.score,
                risk_level=score.level.value,
                status=risk.status.value.value,
                organization_id=risk.organization_id,
                owner_id=risk.owner_id,
                created_by=risk.created_by,
                risk_type=risk.risk_type,
            ),
            occurred_on=now,
        ))
        return risk

    @classmethod
    def reconstitute(
        cls,
        id: int,
        *,
        created_at: datetime,
        updated_at: datetime,
        clock: IClock | None = None,
        **props: Any,
    ) -> Risk:
        """Rebuild a risk from trusted storage: no validation, no events."""
        identity = EntityIdentity(id=id, created_at=created_at, updated_at=updated_at)
        return cls(identity, clock=clock, **props)

    # -- Identity ----------------------------------------------------------

    @property
    def id(self) -> int:
        return self._identity.id

    def assign_id(self, new_id: int) -> None:
        """Called by the repository after insert.  Only valid once."""
        if not self._identity.is_transient:
            raise ValueError(f"Risk {self._risk_id} already has id {self.id}")
        self._identity.id = new_id
        self._events.rekey(str(new_id))

    @property
    def created_at(self) -> datetime:
        return self._identity.created_at

    @property
    def updated_at(self) -> datetime:
        return self._identity.updated_at

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Risk):
            return NotImplemented
        return self._identity.same_identity(other._identity)

    def __hash__(self) -> int:
        return hash((Risk, self._risk_id))

    def __repr__(self) -> str:
        return (
            f"<Risk(id={self.id}, risk_id={self._risk_id!r}, "
            f"status={self._status}, score={self._score.score})>"
        )

    # -- Getters -----------------------------------------------------------

    @property
    def risk_id(self) -> str:
        return self._risk_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def description(self) -> str:
        return self._description

    @property
    def category(self) -> RiskCategory:
        return self._category

    @property
    def score(self) -> RiskScore:
        return self._score

    @property
    def status(self) -> RiskStatus:
        return self._status

    @property
    def organization_id(self) -> int:
        return self._organization_id

    @property
    def owner_id(self) -> int:
        return self._owner_id

    @property
    def created_by(self) -> int:
        return self._created_by

    @property
    def risk_type(self) -> str:
        return self._risk_type

    @property
    def mitigation_plan(self) -> str | None:
        return self._mitigation_plan

    @property
    def contingency_plan(self) -> str | None:
        return self._contingency_plan

    @property
    def review_date(self) -> datetime | None:
        return self._review_date

    @property
    def last_review_date(self) -> datetime | None:
        return self._last_review_date

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(self._tags)

    @property
    def metadata(self) -> dict[str, MetadataValue]:
        """A copy; use :meth:`update_metadata` to change it."""
        return copy.deepcopy(self._metadata)

    # -- Computed properties -----------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._status.is_active()

    @property
    def is_closed(self) -> bool:
        return self._status.is_closed()

    @property
    def is_critical(self) -> bool:
        return self._score.is_critical()

    @property
    def needs_immediate_attention(self) -> bool:
        return self._score.needs_immediate_attention() and self.is_active

    @property
    def is_review_overdue(self) -> bool:
        if self._review_date is None:
            return False
        return self._clock.now() > self._review_date

    # -- Business operations -----------------------------------------------

    def update_details(
        self,
        *,
        title: str | None = None,
        description: str | None = None,
        category: RiskCategory | None = None,
        mitigation_plan: str | None = None,
        contingency_plan: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> None:
        """Replace any supplied detail fields.  ``None`` means "leave as is".

        Buffers one ``RiskUpdated`` event listing the supplied fields.
        """
        changes: list[FieldChange] = []

        if title is not None:
            new_title = _validate_text("title", title, TITLE_MAX, "Title")
            changes.append(FieldChange("title", self._title, new_title))
        if description is not None:
            new_desc = _validate_text("description", description, DESCRIPTION_MAX, "Description")
            changes.append(FieldChange("description", self._description, new_desc))
        if category is not None and not isinstance(category, RiskCategory):
            category = RiskCategory.create(category)
        if mitigation_plan is not None:
            new_mp = _validate_plan("mitigation_plan", mitigation_plan)
            changes.append(FieldChange("mitigation_plan", self._mitigation_plan, new_mp))
        if contingency_plan is not None:
            new_cp = _validate_plan("contingency_plan", contingency_plan)
            changes.append(FieldChange("contingency_plan", self._contingency_plan, new_cp))
        if category is not None:
            changes.append(FieldChange("category", self._category.value.value, category.value.value))
        if tags is not None:
            new_tags = normalize_tags(tags)
            changes.append(FieldChange("tags", tuple(self._tags), tuple(new_tags)))

        if not changes:
            return

        # All inputs validated; apply atomically.
        for change in changes:
            if change.field == "category":
                self._category = category  # type: ignore[assignment]
            elif change.field == "tags":
                self._tags = list(change.new)
            else:
                setattr(self, f"_{change.field}", change.new)

        self._touch()
        self._record(RiskUpdated(
            aggregate_id=str(self.id),
            payload=RiskUpdatedPayload(
                risk_id=self._risk_id,
                updated_fields=tuple(c.field for c in changes),
                changes=tuple(changes),
            ),
            occurred_on=self.updated_at,
        ))

    def update_score(self, probability: int, impact: int) -> None:
        """Re-score the risk.  Buffers one ``RiskUpdated`` event."""
        old = self._score
        new = old.update(probability, impact)
        self._score = new
        self._touch()
        self._record(RiskUpdated(
            aggregate_id=str(self.id),
            payload=RiskUpdatedPayload(
                risk_id=self._risk_id,
                updated_fields=("probability", "impact", "score"),
                changes=(
                    FieldChange("probability", old.probability, new.probability),
                    FieldChange("impact", old.impact, new.impact),
                    FieldChange("score", old.score, new.score),
                ),
            ),
            occurred_on=self.updated_at,
        ))

    def change_status(
        self,
        new_status: RiskStatus,
        reason: str | None = None,
        *,
        changed_by: int | None = None,
    ) -> None:
        """Move along the lifecycle.  Buffers one ``RiskStatusChanged`` event.

        Raises
        ------
        DomainException
            ``INVALID_STATUS_TRANSITION`` if the table disallows the move,
            ``MITIGATION_PLAN_REQUIRED`` when closing a critical risk that
            has no mitigation plan.
        """
        if not isinstance(new_status, RiskStatus):
            new_status = RiskStatus.create(new_status)

        if not self._status.can_transition_to(new_status):
            raise DomainException(
                f"Cannot transition from {self._status} to {new_status}",
                DomainException.INVALID_STATUS_TRANSITION,
            )

        if new_status.is_closed() and self.is_critical and not self._mitigation_plan:
            raise DomainException(
                "Critical risks require a mitigation plan before closure",
                DomainException.MITIGATION_PLAN_REQUIRED,
            )

        old_status = self._status
        self._status = new_status
        self._touch()
        self._record(RiskStatusChanged(
            aggregate_id=str(self.id),
            payload=RiskStatusChangedPayload(
                risk_id=self._risk_id,
                old_status=old_status.value.value,
                new_status=new_status.value.value,
                reason=reason,
                changed_by=changed_by,
                risk_score=self._score.score,
                is_critical=self.is_critical,
            ),
            occurred_on=self.updated_at,
        ))
        logger.debug(
            "Risk %s status %s -> %s", self._risk_id, old_status, new_status,
        )

    def assign_to(self, new_owner_id: int) -> None:
        """Reassign ownership.  No-op (and no event) if unchanged."""
        new_owner_id = _validate_positive("owner_id", new_owner_id)
        if new_owner_id == self._owner_id:
            return
        old_owner = self._owner_id
        self._owner_id = new_owner_id
        self._touch()
        self._record(RiskUpdated(
            aggregate_id=str(self.id),
            payload=RiskUpdatedPayload(
                risk_id=self._risk_id,
                updated_fields=("owner_id",),
                changes=(FieldChange("owner_id", old_owner, new_owner_id),),
            ),
            occurred_on=self.updated_at,
        ))

    def schedule_review(self, review_date: datetime) -> None:
        review_date = ensure_utc(review_date)
        if review_date <= self._clock.now():
            raise ValidationException.from_field(
                "review_date", "Review date must be in the future", format_timestamp(review_date),
            )
        self._review_date = review_date
        self._touch()

    def mark_as_reviewed(self, schedule: ReviewConfig | None = None) -> None:
        """Stamp the review and schedule the next one by criticality.

        Defaults: 30 days for critical, 60 for high, 90 otherwise.
        """
        schedule = schedule or ReviewConfig()
        now = self._clock.now()
        if self.is_critical:
            days = schedule.critical_days
        elif self._score.is_high_or_critical():
            days = schedule.high_days
        else:
            days = schedule.default_days
        self._last_review_date = now
        self._review_date = now + timedelta(days=days)
        self._touch()

    def add_tag(self, tag: str) -> None:
        t = _normalize_tag(tag)
        if not t or t in self._tags:
            return
        self._tags.append(t)
        self._touch()

    def remove_tag(self, tag: str) -> None:
        t = _normalize_tag(tag)
        if t not in self._tags:
            return
        self._tags.remove(t)
        self._touch()

    def update_metadata(self, key: str, value: Any) -> None:
        if not isinstance(key, str) or not key:
            raise ValidationException.from_field("metadata", "Metadata key must be a non-empty string", key)
        self._metadata[key] = validate_metadata_value(value, f"metadata.{key}")
        self._touch()

    def can_be_deleted(self) -> bool:
        if self.is_critical and self.is_active:
            return False
        if self.is_closed or self._status.is_resolved():
            return True
        return not self.is_active and not self.is_critical

    def prepare_for_deletion(
        self,
        *,
        deleted_by: int | None = None,
        reason: str | None = None,
    ) -> None:
        """Approve deletion.  Buffers one ``RiskDeleted`` event.

        Raises
        ------
        DomainException
            ``CANNOT_DELETE_CRITICAL_RISK`` if :meth:`can_be_deleted` is False.
        """
        if not self.can_be_deleted():
            raise DomainException(
                "Cannot delete critical active risks. Please close or mitigate the risk first.",
                DomainException.CANNOT_DELETE_CRITICAL_RISK,
            )
        now = self._clock.now()
        self._record(RiskDeleted(
            aggregate_id=str(self.id),
            payload=RiskDeletedPayload(
                risk_id=self._risk_id,
                title=self._title,
                category=self._category.value.value,
                risk_score=self._score.score,
                risk_level=self._score.level.value,
                status=self._status.value.value,
                organization_id=self._organization_id,
                owner_id=self._owner_id,
                deleted_at=now,
                deleted_by=deleted_by,
                reason=reason,
            ),
            occurred_on=now,
        ))

    # -- Event capture -----------------------------------------------------

    @property
    def domain_events(self) -> tuple[DomainEvent, ...]:
        return self._events.pending()

    def pull_domain_events(self) -> list[DomainEvent]:
        """Return and clear buffered events.  A second pull returns ``[]``."""
        return self._events.drain()

    def _record(self, event: DomainEvent) -> None:
        self._events.record(event)

    def _touch(self) -> None:
        self._identity.touch(self._clock.now())

    # -- Serialization -----------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Full snapshot including derived display values and flags."""
        return {
            "id": self.id,
            "risk_id": self._risk_id,
            "title": self._title,
            "description": self._description,
            "category": self._category.value.value,
            "category_display": self._category.display_name,
            "category_icon": self._category.icon,
            "probability": self._score.probability,
            "impact": self._score.impact,
            "risk_score": self._score.score,
            "risk_level": self._score.level.value,
            "status": self._status.value.value,
            "status_display": self._status.display_name,
            "organization_id": self._organization_id,
            "owner_id": self._owner_id,
            "created_by": self._created_by,
            "risk_type": self._risk_type,
            "mitigation_plan": self._mitigation_plan,
            "contingency_plan": self._contingency_plan,
            "review_date": self._review_date,
            "last_review_date": self._last_review_date,
            "tags": list(self._tags),
            "metadata": copy.deepcopy(self._metadata),
            "is_active": self.is_active,
            "is_critical": self.is_critical,
            "needs_immediate_attention": self.needs_immediate_attention,
            "is_review_overdue": self.is_review_overdue,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
