"""Tests for domain event records."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from risk_register.domain.events import (
    ALL_RISK_EVENTS,
    FieldChange,
    RiskDeleted,
    RiskDeletedPayload,
    RiskStatusChanged,
    RiskStatusChangedPayload,
    RiskUpdated,
    RiskUpdatedPayload,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _status_changed(old: str, new: str, critical: bool = False) -> RiskStatusChanged:
    return RiskStatusChanged(
        aggregate_id="1",
        payload=RiskStatusChangedPayload(
            risk_id="RISK-001", old_status=old, new_status=new,
            risk_score=20 if critical else 4, is_critical=critical,
        ),
    )


def test_event_types_are_unique_tags():
    tags = [cls.EVENT_TYPE for cls in ALL_RISK_EVENTS]
    assert tags == ["RiskCreated", "RiskUpdated", "RiskStatusChanged", "RiskDeleted"]


def test_events_are_immutable():
    event = _status_changed("active", "closed")
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.aggregate_id = "2"  # type: ignore[misc]
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.payload.reason = "late"  # type: ignore[misc]


def test_event_ids_are_unique():
    assert _status_changed("active", "closed").event_id != _status_changed("active", "closed").event_id


def test_to_dict_includes_type_and_payload():
    d = _status_changed("monitoring", "active").to_dict()
    assert d["event_type"] == "RiskStatusChanged"
    assert d["payload"]["old_status"] == "monitoring"
    assert isinstance(d["occurred_on"], datetime)


@pytest.mark.parametrize("old,new,critical,checks", [
    ("closed", "active", False, {"was_reopened", "was_activated"}),
    ("active", "monitoring", False, {"is_now_monitoring"}),
    ("active", "accepted", False, {"was_resolved"}),
    ("active", "closed", True, {"was_closed", "was_resolved", "is_critical_status_change"}),
])
def test_status_predicates(old, new, critical, checks):
    event = _status_changed(old, new, critical)
    names = (
        "was_activated", "was_closed", "was_mitigated", "is_now_monitoring",
        "was_resolved", "was_reopened", "is_critical_status_change",
    )
    assert {n for n in names if getattr(event, n)} == checks


def test_updated_lookup_helpers():
    event = RiskUpdated(
        aggregate_id="1",
        payload=RiskUpdatedPayload(
            risk_id="RISK-001",
            updated_fields=("impact",),
            changes=(FieldChange("impact", 2, 4),),
        ),
    )
    assert event.score_changed
    assert not event.category_changed
    assert event.get_field_change("impact") == FieldChange("impact", 2, 4)
    assert event.get_field_change("title") is None


def test_deleted_predicates():
    event = RiskDeleted(
        aggregate_id="3",
        payload=RiskDeletedPayload(
            risk_id="RISK-003", title="t", category="legal", risk_score=25,
            risk_level="critical", status="mitigated", organization_id=1,
            owner_id=1, deleted_at=T0,
        ),
    )
    assert event.was_critical
    assert not event.was_active
