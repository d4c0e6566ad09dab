"""Conversion between the ``Risk`` aggregate and its persistence row.

The row is a flat dict of primitives: category/status as strings,
tags and metadata as JSON text (``None`` when empty) and timestamps as
ISO-8601 strings.  ``row_to_risk(risk_to_row(r))`` reproduces *r*.
"""

from __future__ import annotations

import json
from typing import Optional, TypedDict

from risk_register.core.clock import IClock
from risk_register.core.ids import format_timestamp, parse_timestamp
from risk_register.domain.risk import DEFAULT_RISK_TYPE, Risk
from risk_register.domain.value_objects import RiskCategory, RiskScore, RiskStatus


class RiskRow(TypedDict):
    id: int
    risk_id: str
    title: str
    description: str
    category: str
    probability: int
    impact: int
    risk_score: int
    status: str
    organization_id: int
    owner_id: int
    created_by: int
    risk_type: str
    mitigation_plan: Optional[str]
    contingency_plan: Optional[str]
    review_date: Optional[str]
    last_review_date: Optional[str]
    tags: Optional[str]
    metadata: Optional[str]
    created_at: str
    updated_at: str


def _dump_json(value: object) -> str | None:
    if not value:
        return None
    return json.dumps(value)


def _load_json(text: str | None, default: object) -> object:
    if not text:
        return default
    return json.loads(text)


def risk_to_row(risk: Risk) -> RiskRow:
    """Flatten *risk* into its storage row."""
    score = risk.score
    return RiskRow(
        id=risk.id,
        risk_id=risk.risk_id,
        title=risk.title,
        description=risk.description,
        category=risk.category.value.value,
        probability=score.probability,
        impact=score.impact,
        risk_score=score.score,
        status=risk.status.value.value,
        organization_id=risk.organization_id,
        owner_id=risk.owner_id,
        created_by=risk.created_by,
        risk_type=risk.risk_type,
        mitigation_plan=risk.mitigation_plan,
        contingency_plan=risk.contingency_plan,
        review_date=format_timestamp(risk.review_date),
        last_review_date=format_timestamp(risk.last_review_date),
        tags=_dump_json(list(risk.tags)),
        metadata=_dump_json(risk.metadata),
        created_at=format_timestamp(risk.created_at),  # type: ignore[typeddict-item]
        updated_at=format_timestamp(risk.updated_at),  # type: ignore[typeddict-item]
    )


def row_to_risk(row: RiskRow, clock: IClock | None = None) -> Risk:
    """Rebuild a ``Risk`` from a stored row (no validation, no events)."""
    return Risk.reconstitute(
        row["id"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
        clock=clock,
        risk_id=row["risk_id"],
        title=row["title"],
        description=row["description"],
        category=RiskCategory.create(row["category"]),
        score=RiskScore.create(row["probability"], row["impact"]),
        status=RiskStatus.create(row["status"]),
        organization_id=row["organization_id"],
        owner_id=row["owner_id"],
        created_by=row["created_by"],
        risk_type=row.get("risk_type") or DEFAULT_RISK_TYPE,
        mitigation_plan=row.get("mitigation_plan"),
        contingency_plan=row.get("contingency_plan"),
        review_date=parse_timestamp(row.get("review_date")),
        last_review_date=parse_timestamp(row.get("last_review_date")),
        tags=_load_json(row.get("tags"), []),
        metadata=_load_json(row.get("metadata"), {}),
    )
