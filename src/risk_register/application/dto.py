"""Response DTOs handed to the transport layer.

Attributes are snake_case; ``to_api()`` dumps camelCase JSON-ready
dicts (``riskId``, ``categoryDisplay`` ...).
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from risk_register.domain.repository import PaginatedResult, RiskStatistics
from risk_register.domain.risk import Risk


class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class RiskResponse(ResponseModel):
    """Full snapshot of one risk, with display strings and derived flags."""

    id: int
    risk_id: str
    title: str
    description: str
    category: str
    category_display: str
    category_icon: str
    probability: int
    impact: int
    risk_score: int
    risk_level: str
    status: str
    status_display: str
    organization_id: int
    owner_id: int
    created_by: int
    risk_type: str
    mitigation_plan: str | None = None
    contingency_plan: str | None = None
    review_date: datetime | None = None
    last_review_date: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    is_critical: bool
    needs_immediate_attention: bool
    is_review_overdue: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_risk(cls, risk: Risk) -> RiskResponse:
        return cls(**risk.to_dict())


class RiskListItem(ResponseModel):
    id: int
    risk_id: str
    title: str
    category: str
    category_icon: str
    risk_score: int
    risk_level: str
    status: str
    status_display: str
    owner_id: int
    is_active: bool
    is_critical: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_risk(cls, risk: Risk) -> RiskListItem:
        snapshot = risk.to_dict()
        return cls(**{name: snapshot[name] for name in cls.model_fields})


class PaginatedRiskList(ResponseModel):
    items: list[RiskListItem]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def from_result(cls, result: PaginatedResult[Risk]) -> PaginatedRiskList:
        return cls(
            items=[RiskListItem.from_risk(r) for r in result.items],
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
            has_next=result.has_next,
            has_previous=result.has_previous,
        )


class RiskStatisticsResponse(ResponseModel):
    total: int
    by_status: dict[str, int]
    by_level: dict[str, int]
    by_category: dict[str, int]
    average_score: float
    active_count: int
    closed_count: int
    review_overdue_count: int

    @classmethod
    def from_statistics(cls, stats: RiskStatistics) -> RiskStatisticsResponse:
        return cls(**asdict(stats))


class RiskDeletedResponse(ResponseModel):
    id: int
    risk_id: str
    title: str
    deleted: bool = True
    deleted_at: datetime
    message: str


class BulkOperationError(ResponseModel):
    id: int
    risk_id: str | None = None
    error: str


class BulkOperationResult(ResponseModel):
    """Per-item outcome of a bulk command; failures do not stop the batch."""

    success: int = 0
    failed: int = 0
    errors: list[BulkOperationError] = Field(default_factory=list)

    def record_success(self) -> None:
        self.success += 1

    def record_failure(self, id: int, error: str, risk_id: str | None = None) -> None:
        self.failed += 1
        self.errors.append(BulkOperationError(id=id, risk_id=risk_id, error=error))
