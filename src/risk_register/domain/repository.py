"""Repository contract for the Risk aggregate.

Defines the filter/sort/pagination input models, the result shapes, and
the ``IRiskRepository`` protocol that every store implements.  The query
semantics themselves live in :mod:`risk_register.domain.query` so each
implementation evaluates filters identically.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Protocol, Sequence, TypeVar, runtime_checkable

from pydantic import BaseModel, field_validator

from risk_register.core.config import PaginationConfig
from risk_register.core.enums import SortField, SortOrder
from risk_register.core.ids import ensure_utc
from risk_register.domain.risk import Risk
from risk_register.domain.value_objects import RiskCategory, RiskStatus

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def _as_list(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, bytes)):
        return [value]
    return list(value)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class RiskListFilters(BaseModel):
    """Filters combined with AND; list-valued fields are OR within the field."""

    status: list[str] | None = None
    category: list[str] | None = None
    risk_level: list[str] | None = None
    tags: list[str] | None = None
    owner_id: int | None = None
    organization_id: int | None = None
    min_score: int | None = None
    max_score: int | None = None
    search: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    updated_after: datetime | None = None
    updated_before: datetime | None = None
    review_overdue: bool | None = None

    @field_validator("status", "category", "risk_level", "tags", mode="before")
    @classmethod
    def _listify(cls, v: Any) -> Any:
        return _as_list(v)

    @field_validator("status", "risk_level", "tags")
    @classmethod
    def _lower(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return [s.strip().lower() for s in v if s and s.strip()]

    @field_validator("category")
    @classmethod
    def _category(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return ["_".join(s.strip().lower().split()) for s in v if s and s.strip()]

    @field_validator("created_after", "created_before", "updated_after", "updated_before")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @field_validator("search")
    @classmethod
    def _strip_search(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class RiskListSort(BaseModel):
    """Sort field and direction.  Unknown fields fall back to ``createdAt``."""

    field: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.DESC

    @field_validator("field", mode="before")
    @classmethod
    def _allow_list(cls, v: Any) -> SortField:
        if isinstance(v, SortField):
            return v
        return SortField.parse(v)

    @field_validator("order", mode="before")
    @classmethod
    def _order(cls, v: Any) -> SortOrder:
        if isinstance(v, SortOrder):
            return v
        return SortOrder.ASC if str(v or "").strip().lower() == "asc" else SortOrder.DESC


class PaginationOptions(BaseModel):
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    def normalized(self, max_limit: int = MAX_LIMIT) -> PaginationOptions:
        """Clamp ``page`` to >= 1 and ``limit`` to [1, max_limit]."""
        return PaginationOptions(
            page=max(1, self.page),
            limit=max(1, min(self.limit, max_limit)),
        )

    @classmethod
    def resolve(
        cls, pagination: PaginationOptions | None, config: PaginationConfig,
    ) -> PaginationOptions:
        """Fill a missing request from *config* defaults, then clamp to its ``max_limit``."""
        if pagination is None:
            pagination = cls(page=config.default_page, limit=config.default_limit)
        return pagination.normalized(config.max_limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class PaginatedResult(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: list[T], total: int, pagination: PaginationOptions,
    ) -> PaginatedResult[T]:
        total_pages = math.ceil(total / pagination.limit) if pagination.limit else 0
        return cls(
            items=items,
            total=total,
            page=pagination.page,
            limit=pagination.limit,
            total_pages=total_pages,
            has_next=pagination.page < total_pages,
            has_previous=pagination.page > 1,
        )


def _empty_levels() -> dict[str, int]:
    return {"low": 0, "medium": 0, "high": 0, "critical": 0}


@dataclass
class RiskStatistics:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_level: dict[str, int] = field(default_factory=_empty_levels)
    by_category: dict[str, int] = field(default_factory=dict)
    average_score: float = 0.0
    active_count: int = 0
    closed_count: int = 0
    review_overdue_count: int = 0


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class IRiskRepository(Protocol):
    """Data-access contract for :class:`Risk`.

    ``save`` inserts when ``risk.id == 0`` and updates otherwise (last
    write wins).  After a successful write the repository drains the
    aggregate's events and publishes them on its event bus.  Bulk
    operations are item-by-item with no cross-item atomicity.
    """

    async def save(self, risk: Risk) -> Risk: ...

    async def find_by_id(self, id: int) -> Risk | None: ...

    async def find_by_risk_id(self, risk_id: str) -> Risk | None: ...

    async def find_by_ids(self, ids: Sequence[int]) -> list[Risk]: ...

    async def list(
        self,
        filters: RiskListFilters | None = None,
        sort: RiskListSort | None = None,
        pagination: PaginationOptions | None = None,
    ) -> PaginatedResult[Risk]: ...

    async def find_all(self) -> list[Risk]: ...

    async def find_by_owner(self, owner_id: int) -> list[Risk]: ...

    async def find_by_organization(self, organization_id: int) -> list[Risk]: ...

    async def find_by_status(self, status: RiskStatus) -> list[Risk]: ...

    async def find_by_category(self, category: RiskCategory) -> list[Risk]: ...

    async def find_critical_risks(self, organization_id: int | None = None) -> list[Risk]: ...

    async def find_needing_attention(self, organization_id: int | None = None) -> list[Risk]: ...

    async def find_overdue_reviews(self, organization_id: int | None = None) -> list[Risk]: ...

    async def search(self, query: str, organization_id: int | None = None) -> list[Risk]: ...

    async def get_statistics(self, organization_id: int | None = None) -> RiskStatistics: ...

    async def exists(self, risk_id: str) -> bool: ...

    async def delete(self, id: int) -> None: ...

    async def delete_risk(self, risk: Risk) -> None: ...

    async def delete_by_risk_id(self, risk_id: str) -> None: ...

    async def count(self, filters: RiskListFilters | None = None) -> int: ...

    async def get_next_risk_id_number(self, prefix: str) -> int: ...

    async def save_many(self, risks: Sequence[Risk]) -> list[Risk]: ...

    async def delete_many(self, ids: Sequence[int]) -> None: ...

    async def update_status_bulk(
        self, ids: Sequence[int], new_status: RiskStatus, reason: str | None = None,
    ) -> None: ...
