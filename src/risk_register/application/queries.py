"""Read-side queries."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from risk_register.application.commands import check_risk_id
from risk_register.core.config import PaginationConfig
from risk_register.core.enums import RiskLevel, RiskStatusValue, SortField
from risk_register.core.errors import FieldError, ValidationException
from risk_register.domain.repository import (
    MAX_LIMIT,
    PaginationOptions,
    RiskListFilters,
    RiskListSort,
)
from risk_register.domain.value_objects import ATTENTION_THRESHOLD

MIN_SCORE = 1
MAX_SCORE = 25
MIN_SEARCH_LENGTH = 2


class Query(BaseModel):
    """Base for queries; subclasses implement :meth:`field_errors`."""

    @property
    def query_name(self) -> str:
        return type(self).__name__

    def field_errors(self) -> list[FieldError]:
        return []

    def is_valid(self) -> bool:
        return not self.field_errors()

    def validate_query(self) -> None:
        errors = self.field_errors()
        if errors:
            raise ValidationException.from_errors(errors)


class GetRiskByIdQuery(Query):
    """Look up one risk by surrogate ``id`` or business ``risk_id``."""

    id: int | None = None
    risk_id: str | None = None

    def field_errors(self) -> list[FieldError]:
        if self.id is None and not self.risk_id:
            return [FieldError("id", "Either id or risk_id is required")]
        errors: list[FieldError] = []
        if self.id is not None and self.id < 1:
            errors.append(FieldError("id", "id must be a positive integer", self.id))
        if self.risk_id:
            check_risk_id(errors, self.risk_id)
        return errors


class ListRisksQuery(Query):
    """Filtered, sorted, paginated listing.

    ``active_only``, ``critical_only`` and ``needs_attention`` are
    shortcuts that narrow the explicit filters.  ``page`` and ``limit``
    fall back to the configured pagination defaults when omitted.
    """

    page: int | None = None
    limit: int | None = None
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
    active_only: bool = False
    critical_only: bool = False
    needs_attention: bool = False
    sort_by: str = SortField.CREATED_AT.value
    sort_order: str = "desc"

    @field_validator("status", "category", "risk_level", "tags", mode="before")
    @classmethod
    def _listify(cls, v: object) -> object:
        if isinstance(v, str):
            return [s for s in (p.strip() for p in v.split(",")) if s]
        return v

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        if self.page is not None and self.page < 1:
            errors.append(FieldError("page", "Page must be 1 or greater", self.page))
        if self.limit is not None and not 1 <= self.limit <= MAX_LIMIT:
            errors.append(FieldError("limit", f"Limit must be between 1 and {MAX_LIMIT}", self.limit))
        for name in ("min_score", "max_score"):
            value = getattr(self, name)
            if value is not None and not MIN_SCORE <= value <= MAX_SCORE:
                errors.append(FieldError(
                    name, f"Score must be between {MIN_SCORE} and {MAX_SCORE}", value,
                ))
        if (
            self.min_score is not None
            and self.max_score is not None
            and self.min_score > self.max_score
        ):
            errors.append(FieldError("min_score", "min_score cannot exceed max_score", self.min_score))
        if self.sort_order.strip().lower() not in ("asc", "desc"):
            errors.append(FieldError("sort_order", "Sort order must be asc or desc", self.sort_order))
        return errors

    def to_filters(self) -> RiskListFilters:
        status = self.status
        risk_level = self.risk_level
        min_score = self.min_score
        if self.active_only or self.needs_attention:
            status = [RiskStatusValue.ACTIVE.value]
        if self.critical_only:
            risk_level = [RiskLevel.CRITICAL.value]
        if self.needs_attention:
            min_score = max(min_score or 0, ATTENTION_THRESHOLD)
        return RiskListFilters(
            status=status,
            category=self.category,
            risk_level=risk_level,
            tags=self.tags,
            owner_id=self.owner_id,
            organization_id=self.organization_id,
            min_score=min_score,
            max_score=self.max_score,
            search=self.search,
            created_after=self.created_after,
            created_before=self.created_before,
            updated_after=self.updated_after,
            updated_before=self.updated_before,
            review_overdue=self.review_overdue,
        )

    def to_sort(self) -> RiskListSort:
        return RiskListSort(field=self.sort_by, order=self.sort_order)

    def to_pagination(self, config: PaginationConfig | None = None) -> PaginationOptions:
        config = config or PaginationConfig()
        return PaginationOptions(
            page=self.page if self.page is not None else config.default_page,
            limit=self.limit if self.limit is not None else config.default_limit,
        ).normalized(config.max_limit)

    def filter_summary(self) -> str:
        """Short human-readable description of the active filters (for logs)."""
        parts: list[str] = []
        if self.status:
            parts.append(f"status:{','.join(self.status)}")
        if self.category:
            parts.append(f"category:{','.join(self.category)}")
        if self.risk_level:
            parts.append(f"level:{','.join(self.risk_level)}")
        if self.owner_id is not None:
            parts.append(f"owner:{self.owner_id}")
        if self.search:
            parts.append(f'search:"{self.search}"')
        if self.critical_only:
            parts.append("critical-only")
        if self.active_only:
            parts.append("active-only")
        if self.needs_attention:
            parts.append("needs-attention")
        if self.review_overdue:
            parts.append("review-overdue")
        return ", ".join(parts) if parts else "no-filters"


class SearchRisksQuery(Query):
    term: str
    organization_id: int | None = None
    limit: int | None = None  # Configured search_limit when omitted

    @property
    def normalized_term(self) -> str:
        return self.term.strip().lower()

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        if len(self.term.strip()) < MIN_SEARCH_LENGTH:
            errors.append(FieldError(
                "term", f"Search term must be at least {MIN_SEARCH_LENGTH} characters", self.term,
            ))
        if self.limit is not None and not 1 <= self.limit <= MAX_LIMIT:
            errors.append(FieldError("limit", f"Limit must be between 1 and {MAX_LIMIT}", self.limit))
        return errors


class GetRiskStatisticsQuery(Query):
    organization_id: int | None = None
