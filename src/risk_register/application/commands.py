"""Write-side commands.

Commands are plain pydantic models: construction coerces types, then
:meth:`Command.validate_command` checks the business input rules and
raises one ``ValidationException`` listing every offending field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from risk_register.core.enums import RiskCategoryValue, RiskStatusValue
from risk_register.core.errors import FieldError, ValidationException
from risk_register.core.ids import is_valid_risk_id
from risk_register.domain.risk import DESCRIPTION_MAX, PLAN_MAX, TITLE_MAX
from risk_register.domain.value_objects import MAX_FACTOR, MIN_FACTOR

MAX_BULK_IDS = 100

_STATUSES = frozenset(s.value for s in RiskStatusValue)
_CATEGORIES = frozenset(c.value for c in RiskCategoryValue)


# ---------------------------------------------------------------------------
# Field checks (shared with queries)
# ---------------------------------------------------------------------------

def check_text(
    errors: list[FieldError], field: str, value: str | None, max_len: int, label: str,
) -> None:
    if value is None or not value.strip():
        errors.append(FieldError(field, f"{label} is required", value))
    elif len(value.strip()) > max_len:
        errors.append(FieldError(field, f"{label} must be {max_len} characters or less", value))


def check_plan(errors: list[FieldError], field: str, value: str | None) -> None:
    if value is not None and len(value) > PLAN_MAX:
        errors.append(FieldError(field, f"Plan must be {PLAN_MAX} characters or less", value))


def check_risk_id(errors: list[FieldError], value: str | None) -> None:
    if value is not None and not is_valid_risk_id(value):
        errors.append(FieldError(
            "risk_id", "Risk ID must be in format: PREFIX-NUMBER (e.g., RISK-001)", value,
        ))


def check_factor(errors: list[FieldError], field: str, value: int | None) -> None:
    if value is None or not MIN_FACTOR <= value <= MAX_FACTOR:
        errors.append(FieldError(
            field, f"{field.capitalize()} must be between {MIN_FACTOR} and {MAX_FACTOR}", value,
        ))


def check_positive(errors: list[FieldError], field: str, value: int | None) -> None:
    if value is None or value < 1:
        errors.append(FieldError(field, f"{field} must be a positive integer", value))


def check_status(errors: list[FieldError], field: str, value: str | None) -> None:
    if value is None or value.strip().lower() not in _STATUSES:
        errors.append(FieldError(
            field, f"Invalid status. Must be one of: {', '.join(sorted(_STATUSES))}", value,
        ))


def check_category(errors: list[FieldError], value: str | None) -> None:
    normalized = "_".join((value or "").strip().lower().split())
    if normalized not in _CATEGORIES:
        errors.append(FieldError(
            "category",
            f"Invalid category. Must be one of: {', '.join(sorted(_CATEGORIES))}",
            value,
        ))


def check_ids(errors: list[FieldError], ids: list[int]) -> None:
    if not ids:
        errors.append(FieldError("ids", "At least one id is required", ids))
    elif len(ids) > MAX_BULK_IDS:
        errors.append(FieldError("ids", f"At most {MAX_BULK_IDS} ids per request", len(ids)))
    bad = [i for i in ids if i < 1]
    if bad:
        errors.append(FieldError("ids", "Ids must be positive integers", bad))


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class Command(BaseModel):
    """Base for commands; subclasses implement :meth:`field_errors`."""

    @property
    def command_name(self) -> str:
        return type(self).__name__

    def field_errors(self) -> list[FieldError]:
        return []

    def is_valid(self) -> bool:
        return not self.field_errors()

    def validate_command(self) -> None:
        """Raise ``ValidationException`` listing every invalid field."""
        errors = self.field_errors()
        if errors:
            raise ValidationException.from_errors(errors)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class CreateRiskCommand(Command):
    """Register a new risk.  ``risk_id`` is generated when omitted."""

    title: str
    description: str
    category: str
    probability: int
    impact: int
    organization_id: int
    owner_id: int
    created_by: int
    risk_id: str | None = None
    risk_type: str | None = None
    mitigation_plan: str | None = None
    contingency_plan: str | None = None
    review_date: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        check_risk_id(errors, self.risk_id)
        check_text(errors, "title", self.title, TITLE_MAX, "Title")
        check_text(errors, "description", self.description, DESCRIPTION_MAX, "Description")
        check_category(errors, self.category)
        check_factor(errors, "probability", self.probability)
        check_factor(errors, "impact", self.impact)
        check_positive(errors, "organization_id", self.organization_id)
        check_positive(errors, "owner_id", self.owner_id)
        check_positive(errors, "created_by", self.created_by)
        check_plan(errors, "mitigation_plan", self.mitigation_plan)
        check_plan(errors, "contingency_plan", self.contingency_plan)
        return errors


_UPDATABLE = (
    "title", "description", "category", "probability", "impact", "status",
    "owner_id", "mitigation_plan", "contingency_plan", "review_date", "tags",
    "metadata",
)


class UpdateRiskCommand(Command):
    """Partial update; ``None`` leaves a field unchanged."""

    id: int
    title: str | None = None
    description: str | None = None
    category: str | None = None
    probability: int | None = None
    impact: int | None = None
    status: str | None = None
    owner_id: int | None = None
    mitigation_plan: str | None = None
    contingency_plan: str | None = None
    review_date: datetime | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None
    updated_by: int | None = None
    update_reason: str | None = None

    @property
    def updated_fields(self) -> list[str]:
        return [name for name in _UPDATABLE if getattr(self, name) is not None]

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        check_positive(errors, "id", self.id)
        if not self.updated_fields:
            errors.append(FieldError("command", "No fields to update"))
        if self.title is not None:
            check_text(errors, "title", self.title, TITLE_MAX, "Title")
        if self.description is not None:
            check_text(errors, "description", self.description, DESCRIPTION_MAX, "Description")
        if self.category is not None:
            check_category(errors, self.category)
        if self.probability is not None:
            check_factor(errors, "probability", self.probability)
        if self.impact is not None:
            check_factor(errors, "impact", self.impact)
        if self.status is not None:
            check_status(errors, "status", self.status)
        if self.owner_id is not None:
            check_positive(errors, "owner_id", self.owner_id)
        check_plan(errors, "mitigation_plan", self.mitigation_plan)
        check_plan(errors, "contingency_plan", self.contingency_plan)
        return errors


class DeleteRiskCommand(Command):
    """Delete by surrogate ``id`` or business ``risk_id``."""

    id: int | None = None
    risk_id: str | None = None
    deleted_by: int | None = None
    reason: str | None = None

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        if self.id is None and not self.risk_id:
            errors.append(FieldError("id", "Either id or risk_id is required"))
        if self.id is not None:
            check_positive(errors, "id", self.id)
        if self.risk_id:
            check_risk_id(errors, self.risk_id)
        return errors


class ChangeRiskStatusCommand(Command):
    id: int
    new_status: str
    reason: str | None = None
    changed_by: int | None = None

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        check_positive(errors, "id", self.id)
        check_status(errors, "new_status", self.new_status)
        return errors


class MarkRiskReviewedCommand(Command):
    """Stamp a review and schedule the next one from the review settings."""

    id: int
    reviewed_by: int | None = None

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        check_positive(errors, "id", self.id)
        return errors


class BulkDeleteRisksCommand(Command):
    ids: list[int]
    deleted_by: int | None = None
    reason: str | None = None

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        check_ids(errors, self.ids)
        return errors


class BulkChangeStatusCommand(Command):
    ids: list[int]
    new_status: str
    reason: str | None = None
    changed_by: int | None = None

    def field_errors(self) -> list[FieldError]:
        errors: list[FieldError] = []
        check_ids(errors, self.ids)
        check_status(errors, "new_status", self.new_status)
        return errors
