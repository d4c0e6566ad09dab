"""Command and query handlers.

Each handler validates its input, works through the injected
``IRiskRepository`` and returns a response DTO.  Validation, lookup and
business-rule errors propagate to the caller unchanged; only the bulk
handlers collect per-item errors into a ``BulkOperationResult``.
"""

from __future__ import annotations

import logging

from risk_register.application.commands import (
    BulkChangeStatusCommand,
    BulkDeleteRisksCommand,
    ChangeRiskStatusCommand,
    CreateRiskCommand,
    DeleteRiskCommand,
    MarkRiskReviewedCommand,
    UpdateRiskCommand,
)
from risk_register.application.dto import (
    BulkOperationResult,
    PaginatedRiskList,
    RiskDeletedResponse,
    RiskListItem,
    RiskResponse,
    RiskStatisticsResponse,
)
from risk_register.application.queries import (
    GetRiskByIdQuery,
    GetRiskStatisticsQuery,
    ListRisksQuery,
    SearchRisksQuery,
)
from risk_register.core.clock import DEFAULT_CLOCK, IClock
from risk_register.core.config import PaginationConfig, ReviewConfig, RiskIdConfig
from risk_register.core.errors import NotFoundException, RiskRegisterError, ValidationException
from risk_register.core.ids import format_risk_id
from risk_register.domain.repository import IRiskRepository
from risk_register.domain.risk import Risk

logger = logging.getLogger(__name__)


async def _load(repository: IRiskRepository, id: int | None, risk_id: str | None = None) -> Risk:
    if id is not None:
        risk = await repository.find_by_id(id)
    else:
        risk = await repository.find_by_risk_id(risk_id or "")
    if risk is None:
        raise NotFoundException("Risk", id if id is not None else risk_id)
    return risk


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class CreateRiskHandler:
    def __init__(
        self,
        repository: IRiskRepository,
        *,
        risk_ids: RiskIdConfig | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._repository = repository
        self._risk_ids = risk_ids or RiskIdConfig()
        self._clock = clock or DEFAULT_CLOCK

    async def _next_risk_id(self) -> str:
        prefix = self._risk_ids.prefix
        number = await self._repository.get_next_risk_id_number(prefix)
        return format_risk_id(prefix, number, width=self._risk_ids.width)

    async def execute(self, command: CreateRiskCommand) -> RiskResponse:
        command.validate_command()

        risk_id = command.risk_id or await self._next_risk_id()
        if await self._repository.exists(risk_id):
            raise ValidationException.from_field("risk_id", "Risk ID already exists", risk_id)

        risk = Risk.create(
            risk_id=risk_id,
            title=command.title,
            description=command.description,
            category=command.category,
            probability=command.probability,
            impact=command.impact,
            organization_id=command.organization_id,
            owner_id=command.owner_id,
            created_by=command.created_by,
            risk_type=command.risk_type,
            mitigation_plan=command.mitigation_plan,
            contingency_plan=command.contingency_plan,
            review_date=command.review_date,
            tags=command.tags,
            metadata=command.metadata,
            clock=self._clock,
        )
        saved = await self._repository.save(risk)
        logger.info(
            "Created risk %s (id=%d, score=%d, level=%s)",
            saved.risk_id, saved.id, saved.score.score, saved.score.level.value,
        )
        return RiskResponse.from_risk(saved)


class UpdateRiskHandler:
    def __init__(self, repository: IRiskRepository) -> None:
        self._repository = repository

    async def execute(self, command: UpdateRiskCommand) -> RiskResponse:
        command.validate_command()
        risk = await _load(self._repository, command.id)

        risk.update_details(
            title=command.title,
            description=command.description,
            category=command.category,
            mitigation_plan=command.mitigation_plan,
            contingency_plan=command.contingency_plan,
            tags=command.tags,
        )
        if command.probability is not None or command.impact is not None:
            risk.update_score(
                command.probability if command.probability is not None else risk.score.probability,
                command.impact if command.impact is not None else risk.score.impact,
            )
        if (
            command.status is not None
            and command.status.strip().lower() != risk.status.value.value
        ):
            risk.change_status(command.status, command.update_reason, changed_by=command.updated_by)
        if command.owner_id is not None:
            risk.assign_to(command.owner_id)
        if command.review_date is not None:
            risk.schedule_review(command.review_date)
        for key, value in (command.metadata or {}).items():
            risk.update_metadata(key, value)

        saved = await self._repository.save(risk)
        logger.info("Updated risk %s fields=%s", saved.risk_id, command.updated_fields)
        return RiskResponse.from_risk(saved)


class ChangeRiskStatusHandler:
    def __init__(self, repository: IRiskRepository) -> None:
        self._repository = repository

    async def execute(self, command: ChangeRiskStatusCommand) -> RiskResponse:
        command.validate_command()
        risk = await _load(self._repository, command.id)
        old_status = risk.status
        risk.change_status(command.new_status, command.reason, changed_by=command.changed_by)
        saved = await self._repository.save(risk)
        logger.info("Risk %s status %s -> %s", saved.risk_id, old_status, saved.status)
        return RiskResponse.from_risk(saved)


class MarkRiskReviewedHandler:
    def __init__(self, repository: IRiskRepository, *, review: ReviewConfig | None = None) -> None:
        self._repository = repository
        self._review = review or ReviewConfig()

    async def execute(self, command: MarkRiskReviewedCommand) -> RiskResponse:
        command.validate_command()
        risk = await _load(self._repository, command.id)
        risk.mark_as_reviewed(self._review)
        saved = await self._repository.save(risk)
        logger.info(
            "Risk %s reviewed by %s; next review %s",
            saved.risk_id, command.reviewed_by, saved.review_date,
        )
        return RiskResponse.from_risk(saved)


class DeleteRiskHandler:
    def __init__(self, repository: IRiskRepository, *, clock: IClock | None = None) -> None:
        self._repository = repository
        self._clock = clock or DEFAULT_CLOCK

    async def execute(self, command: DeleteRiskCommand) -> RiskDeletedResponse:
        command.validate_command()
        risk = await _load(self._repository, command.id, command.risk_id)
        risk.prepare_for_deletion(deleted_by=command.deleted_by, reason=command.reason)
        await self._repository.delete_risk(risk)
        logger.info("Deleted risk %s (id=%d)", risk.risk_id, risk.id)
        return RiskDeletedResponse(
            id=risk.id,
            risk_id=risk.risk_id,
            title=risk.title,
            deleted_at=self._clock.now(),
            message=f"Risk {risk.risk_id} deleted successfully",
        )


class BulkDeleteRisksHandler:
    def __init__(self, repository: IRiskRepository) -> None:
        self._repository = repository

    async def execute(self, command: BulkDeleteRisksCommand) -> BulkOperationResult:
        command.validate_command()
        result = BulkOperationResult()
        for id in command.ids:
            risk_id = None
            try:
                risk = await _load(self._repository, id)
                risk_id = risk.risk_id
                risk.prepare_for_deletion(deleted_by=command.deleted_by, reason=command.reason)
                await self._repository.delete_risk(risk)
            except RiskRegisterError as exc:
                result.record_failure(id, exc.message, risk_id)
            else:
                result.record_success()
        logger.info("Bulk delete: %d succeeded, %d failed", result.success, result.failed)
        return result


class BulkChangeStatusHandler:
    def __init__(self, repository: IRiskRepository) -> None:
        self._repository = repository

    async def execute(self, command: BulkChangeStatusCommand) -> BulkOperationResult:
        command.validate_command()
        result = BulkOperationResult()
        for id in command.ids:
            risk_id = None
            try:
                risk = await _load(self._repository, id)
                risk_id = risk.risk_id
                risk.change_status(command.new_status, command.reason, changed_by=command.changed_by)
                await self._repository.save(risk)
            except RiskRegisterError as exc:
                result.record_failure(id, exc.message, risk_id)
            else:
                result.record_success()
        logger.info(
            "Bulk status -> %s: %d succeeded, %d failed",
            command.new_status, result.success, result.failed,
        )
        return result


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class GetRiskByIdHandler:
    def __init__(self, repository: IRiskRepository) -> None:
        self._repository = repository

    async def execute(self, query: GetRiskByIdQuery) -> RiskResponse:
        query.validate_query()
        risk = await _load(self._repository, query.id, query.risk_id)
        return RiskResponse.from_risk(risk)


class ListRisksHandler:
    def __init__(
        self,
        repository: IRiskRepository,
        *,
        pagination: PaginationConfig | None = None,
    ) -> None:
        self._repository = repository
        self._pagination = pagination or PaginationConfig()

    async def execute(self, query: ListRisksQuery) -> PaginatedRiskList:
        query.validate_query()
        result = await self._repository.list(
            query.to_filters(),
            query.to_sort(),
            query.to_pagination(self._pagination),
        )
        logger.info(
            "Listed risks [%s]: page %d/%d, %d total",
            query.filter_summary(), result.page, result.total_pages, result.total,
        )
        return PaginatedRiskList.from_result(result)


class SearchRisksHandler:
    def __init__(
        self,
        repository: IRiskRepository,
        *,
        pagination: PaginationConfig | None = None,
    ) -> None:
        self._repository = repository
        self._pagination = pagination or PaginationConfig()

    async def execute(self, query: SearchRisksQuery) -> list[RiskListItem]:
        query.validate_query()
        risks = await self._repository.search(query.normalized_term, query.organization_id)
        logger.info("Search %r matched %d risks", query.normalized_term, len(risks))
        limit = query.limit if query.limit is not None else self._pagination.search_limit
        return [RiskListItem.from_risk(r) for r in risks[:limit]]


class GetRiskStatisticsHandler:
    def __init__(self, repository: IRiskRepository) -> None:
        self._repository = repository

    async def execute(self, query: GetRiskStatisticsQuery) -> RiskStatisticsResponse:
        query.validate_query()
        stats = await self._repository.get_statistics(query.organization_id)
        return RiskStatisticsResponse.from_statistics(stats)
