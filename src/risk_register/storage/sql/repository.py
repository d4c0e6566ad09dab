"""SQLAlchemy implementation of ``IRiskRepository``.

All methods run on the :class:`AsyncSession` passed in (typically from
:func:`risk_register.storage.sql.connection.get_session`).  Writes are
flushed, not committed: the session owner decides the transaction
boundary.  Events drained from the aggregate are published right after
the flush.

Filter semantics mirror :func:`risk_register.domain.query.matches_filters`.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import ColumnElement, Select, and_, case, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from risk_register.core.clock import DEFAULT_CLOCK, IClock
from risk_register.core.config import PaginationConfig
from risk_register.core.enums import SortField, SortOrder
from risk_register.core.errors import NotFoundException, ValidationException
from risk_register.core.ids import format_timestamp, risk_id_suffix
from risk_register.domain.query import LEVEL_SCORE_RANGES, fold_search_text, level_score_range
from risk_register.domain.repository import (
    PaginatedResult,
    PaginationOptions,
    RiskListFilters,
    RiskListSort,
    RiskStatistics,
)
from risk_register.domain.risk import Risk
from risk_register.domain.value_objects import (
    ATTENTION_THRESHOLD,
    CRITICAL_THRESHOLD,
    RiskCategory,
    RiskStatus,
)
from risk_register.infrastructure.event_bus import IEventBus
from risk_register.storage.mapper import RiskRow, risk_to_row, row_to_risk

from .models import RiskRecord

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    SortField.SCORE: RiskRecord.risk_score,
    SortField.CREATED_AT: RiskRecord.created_at,
    SortField.UPDATED_AT: RiskRecord.updated_at,
    SortField.TITLE: RiskRecord.title,
    SortField.STATUS: RiskRecord.status,
}


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def _row_to_values(row: RiskRow) -> dict[str, Any]:
    """Map a persistence row to ``RiskRecord`` attribute names (minus ``id``)."""
    values: dict[str, Any] = {k: v for k, v in row.items() if k not in ("id", "metadata")}
    values["metadata_json"] = row["metadata"]
    values["title_search"] = fold_search_text(row["title"])
    values["description_search"] = fold_search_text(row["description"])
    return values


def _record_to_row(record: RiskRecord) -> RiskRow:
    return RiskRow(
        id=record.id,
        risk_id=record.risk_id,
        title=record.title,
        description=record.description,
        category=record.category,
        probability=record.probability,
        impact=record.impact,
        risk_score=record.risk_score,
        status=record.status,
        organization_id=record.organization_id,
        owner_id=record.owner_id,
        created_by=record.created_by,
        risk_type=record.risk_type,
        mitigation_plan=record.mitigation_plan,
        contingency_plan=record.contingency_plan,
        review_date=record.review_date,
        last_review_date=record.last_review_date,
        tags=record.tags,
        metadata=record.metadata_json,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


# ---------------------------------------------------------------------------
# Predicate builders
# ---------------------------------------------------------------------------

def _score_range(bounds: tuple[int | None, int | None]) -> ColumnElement[bool]:
    lo, hi = bounds
    clauses = []
    if lo is not None:
        clauses.append(RiskRecord.risk_score >= lo)
    if hi is not None:
        clauses.append(RiskRecord.risk_score < hi)
    return and_(*clauses)


def _search_clause(text: str) -> ColumnElement[bool]:
    needle = fold_search_text(text)
    return or_(
        RiskRecord.title_search.contains(needle, autoescape=True),
        RiskRecord.description_search.contains(needle, autoescape=True),
    )


def _filter_clauses(filters: RiskListFilters | None, now: datetime) -> list[ColumnElement[bool]]:
    if filters is None:
        return []
    f = filters
    clauses: list[ColumnElement[bool]] = []

    if f.status:
        clauses.append(RiskRecord.status.in_(f.status))
    if f.category:
        clauses.append(RiskRecord.category.in_(f.category))
    if f.risk_level:
        ranges = [r for r in (level_score_range(lv) for lv in f.risk_level) if r]
        clauses.append(or_(*(_score_range(r) for r in ranges)) if ranges else false())
    if f.tags:
        # Tags are a JSON array of strings; match the quoted element.
        clauses.append(or_(*(
            RiskRecord.tags.contains(json.dumps(tag), autoescape=True) for tag in f.tags
        )))
    if f.owner_id is not None:
        clauses.append(RiskRecord.owner_id == f.owner_id)
    if f.organization_id is not None:
        clauses.append(RiskRecord.organization_id == f.organization_id)
    if f.min_score is not None:
        clauses.append(RiskRecord.risk_score >= f.min_score)
    if f.max_score is not None:
        clauses.append(RiskRecord.risk_score <= f.max_score)
    if f.search:
        clauses.append(_search_clause(f.search))
    if f.created_after is not None:
        clauses.append(RiskRecord.created_at >= format_timestamp(f.created_after))
    if f.created_before is not None:
        clauses.append(RiskRecord.created_at <= format_timestamp(f.created_before))
    if f.updated_after is not None:
        clauses.append(RiskRecord.updated_at >= format_timestamp(f.updated_after))
    if f.updated_before is not None:
        clauses.append(RiskRecord.updated_at <= format_timestamp(f.updated_before))
    if f.review_overdue:
        clauses.append(RiskRecord.review_date.is_not(None))
        clauses.append(RiskRecord.review_date < format_timestamp(now))
    return clauses


def _org_clause(organization_id: int | None) -> list[ColumnElement[bool]]:
    if organization_id is None:
        return []
    return [RiskRecord.organization_id == organization_id]


def _ordered(stmt: Select[Any], sort: RiskListSort | None) -> Select[Any]:
    sort = sort or RiskListSort()
    column = _SORT_COLUMNS[sort.field]
    primary = column.asc() if sort.order is SortOrder.ASC else column.desc()
    return stmt.order_by(primary, RiskRecord.id.asc())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class SqlRiskRepository:
    """Repository for :class:`RiskRecord` persistence and retrieval."""

    def __init__(
        self,
        session: AsyncSession,
        event_bus: IEventBus,
        clock: IClock | None = None,
        *,
        pagination: PaginationConfig | None = None,
    ) -> None:
        self._session = session
        self._bus = event_bus
        self._clock = clock or DEFAULT_CLOCK
        self._pagination = pagination or PaginationConfig()

    # -- Internal ------------------------------------------------------------

    def _to_risk(self, record: RiskRecord) -> Risk:
        return row_to_risk(_record_to_row(record), clock=self._clock)

    async def _fetch(self, stmt: Select[Any]) -> list[Risk]:
        result = await self._session.execute(stmt)
        records: Sequence[RiskRecord] = result.scalars().all()
        return [self._to_risk(r) for r in records]

    async def _publish_events(self, risk: Risk) -> None:
        events = risk.pull_domain_events()
        if events:
            await self._bus.publish_all(events)

    async def _risk_id_taken(self, risk_id: str, exclude_id: int = 0) -> bool:
        stmt = select(RiskRecord.id).where(
            RiskRecord.risk_id == risk_id, RiskRecord.id != exclude_id,
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    # -- Writes --------------------------------------------------------------

    async def save(self, risk: Risk) -> Risk:
        """Insert when ``risk.id == 0``, otherwise overwrite the row."""
        if await self._risk_id_taken(risk.risk_id, exclude_id=risk.id):
            raise ValidationException.from_field(
                "risk_id", "Risk ID already exists", risk.risk_id,
            )
        values = _row_to_values(risk_to_row(risk))

        if risk.id == 0:
            record = RiskRecord(**values)
            self._session.add(record)
            await self._session.flush()
            risk.assign_id(record.id)
            logger.debug("Inserted risk %s (id=%d)", risk.risk_id, risk.id)
        else:
            record = await self._session.get(RiskRecord, risk.id)
            if record is None:
                raise NotFoundException("Risk", risk.id)
            for key, value in values.items():
                setattr(record, key, value)
            await self._session.flush()
            logger.debug("Updated risk %s -> status=%s", risk.risk_id, record.status)

        await self._publish_events(risk)
        return risk

    async def save_many(self, risks: Sequence[Risk]) -> list[Risk]:
        return [await self.save(r) for r in risks]

    async def delete(self, id: int) -> None:
        record = await self._session.get(RiskRecord, id)
        if record is None:
            raise NotFoundException("Risk", id)
        await self._session.delete(record)
        await self._session.flush()
        logger.debug("Deleted risk id=%d", id)

    async def delete_risk(self, risk: Risk) -> None:
        """Remove *risk* and publish its buffered events (``RiskDeleted``)."""
        await self.delete(risk.id)
        await self._publish_events(risk)

    async def delete_by_risk_id(self, risk_id: str) -> None:
        stmt = select(RiskRecord).where(RiskRecord.risk_id == risk_id)
        record = (await self._session.execute(stmt)).scalar_one_or_none()
        if record is None:
            raise NotFoundException("Risk", risk_id)
        await self._session.delete(record)
        await self._session.flush()
        logger.debug("Deleted risk %s", risk_id)

    async def delete_many(self, ids: Sequence[int]) -> None:
        for id in ids:
            await self.delete(id)

    async def update_status_bulk(
        self,
        ids: Sequence[int],
        new_status: RiskStatus,
        reason: str | None = None,
    ) -> None:
        for id in ids:
            risk = await self.find_by_id(id)
            if risk is None:
                raise NotFoundException("Risk", id)
            risk.change_status(new_status, reason)
            await self.save(risk)

    # -- Lookups -------------------------------------------------------------

    async def find_by_id(self, id: int) -> Risk | None:
        record = await self._session.get(RiskRecord, id)
        return self._to_risk(record) if record is not None else None

    async def find_by_risk_id(self, risk_id: str) -> Risk | None:
        stmt = select(RiskRecord).where(RiskRecord.risk_id == risk_id)
        record = (await self._session.execute(stmt)).scalar_one_or_none()
        return self._to_risk(record) if record is not None else None

    async def find_by_ids(self, ids: Sequence[int]) -> list[Risk]:
        if not ids:
            return []
        found = {r.id: r for r in await self._fetch(
            select(RiskRecord).where(RiskRecord.id.in_(ids))
        )}
        return [found[i] for i in ids if i in found]

    async def exists(self, risk_id: str) -> bool:
        return await self._risk_id_taken(risk_id)

    # -- Queries -------------------------------------------------------------

    async def list(
        self,
        filters: RiskListFilters | None = None,
        sort: RiskListSort | None = None,
        pagination: PaginationOptions | None = None,
    ) -> PaginatedResult[Risk]:
        page = PaginationOptions.resolve(pagination, self._pagination)
        clauses = _filter_clauses(filters, self._clock.now())

        total = await self.count(filters)
        stmt = _ordered(select(RiskRecord).where(*clauses), sort)
        items = await self._fetch(stmt.offset(page.offset).limit(page.limit))
        return PaginatedResult.build(items, total, page)

    async def count(self, filters: RiskListFilters | None = None) -> int:
        clauses = _filter_clauses(filters, self._clock.now())
        stmt = select(func.count()).select_from(RiskRecord).where(*clauses)
        return int((await self._session.execute(stmt)).scalar_one())

    async def find_all(self) -> list[Risk]:
        return await self._fetch(_ordered(select(RiskRecord), None))

    async def find_by_owner(self, owner_id: int) -> list[Risk]:
        stmt = select(RiskRecord).where(RiskRecord.owner_id == owner_id)
        return await self._fetch(_ordered(stmt, None))

    async def find_by_organization(self, organization_id: int) -> list[Risk]:
        stmt = select(RiskRecord).where(*_org_clause(organization_id))
        return await self._fetch(_ordered(stmt, None))

    async def find_by_status(self, status: RiskStatus) -> list[Risk]:
        stmt = select(RiskRecord).where(RiskRecord.status == status.value.value)
        return await self._fetch(_ordered(stmt, None))

    async def find_by_category(self, category: RiskCategory) -> list[Risk]:
        stmt = select(RiskRecord).where(RiskRecord.category == category.value.value)
        return await self._fetch(_ordered(stmt, None))

    async def find_critical_risks(self, organization_id: int | None = None) -> list[Risk]:
        stmt = select(RiskRecord).where(
            RiskRecord.risk_score >= CRITICAL_THRESHOLD, *_org_clause(organization_id),
        )
        return await self._fetch(_ordered(stmt, _by_score()))

    async def find_needing_attention(self, organization_id: int | None = None) -> list[Risk]:
        stmt = select(RiskRecord).where(
            RiskRecord.risk_score >= ATTENTION_THRESHOLD,
            RiskRecord.status == "active",
            *_org_clause(organization_id),
        )
        return await self._fetch(_ordered(stmt, _by_score()))

    async def find_overdue_reviews(self, organization_id: int | None = None) -> list[Risk]:
        stmt = (
            select(RiskRecord)
            .where(
                RiskRecord.review_date.is_not(None),
                RiskRecord.review_date < format_timestamp(self._clock.now()),
                *_org_clause(organization_id),
            )
            .order_by(RiskRecord.review_date.asc(), RiskRecord.id.asc())
        )
        return await self._fetch(stmt)

    async def search(self, query: str, organization_id: int | None = None) -> list[Risk]:
        clauses = _org_clause(organization_id)
        text = query.strip()
        if text:
            clauses.append(_search_clause(text))
        stmt = _ordered(select(RiskRecord).where(*clauses), _by_score())
        return await self._fetch(stmt.limit(self._pagination.search_limit))

    async def get_statistics(self, organization_id: int | None = None) -> RiskStatistics:
        """Aggregate counts in SQL: totals, per-status, per-category, per-level."""
        org = _org_clause(organization_id)
        now = format_timestamp(self._clock.now())

        level_columns = [
            func.sum(case((_score_range(bounds), 1), else_=0)).label(level.value)
            for level, bounds in LEVEL_SCORE_RANGES.items()
        ]
        totals_stmt = select(
            func.count(RiskRecord.id),
            func.avg(RiskRecord.risk_score),
            func.sum(case((RiskRecord.status == "active", 1), else_=0)),
            func.sum(case((RiskRecord.status == "closed", 1), else_=0)),
            func.sum(case((and_(
                RiskRecord.review_date.is_not(None), RiskRecord.review_date < now,
            ), 1), else_=0)),
            *level_columns,
        ).where(*org)
        totals = (await self._session.execute(totals_stmt)).one()
        total, avg_score, active, closed, overdue, *levels = totals

        stats = RiskStatistics(
            total=int(total or 0),
            average_score=round(float(avg_score), 2) if total else 0.0,
            active_count=int(active or 0),
            closed_count=int(closed or 0),
            review_overdue_count=int(overdue or 0),
        )
        for level, count in zip(LEVEL_SCORE_RANGES, levels):
            stats.by_level[level.value] = int(count or 0)

        for column, target in (
            (RiskRecord.status, stats.by_status),
            (RiskRecord.category, stats.by_category),
        ):
            stmt = select(column, func.count()).where(*org).group_by(column)
            for key, count in (await self._session.execute(stmt)).all():
                target[key] = int(count)
        return stats

    async def get_next_risk_id_number(self, prefix: str) -> int:
        stmt = select(RiskRecord.risk_id).where(
            RiskRecord.risk_id.startswith(f"{prefix}-", autoescape=True),
        )
        risk_ids = (await self._session.execute(stmt)).scalars().all()
        numbers = [n for n in (risk_id_suffix(r, prefix) for r in risk_ids) if n is not None]
        return max(numbers, default=0) + 1


def _by_score() -> RiskListSort:
    return RiskListSort(field=SortField.SCORE, order=SortOrder.DESC)
