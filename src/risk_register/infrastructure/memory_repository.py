"""In-memory ``IRiskRepository`` implementation.

Stores persistence rows (see :mod:`risk_register.storage.mapper`) keyed
by surrogate id, so every load goes through the same row -> aggregate
path as the SQL store.  Filtering, sorting and statistics are delegated
to :mod:`risk_register.domain.query`.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from risk_register.core.clock import DEFAULT_CLOCK, IClock
from risk_register.core.config import PaginationConfig
from risk_register.core.enums import SortField, SortOrder
from risk_register.core.errors import NotFoundException, ValidationException
from risk_register.core.ids import risk_id_suffix
from risk_register.domain.query import (
    compute_statistics,
    filter_risks,
    paginate,
    sort_risks,
)
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

logger = logging.getLogger(__name__)

_BY_SCORE = RiskListSort(field=SortField.SCORE, order=SortOrder.DESC)


class InMemoryRiskRepository:
    """Dict-backed repository for tests and single-process use."""

    def __init__(
        self,
        event_bus: IEventBus,
        clock: IClock | None = None,
        *,
        pagination: PaginationConfig | None = None,
    ) -> None:
        self._bus = event_bus
        self._clock = clock or DEFAULT_CLOCK
        self._pagination = pagination or PaginationConfig()
        self._rows: dict[int, RiskRow] = {}
        self._next_id = 1

    # -- Internal ------------------------------------------------------------

    def _load(self, row: RiskRow) -> Risk:
        return row_to_risk(row, clock=self._clock)

    def _select(self, predicate: Callable[[Risk], bool] | None = None) -> list[Risk]:
        risks = [self._load(row) for row in self._rows.values()]
        if predicate is None:
            return risks
        return [r for r in risks if predicate(r)]

    async def _publish_events(self, risk: Risk) -> None:
        events = risk.pull_domain_events()
        if events:
            await self._bus.publish_all(events)

    def _risk_id_taken(self, risk_id: str, exclude_id: int = 0) -> bool:
        return any(
            row["risk_id"] == risk_id and row["id"] != exclude_id
            for row in self._rows.values()
        )

    # -- Writes --------------------------------------------------------------

    async def save(self, risk: Risk) -> Risk:
        if risk.id == 0:
            if self._risk_id_taken(risk.risk_id):
                raise ValidationException.from_field(
                    "risk_id", "Risk ID already exists", risk.risk_id,
                )
            risk.assign_id(self._next_id)
            self._next_id += 1
            logger.debug("Inserted risk %s (id=%d)", risk.risk_id, risk.id)
        else:
            if risk.id not in self._rows:
                raise NotFoundException("Risk", risk.id)
            if self._risk_id_taken(risk.risk_id, exclude_id=risk.id):
                raise ValidationException.from_field(
                    "risk_id", "Risk ID already exists", risk.risk_id,
                )
            logger.debug("Updated risk %s (id=%d)", risk.risk_id, risk.id)

        self._rows[risk.id] = risk_to_row(risk)
        await self._publish_events(risk)
        return risk

    async def save_many(self, risks: Sequence[Risk]) -> list[Risk]:
        return [await self.save(r) for r in risks]

    async def delete(self, id: int) -> None:
        if self._rows.pop(id, None) is None:
            raise NotFoundException("Risk", id)
        logger.debug("Deleted risk id=%d", id)

    async def delete_risk(self, risk: Risk) -> None:
        """Remove *risk* and publish its buffered events (``RiskDeleted``)."""
        await self.delete(risk.id)
        await self._publish_events(risk)

    async def delete_by_risk_id(self, risk_id: str) -> None:
        risk = await self.find_by_risk_id(risk_id)
        if risk is None:
            raise NotFoundException("Risk", risk_id)
        await self.delete(risk.id)

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
        row = self._rows.get(id)
        return self._load(row) if row is not None else None

    async def find_by_risk_id(self, risk_id: str) -> Risk | None:
        for row in self._rows.values():
            if row["risk_id"] == risk_id:
                return self._load(row)
        return None

    async def find_by_ids(self, ids: Sequence[int]) -> list[Risk]:
        return [self._load(self._rows[i]) for i in ids if i in self._rows]

    async def exists(self, risk_id: str) -> bool:
        return any(row["risk_id"] == risk_id for row in self._rows.values())

    # -- Queries -------------------------------------------------------------

    async def list(
        self,
        filters: RiskListFilters | None = None,
        sort: RiskListSort | None = None,
        pagination: PaginationOptions | None = None,
    ) -> PaginatedResult[Risk]:
        page = PaginationOptions.resolve(pagination, self._pagination)
        matched = filter_risks(self._select(), filters, self._clock.now())
        return paginate(sort_risks(matched, sort), page)

    async def count(self, filters: RiskListFilters | None = None) -> int:
        return len(filter_risks(self._select(), filters, self._clock.now()))

    async def find_all(self) -> list[Risk]:
        return sort_risks(self._select())

    async def find_by_owner(self, owner_id: int) -> list[Risk]:
        return sort_risks(self._select(lambda r: r.owner_id == owner_id))

    async def find_by_organization(self, organization_id: int) -> list[Risk]:
        return sort_risks(self._select(lambda r: r.organization_id == organization_id))

    async def find_by_status(self, status: RiskStatus) -> list[Risk]:
        return sort_risks(self._select(lambda r: r.status == status))

    async def find_by_category(self, category: RiskCategory) -> list[Risk]:
        return sort_risks(self._select(lambda r: r.category == category))

    async def find_critical_risks(self, organization_id: int | None = None) -> list[Risk]:
        return sort_risks(
            self._select(lambda r: (
                r.score.score >= CRITICAL_THRESHOLD
                and _in_org(r, organization_id)
            )),
            _BY_SCORE,
        )

    async def find_needing_attention(self, organization_id: int | None = None) -> list[Risk]:
        return sort_risks(
            self._select(lambda r: (
                r.score.score >= ATTENTION_THRESHOLD
                and r.is_active
                and _in_org(r, organization_id)
            )),
            _BY_SCORE,
        )

    async def find_overdue_reviews(self, organization_id: int | None = None) -> list[Risk]:
        now = self._clock.now()
        overdue = self._select(lambda r: (
            r.review_date is not None
            and r.review_date < now
            and _in_org(r, organization_id)
        ))
        return sorted(
            sorted(overdue, key=lambda r: r.id),
            key=lambda r: r.review_date,  # type: ignore[arg-type, return-value]
        )

    async def search(self, query: str, organization_id: int | None = None) -> list[Risk]:
        filters = RiskListFilters(search=query, organization_id=organization_id)
        matched = filter_risks(self._select(), filters, self._clock.now())
        return sort_risks(matched, _BY_SCORE)[:self._pagination.search_limit]

    async def get_statistics(self, organization_id: int | None = None) -> RiskStatistics:
        risks = self._select(lambda r: _in_org(r, organization_id))
        return compute_statistics(risks, self._clock.now())

    async def get_next_risk_id_number(self, prefix: str) -> int:
        numbers = [
            n for n in (risk_id_suffix(row["risk_id"], prefix) for row in self._rows.values())
            if n is not None
        ]
        return max(numbers, default=0) + 1


def _in_org(risk: Risk, organization_id: int | None) -> bool:
    return organization_id is None or risk.organization_id == organization_id
