"""Query engine: filter, sort, paginate and aggregate risks in memory.

These pure functions define the list/statistics semantics.  The
in-memory repository calls them directly; the SQL repository translates
the same rules into ``WHERE`` clauses (see ``storage/sql/repository.py``)
and reuses :func:`level_score_range` and :func:`compute_statistics`'s
bucketing so both stores agree.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Callable, Iterable

from risk_register.core.enums import RiskLevel, SortField, SortOrder
from risk_register.domain.repository import (
    PaginatedResult,
    PaginationOptions,
    RiskListFilters,
    RiskListSort,
    RiskStatistics,
)
from risk_register.domain.risk import Risk
from risk_register.domain.value_objects import (
    CRITICAL_THRESHOLD,
    HIGH_THRESHOLD,
    MEDIUM_THRESHOLD,
    level_for_score,
)

# level -> (inclusive lower bound, exclusive upper bound); ``None`` = open
LEVEL_SCORE_RANGES: dict[RiskLevel, tuple[int | None, int | None]] = {
    RiskLevel.CRITICAL: (CRITICAL_THRESHOLD, None),
    RiskLevel.HIGH: (HIGH_THRESHOLD, CRITICAL_THRESHOLD),
    RiskLevel.MEDIUM: (MEDIUM_THRESHOLD, HIGH_THRESHOLD),
    RiskLevel.LOW: (None, MEDIUM_THRESHOLD),
}


def level_score_range(level: str | RiskLevel) -> tuple[int | None, int | None] | None:
    """Score range for a level name, or ``None`` for an unknown level."""
    try:
        return LEVEL_SCORE_RANGES[RiskLevel(level)]
    except ValueError:
        return None


def fold_search_text(text: str) -> str:
    """Case folding used by free-text search in every store."""
    return text.casefold()


def _in_range(score: int, bounds: tuple[int | None, int | None]) -> bool:
    lo, hi = bounds
    if lo is not None and score < lo:
        return False
    if hi is not None and score >= hi:
        return False
    return True


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def matches_filters(risk: Risk, filters: RiskListFilters | None, now: datetime) -> bool:
    """Evaluate every filter against *risk* (AND across fields)."""
    if filters is None:
        return True
    f = filters
    score = risk.score.score

    if f.status and risk.status.value.value not in f.status:
        return False
    if f.category and risk.category.value.value not in f.category:
        return False
    if f.risk_level:
        ranges = [r for r in (level_score_range(lv) for lv in f.risk_level) if r]
        # Only unknown levels supplied: nothing can match.
        if not any(_in_range(score, r) for r in ranges):
            return False
    if f.tags and not set(f.tags) & set(risk.tags):
        return False
    if f.owner_id is not None and risk.owner_id != f.owner_id:
        return False
    if f.organization_id is not None and risk.organization_id != f.organization_id:
        return False
    if f.min_score is not None and score < f.min_score:
        return False
    if f.max_score is not None and score > f.max_score:
        return False
    if f.search:
        needle = fold_search_text(f.search)
        if (
            needle not in fold_search_text(risk.title)
            and needle not in fold_search_text(risk.description)
        ):
            return False
    if f.created_after is not None and risk.created_at < f.created_after:
        return False
    if f.created_before is not None and risk.created_at > f.created_before:
        return False
    if f.updated_after is not None and risk.updated_at < f.updated_after:
        return False
    if f.updated_before is not None and risk.updated_at > f.updated_before:
        return False
    if f.review_overdue:
        if risk.review_date is None or not risk.review_date < now:
            return False
    return True


def filter_risks(
    risks: Iterable[Risk], filters: RiskListFilters | None, now: datetime,
) -> list[Risk]:
    return [r for r in risks if matches_filters(r, filters, now)]


# ---------------------------------------------------------------------------
# Sorting & paging
# ---------------------------------------------------------------------------

_SORT_KEYS: dict[SortField, Callable[[Risk], object]] = {
    SortField.SCORE: lambda r: r.score.score,
    SortField.CREATED_AT: lambda r: r.created_at,
    SortField.UPDATED_AT: lambda r: r.updated_at,
    SortField.TITLE: lambda r: r.title,
    SortField.STATUS: lambda r: r.status.value.value,
}


def sort_risks(risks: Iterable[Risk], sort: RiskListSort | None = None) -> list[Risk]:
    """Sort by an allow-listed field; ties keep ascending id order."""
    sort = sort or RiskListSort()
    ordered = sorted(risks, key=lambda r: r.id)
    return sorted(
        ordered,
        key=_SORT_KEYS[sort.field],
        reverse=sort.order is SortOrder.DESC,
    )


def paginate(items: list[Risk], pagination: PaginationOptions) -> PaginatedResult[Risk]:
    """Slice an already filtered and sorted list into one page."""
    page_items = items[pagination.offset:pagination.offset + pagination.limit]
    return PaginatedResult.build(page_items, len(items), pagination)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def compute_statistics(risks: Iterable[Risk], now: datetime) -> RiskStatistics:
    """Single pass over *risks* producing every aggregate."""
    stats = RiskStatistics()
    by_status: Counter[str] = Counter()
    by_category: Counter[str] = Counter()
    score_sum = 0

    for risk in risks:
        score = risk.score.score
        stats.total += 1
        score_sum += score
        by_status[risk.status.value.value] += 1
        by_category[risk.category.value.value] += 1
        stats.by_level[level_for_score(score).value] += 1
        if risk.status.is_active():
            stats.active_count += 1
        if risk.status.is_closed():
            stats.closed_count += 1
        if risk.review_date is not None and risk.review_date < now:
            stats.review_overdue_count += 1

    stats.by_status = dict(by_status)
    stats.by_category = dict(by_category)
    stats.average_score = round(score_sum / stats.total, 2) if stats.total else 0.0
    return stats
