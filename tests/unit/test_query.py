"""Tests for the pure query engine (filters, sorting, paging, statistics)."""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest

from risk_register.core.enums import RiskLevel, SortField, SortOrder
from risk_register.domain.query import (
    compute_statistics,
    filter_risks,
    fold_search_text,
    level_score_range,
    matches_filters,
    paginate,
    sort_risks,
)
from risk_register.domain.repository import (
    PaginationOptions,
    RiskListFilters,
    RiskListSort,
)
from risk_register.domain.value_objects import RiskCategory, RiskStatus


@pytest.fixture
def saved(make_risk):
    """Build a transient risk and give it a surrogate id."""
    counter = iter(range(1, 1000))

    def _saved(**overrides):
        risk = make_risk(risk_id=f"RISK-{next(counter):03d}", **overrides)
        risk.assign_id(int(risk.risk_id.split("-")[1]))
        return risk

    return _saved


# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------

class TestLevelRanges:
    def test_ranges(self):
        assert level_score_range("critical") == (20, None)
        assert level_score_range(RiskLevel.HIGH) == (12, 20)
        assert level_score_range("medium") == (6, 12)
        assert level_score_range("low") == (None, 6)

    def test_unknown_level(self):
        assert level_score_range("extreme") is None


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class TestFilters:
    def test_none_matches_everything(self, saved, clock):
        assert matches_filters(saved(), None, clock.now())

    def test_list_fields_are_or_within_and_across(self, saved, clock):
        cyber = saved(category="cybersecurity")
        legal = saved(category="legal")
        legal_closed = saved(category="legal")
        legal_closed.change_status("closed")

        filters = RiskListFilters(category=["cybersecurity", "legal"], status="active")
        assert filter_risks([cyber, legal, legal_closed], filters, clock.now()) == [cyber, legal]

    def test_category_filter_is_normalized(self, saved, clock):
        risk = saved(category="supply_chain")
        assert matches_filters(risk, RiskListFilters(category=["Supply Chain"]), clock.now())

    @pytest.mark.parametrize("level,p,i,expected", [
        ("low", 1, 5, True),
        ("low", 2, 3, False),
        ("medium", 2, 3, True),
        ("medium", 3, 4, False),
        ("high", 3, 4, True),
        ("high", 4, 5, False),
        ("critical", 4, 5, True),
        ("extreme", 5, 5, False),
    ])
    def test_level_filter(self, saved, clock, level, p, i, expected):
        risk = saved(probability=p, impact=i)
        filters = RiskListFilters(risk_level=[level])
        assert matches_filters(risk, filters, clock.now()) is expected

    def test_score_bounds_inclusive(self, saved, clock):
        risk = saved(probability=3, impact=4)
        assert matches_filters(risk, RiskListFilters(min_score=12, max_score=12), clock.now())
        assert not matches_filters(risk, RiskListFilters(min_score=13), clock.now())

    def test_tags_match_any(self, saved, clock):
        risk = saved(tags=["cloud", "pii"])
        assert matches_filters(risk, RiskListFilters(tags=["PII", "other"]), clock.now())
        assert not matches_filters(risk, RiskListFilters(tags=["other"]), clock.now())

    def test_search_title_or_description(self, saved, clock):
        risk = saved(title="Vendor outage", description="Primary cloud vendor fails")
        assert matches_filters(risk, RiskListFilters(search="OUTAGE"), clock.now())
        assert matches_filters(risk, RiskListFilters(search="cloud"), clock.now())
        assert not matches_filters(risk, RiskListFilters(search="flood"), clock.now())

    def test_search_folds_unicode_case(self, saved, clock):
        risk = saved(title="Ärger mit Lieferanten", description="Lager an der Großstraße")
        assert matches_filters(risk, RiskListFilters(search="ÄRGER"), clock.now())
        assert matches_filters(risk, RiskListFilters(search="GROSSSTRASSE"), clock.now())
        assert fold_search_text("Straße") == "strasse"

    def test_owner_and_organization(self, saved, clock):
        risk = saved(owner_id=4, organization_id=2)
        assert matches_filters(risk, RiskListFilters(owner_id=4, organization_id=2), clock.now())
        assert not matches_filters(risk, RiskListFilters(organization_id=1), clock.now())

    def test_created_window(self, saved, clock):
        risk = saved()
        now = clock.now()
        assert matches_filters(risk, RiskListFilters(created_after=now, created_before=now), now)
        assert not matches_filters(
            risk, RiskListFilters(created_after=now + timedelta(seconds=1)), now,
        )

    def test_review_overdue(self, saved, clock):
        risk = saved()
        risk.schedule_review(clock.now() + timedelta(days=1))
        filters = RiskListFilters(review_overdue=True)
        assert not matches_filters(risk, filters, clock.now())
        assert matches_filters(risk, filters, clock.now() + timedelta(days=2))
        assert not matches_filters(saved(), filters, clock.now() + timedelta(days=2))


# ---------------------------------------------------------------------------
# Sorting & paging
# ---------------------------------------------------------------------------

class TestSortAndPage:
    def test_default_sort_is_created_desc(self, saved, clock):
        first = saved()
        clock.advance(minutes=1)
        second = saved()
        assert sort_risks([first, second]) == [second, first]

    def test_ties_broken_by_ascending_id(self, saved):
        a = saved(probability=2, impact=2)
        b = saved(probability=2, impact=2)
        c = saved(probability=5, impact=5)
        desc = RiskListSort(field="score", order="desc")
        assert sort_risks([b, c, a], desc) == [c, a, b]
        asc = RiskListSort(field="score", order="asc")
        assert sort_risks([b, c, a], asc) == [a, b, c]

    def test_unknown_sort_field_falls_back(self):
        sort = RiskListSort(field="password", order="sideways")
        assert sort.field is SortField.CREATED_AT
        assert sort.order is SortOrder.DESC

    def test_snake_case_sort_alias(self):
        assert RiskListSort(field="risk_score").field is SortField.SCORE

    def test_sort_field_parse(self):
        assert SortField.parse("updated_at") is SortField.UPDATED_AT
        assert SortField.parse(" title ") is SortField.TITLE
        assert SortField.parse(None) is SortField.CREATED_AT

    def test_pagination_metadata(self, saved):
        risks = [saved() for _ in range(25)]
        page = paginate(risks, PaginationOptions(page=2, limit=10))
        assert [r.id for r in page.items] == list(range(11, 21))
        assert page.total == 25
        assert page.total_pages == 3
        assert page.has_next
        assert page.has_previous

    def test_last_and_out_of_range_pages(self, saved):
        risks = [saved() for _ in range(25)]
        last = paginate(risks, PaginationOptions(page=3, limit=10))
        assert len(last.items) == 5
        assert not last.has_next
        beyond = paginate(risks, PaginationOptions(page=9, limit=10))
        assert beyond.items == []
        assert beyond.total == 25

    def test_normalized_clamps(self):
        opts = PaginationOptions(page=0, limit=500).normalized(100)
        assert (opts.page, opts.limit) == (1, 100)
        assert PaginationOptions(page=-3, limit=0).normalized().limit == 1

    def test_empty_result(self):
        page = paginate([], PaginationOptions())
        assert page.total == 0
        assert page.total_pages == 0
        assert not page.has_next
        assert not page.has_previous


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class TestStatistics:
    def test_one_risk_per_level(self, saved, clock):
        risks = [
            saved(probability=1, impact=3),                      # 3 low
            saved(probability=2, impact=4),                      # 8 medium
            saved(probability=3, impact=5, category="legal"),    # 15 high
            saved(probability=4, impact=5),                      # 20 critical
        ]
        stats = compute_statistics(risks, clock.now())
        assert stats.total == 4
        assert stats.by_level == {"low": 1, "medium": 1, "high": 1, "critical": 1}
        assert stats.average_score == 11.5
        assert stats.by_category == {"cybersecurity": 3, "legal": 1}
        assert stats.by_status == {"active": 4}
        assert stats.active_count == 4

    def test_empty(self, clock):
        stats = compute_statistics([], clock.now())
        assert stats.total == 0
        assert stats.average_score == 0.0
        assert stats.by_level == {"low": 0, "medium": 0, "high": 0, "critical": 0}

    def test_closed_and_overdue_counts(self, saved, clock):
        closed = saved()
        closed.change_status("closed")
        overdue = saved()
        overdue.schedule_review(clock.now() + timedelta(hours=1))
        stats = compute_statistics([closed, overdue], clock.now() + timedelta(days=1))
        assert stats.closed_count == 1
        assert stats.active_count == 1
        assert stats.review_overdue_count == 1

    def test_raw_scores_bucket_and_average(self, clock):
        # Scores that no factor pair produces still bucket by threshold.
        rows = [
            SimpleNamespace(
                score=SimpleNamespace(score=s),
                status=RiskStatus.create_active(),
                category=RiskCategory.create("other"),
                review_date=None,
            )
            for s in (3, 8, 14, 22)
        ]
        stats = compute_statistics(rows, clock.now())
        assert stats.by_level == {"low": 1, "medium": 1, "high": 1, "critical": 1}
        assert stats.average_score == 11.75
