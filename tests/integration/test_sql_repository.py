"""Integration tests: SqlRiskRepository on a temporary SQLite database.

The parity tests run the same scenario through the in-memory and SQL
stores and require identical answers.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio

from risk_register.core.errors import NotFoundException, ValidationException
from risk_register.domain.repository import (
    IRiskRepository,
    PaginationOptions,
    RiskListFilters,
    RiskListSort,
)
from risk_register.domain.value_objects import RiskCategory, RiskStatus
from risk_register.infrastructure.event_bus import InMemoryEventBus
from risk_register.infrastructure.memory_repository import InMemoryRiskRepository
from risk_register.storage.sql import (
    SqlRiskRepository,
    create_all,
    create_engine,
    create_session_factory,
)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'risks.db'}", use_null_pool=True)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = create_session_factory(engine)
    async with factory() as session:
        yield session
        await session.commit()


@pytest.fixture
def sql_repo(session, bus, clock) -> SqlRiskRepository:
    return SqlRiskRepository(session, bus, clock)


async def _seed(repo: IRiskRepository, make_risk, clock) -> None:
    """Ten risks across two orgs, spread over time, statuses and tags."""
    specs = [
        # risk_id, p, i, category, status, org, owner, tags
        ("RISK-001", 1, 3, "cybersecurity", "active", 1, 10, ["cloud"]),
        ("RISK-002", 2, 4, "financial", "active", 1, 11, []),
        ("RISK-003", 3, 5, "legal", "monitoring", 1, 10, ["pii", "cloud"]),
        ("RISK-004", 4, 5, "cybersecurity", "active", 1, 12, ["pii"]),
        ("RISK-005", 5, 5, "operational", "mitigated", 2, 10, []),
        ("RISK-006", 2, 2, "supply_chain", "closed", 2, 13, ["vendor"]),
        ("RISK-007", 3, 4, "market", "active", 1, 11, []),
        ("RISK-008", 4, 4, "technology", "accepted", 2, 12, ["cloud"]),
        ("RISK-009", 1, 1, "other", "active", 1, 10, []),
        ("RISK-010", 3, 4, "cybersecurity", "active", 1, 10, ["vendor"]),
    ]
    for risk_id, p, i, category, status, org, owner, tags in specs:
        clock.advance(minutes=1)
        risk = make_risk(
            risk_id=risk_id, probability=p, impact=i, category=category,
            organization_id=org, owner_id=owner, tags=tags,
            title=f"{category.replace('_', ' ').title()} exposure {risk_id}",
            mitigation_plan="Documented plan",
        )
        if risk_id in ("RISK-002", "RISK-007"):
            risk.schedule_review(clock.now() + timedelta(days=1))
        if status != "active":
            risk.change_status(status)
        await repo.save(risk)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestSqlWrites:
    def test_satisfies_protocol(self, sql_repo):
        assert isinstance(sql_repo, IRiskRepository)

    @pytest.mark.asyncio
    async def test_insert_and_reload(self, sql_repo, bus, make_risk, clock):
        risk = make_risk(tags=["cloud"], metadata={"refs": ["ISO-27001"]})
        risk.schedule_review(clock.now() + timedelta(days=3))
        saved = await sql_repo.save(risk)
        assert saved.id == 1

        loaded = await sql_repo.find_by_id(1)
        assert loaded is not None
        assert loaded.to_dict() == saved.to_dict()
        (event,) = bus.get_history("RiskCreated")
        assert event.aggregate_id == "1"

    @pytest.mark.asyncio
    async def test_update_overwrites_row(self, sql_repo, make_risk):
        risk = await sql_repo.save(make_risk())
        risk.update_details(title="Renamed", tags=["a", "b"])
        risk.update_score(1, 2)
        await sql_repo.save(risk)

        loaded = await sql_repo.find_by_risk_id("RISK-001")
        assert loaded.title == "Renamed"
        assert loaded.tags == ("a", "b")
        assert loaded.score.score == 2

    @pytest.mark.asyncio
    async def test_duplicate_risk_id(self, sql_repo, make_risk):
        await sql_repo.save(make_risk(risk_id="RISK-050"))
        with pytest.raises(ValidationException):
            await sql_repo.save(make_risk(risk_id="RISK-050"))

    @pytest.mark.asyncio
    async def test_delete_paths(self, sql_repo, bus, make_risk):
        a = await sql_repo.save(make_risk(risk_id="RISK-001"))
        await sql_repo.save(make_risk(risk_id="RISK-002"))
        a.change_status("closed")
        a.prepare_for_deletion(reason="Merged")
        await sql_repo.delete_risk(a)
        await sql_repo.delete_by_risk_id("RISK-002")

        assert await sql_repo.count() == 0
        assert len(bus.get_history("RiskDeleted")) == 1
        with pytest.raises(NotFoundException):
            await sql_repo.delete(a.id)
        with pytest.raises(NotFoundException):
            await sql_repo.delete_by_risk_id("RISK-002")

    @pytest.mark.asyncio
    async def test_bulk_helpers(self, sql_repo, make_risk):
        saved = await sql_repo.save_many(
            [make_risk(risk_id=f"RISK-{n:03d}") for n in (1, 2, 3)],
        )
        await sql_repo.update_status_bulk(
            [r.id for r in saved[1:]], RiskStatus.create("transferred"), "Insured",
        )
        found = await sql_repo.find_by_ids([3, 1, 2])
        assert [r.status.value.value for r in found] == ["transferred", "active", "transferred"]
        await sql_repo.delete_many([1, 2])
        assert [r.risk_id for r in await sql_repo.find_all()] == ["RISK-003"]

    @pytest.mark.asyncio
    async def test_data_survives_new_session(self, engine, bus, make_risk):
        factory = create_session_factory(engine)
        async with factory() as session:
            await SqlRiskRepository(session, bus).save(make_risk(risk_id="RISK-077"))
            await session.commit()
        async with factory() as session:
            assert await SqlRiskRepository(session, bus).exists("RISK-077")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestSqlQueries:
    @pytest.mark.asyncio
    async def test_list_page(self, sql_repo, make_risk, clock):
        await _seed(sql_repo, make_risk, clock)
        result = await sql_repo.list(
            RiskListFilters(organization_id=1),
            RiskListSort(field="score", order="desc"),
            PaginationOptions(page=1, limit=3),
        )
        assert [r.risk_id for r in result.items] == ["RISK-004", "RISK-003", "RISK-007"]
        assert result.total == 7
        assert result.total_pages == 3

    @pytest.mark.asyncio
    async def test_specialised_finders(self, sql_repo, make_risk, clock):
        await _seed(sql_repo, make_risk, clock)
        assert [r.risk_id for r in await sql_repo.find_critical_risks()] == ["RISK-005", "RISK-004"]
        assert [r.risk_id for r in await sql_repo.find_needing_attention()] == ["RISK-004"]
        cyber = await sql_repo.find_by_category(RiskCategory.create("cybersecurity"))
        assert [r.risk_id for r in cyber] == ["RISK-010", "RISK-004", "RISK-001"]
        assert len(await sql_repo.find_by_status(RiskStatus.create_active())) == 6
        assert len(await sql_repo.find_by_owner(10)) == 5

    @pytest.mark.asyncio
    async def test_overdue_reviews(self, sql_repo, make_risk, clock):
        await _seed(sql_repo, make_risk, clock)
        assert await sql_repo.find_overdue_reviews() == []
        clock.advance(days=2)
        overdue = await sql_repo.find_overdue_reviews()
        assert [r.risk_id for r in overdue] == ["RISK-002", "RISK-007"]

    @pytest.mark.asyncio
    async def test_search_escapes_wildcards(self, sql_repo, make_risk):
        await sql_repo.save(make_risk(risk_id="RISK-001", title="100% outage"))
        await sql_repo.save(make_risk(risk_id="RISK-002", title="1000 users"))
        assert [r.risk_id for r in await sql_repo.search("100%")] == ["RISK-001"]

    @pytest.mark.asyncio
    async def test_statistics(self, sql_repo, make_risk, clock):
        await _seed(sql_repo, make_risk, clock)
        clock.advance(days=2)
        stats = await sql_repo.get_statistics()
        assert stats.total == 10
        assert stats.by_level == {"low": 3, "medium": 1, "high": 4, "critical": 2}
        assert stats.by_status["active"] == 6
        assert stats.by_category["cybersecurity"] == 3
        assert stats.closed_count == 1
        assert stats.review_overdue_count == 2
        assert stats.average_score == 11.6

    @pytest.mark.asyncio
    async def test_empty_statistics(self, sql_repo):
        stats = await sql_repo.get_statistics()
        assert stats.total == 0
        assert stats.average_score == 0.0
        assert stats.by_level == {"low": 0, "medium": 0, "high": 0, "critical": 0}

    @pytest.mark.asyncio
    async def test_next_risk_id_number(self, sql_repo, make_risk):
        assert await sql_repo.get_next_risk_id_number("RISK") == 1
        await sql_repo.save(make_risk(risk_id="RISK-012"))
        await sql_repo.save(make_risk(risk_id="RISKY-900"))
        assert await sql_repo.get_next_risk_id_number("RISK") == 13


# ---------------------------------------------------------------------------
# Parity with the in-memory store
# ---------------------------------------------------------------------------

PARITY_CASES = [
    (None, None),
    (RiskListFilters(status=["active", "monitoring"]), RiskListSort(field="title", order="asc")),
    (RiskListFilters(risk_level=["high", "critical"]), RiskListSort(field="score")),
    (RiskListFilters(risk_level=["extreme"]), None),
    (RiskListFilters(tags=["cloud"]), RiskListSort(field="updatedAt", order="asc")),
    (RiskListFilters(category=["Supply Chain", "legal"]), None),
    (RiskListFilters(search="EXPOSURE RISK-00"), RiskListSort(field="status", order="asc")),
    (RiskListFilters(min_score=6, max_score=16, organization_id=1), RiskListSort(field="score", order="asc")),
    (RiskListFilters(owner_id=10, review_overdue=False), None),
    (RiskListFilters(review_overdue=True), None),
]


@pytest.mark.asyncio
@pytest.mark.parametrize("filters,sort", PARITY_CASES)
async def test_parity_with_memory_store(sql_repo, make_risk, clock, filters, sort):
    memory_repo = InMemoryRiskRepository(InMemoryEventBus(), clock)
    for repo in (memory_repo, sql_repo):
        await _seed(repo, make_risk, clock)
    clock.advance(days=2)

    expected = await memory_repo.list(filters, sort, PaginationOptions(limit=100))
    actual = await sql_repo.list(filters, sort, PaginationOptions(limit=100))
    assert [r.risk_id for r in actual.items] == [r.risk_id for r in expected.items]
    assert actual.total == expected.total

    assert await sql_repo.get_statistics() == await memory_repo.get_statistics()


@pytest.mark.asyncio
@pytest.mark.parametrize("term,expected", [
    ("ärger", ["RISK-001"]),
    ("ÄRGER MIT", ["RISK-001"]),
    ("strasse", ["RISK-002"]),
    ("ÉCHEC", ["RISK-003"]),
    ("arger", []),
])
async def test_search_parity_non_ascii(sql_repo, make_risk, clock, term, expected):
    memory_repo = InMemoryRiskRepository(InMemoryEventBus(), clock)
    titles = [
        ("RISK-001", "Ärger mit Lieferanten", "Supplier dispute"),
        ("RISK-002", "Road closure", "Zufahrt über die Hauptstraße gesperrt"),
        ("RISK-003", "Échec du déploiement", "Rollback required"),
    ]
    for repo in (memory_repo, sql_repo):
        for risk_id, title, description in titles:
            await repo.save(make_risk(risk_id=risk_id, title=title, description=description))

    for repo in (memory_repo, sql_repo):
        assert sorted(r.risk_id for r in await repo.search(term)) == expected
        page = await repo.list(RiskListFilters(search=term), None, PaginationOptions())
        assert sorted(r.risk_id for r in page.items) == expected
