"""Shared fixtures for the risk-register test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from risk_register.core.clock import FixedClock
from risk_register.domain.risk import Risk
from risk_register.infrastructure.event_bus import InMemoryEventBus
from risk_register.infrastructure.memory_repository import InMemoryRiskRepository

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def risk_kwargs(**overrides: Any) -> dict[str, Any]:
    """Valid ``Risk.create`` arguments with *overrides* applied."""
    defaults: dict[str, Any] = dict(
        risk_id="RISK-001",
        title="Ransomware on file servers",
        description="Encryption of shared drives by ransomware",
        category="cybersecurity",
        probability=3,
        impact=4,
        organization_id=1,
        owner_id=10,
        created_by=10,
    )
    defaults.update(overrides)
    return defaults


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def repo(bus: InMemoryEventBus, clock: FixedClock) -> InMemoryRiskRepository:
    return InMemoryRiskRepository(bus, clock)


# ---------------------------------------------------------------------------
# Risk factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_risk(clock: FixedClock) -> Callable[..., Risk]:
    """Build an unsaved risk on the test clock."""

    def _make(**overrides: Any) -> Risk:
        overrides.setdefault("clock", clock)
        return Risk.create(**risk_kwargs(**overrides))

    return _make
