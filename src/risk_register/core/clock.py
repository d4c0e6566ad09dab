"""Clock abstraction for time-dependent domain rules.

WallClock: real wall-clock time (production)
FixedClock: deterministic, manually advanced time (tests)

The aggregate and repositories never call datetime.now() directly for
rule evaluation (review scheduling, overdue checks); they use a clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class IClock(Protocol):
    """Clock interface used by all time-dependent code."""

    def now(self) -> datetime:
        """Current time as timezone-aware UTC datetime."""
        ...


class WallClock:
    """Real wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Deterministic clock for tests.

    Time advances only when explicitly set or advanced.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._time = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, t: datetime) -> None:
        """Jump to *t*. Must be monotonically increasing."""
        if t < self._time:
            raise ValueError(
                f"FixedClock cannot go backwards: {t} < {self._time}"
            )
        self._time = t

    def advance(self, **kwargs: float) -> None:
        """Advance by a ``timedelta(**kwargs)``, e.g. ``advance(days=1)``."""
        self.set_time(self._time + timedelta(**kwargs))


DEFAULT_CLOCK: IClock = WallClock()
