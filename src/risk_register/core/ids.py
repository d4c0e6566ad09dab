"""Canonical ID and timestamp factories.

All modules import from here instead of defining local _uuid()/_now() copies.

Timestamp Rule
--------------
All timestamps are ``datetime`` with ``tzinfo=timezone.utc``, never naive.
Values loaded from storage without an offset are assumed to be UTC.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone

RISK_ID_PATTERN = re.compile(r"^[A-Z]+-\d+$")


def new_id() -> str:
    """Generate a new UUID v4 string.  Used for event ids."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(value: datetime | None) -> str | None:
    """Render an aware datetime as fixed-width ISO-8601 (``None`` passes through).

    Always includes microseconds so stored strings sort chronologically.
    """
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def is_valid_risk_id(risk_id: str) -> bool:
    """Return ``True`` if *risk_id* has the ``PREFIX-NUMBER`` shape."""
    return bool(risk_id) and RISK_ID_PATTERN.match(risk_id) is not None


def format_risk_id(prefix: str, number: int, *, width: int = 3) -> str:
    """Build a business identifier, e.g. ``format_risk_id("RISK", 7)`` -> ``RISK-007``."""
    return f"{prefix}-{number:0{width}d}"


def risk_id_suffix(risk_id: str, prefix: str) -> int | None:
    """Return the numeric suffix of *risk_id* if it belongs to *prefix*."""
    head, sep, tail = risk_id.partition("-")
    if not sep or head != prefix or not tail.isdigit():
        return None
    return int(tail)
