"""Value objects for the risk aggregate.

Design invariants
-----------------
1.  Every value object is **immutable** (``frozen=True``).
2.  Equality is structural, field by field (dataclass ``__eq__``), never
    by identity or by serialised form.
3.  Every value object validates itself on construction; an invalid
    instance cannot exist.  Factories raise ``ValidationException``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from risk_register.core.enums import RiskCategoryValue, RiskLevel, RiskStatusValue
from risk_register.core.errors import ValidationException

# Score thresholds (inclusive lower bounds)
CRITICAL_THRESHOLD = 20
HIGH_THRESHOLD = 12
MEDIUM_THRESHOLD = 6
ATTENTION_THRESHOLD = 15

MIN_FACTOR = 1
MAX_FACTOR = 5


def level_for_score(score: int) -> RiskLevel:
    """Map a probability x impact product onto the four-tier level."""
    if score >= CRITICAL_THRESHOLD:
        return RiskLevel.CRITICAL
    if score >= HIGH_THRESHOLD:
        return RiskLevel.HIGH
    if score >= MEDIUM_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _check_factor(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationException.from_field(
            name, f"{name.capitalize()} must be an integer between 1 and 5", value,
        )
    if value < MIN_FACTOR or value > MAX_FACTOR:
        raise ValidationException.from_field(
            name, f"{name.capitalize()} must be between 1 and 5", value,
        )
    return value


# ---------------------------------------------------------------------------
# RiskScore
# ---------------------------------------------------------------------------

_LEVEL_COLORS: dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: "red",
    RiskLevel.HIGH: "orange",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.LOW: "green",
}


@dataclass(frozen=True)
class RiskScore:
    """Probability x impact, each on a 1-5 scale.

    ``score`` and ``level`` are derived, so two scores are equal exactly
    when their probability and impact are equal.
    """

    probability: int
    impact: int

    def __post_init__(self) -> None:
        _check_factor("probability", self.probability)
        _check_factor("impact", self.impact)

    @classmethod
    def create(cls, probability: int, impact: int) -> RiskScore:
        return cls(probability=probability, impact=impact)

    @classmethod
    def from_score(
        cls,
        score: int,
        probability: int | None = None,
        impact: int | None = None,
    ) -> RiskScore:
        """Rebuild a score when only the product is known (legacy rows).

        Missing factors are estimated (probability = ceil(sqrt(score)),
        impact = ceil(score / probability)) and clamped to the 1-5 scale,
        so the result always satisfies ``score == probability * impact``.
        """
        if probability is not None and impact is not None:
            return cls(probability, impact)
        score = max(1, min(int(score), MAX_FACTOR * MAX_FACTOR))
        p = probability or min(MAX_FACTOR, math.ceil(math.sqrt(score)))
        i = impact or min(MAX_FACTOR, math.ceil(score / p))
        return cls(p, i)

    @property
    def score(self) -> int:
        return self.probability * self.impact

    @property
    def level(self) -> RiskLevel:
        return level_for_score(self.score)

    @property
    def level_color(self) -> str:
        return _LEVEL_COLORS[self.level]

    def is_critical(self) -> bool:
        return self.level is RiskLevel.CRITICAL

    def is_high_or_critical(self) -> bool:
        return self.level in (RiskLevel.HIGH, RiskLevel.CRITICAL)

    def needs_immediate_attention(self) -> bool:
        return self.score >= ATTENTION_THRESHOLD

    def update(self, probability: int, impact: int) -> RiskScore:
        return RiskScore(probability, impact)

    def update_probability(self, probability: int) -> RiskScore:
        return RiskScore(probability, self.impact)

    def update_impact(self, impact: int) -> RiskScore:
        return RiskScore(self.probability, impact)

    def to_dict(self) -> dict[str, Any]:
        return {
            "probability": self.probability,
            "impact": self.impact,
            "score": self.score,
            "level": self.level.value,
        }


# ---------------------------------------------------------------------------
# RiskStatus
# ---------------------------------------------------------------------------

_S = RiskStatusValue

_VALID_TRANSITIONS: dict[RiskStatusValue, frozenset[RiskStatusValue]] = {
    _S.ACTIVE: frozenset(
        {_S.MITIGATED, _S.ACCEPTED, _S.TRANSFERRED, _S.AVOIDED, _S.MONITORING, _S.CLOSED}
    ),
    _S.MONITORING: frozenset({_S.ACTIVE, _S.MITIGATED, _S.ACCEPTED, _S.CLOSED}),
    _S.MITIGATED: frozenset({_S.CLOSED, _S.MONITORING, _S.ACTIVE}),
    _S.ACCEPTED: frozenset({_S.CLOSED, _S.MONITORING}),
    _S.TRANSFERRED: frozenset({_S.CLOSED, _S.MONITORING}),
    _S.AVOIDED: frozenset({_S.CLOSED}),
    # Closed risks can only be reopened.
    _S.CLOSED: frozenset({_S.ACTIVE}),
}

_RESOLVED_STATUSES = frozenset(
    {_S.MITIGATED, _S.ACCEPTED, _S.TRANSFERRED, _S.AVOIDED, _S.CLOSED}
)

_STATUS_COLORS: dict[RiskStatusValue, str] = {
    _S.ACTIVE: "bg-red-100 text-red-800",
    _S.MITIGATED: "bg-green-100 text-green-800",
    _S.ACCEPTED: "bg-yellow-100 text-yellow-800",
    _S.TRANSFERRED: "bg-blue-100 text-blue-800",
    _S.AVOIDED: "bg-purple-100 text-purple-800",
    _S.CLOSED: "bg-gray-100 text-gray-800",
    _S.MONITORING: "bg-orange-100 text-orange-800",
}


@dataclass(frozen=True)
class RiskStatus:
    """Lifecycle status of a risk, with its transition table."""

    value: RiskStatusValue

    def __post_init__(self) -> None:
        if not isinstance(self.value, RiskStatusValue):
            object.__setattr__(self, "value", self._parse(self.value))

    @staticmethod
    def _parse(raw: Any) -> RiskStatusValue:
        if isinstance(raw, RiskStatusValue):
            return raw
        normalized = str(raw).strip().lower() if raw is not None else ""
        try:
            return RiskStatusValue(normalized)
        except ValueError:
            allowed = ", ".join(s.value for s in RiskStatusValue)
            raise ValidationException.from_field(
                "status", f"Invalid status. Must be one of: {allowed}", raw,
            ) from None

    @classmethod
    def create(cls, value: str) -> RiskStatus:
        return cls(cls._parse(value))

    @classmethod
    def create_active(cls) -> RiskStatus:
        return cls(RiskStatusValue.ACTIVE)

    @property
    def display_name(self) -> str:
        return self.value.value.capitalize()

    @property
    def color_class(self) -> str:
        return _STATUS_COLORS[self.value]

    def is_active(self) -> bool:
        return self.value is RiskStatusValue.ACTIVE

    def is_closed(self) -> bool:
        return self.value is RiskStatusValue.CLOSED

    def is_resolved(self) -> bool:
        return self.value in _RESOLVED_STATUSES

    def requires_monitoring(self) -> bool:
        return self.value in (RiskStatusValue.ACTIVE, RiskStatusValue.MONITORING)

    def can_transition_to(self, other: RiskStatus) -> bool:
        return other.value in _VALID_TRANSITIONS.get(self.value, frozenset())

    def allowed_transitions(self) -> frozenset[RiskStatusValue]:
        return _VALID_TRANSITIONS.get(self.value, frozenset())

    @staticmethod
    def all_statuses() -> list[str]:
        return [s.value for s in RiskStatusValue]

    @staticmethod
    def status_options() -> list[dict[str, str]]:
        return [
            {"value": s.value, "label": s.value.capitalize()}
            for s in RiskStatusValue
        ]

    def __str__(self) -> str:
        return self.value.value


# ---------------------------------------------------------------------------
# RiskCategory
# ---------------------------------------------------------------------------

_C = RiskCategoryValue

# (display name, icon, color class, legacy numeric id)
_CATEGORY_INFO: dict[RiskCategoryValue, tuple[str, str, str, int]] = {
    _C.STRATEGIC: ("Strategic", "🎯", "bg-purple-100 text-purple-800", 1),
    _C.OPERATIONAL: ("Operational", "⚙️", "bg-blue-100 text-blue-800", 2),
    _C.FINANCIAL: ("Financial", "💰", "bg-green-100 text-green-800", 3),
    _C.COMPLIANCE: ("Compliance", "📋", "bg-yellow-100 text-yellow-800", 4),
    _C.REPUTATIONAL: ("Reputational", "👥", "bg-pink-100 text-pink-800", 5),
    _C.TECHNOLOGY: ("Technology", "💻", "bg-indigo-100 text-indigo-800", 6),
    _C.CYBERSECURITY: ("Cybersecurity", "🔒", "bg-red-100 text-red-800", 7),
    _C.ENVIRONMENTAL: ("Environmental", "🌍", "bg-teal-100 text-teal-800", 8),
    _C.LEGAL: ("Legal", "⚖️", "bg-gray-100 text-gray-800", 9),
    _C.HUMAN_RESOURCES: ("Human Resources", "👤", "bg-orange-100 text-orange-800", 10),
    _C.SUPPLY_CHAIN: ("Supply Chain", "🚚", "bg-amber-100 text-amber-800", 11),
    _C.MARKET: ("Market", "📈", "bg-cyan-100 text-cyan-800", 12),
    _C.CREDIT: ("Credit", "💳", "bg-lime-100 text-lime-800", 13),
    _C.LIQUIDITY: ("Liquidity", "💧", "bg-emerald-100 text-emerald-800", 14),
    _C.OTHER: ("Other", "📌", "bg-slate-100 text-slate-800", 15),
}

_CATEGORY_BY_ID: dict[int, RiskCategoryValue] = {
    info[3]: cat for cat, info in _CATEGORY_INFO.items()
}

_RELATED_CATEGORIES: dict[RiskCategoryValue, tuple[RiskCategoryValue, ...]] = {
    _C.CYBERSECURITY: (_C.TECHNOLOGY, _C.COMPLIANCE),
    _C.TECHNOLOGY: (_C.CYBERSECURITY, _C.OPERATIONAL),
    _C.FINANCIAL: (_C.CREDIT, _C.LIQUIDITY, _C.MARKET),
    _C.COMPLIANCE: (_C.LEGAL, _C.CYBERSECURITY),
    _C.OPERATIONAL: (_C.SUPPLY_CHAIN, _C.TECHNOLOGY, _C.HUMAN_RESOURCES),
    _C.STRATEGIC: (_C.MARKET, _C.REPUTATIONAL),
    _C.REPUTATIONAL: (_C.STRATEGIC, _C.COMPLIANCE),
    _C.ENVIRONMENTAL: (_C.COMPLIANCE, _C.LEGAL),
    _C.LEGAL: (_C.COMPLIANCE, _C.ENVIRONMENTAL),
    _C.HUMAN_RESOURCES: (_C.OPERATIONAL, _C.REPUTATIONAL),
    _C.SUPPLY_CHAIN: (_C.OPERATIONAL, _C.MARKET),
    _C.MARKET: (_C.STRATEGIC, _C.FINANCIAL),
    _C.CREDIT: (_C.FINANCIAL,),
    _C.LIQUIDITY: (_C.FINANCIAL,),
    _C.OTHER: (),
}

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class RiskCategory:
    """Business category of a risk (one of 15)."""

    value: RiskCategoryValue

    def __post_init__(self) -> None:
        if not isinstance(self.value, RiskCategoryValue):
            object.__setattr__(self, "value", self._parse(self.value))

    @staticmethod
    def _parse(raw: Any) -> RiskCategoryValue:
        if isinstance(raw, RiskCategoryValue):
            return raw
        normalized = ""
        if raw is not None:
            normalized = _WHITESPACE.sub("_", str(raw).strip().lower())
        try:
            return RiskCategoryValue(normalized)
        except ValueError:
            allowed = ", ".join(c.value for c in RiskCategoryValue)
            raise ValidationException.from_field(
                "category", f"Invalid category. Must be one of: {allowed}", raw,
            ) from None

    @classmethod
    def create(cls, value: str) -> RiskCategory:
        return cls(cls._parse(value))

    @classmethod
    def from_id(cls, category_id: int) -> RiskCategory:
        """Legacy numeric id; unknown ids map to ``other``."""
        return cls(_CATEGORY_BY_ID.get(category_id, RiskCategoryValue.OTHER))

    def to_id(self) -> int:
        return _CATEGORY_INFO[self.value][3]

    @property
    def display_name(self) -> str:
        return _CATEGORY_INFO[self.value][0]

    @property
    def icon(self) -> str:
        return _CATEGORY_INFO[self.value][1]

    @property
    def color_class(self) -> str:
        return _CATEGORY_INFO[self.value][2]

    def is_security_related(self) -> bool:
        return self.value in (_C.CYBERSECURITY, _C.TECHNOLOGY, _C.COMPLIANCE)

    def is_financial_related(self) -> bool:
        return self.value in (_C.FINANCIAL, _C.CREDIT, _C.LIQUIDITY, _C.MARKET)

    def requires_compliance_tracking(self) -> bool:
        return self.value in (_C.COMPLIANCE, _C.LEGAL, _C.ENVIRONMENTAL, _C.FINANCIAL)

    def related_categories(self) -> list[str]:
        return [c.value for c in _RELATED_CATEGORIES[self.value]]

    @staticmethod
    def all_categories() -> list[str]:
        return [c.value for c in RiskCategoryValue]

    @staticmethod
    def category_options() -> list[dict[str, str]]:
        return [
            {"value": c.value, "label": info[0], "icon": info[1]}
            for c, info in _CATEGORY_INFO.items()
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value.value,
            "display_name": self.display_name,
            "icon": self.icon,
            "is_security_related": self.is_security_related(),
            "requires_compliance": self.requires_compliance_tracking(),
        }

    def __str__(self) -> str:
        return self.value.value
