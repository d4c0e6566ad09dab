"""Enumerations used across the risk register."""

from __future__ import annotations

from enum import Enum


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SortField(str, Enum):
    SCORE = "score"
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    TITLE = "title"
    STATUS = "status"

    @classmethod
    def parse(cls, value: str | None) -> SortField:
        """Resolve *value* against the allow-list; unknown -> CREATED_AT.

        Accepts both camelCase and snake_case spellings.
        """
        if not value:
            return cls.CREATED_AT
        key = value.strip()
        aliases = {"created_at": "createdAt", "updated_at": "updatedAt", "risk_score": "score"}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.CREATED_AT


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class EventType(str, Enum):
    RISK_CREATED = "RiskCreated"
    RISK_UPDATED = "RiskUpdated"
    RISK_STATUS_CHANGED = "RiskStatusChanged"
    RISK_DELETED = "RiskDeleted"


class RiskStatusValue(str, Enum):
    ACTIVE = "active"
    MITIGATED = "mitigated"
    ACCEPTED = "accepted"
    TRANSFERRED = "transferred"
    AVOIDED = "avoided"
    CLOSED = "closed"
    MONITORING = "monitoring"


class RiskCategoryValue(str, Enum):
    STRATEGIC = "strategic"
    OPERATIONAL = "operational"
    FINANCIAL = "financial"
    COMPLIANCE = "compliance"
    REPUTATIONAL = "reputational"
    TECHNOLOGY = "technology"
    CYBERSECURITY = "cybersecurity"
    ENVIRONMENTAL = "environmental"
    LEGAL = "legal"
    HUMAN_RESOURCES = "human_resources"
    SUPPLY_CHAIN = "supply_chain"
    MARKET = "market"
    CREDIT = "credit"
    LIQUIDITY = "liquidity"
    OTHER = "other"
