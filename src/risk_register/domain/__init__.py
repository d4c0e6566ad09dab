"""Domain layer: value objects, events, the Risk aggregate, repository contract.

This package defines the bounded-context primitives that every other
layer depends on.  Nothing here performs I/O.
"""

from risk_register.domain.events import (
    DomainEvent,
    RiskCreated,
    RiskDeleted,
    RiskStatusChanged,
    RiskUpdated,
)
from risk_register.domain.risk import Risk
from risk_register.domain.value_objects import RiskCategory, RiskScore, RiskStatus

__all__ = [
    "DomainEvent",
    "Risk",
    "RiskCategory",
    "RiskCreated",
    "RiskDeleted",
    "RiskScore",
    "RiskStatus",
    "RiskStatusChanged",
    "RiskUpdated",
]
