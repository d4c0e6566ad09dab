"""SQLAlchemy async persistence for the risk register."""

from risk_register.storage.sql.connection import (
    create_all,
    create_engine,
    create_session_factory,
    dispose,
    get_engine,
    get_session,
    init_engine,
)
from risk_register.storage.sql.models import Base, RiskRecord
from risk_register.storage.sql.repository import SqlRiskRepository

__all__ = [
    "Base",
    "RiskRecord",
    "SqlRiskRepository",
    "create_all",
    "create_engine",
    "create_session_factory",
    "dispose",
    "get_engine",
    "get_session",
    "init_engine",
]
