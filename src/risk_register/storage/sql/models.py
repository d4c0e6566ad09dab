"""SQLAlchemy ORM model for the ``risks`` table.

Column values are the persistence row primitives produced by
:func:`risk_register.storage.mapper.risk_to_row`: timestamps are
fixed-width ISO-8601 strings and tags/metadata are JSON text, so the
schema is portable across SQLite and PostgreSQL.  Search columns hold
Python-folded text so matching does not depend on the backend's
``lower()``.
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    pass


class RiskRecord(Base):
    """One row per ``Risk`` aggregate.

    Updates rewrite the row in place (last write wins).
    """

    __tablename__ = "risks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    risk_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    probability: Mapped[int] = mapped_column(Integer, nullable=False)
    impact: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_type: Mapped[str] = mapped_column(String(64), nullable=False, default="business")
    mitigation_plan: Mapped[str | None] = mapped_column(Text, nullable=True)
    contingency_plan: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_review_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    # ``metadata`` is reserved on declarative classes.
    metadata_json: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)
    created_at: Mapped[str] = mapped_column(String(32), nullable=False)
    updated_at: Mapped[str] = mapped_column(String(32), nullable=False)
    # Case-folded copies for free-text search; written from title/description on save.
    title_search: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description_search: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        Index("ix_risks_organization_id", "organization_id"),
        Index("ix_risks_owner_id", "owner_id"),
        Index("ix_risks_status", "status"),
        Index("ix_risks_risk_score", "risk_score"),
        Index("ix_risks_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<RiskRecord(id={self.id}, risk_id={self.risk_id!r}, status={self.status!r})>"
