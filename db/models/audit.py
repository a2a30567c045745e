"""
db/models/audit.py

Truth-audit results and the hallucinations they surfaced.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Boolean, Date, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class AIEvaluation(Base, TimestampMixin):
    """
    One engine's truth audit for a location on one run date.
    """

    __tablename__ = "ai_evaluations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    engine: Mapped[str] = mapped_column(String(32), nullable=False)
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    accuracy_score: Mapped[float] = mapped_column(Float, nullable=False)
    response_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("location_id", "engine", "run_date", name="uq_ai_evaluations_location_engine_date"),
    )


class AIHallucination(Base, TimestampMixin):
    """
    A false claim an engine made about a location.

    ``evaluation_id`` may be null: a hallucination is still recorded when its
    parent evaluation row could not be written.
    """

    __tablename__ = "ai_hallucinations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    evaluation_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ai_evaluations.id", ondelete="SET NULL"),
        nullable=True,
    )
    engine: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    claim_text: Mapped[str] = mapped_column(Text, nullable=False)
    expected_truth: Mapped[str | None] = mapped_column(Text, nullable=True)
    correction_status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("location_id", "engine", "claim_text", name="uq_ai_hallucinations_location_engine_claim"),
        Index("ix_ai_hallucinations_location_status", "location_id", "correction_status"),
    )
