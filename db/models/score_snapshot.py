"""
db/models/score_snapshot.py

Daily snapshots of the derived scores: entity authority, NAP health and
revenue leak. One row per location per date; re-runs on the same date
replace the row.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class _SnapshotColumns:
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class AuthoritySnapshot(_SnapshotColumns, Base):
    __tablename__ = "authority_snapshots"

    score: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[str] = mapped_column(String(2), nullable=False)
    velocity: Mapped[float | None] = mapped_column(Float, nullable=True)
    citation_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("location_id", "snapshot_date", name="uq_authority_snapshots_location_date"),
    )


class NAPHealthSnapshot(_SnapshotColumns, Base):
    __tablename__ = "nap_health_snapshots"

    score: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[str] = mapped_column(String(2), nullable=False)
    platforms_checked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    platforms_matched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    critical_discrepancies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("location_id", "snapshot_date", name="uq_nap_health_snapshots_location_date"),
    )


class RevenueLeakSnapshot(_SnapshotColumns, Base):
    __tablename__ = "revenue_leak_snapshots"

    leak_low: Mapped[float] = mapped_column(Float, nullable=False)
    leak_high: Mapped[float] = mapped_column(Float, nullable=False)
    total_queries: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("location_id", "snapshot_date", name="uq_revenue_leak_snapshots_location_date"),
    )
