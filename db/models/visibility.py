"""
db/models/visibility.py

Locations, tracked queries and the share-of-voice time series.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class Location(Base, TimestampMixin):
    """
    One physical business location and its verified ground truth.

    ``competitors`` holds competitor names tracked for comparison queries.
    """

    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(64), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    categories: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    competitors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    __table_args__ = (Index("ix_locations_org", "org_id"),)

    def __repr__(self) -> str:
        return f"<Location id={self.id} business_name={self.business_name!r}>"


class TargetQuery(Base, TimestampMixin):
    """
    A question tracked for a location.
    """

    __tablename__ = "target_queries"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    query_category: Mapped[str] = mapped_column(String(32), nullable=False, default="custom")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("location_id", "query_text", name="uq_target_queries_location_text"),
        Index("ix_target_queries_location_active", "location_id", "is_active"),
    )


class SovEvaluation(Base):
    """
    One engine's answer to one tracked query on one run date.
    """

    __tablename__ = "sov_evaluations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    query_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("target_queries.id", ondelete="CASCADE"),
        nullable=False,
    )
    engine: Mapped[str] = mapped_column(String(32), nullable=False)
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    cited: Mapped[bool] = mapped_column(Boolean, nullable=False)
    rank_position: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Set only when cited",
    )
    mentioned_competitors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    cited_sources: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    raw_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment: Mapped[str | None] = mapped_column(String(16), nullable=True)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    degradation_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("query_id", "engine", "run_date", name="uq_sov_evaluations_query_engine_date"),
        Index("ix_sov_evaluations_location_date", "location_id", "run_date"),
    )


class VisibilitySnapshot(Base):
    """
    Aggregate share-of-voice metrics for one (org, location, date).
    """

    __tablename__ = "visibility_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    snapshot_date: Mapped[date] = mapped_column(Date, nullable=False)
    share_of_voice: Mapped[float] = mapped_column(Float, nullable=False, comment="0..1")
    citation_rate: Mapped[float] = mapped_column(Float, nullable=False, comment="0..100")
    first_mover_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    query_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    details: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Engines, top competitors and category breakdown",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "org_id",
            "location_id",
            "snapshot_date",
            name="uq_visibility_snapshots_org_location_date",
        ),
    )


class QueryGap(Base):
    """
    A detected content gap, keyed by its deterministic id.
    """

    __tablename__ = "query_gaps"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    gap_id: Mapped[str] = mapped_column(String(32), nullable=False)
    gap_type: Mapped[str] = mapped_column(String(32), nullable=False)
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    query_category: Mapped[str] = mapped_column(String(32), nullable=False)
    estimated_impact: Mapped[str] = mapped_column(String(16), nullable=False)
    suggested_action: Mapped[str] = mapped_column(Text, nullable=False)
    query_texts: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("location_id", "gap_id", name="uq_query_gaps_location_gap"),
    )


class CompetitorIntercept(Base):
    """
    Head-to-head comparison outcome; ``winner`` is None when no one won.
    """

    __tablename__ = "competitor_intercepts"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    engine: Mapped[str | None] = mapped_column(String(32), nullable=True)
    run_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    competitor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    winner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "location_id",
            "engine",
            "query_text",
            "run_date",
            name="uq_competitor_intercepts_location_engine_query_date",
        ),
        Index("ix_competitor_intercepts_location", "location_id"),
    )
