"""
db/repositories/visibility_repository.py

Read side of the visibility tables.

All methods are read-only and scoped to one (org, location); ids arrive as
strings from the API and CLI and are converted here.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import Integer, and_, func, select
from sqlalchemy.orm import Session

from db.models import (
    AIHallucination,
    AuthoritySnapshot,
    CompetitorIntercept,
    Location,
    SovEvaluation,
    TargetQuery,
    VisibilitySnapshot,
)
from db.repositories.errors import LocationNotFoundError
from sov.models import EvaluationRecord, Hallucination, Intercept, QueryHistory, Tenant, TrackedQuery
from sov.repository import VisibilityReader


def _to_uuid(value: str, field_name: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a valid UUID.") from exc


def _to_tracked_query(row: TargetQuery) -> TrackedQuery:
    return TrackedQuery(
        id=str(row.id),
        org_id=str(row.org_id),
        location_id=str(row.location_id),
        query_text=row.query_text,
        category=row.query_category,
        priority=row.priority,
    )


class SQLAlchemyVisibilityRepository(VisibilityReader):
    """
    VisibilityReader backed by the PostgreSQL visibility tables.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_tenant(self, org_id: str, location_id: str) -> Tenant:
        org_uuid = _to_uuid(org_id, "org_id")
        location_uuid = _to_uuid(location_id, "location_id")
        location = self._session.scalars(
            select(Location).where(Location.id == location_uuid, Location.org_id == org_uuid)
        ).one_or_none()
        if location is None:
            raise LocationNotFoundError(f"Location {location_id} not found for org {org_id}.")

        return Tenant(
            org_id=str(location.org_id),
            location_id=str(location.id),
            business_name=location.business_name,
            city=location.city or "",
            state=location.state or "",
            categories=tuple(location.categories or ()),
            competitors=tuple(location.competitors or ()),
            address=location.address,
            phone=location.phone,
            website=location.website,
        )

    def list_tracked_queries(self, org_id: str, location_id: str) -> list[TrackedQuery]:
        stmt = (
            select(TargetQuery)
            .where(
                TargetQuery.org_id == _to_uuid(org_id, "org_id"),
                TargetQuery.location_id == _to_uuid(location_id, "location_id"),
                TargetQuery.is_active.is_(True),
            )
            .order_by(TargetQuery.priority, TargetQuery.created_at, TargetQuery.id)
        )
        return [_to_tracked_query(row) for row in self._session.scalars(stmt).all()]

    def list_query_history(self, org_id: str, location_id: str) -> list[QueryHistory]:
        evaluation_count = func.count(SovEvaluation.id)
        citation_count = func.coalesce(func.sum(SovEvaluation.cited.cast(Integer)), 0)
        stmt = (
            select(TargetQuery, evaluation_count, citation_count)
            .outerjoin(
                SovEvaluation,
                and_(SovEvaluation.query_id == TargetQuery.id, SovEvaluation.degraded.is_(False)),
            )
            .where(
                TargetQuery.org_id == _to_uuid(org_id, "org_id"),
                TargetQuery.location_id == _to_uuid(location_id, "location_id"),
                TargetQuery.is_active.is_(True),
            )
            .group_by(TargetQuery.id)
            .order_by(TargetQuery.priority, TargetQuery.created_at, TargetQuery.id)
        )
        return [
            QueryHistory(
                query=_to_tracked_query(query),
                evaluation_count=int(evaluations),
                citation_count=int(citations),
            )
            for query, evaluations, citations in self._session.execute(stmt).all()
        ]

    def list_intercepts(self, org_id: str, location_id: str) -> list[Intercept]:
        stmt = (
            select(CompetitorIntercept)
            .where(
                CompetitorIntercept.org_id == _to_uuid(org_id, "org_id"),
                CompetitorIntercept.location_id == _to_uuid(location_id, "location_id"),
            )
            .order_by(CompetitorIntercept.created_at, CompetitorIntercept.id)
        )
        return [
            Intercept(
                query_text=row.query_text,
                winner=row.winner,
                competitor_name=row.competitor_name,
                engine=row.engine,
                run_date=row.run_date,
            )
            for row in self._session.scalars(stmt).all()
        ]

    def list_previous_run(
        self,
        org_id: str,
        location_id: str,
        *,
        before: Optional[date] = None,
    ) -> list[EvaluationRecord]:
        org_uuid = _to_uuid(org_id, "org_id")
        location_uuid = _to_uuid(location_id, "location_id")

        latest_stmt = select(func.max(SovEvaluation.run_date)).where(
            SovEvaluation.org_id == org_uuid,
            SovEvaluation.location_id == location_uuid,
        )
        if before is not None:
            latest_stmt = latest_stmt.where(SovEvaluation.run_date < before)
        run_date = self._session.scalar(latest_stmt)
        if run_date is None:
            return []

        stmt = (
            select(SovEvaluation, TargetQuery)
            .join(TargetQuery, TargetQuery.id == SovEvaluation.query_id)
            .where(
                SovEvaluation.org_id == org_uuid,
                SovEvaluation.location_id == location_uuid,
                SovEvaluation.run_date == run_date,
            )
            .order_by(TargetQuery.priority, TargetQuery.id, SovEvaluation.engine)
        )
        run_at = datetime.combine(run_date, time.min, tzinfo=timezone.utc)
        return [
            EvaluationRecord(
                query_id=str(evaluation.query_id),
                query_text=query.query_text,
                category=query.query_category,
                engine=evaluation.engine,
                cited=evaluation.cited,
                rank_position=evaluation.rank_position if evaluation.cited else None,
                mentioned_competitors=tuple(evaluation.mentioned_competitors or ()),
                raw_response=evaluation.raw_response or "",
                cited_sources=tuple(evaluation.cited_sources or ()),
                sentiment=evaluation.sentiment,
                run_at=run_at,
                degraded=evaluation.degraded,
                degradation_reason=evaluation.degradation_reason,
            )
            for evaluation, query in self._session.execute(stmt).all()
        ]

    def list_open_hallucinations(self, org_id: str, location_id: str) -> list[Hallucination]:
        stmt = (
            select(AIHallucination)
            .where(
                AIHallucination.org_id == _to_uuid(org_id, "org_id"),
                AIHallucination.location_id == _to_uuid(location_id, "location_id"),
                AIHallucination.correction_status == "open",
            )
            .order_by(AIHallucination.claim_text, AIHallucination.id)
        )
        return [
            Hallucination(
                claim_text=row.claim_text,
                severity=row.severity,
                category=row.category,
                expected_truth=row.expected_truth,
            )
            for row in self._session.scalars(stmt).all()
        ]

    def latest_share_of_voice(self, org_id: str, location_id: str) -> Optional[float]:
        stmt = (
            select(VisibilitySnapshot.share_of_voice)
            .where(
                VisibilitySnapshot.org_id == _to_uuid(org_id, "org_id"),
                VisibilitySnapshot.location_id == _to_uuid(location_id, "location_id"),
            )
            .order_by(VisibilitySnapshot.snapshot_date.desc())
            .limit(1)
        )
        return self._session.scalar(stmt)

    def latest_citation_total(
        self,
        org_id: str,
        location_id: str,
        *,
        before: Optional[date] = None,
    ) -> Optional[int]:
        stmt = (
            select(AuthoritySnapshot.citation_total)
            .where(
                AuthoritySnapshot.org_id == _to_uuid(org_id, "org_id"),
                AuthoritySnapshot.location_id == _to_uuid(location_id, "location_id"),
            )
            .order_by(AuthoritySnapshot.snapshot_date.desc())
            .limit(1)
        )
        if before is not None:
            stmt = stmt.where(AuthoritySnapshot.snapshot_date < before)
        return self._session.scalar(stmt)
