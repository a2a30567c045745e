"""
db/repositories/result_writer.py

Persistence sink for pipeline results.

Every write is an idempotent upsert on the row's natural key, executed in
its own savepoint so a failed row never poisons the surrounding
transaction. The caller controls commit/rollback; this writer never
commits on its own.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.failure_codes import PERSISTENCE_ERROR
from app.logging_utils import log_failure
from db.base import Base
from db.models import (
    AIEvaluation,
    AIHallucination,
    AuthoritySnapshot,
    CompetitorIntercept,
    NAPHealthSnapshot,
    QueryGap,
    RevenueLeakSnapshot,
    SovEvaluation,
    TargetQuery,
    VisibilitySnapshot,
)
from db.repositories.errors import PersistenceError

logger = logging.getLogger(__name__)


class ResultWriter(ABC):
    """
    Write contract the visibility service depends on.
    """

    @abstractmethod
    def write(self, kind: str, row: Mapping[str, Any]) -> str:
        """
        Persist one row of the given kind and return its id.

        Raises PersistenceError when the row cannot be written.
        """


@dataclass(frozen=True)
class _UpsertSpec:
    model: type[Base]
    constraint: str
    update_columns: tuple[str, ...] = ()
    increment_columns: tuple[str, ...] = ()


_UPSERTS: dict[str, _UpsertSpec] = {
    "target_query": _UpsertSpec(
        model=TargetQuery,
        constraint="uq_target_queries_location_text",
        update_columns=("is_active",),
    ),
    "sov_evaluation": _UpsertSpec(
        model=SovEvaluation,
        constraint="uq_sov_evaluations_query_engine_date",
        update_columns=(
            "cited",
            "rank_position",
            "mentioned_competitors",
            "cited_sources",
            "raw_response",
            "sentiment",
            "degraded",
            "degradation_reason",
        ),
    ),
    "visibility_snapshot": _UpsertSpec(
        model=VisibilitySnapshot,
        constraint="uq_visibility_snapshots_org_location_date",
        update_columns=(
            "share_of_voice",
            "citation_rate",
            "first_mover_count",
            "query_count",
            "details",
        ),
    ),
    "query_gap": _UpsertSpec(
        model=QueryGap,
        constraint="uq_query_gaps_location_gap",
        update_columns=(
            "query_text",
            "query_category",
            "estimated_impact",
            "suggested_action",
            "query_texts",
        ),
    ),
    "competitor_intercept": _UpsertSpec(
        model=CompetitorIntercept,
        constraint="uq_competitor_intercepts_location_engine_query_date",
        update_columns=("competitor_name", "winner"),
    ),
    "ai_evaluation": _UpsertSpec(
        model=AIEvaluation,
        constraint="uq_ai_evaluations_location_engine_date",
        update_columns=("accuracy_score", "response_text", "degraded"),
    ),
    "ai_hallucination": _UpsertSpec(
        model=AIHallucination,
        constraint="uq_ai_hallucinations_location_engine_claim",
        update_columns=("evaluation_id", "severity", "category", "expected_truth"),
        increment_columns=("occurrence_count",),
    ),
    "authority_snapshot": _UpsertSpec(
        model=AuthoritySnapshot,
        constraint="uq_authority_snapshots_location_date",
        update_columns=("score", "grade", "velocity", "citation_total", "details"),
    ),
    "nap_health_snapshot": _UpsertSpec(
        model=NAPHealthSnapshot,
        constraint="uq_nap_health_snapshots_location_date",
        update_columns=(
            "score",
            "grade",
            "platforms_checked",
            "platforms_matched",
            "critical_discrepancies",
            "details",
        ),
    ),
    "revenue_leak_snapshot": _UpsertSpec(
        model=RevenueLeakSnapshot,
        constraint="uq_revenue_leak_snapshots_location_date",
        update_columns=("leak_low", "leak_high", "total_queries", "details"),
    ),
}

WRITE_KINDS = tuple(_UPSERTS)


def build_upsert(kind: str, row: Mapping[str, Any]) -> Any:
    """
    Build the INSERT .. ON CONFLICT statement for one row.

    Raises ValueError for an unknown kind.
    """

    spec = _UPSERTS.get(kind)
    if spec is None:
        raise ValueError(f"Unknown result kind '{kind}'.")

    model = spec.model
    stmt = insert(model).values(id=uuid.uuid4(), **dict(row))
    set_: dict[str, Any] = {column: stmt.excluded[column] for column in spec.update_columns}
    for column in spec.increment_columns:
        set_[column] = getattr(model, column) + 1
    # ON CONFLICT ignores Python-side onupdate hooks.
    if "updated_at" in model.__table__.columns:
        set_["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(constraint=spec.constraint, set_=set_)
    return stmt.returning(model.id)


class SQLAlchemyResultWriter(ResultWriter):
    """
    PostgreSQL upsert writer.

    Re-running a batch on the same date replaces the day's rows instead of
    duplicating them; hallucinations reported again bump their
    ``occurrence_count``.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def write(self, kind: str, row: Mapping[str, Any]) -> str:
        stmt = build_upsert(kind, row)
        try:
            with self._session.begin_nested():
                row_id = self._session.scalars(stmt).one()
        except SQLAlchemyError as exc:
            log_failure(
                logger,
                logging.ERROR,
                "result_write_failed",
                exc,
                code=PERSISTENCE_ERROR,
                kind=kind,
            )
            raise PersistenceError(kind, f"Failed to write {kind} row: {exc}") from exc
        return str(row_id)
