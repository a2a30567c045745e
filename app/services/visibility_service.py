"""
app/services/visibility_service.py

Orchestration service for one tenant's visibility runs.

Wires repository reads and the batch orchestrator to aggregation, gap
detection, the scorers and the result writer. Each result row is written in isolation: a row that
fails is logged and counted, and the rest of the run is still persisted.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import AbstractSet, Any, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_batch_settings, get_engine_settings, get_revenue_settings
from app.services import payloads
from db.repositories import (
    PersistenceError,
    ResultWriter,
    SQLAlchemyResultWriter,
    SQLAlchemyVisibilityRepository,
)
from engines.adapter import build_engine_adapter
from scoring.authority import (
    AuthorityInputs,
    AuthorityRecommendation,
    AuthorityScore,
    compute_citation_velocity,
    detect_citation_sources,
    detect_sameas_gaps,
    extract_domain,
    generate_recommendations,
    score_entity_authority,
)
from scoring.nap import (
    AdapterResult,
    GroundTruth,
    NAPHealthScore,
    PlatformDiscrepancy,
    detect_discrepancies,
    score_nap_health,
)
from scoring.revenue import (
    HallucinationInput,
    InterceptInput,
    RevenueConfig,
    RevenueLeak,
    estimate_revenue_leak,
)
from sov.aggregation import build_snapshot, comparison_intercepts
from sov.gaps import GapDetector
from sov.models import AggregateSnapshot, AuditSummary, BatchSummary, Gap, Tenant
from sov.orchestrator import BatchOrchestrator
from sov.query_library import LibraryQuery, build_seed_queries
from sov.repository import VisibilityReader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistenceSummary:
    rows_written: int = 0
    rows_failed: int = 0


@dataclass(frozen=True)
class BatchRunResult:
    summary: BatchSummary
    snapshot: Optional[AggregateSnapshot]
    persistence: PersistenceSummary


@dataclass(frozen=True)
class AuditRunResult:
    summary: AuditSummary
    persistence: PersistenceSummary


@dataclass(frozen=True)
class RevenueLeakRunResult:
    leak: RevenueLeak
    persistence: PersistenceSummary


@dataclass(frozen=True)
class AuthorityRunResult:
    score: AuthorityScore
    citation_total: int
    recommendations: tuple[AuthorityRecommendation, ...]
    persistence: PersistenceSummary


@dataclass(frozen=True)
class NAPHealthRunResult:
    score: NAPHealthScore
    discrepancies: tuple[PlatformDiscrepancy, ...]
    persistence: PersistenceSummary


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _default_revenue_config() -> RevenueConfig:
    settings = get_revenue_settings()
    return RevenueConfig(
        avg_ticket=settings.avg_ticket,
        monthly_searches=settings.monthly_searches,
        local_conversion_rate=settings.local_conversion_rate,
        walk_away_rate=settings.walk_away_rate,
    )


class _RowSink:
    """Counts isolated writes for one run."""

    def __init__(self, writer: ResultWriter) -> None:
        self._writer = writer
        self.written = 0
        self.failed = 0

    def write(self, kind: str, row: Mapping[str, Any]) -> Optional[str]:
        try:
            row_id = self._writer.write(kind, row)
        except PersistenceError as exc:
            logger.warning("Skipping %s row after write failure error=%s", kind, exc)
            self.failed += 1
            return None
        self.written += 1
        return row_id

    def summary(self) -> PersistenceSummary:
        return PersistenceSummary(rows_written=self.written, rows_failed=self.failed)


class VisibilityService:
    """
    Coordinates visibility runs and their persistence for one tenant at a time.
    """

    def __init__(
        self,
        *,
        orchestrator: BatchOrchestrator,
        default_engines: Sequence[str],
    ) -> None:
        self._orchestrator = orchestrator
        self._default_engines = tuple(default_engines)

    @property
    def default_engines(self) -> tuple[str, ...]:
        return self._default_engines

    # ------------------------------------------------------------------
    # Factories for the storage collaborators; overridden in tests.
    # ------------------------------------------------------------------

    def _reader(self, db: Session) -> VisibilityReader:
        return SQLAlchemyVisibilityRepository(db)

    def _writer(self, db: Session) -> ResultWriter:
        return SQLAlchemyResultWriter(db)

    def _commit(self, db: Session, sink: _RowSink, *, operation: str) -> PersistenceSummary:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to commit %s results error=%s", operation, exc)
            return PersistenceSummary(rows_written=0, rows_failed=sink.written + sink.failed)
        return sink.summary()

    # ------------------------------------------------------------------
    # SOV batch
    # ------------------------------------------------------------------

    def run_sov_batch(
        self,
        *,
        db: Session,
        org_id: str,
        location_id: str,
        engines: Optional[Sequence[str]] = None,
        run_at: Optional[datetime] = None,
    ) -> BatchRunResult:
        """
        Run every tracked query of a location against the selected engines.

        Raises LocationNotFoundError for an unknown location and ValueError
        for malformed ids; everything after the tenant lookup is reported in
        the result instead of raised.
        """

        reader = self._reader(db)
        tenant = reader.get_tenant(org_id, location_id)
        queries = reader.list_tracked_queries(org_id, location_id)
        stamp = run_at or datetime.now(timezone.utc)
        previous = reader.list_previous_run(org_id, location_id, before=stamp.date())

        summary = self._orchestrator.run_batch(
            tenant,
            queries,
            list(engines) if engines else list(self._default_engines),
            previous,
            run_at=stamp,
        )
        if not summary.records:
            return BatchRunResult(summary=summary, snapshot=None, persistence=PersistenceSummary())

        sink = _RowSink(self._writer(db))
        for record in summary.records:
            sink.write("sov_evaluation", payloads.evaluation_row(tenant, record))

        for intercept in comparison_intercepts(tenant, summary.records):
            sink.write("competitor_intercept", payloads.intercept_row(tenant, intercept))

        snapshot = build_snapshot(tenant, summary.records, previous, snapshot_date=stamp.date())
        sink.write("visibility_snapshot", payloads.snapshot_row(snapshot, summary.records))

        persistence = self._commit(db, sink, operation="sov_batch")
        return BatchRunResult(summary=summary, snapshot=snapshot, persistence=persistence)

    # ------------------------------------------------------------------
    # Truth audit
    # ------------------------------------------------------------------

    def run_truth_audit(
        self,
        *,
        db: Session,
        org_id: str,
        location_id: str,
        engines: Optional[Sequence[str]] = None,
        run_at: Optional[datetime] = None,
    ) -> AuditRunResult:
        """
        Audit what each engine says about the location and store the findings.

        A hallucination is still stored when its evaluation row fails; it is
        then written without a parent evaluation.
        """

        tenant = self._reader(db).get_tenant(org_id, location_id)
        summary = self._orchestrator.run_truth_audit(
            tenant,
            list(engines) if engines else list(self._default_engines),
            run_at=run_at,
        )
        if not summary.records:
            return AuditRunResult(summary=summary, persistence=PersistenceSummary())

        sink = _RowSink(self._writer(db))
        for record in summary.records:
            evaluation_id = sink.write("ai_evaluation", payloads.accuracy_row(tenant, record))
            for row in payloads.hallucination_rows(tenant, record, evaluation_id):
                sink.write("ai_hallucination", row)

        return AuditRunResult(summary=summary, persistence=self._commit(db, sink, operation="truth_audit"))

    # ------------------------------------------------------------------
    # Score snapshots
    # ------------------------------------------------------------------

    def snapshot_revenue_leak(
        self,
        *,
        db: Session,
        org_id: str,
        location_id: str,
        config: Optional[RevenueConfig] = None,
        snapshot_date: Optional[date] = None,
    ) -> RevenueLeakRunResult:
        """
        Estimate the revenue leak from stored results and keep it as the
        day's snapshot.

        Inputs are the open hallucinations, the newest share of voice and
        every stored comparison outcome. A location that was never measured
        counts as zero share of voice.
        """

        reader = self._reader(db)
        tenant = reader.get_tenant(org_id, location_id)
        hallucinations = reader.list_open_hallucinations(org_id, location_id)
        share = reader.latest_share_of_voice(org_id, location_id) or 0.0
        intercepts = reader.list_intercepts(org_id, location_id)
        config = config or _default_revenue_config()

        leak = estimate_revenue_leak(
            [HallucinationInput(severity=item.severity) for item in hallucinations],
            share,
            [InterceptInput(query_text=item.query_text, winner=item.winner) for item in intercepts],
            config,
            business_name=tenant.business_name,
        )
        inputs = {
            "hallucination_count": len(hallucinations),
            "share_of_voice": share,
            "intercept_count": len(intercepts),
            "config": asdict(config),
        }

        sink = _RowSink(self._writer(db))
        sink.write(
            "revenue_leak_snapshot",
            payloads.revenue_leak_row(
                tenant,
                leak,
                snapshot_date=snapshot_date or _today(),
                inputs=inputs,
            ),
        )
        return RevenueLeakRunResult(leak=leak, persistence=self._commit(db, sink, operation="revenue_leak"))

    def snapshot_authority(
        self,
        *,
        db: Session,
        org_id: str,
        location_id: str,
        active_platform_count: int = 0,
        existing_sameas: Sequence[str] = (),
        snapshot_date: Optional[date] = None,
    ) -> AuthorityRunResult:
        """
        Score entity authority from the latest run's citing URLs.

        Velocity compares with the newest authority snapshot dated before
        ``snapshot_date``.
        """

        reader = self._reader(db)
        tenant = reader.get_tenant(org_id, location_id)
        day = snapshot_date or _today()
        urls = [
            source
            for record in reader.list_previous_run(org_id, location_id)
            if not record.degraded
            for source in record.cited_sources
        ]
        brand_domain = extract_domain(tenant.website) if tenant.website else ""
        citations = detect_citation_sources(urls, tenant.business_name, brand_domain=brand_domain or None)
        previous_total = reader.latest_citation_total(org_id, location_id, before=day)
        score = score_entity_authority(
            AuthorityInputs(
                citations=tuple(citations),
                active_platform_count=active_platform_count,
                sameas_count=len(existing_sameas),
                velocity=compute_citation_velocity(len(citations), previous_total),
            )
        )
        gaps = detect_sameas_gaps(existing_sameas, citations, tenant.business_name, tenant.city)
        recommendations = generate_recommendations(score, gaps, tenant.city or None)

        sink = _RowSink(self._writer(db))
        sink.write(
            "authority_snapshot",
            payloads.authority_row(tenant, score, snapshot_date=day, citation_total=len(citations)),
        )
        return AuthorityRunResult(
            score=score,
            citation_total=len(citations),
            recommendations=tuple(recommendations),
            persistence=self._commit(db, sink, operation="authority"),
        )

    def snapshot_nap_health(
        self,
        *,
        db: Session,
        org_id: str,
        location_id: str,
        adapter_results: Sequence[AdapterResult],
        hours: Optional[Mapping[str, Any]] = None,
        snapshot_date: Optional[date] = None,
    ) -> NAPHealthRunResult:
        """
        Score platform listings against the location's stored identity.
        """

        tenant = self._reader(db).get_tenant(org_id, location_id)
        ground_truth = GroundTruth(
            org_id=tenant.org_id,
            location_id=tenant.location_id,
            name=tenant.business_name,
            address=tenant.address,
            phone=tenant.phone,
            city=tenant.city,
            state=tenant.state,
            website=tenant.website,
            hours=dict(hours) if hours is not None else None,
        )
        discrepancies = detect_discrepancies(ground_truth, adapter_results)
        score = score_nap_health(discrepancies, adapter_results)

        sink = _RowSink(self._writer(db))
        sink.write(
            "nap_health_snapshot",
            payloads.nap_health_row(tenant, score, discrepancies, snapshot_date=snapshot_date or _today()),
        )
        return NAPHealthRunResult(
            score=score,
            discrepancies=tuple(discrepancies),
            persistence=self._commit(db, sink, operation="nap_health"),
        )

    # ------------------------------------------------------------------
    # Gaps and seeding
    # ------------------------------------------------------------------

    def compute_gaps(
        self,
        *,
        db: Session,
        org_id: str,
        location_id: str,
        already_drafted: AbstractSet[str] = frozenset(),
        persist: bool = True,
    ) -> list[Gap]:
        reader = self._reader(db)
        gaps = GapDetector(reader).compute_gaps(org_id, location_id, already_drafted)
        if not persist or not gaps:
            return gaps

        tenant = reader.get_tenant(org_id, location_id)
        sink = _RowSink(self._writer(db))
        for gap in gaps:
            sink.write("query_gap", payloads.gap_row(tenant, gap))
        self._commit(db, sink, operation="gaps")
        return gaps

    def seed_queries(
        self,
        *,
        db: Session,
        org_id: str,
        location_id: str,
        limit: Optional[int] = None,
    ) -> list[LibraryQuery]:
        """
        Track the reference-library queries the location does not track yet.
        """

        reader = self._reader(db)
        tenant: Tenant = reader.get_tenant(org_id, location_id)
        existing = [query.query_text for query in reader.list_tracked_queries(org_id, location_id)]
        seeds = build_seed_queries(tenant, existing, limit=limit)
        if not seeds:
            return []

        sink = _RowSink(self._writer(db))
        seeded = [
            query
            for query in seeds
            if sink.write("target_query", payloads.target_query_row(tenant, query)) is not None
        ]
        if self._commit(db, sink, operation="seed_queries").rows_written == 0:
            return []
        return seeded


@lru_cache(maxsize=1)
def get_visibility_service() -> VisibilityService:
    """
    Build and cache the visibility service.
    """

    engine_settings = get_engine_settings()
    batch_settings = get_batch_settings()
    orchestrator = BatchOrchestrator(
        build_engine_adapter(engine_settings),
        max_workers=batch_settings.max_workers,
        engine_delay_seconds=batch_settings.engine_delay_seconds,
        sov_temperature=engine_settings.sov_temperature,
    )
    return VisibilityService(
        orchestrator=orchestrator,
        default_engines=batch_settings.default_engines,
    )
