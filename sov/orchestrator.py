"""
sov/orchestrator.py

Fans a tenant's (query x engine) pairs out to the engine adapter and
collects the results.

Pairs run on a bounded thread pool. Each pair is isolated: an exception in
one is captured as a PairError and never cancels its siblings. Calls to the
same engine are spaced by a fixed delay; calls to different engines proceed
in parallel. ``run_batch`` never raises.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional, Sequence

from app.failure_codes import PROVIDER_ERROR, REPORTED_FAILURES, VALIDATION_ERROR
from app.logging_utils import log_event, log_failure, tenant_fields
from engines.adapter import EngineAdapter
from engines.prompt_builder import build_sov_prompt, build_truth_audit_prompt
from engines.validator import parse_accuracy_result, parse_citation_result
from sov.aggregation import count_first_movers
from sov.models import (
    AccuracyRecord,
    AuditSummary,
    BatchSummary,
    EvaluationRecord,
    PairError,
    Tenant,
    TrackedQuery,
)
from sov.rate_limiter import EngineRateLimiter

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """
    Runs SOV batches and truth audits for one tenant at a time.

    The orchestrator keeps no per-tenant state between calls; the only
    shared object is its rate limiter, which spaces calls per engine.
    """

    def __init__(
        self,
        adapter: EngineAdapter,
        *,
        max_workers: int = 4,
        engine_delay_seconds: float = 0.5,
        sov_temperature: float = 0.3,
        rate_limiter: EngineRateLimiter | None = None,
    ) -> None:
        self._adapter = adapter
        self._max_workers = max(1, max_workers)
        self._sov_temperature = sov_temperature
        self._rate_limiter = rate_limiter or EngineRateLimiter(delay_seconds=engine_delay_seconds)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_batch(
        self,
        tenant: Tenant,
        queries: Sequence[TrackedQuery],
        engines: Sequence[str],
    ) -> list[str]:
        """
        Return every problem with the batch input; empty means valid.
        """

        problems: list[str] = []
        if not tenant.business_name or not tenant.business_name.strip():
            problems.append("tenant business_name must not be blank.")
        if not queries:
            problems.append("at least one query is required.")
        if not engines:
            problems.append("at least one engine is required.")

        unknown = sorted({engine for engine in engines if not self._adapter.supports(engine)})
        if unknown:
            problems.append(f"unknown engines: {', '.join(unknown)}.")
        if len(set(engines)) != len(engines):
            problems.append("engines must not repeat.")

        seen_ids: set[str] = set()
        for query in queries:
            if not query.query_text or not query.query_text.strip():
                problems.append(f"query {query.id} has blank text.")
            if query.org_id != tenant.org_id or query.location_id != tenant.location_id:
                problems.append(f"query {query.id} does not belong to the tenant location.")
            if query.id in seen_ids:
                problems.append(f"query {query.id} is duplicated.")
            seen_ids.add(query.id)
        return problems

    # ------------------------------------------------------------------
    # SOV batch
    # ------------------------------------------------------------------

    def _evaluate_pair(
        self,
        tenant: Tenant,
        query: TrackedQuery,
        engine: str,
        run_at: datetime,
    ) -> EvaluationRecord:
        self._rate_limiter.wait(engine)
        result = self._adapter.evaluate(
            engine,
            build_sov_prompt(query.query_text),
            temperature=self._sov_temperature,
        )
        return parse_citation_result(
            result,
            query=query,
            business_name=tenant.business_name,
            run_at=run_at,
        )

    def run_batch(
        self,
        tenant: Tenant,
        queries: Sequence[TrackedQuery],
        engines: Sequence[str],
        previous_records: Sequence[EvaluationRecord] = (),
        *,
        run_at: Optional[datetime] = None,
    ) -> BatchSummary:
        """
        Evaluate every (query, engine) pair and summarize the run.

        Args:
            tenant: Business the batch runs for.
            queries: Tracked queries of the tenant's location.
            engines: Engine ids to ask.
            previous_records: Evaluations of the prior comparable run, used
                for first-mover detection.
            run_at: Timestamp stamped on every record; defaults to now (UTC).

        Returns:
            A BatchSummary. ``success`` is False with ``queries_run`` 0 when
            the input is invalid or no pair completed; collected errors are
            returned either way.
        """

        problems = self.validate_batch(tenant, queries, engines)
        if problems:
            log_event(
                logger,
                logging.WARNING,
                "batch_rejected",
                **tenant_fields(tenant),
                problems=problems,
            )
            return BatchSummary(
                success=False,
                queries_run=0,
                queries_cited=0,
                first_mover_count=0,
                errors=tuple(PairError(engine="", code=VALIDATION_ERROR, message=p) for p in problems),
            )

        stamp = run_at or datetime.now(timezone.utc)
        pairs = [(query, engine) for query in queries for engine in engines]
        workers = min(self._max_workers, len(pairs))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sov-batch") as executor:
            futures: list[Future[EvaluationRecord]] = [
                executor.submit(self._evaluate_pair, tenant, query, engine, stamp)
                for query, engine in pairs
            ]

        records: list[EvaluationRecord] = []
        errors: list[PairError] = []
        for (query, engine), future in zip(pairs, futures):
            exc = future.exception()
            if exc is not None:
                log_failure(
                    logger,
                    logging.ERROR,
                    "batch_pair_failed",
                    exc,
                    code=PROVIDER_ERROR,
                    engine=engine,
                    query_id=query.id,
                )
                errors.append(
                    PairError(engine=engine, code=PROVIDER_ERROR, message=str(exc), query_id=query.id)
                )
                continue

            record = future.result()
            records.append(record)
            if record.degraded and record.degradation_reason in REPORTED_FAILURES:
                errors.append(
                    PairError(
                        engine=engine,
                        code=record.degradation_reason or PROVIDER_ERROR,
                        message=f"{engine} answer for query {query.id} degraded",
                        query_id=query.id,
                    )
                )

        if not records:
            log_event(
                logger,
                logging.ERROR,
                "batch_completed",
                **tenant_fields(tenant),
                success=False,
                pairs=len(pairs),
                errors=len(errors),
            )
            return BatchSummary(
                success=False,
                queries_run=0,
                queries_cited=0,
                first_mover_count=0,
                errors=tuple(errors),
            )

        summary = BatchSummary(
            success=True,
            queries_run=len(records),
            queries_cited=sum(1 for record in records if record.cited),
            first_mover_count=count_first_movers(records, previous_records),
            errors=tuple(errors),
            records=tuple(records),
            degraded_count=sum(1 for record in records if record.degraded),
        )
        log_event(
            logger,
            logging.INFO,
            "batch_completed",
            **tenant_fields(tenant),
            success=True,
            pairs=len(pairs),
            queries_run=summary.queries_run,
            queries_cited=summary.queries_cited,
            first_mover_count=summary.first_mover_count,
            degraded=summary.degraded_count,
            errors=len(errors),
        )
        return summary

    # ------------------------------------------------------------------
    # Truth audit
    # ------------------------------------------------------------------

    def _audit_engine(self, prompt: str, engine: str, run_at: datetime) -> AccuracyRecord:
        self._rate_limiter.wait(engine)
        result = self._adapter.evaluate(engine, prompt)
        return parse_accuracy_result(result, run_at=run_at)

    def run_truth_audit(
        self,
        tenant: Tenant,
        engines: Sequence[str],
        *,
        run_at: Optional[datetime] = None,
    ) -> AuditSummary:
        """
        Ask each engine to describe the business and grade it against ground truth.
        """

        problems: list[str] = []
        if not tenant.business_name or not tenant.business_name.strip():
            problems.append("tenant business_name must not be blank.")
        if not engines:
            problems.append("at least one engine is required.")
        unknown = sorted({engine for engine in engines if not self._adapter.supports(engine)})
        if unknown:
            problems.append(f"unknown engines: {', '.join(unknown)}.")
        if problems:
            return AuditSummary(
                success=False,
                errors=tuple(PairError(engine="", code=VALIDATION_ERROR, message=p) for p in problems),
            )

        stamp = run_at or datetime.now(timezone.utc)
        prompt = build_truth_audit_prompt(
            tenant.business_name,
            address=tenant.address,
            phone=tenant.phone,
            website=tenant.website,
            city=tenant.city,
            state=tenant.state,
        )

        with ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(engines)),
            thread_name_prefix="truth-audit",
        ) as executor:
            futures = [executor.submit(self._audit_engine, prompt, engine, stamp) for engine in engines]

        records: list[AccuracyRecord] = []
        errors: list[PairError] = []
        for engine, future in zip(engines, futures):
            exc = future.exception()
            if exc is not None:
                log_failure(
                    logger,
                    logging.ERROR,
                    "batch_pair_failed",
                    exc,
                    code=PROVIDER_ERROR,
                    engine=engine,
                )
                errors.append(PairError(engine=engine, code=PROVIDER_ERROR, message=str(exc)))
                continue
            records.append(future.result())

        return AuditSummary(success=bool(records), records=tuple(records), errors=tuple(errors))
