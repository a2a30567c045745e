"""
app/services/payloads.py

Row builders that turn pipeline results into result-writer payloads.

Builders are pure: they never touch the database and every value they
return is JSON-compatible apart from UUIDs and dates.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict
from datetime import date
from typing import Any, Mapping, Optional, Sequence

from scoring.authority import AuthorityScore
from scoring.nap import NAPHealthScore, PlatformDiscrepancy
from scoring.revenue import RevenueLeak
from sov.aggregation import category_breakdown, first_mover_opportunities
from sov.models import AccuracyRecord, AggregateSnapshot, EvaluationRecord, Gap, Intercept, Tenant
from sov.query_library import LibraryQuery

DEFAULT_HALLUCINATION_SEVERITY = "medium"


def as_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _scope(tenant: Tenant) -> dict[str, Any]:
    return {
        "org_id": as_uuid(tenant.org_id),
        "location_id": as_uuid(tenant.location_id),
    }


def target_query_row(tenant: Tenant, query: LibraryQuery) -> dict[str, Any]:
    return {
        **_scope(tenant),
        "query_text": query.query_text,
        "query_category": query.category,
        "priority": query.priority,
        "is_active": True,
    }


def evaluation_row(tenant: Tenant, record: EvaluationRecord) -> dict[str, Any]:
    return {
        **_scope(tenant),
        "query_id": as_uuid(record.query_id),
        "engine": record.engine,
        "run_date": record.run_at.date(),
        "cited": record.cited,
        "rank_position": record.rank_position,
        "mentioned_competitors": list(record.mentioned_competitors),
        "cited_sources": list(record.cited_sources),
        "raw_response": record.raw_response,
        "sentiment": record.sentiment,
        "degraded": record.degraded,
        "degradation_reason": record.degradation_reason,
    }


def snapshot_row(
    snapshot: AggregateSnapshot,
    records: Sequence[EvaluationRecord] = (),
) -> dict[str, Any]:
    """
    Snapshot columns plus a ``details`` document.

    ``details`` carries the engine list and top competitors and, when the
    run's records are supplied, the category breakdown and first-mover
    opportunities.
    """

    details: dict[str, Any] = {
        "engines": list(snapshot.engines),
        "top_competitors": [asdict(mention) for mention in snapshot.top_competitors],
    }
    if records:
        details["category_breakdown"] = category_breakdown(records)
        details["first_mover_opportunities"] = first_mover_opportunities(records)

    return {
        "org_id": as_uuid(snapshot.org_id),
        "location_id": as_uuid(snapshot.location_id),
        "snapshot_date": snapshot.snapshot_date,
        "share_of_voice": snapshot.share_of_voice,
        "citation_rate": snapshot.citation_rate,
        "first_mover_count": snapshot.first_mover_count,
        "query_count": snapshot.query_count,
        "details": details,
    }


def gap_row(tenant: Tenant, gap: Gap) -> dict[str, Any]:
    return {
        **_scope(tenant),
        "gap_id": gap.gap_id,
        "gap_type": gap.gap_type,
        "query_text": gap.query_text,
        "query_category": gap.category,
        "estimated_impact": gap.estimated_impact,
        "suggested_action": gap.suggested_action,
        "query_texts": list(gap.query_texts),
    }


def intercept_row(tenant: Tenant, intercept: Intercept) -> dict[str, Any]:
    return {
        **_scope(tenant),
        "engine": intercept.engine,
        "run_date": intercept.run_date,
        "query_text": intercept.query_text,
        "competitor_name": intercept.competitor_name,
        "winner": intercept.winner,
    }


def accuracy_row(tenant: Tenant, record: AccuracyRecord) -> dict[str, Any]:
    return {
        **_scope(tenant),
        "engine": record.engine,
        "run_date": record.run_at.date(),
        "accuracy_score": record.accuracy_score,
        "response_text": record.response_text,
        "degraded": record.degraded,
    }


def hallucination_rows(
    tenant: Tenant,
    record: AccuracyRecord,
    evaluation_id: Optional[str],
) -> list[dict[str, Any]]:
    """
    One row per distinct claim of an authentic audit.

    The first occurrence of a repeated claim decides its severity,
    category and expected truth.

    Degraded audits carry placeholder text rather than engine claims and
    yield no rows. ``evaluation_id`` is None when the parent evaluation
    row could not be written.
    """

    if record.degraded:
        return []

    parent = as_uuid(evaluation_id) if evaluation_id is not None else None
    rows: list[dict[str, Any]] = []
    seen: set[str] = set()
    for claim in record.hallucinations:
        text = claim.claim_text.strip()
        if not text or text in seen:
            continue
        seen.add(text)
        rows.append(
            {
                **_scope(tenant),
                "evaluation_id": parent,
                "engine": record.engine,
                "severity": claim.severity or DEFAULT_HALLUCINATION_SEVERITY,
                "category": claim.category,
                "claim_text": text,
                "expected_truth": claim.expected_truth,
                "correction_status": "open",
                "occurrence_count": 1,
            }
        )
    return rows


def authority_row(
    tenant: Tenant,
    score: AuthorityScore,
    *,
    snapshot_date: date,
    citation_total: int,
) -> dict[str, Any]:
    return {
        **_scope(tenant),
        "snapshot_date": snapshot_date,
        "score": score.score,
        "grade": score.grade,
        "velocity": score.velocity,
        "citation_total": citation_total,
        "details": {
            "dimensions": asdict(score.dimensions),
            "tier_breakdown": dict(score.tier_breakdown),
            "velocity_label": score.velocity_label,
            "decay_alert": score.decay_alert,
        },
    }


def nap_health_row(
    tenant: Tenant,
    score: NAPHealthScore,
    discrepancies: Sequence[PlatformDiscrepancy] = (),
    *,
    snapshot_date: date,
) -> dict[str, Any]:
    return {
        **_scope(tenant),
        "snapshot_date": snapshot_date,
        "score": score.score,
        "grade": score.grade,
        "platforms_checked": score.platforms_checked,
        "platforms_matched": score.platforms_matched,
        "critical_discrepancies": score.critical_discrepancies,
        "details": {
            "deductions": list(score.deductions),
            "discrepancies": [
                {
                    "platform": item.platform,
                    "status": item.status,
                    "severity": item.severity,
                    "fields": [field.field for field in item.discrepant_fields],
                    "auto_correctable": item.auto_correctable,
                }
                for item in discrepancies
            ],
        },
    }


def revenue_leak_row(
    tenant: Tenant,
    leak: RevenueLeak,
    *,
    snapshot_date: date,
    inputs: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """
    ``inputs`` records what the estimate was computed from, for later audit.
    """

    details: dict[str, Any] = {
        "hallucination_cost": asdict(leak.hallucination_cost),
        "sov_gap_cost": asdict(leak.sov_gap_cost),
        "competitor_steal_cost": asdict(leak.competitor_steal_cost),
    }
    if inputs is not None:
        details["inputs"] = dict(inputs)
    return {
        **_scope(tenant),
        "snapshot_date": snapshot_date,
        "leak_low": leak.leak_low,
        "leak_high": leak.leak_high,
        "total_queries": leak.total_queries,
        "details": details,
    }
