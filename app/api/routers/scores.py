"""
app/api/routers/scores.py

Stateless scoring endpoints. Nothing here reads or writes the database.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Sequence

from fastapi import APIRouter, HTTPException, status

from app.schemas.scores import (
    AdapterResultPayload,
    AuthorityScoreRequest,
    AuthorityScoreResponse,
    NAPScoreRequest,
    NAPScoreResponse,
    RevenueLeakRequest,
    RevenueLeakResponse,
)
from scoring.authority import (
    AuthorityInputs,
    AuthorityRecommendation,
    AuthorityScore,
    compute_citation_velocity,
    detect_citation_sources,
    detect_sameas_gaps,
    generate_recommendations,
    score_entity_authority,
)
from scoring.nap import (
    AdapterResult,
    GroundTruth,
    NAPData,
    NAPHealthScore,
    PlatformDiscrepancy,
    detect_discrepancies,
    score_nap_health,
)
from scoring.revenue import HallucinationInput, InterceptInput, RevenueConfig, estimate_revenue_leak

router = APIRouter(prefix="/scores", tags=["scores"])


def to_adapter_results(items: Sequence[AdapterResultPayload]) -> list[AdapterResult]:
    return [
        AdapterResult(
            platform=item.platform,
            status=item.status,
            data=NAPData(**item.data.model_dump()) if item.data is not None else None,
            message=item.message,
        )
        for item in items
    ]


def nap_response_data(
    health: NAPHealthScore,
    discrepancies: Sequence[PlatformDiscrepancy],
) -> dict[str, Any]:
    return {
        "score": health.score,
        "grade": health.grade,
        "platforms_checked": health.platforms_checked,
        "platforms_matched": health.platforms_matched,
        "critical_discrepancies": health.critical_discrepancies,
        "deductions": list(health.deductions),
        "discrepancies": [
            {
                "platform": item.platform,
                "status": item.status,
                "severity": item.severity,
                "auto_correctable": item.auto_correctable,
                "discrepant_fields": [
                    {
                        "field": field.field,
                        "severity": field.severity,
                        "ground_truth_value": field.ground_truth_value,
                        "platform_value": field.platform_value,
                    }
                    for field in item.discrepant_fields
                ],
                "fix_instructions": item.fix_instructions,
            }
            for item in discrepancies
        ],
    }


def authority_response_data(
    score: AuthorityScore,
    recommendations: Sequence[AuthorityRecommendation],
) -> dict[str, Any]:
    return {
        "score": score.score,
        "grade": score.grade,
        "dimensions": asdict(score.dimensions),
        "tier_breakdown": dict(score.tier_breakdown),
        "velocity": score.velocity,
        "velocity_label": score.velocity_label,
        "decay_alert": score.decay_alert,
        "recommendations": [asdict(item) for item in recommendations],
    }


@router.post("/nap", response_model=NAPScoreResponse)
def score_nap(payload: NAPScoreRequest) -> NAPScoreResponse:
    """
    Compare platform listings with ground truth and score NAP health.
    """

    try:
        ground_truth = GroundTruth(**payload.ground_truth.model_dump())
        adapter_results = to_adapter_results(payload.adapter_results)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    discrepancies = detect_discrepancies(ground_truth, adapter_results)
    health = score_nap_health(discrepancies, adapter_results)
    return NAPScoreResponse.model_validate(nap_response_data(health, discrepancies))


@router.post("/authority", response_model=AuthorityScoreResponse)
def score_authority(payload: AuthorityScoreRequest) -> AuthorityScoreResponse:
    """
    Classify citation URLs and compute the entity authority score.
    """

    citations = detect_citation_sources(
        payload.citation_urls,
        payload.business_name,
        brand_domain=payload.brand_domain,
    )
    velocity = compute_citation_velocity(len(citations), payload.previous_citation_total)
    score = score_entity_authority(
        AuthorityInputs(
            citations=tuple(citations),
            active_platform_count=payload.active_platform_count,
            sameas_count=len(payload.existing_sameas),
            velocity=velocity,
        )
    )
    gaps = detect_sameas_gaps(payload.existing_sameas, citations, payload.business_name, payload.city)
    recommendations = generate_recommendations(score, gaps, payload.city or None)

    return AuthorityScoreResponse.model_validate(authority_response_data(score, recommendations))


@router.post("/revenue-leak", response_model=RevenueLeakResponse)
def score_revenue_leak(payload: RevenueLeakRequest) -> RevenueLeakResponse:
    """
    Estimate the monthly revenue range lost to AI misrepresentation.
    """

    leak = estimate_revenue_leak(
        [HallucinationInput(**item.model_dump()) for item in payload.hallucinations],
        payload.share_of_voice,
        [InterceptInput(**item.model_dump()) for item in payload.intercepts],
        RevenueConfig(**payload.config.model_dump()),
        business_name=payload.business_name,
        total_queries=payload.total_queries,
    )
    return RevenueLeakResponse.model_validate(asdict(leak))
