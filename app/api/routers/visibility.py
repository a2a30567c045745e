"""
app/api/routers/visibility.py

Visibility run HTTP endpoints: SOV batches, truth audits, gaps and the
stored score snapshots.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.routers.scores import authority_response_data, nap_response_data, to_adapter_results
from app.schemas.visibility import (
    AuthoritySnapshotRequest,
    AuthoritySnapshotResponse,
    GapResponse,
    NAPSnapshotRequest,
    NAPSnapshotResponse,
    RevenueLeakSnapshotRequest,
    RevenueLeakSnapshotResponse,
    SovBatchRequest,
    SovBatchResponse,
    SnapshotResponse,
    TruthAuditRequest,
    TruthAuditResponse,
)
from app.services.visibility_service import VisibilityService, get_visibility_service
from db.repositories.errors import LocationNotFoundError
from db.session import get_db
from scoring.revenue import RevenueConfig

router = APIRouter(prefix="/visibility", tags=["visibility"])


def _not_found(exc: LocationNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("/{org_id}/{location_id}/sov-batch", response_model=SovBatchResponse)
def run_sov_batch(
    org_id: str,
    location_id: str,
    payload: Optional[SovBatchRequest] = Body(default=None),
    db: Session = Depends(get_db),
    visibility_service: VisibilityService = Depends(get_visibility_service),
) -> SovBatchResponse:
    """
    Evaluate every tracked query of a location against the selected engines.
    """

    engines = payload.engines if payload is not None else None
    try:
        result = visibility_service.run_sov_batch(
            db=db,
            org_id=org_id,
            location_id=location_id,
            engines=engines,
        )
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise _bad_request(exc) from exc

    summary = result.summary
    snapshot = None
    if result.snapshot is not None:
        snapshot = SnapshotResponse.model_validate(asdict(result.snapshot))

    return SovBatchResponse(
        success=summary.success,
        queries_run=summary.queries_run,
        queries_cited=summary.queries_cited,
        first_mover_count=summary.first_mover_count,
        degraded_count=summary.degraded_count,
        errors=[asdict(error) for error in summary.errors],
        records=[asdict(record) for record in summary.records],
        snapshot=snapshot,
        rows_written=result.persistence.rows_written,
        rows_failed=result.persistence.rows_failed,
    )


@router.get("/{org_id}/{location_id}/gaps", response_model=list[GapResponse])
def get_gaps(
    org_id: str,
    location_id: str,
    exclude: list[str] = Query(default=[], description="Gap ids already drafted"),
    persist: bool = Query(default=False, description="Store the detected gaps"),
    db: Session = Depends(get_db),
    visibility_service: VisibilityService = Depends(get_visibility_service),
) -> list[GapResponse]:
    """
    Return the capped content-gap backlog for a location.
    """

    try:
        gaps = visibility_service.compute_gaps(
            db=db,
            org_id=org_id,
            location_id=location_id,
            already_drafted=frozenset(exclude),
            persist=persist,
        )
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise _bad_request(exc) from exc

    return [GapResponse.model_validate(asdict(gap)) for gap in gaps]


@router.post("/{org_id}/{location_id}/truth-audit", response_model=TruthAuditResponse)
def run_truth_audit(
    org_id: str,
    location_id: str,
    payload: Optional[TruthAuditRequest] = Body(default=None),
    db: Session = Depends(get_db),
    visibility_service: VisibilityService = Depends(get_visibility_service),
) -> TruthAuditResponse:
    """
    Ask each engine about the location and store accuracy and hallucinations.
    """

    engines = payload.engines if payload is not None else None
    try:
        result = visibility_service.run_truth_audit(
            db=db,
            org_id=org_id,
            location_id=location_id,
            engines=engines,
        )
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise _bad_request(exc) from exc

    return TruthAuditResponse(
        success=result.summary.success,
        errors=[asdict(error) for error in result.summary.errors],
        records=[asdict(record) for record in result.summary.records],
        rows_written=result.persistence.rows_written,
        rows_failed=result.persistence.rows_failed,
    )


@router.post("/{org_id}/{location_id}/revenue-leak", response_model=RevenueLeakSnapshotResponse)
def snapshot_revenue_leak(
    org_id: str,
    location_id: str,
    payload: Optional[RevenueLeakSnapshotRequest] = Body(default=None),
    db: Session = Depends(get_db),
    visibility_service: VisibilityService = Depends(get_visibility_service),
) -> RevenueLeakSnapshotResponse:
    """
    Estimate the revenue leak from stored results and keep today's snapshot.
    """

    config = None
    if payload is not None and payload.config is not None:
        config = RevenueConfig(**payload.config.model_dump())
    try:
        result = visibility_service.snapshot_revenue_leak(
            db=db,
            org_id=org_id,
            location_id=location_id,
            config=config,
        )
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise _bad_request(exc) from exc

    return RevenueLeakSnapshotResponse.model_validate(
        {
            **asdict(result.leak),
            "rows_written": result.persistence.rows_written,
            "rows_failed": result.persistence.rows_failed,
        }
    )


@router.post("/{org_id}/{location_id}/authority", response_model=AuthoritySnapshotResponse)
def snapshot_authority(
    org_id: str,
    location_id: str,
    payload: Optional[AuthoritySnapshotRequest] = Body(default=None),
    db: Session = Depends(get_db),
    visibility_service: VisibilityService = Depends(get_visibility_service),
) -> AuthoritySnapshotResponse:
    """
    Score entity authority from the latest run's citations and keep today's snapshot.
    """

    payload = payload or AuthoritySnapshotRequest()
    try:
        result = visibility_service.snapshot_authority(
            db=db,
            org_id=org_id,
            location_id=location_id,
            active_platform_count=payload.active_platform_count,
            existing_sameas=payload.existing_sameas,
        )
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise _bad_request(exc) from exc

    return AuthoritySnapshotResponse.model_validate(
        {
            **authority_response_data(result.score, result.recommendations),
            "citation_total": result.citation_total,
            "rows_written": result.persistence.rows_written,
            "rows_failed": result.persistence.rows_failed,
        }
    )


@router.post("/{org_id}/{location_id}/nap-health", response_model=NAPSnapshotResponse)
def snapshot_nap_health(
    org_id: str,
    location_id: str,
    payload: NAPSnapshotRequest,
    db: Session = Depends(get_db),
    visibility_service: VisibilityService = Depends(get_visibility_service),
) -> NAPSnapshotResponse:
    """
    Score platform listings against the stored location and keep today's snapshot.
    """

    try:
        result = visibility_service.snapshot_nap_health(
            db=db,
            org_id=org_id,
            location_id=location_id,
            adapter_results=to_adapter_results(payload.adapter_results),
            hours=payload.hours,
        )
    except LocationNotFoundError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise _bad_request(exc) from exc

    return NAPSnapshotResponse.model_validate(
        {
            **nap_response_data(result.score, result.discrepancies),
            "rows_written": result.persistence.rows_written,
            "rows_failed": result.persistence.rows_failed,
        }
    )
