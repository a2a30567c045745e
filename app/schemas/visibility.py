"""
app/schemas/visibility.py

Request and response schemas for visibility runs, truth audits, gaps and
stored score snapshots.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.scores import (
    AdapterResultPayload,
    AuthorityScoreResponse,
    NAPScoreResponse,
    RevenueConfigPayload,
    RevenueLeakResponse,
)


class SovBatchRequest(BaseModel):
    """
    Optional engine selection; the configured defaults apply when omitted.
    """

    model_config = ConfigDict(extra="forbid")

    engines: Optional[list[str]] = Field(default=None, min_length=1)

    @field_validator("engines")
    @classmethod
    def _normalize_engines(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        return [engine.strip().lower() for engine in value]


class PairErrorResponse(BaseModel):
    engine: str
    code: str
    message: str
    query_id: Optional[str] = None


class EvaluationRecordResponse(BaseModel):
    query_id: str
    query_text: str
    category: str
    engine: str
    cited: bool
    rank_position: Optional[int] = Field(default=None, ge=1)
    mentioned_competitors: list[str] = Field(default_factory=list)
    cited_sources: list[str] = Field(default_factory=list)
    sentiment: Optional[str] = None
    run_at: datetime
    degraded: bool = False
    degradation_reason: Optional[str] = None


class CompetitorMentionResponse(BaseModel):
    name: str
    mention_count: int = Field(..., ge=0)
    authority: float = Field(..., ge=0.0, le=1.0)


class SnapshotResponse(BaseModel):
    snapshot_date: date
    share_of_voice: float = Field(..., ge=0.0, le=1.0)
    citation_rate: float = Field(..., ge=0.0, le=100.0)
    first_mover_count: int = Field(..., ge=0)
    query_count: int = Field(..., ge=0)
    engines: list[str] = Field(default_factory=list)
    top_competitors: list[CompetitorMentionResponse] = Field(default_factory=list)


class SovBatchResponse(BaseModel):
    """
    API response model for one SOV batch run.
    """

    success: bool
    queries_run: int = Field(..., ge=0)
    queries_cited: int = Field(..., ge=0)
    first_mover_count: int = Field(..., ge=0)
    degraded_count: int = Field(default=0, ge=0)
    errors: list[PairErrorResponse] = Field(default_factory=list)
    records: list[EvaluationRecordResponse] = Field(default_factory=list)
    snapshot: Optional[SnapshotResponse] = None
    rows_written: int = Field(default=0, ge=0)
    rows_failed: int = Field(default=0, ge=0)


class GapResponse(BaseModel):
    gap_id: str
    gap_type: str
    query_text: str
    query_texts: list[str] = Field(default_factory=list)
    category: str
    estimated_impact: str
    suggested_action: str


# ---------------------------------------------------------------------------
# Truth audit
# ---------------------------------------------------------------------------


class TruthAuditRequest(SovBatchRequest):
    """
    Optional engine selection for a truth audit.
    """


class HallucinationResponse(BaseModel):
    claim_text: str
    severity: str
    category: Optional[str] = None
    expected_truth: Optional[str] = None


class AccuracyRecordResponse(BaseModel):
    engine: str
    accuracy_score: float = Field(..., ge=0.0, le=100.0)
    hallucinations: list[HallucinationResponse] = Field(default_factory=list)
    response_text: str = ""
    degraded: bool = False
    degradation_reason: Optional[str] = None
    run_at: datetime


class TruthAuditResponse(BaseModel):
    success: bool
    errors: list[PairErrorResponse] = Field(default_factory=list)
    records: list[AccuracyRecordResponse] = Field(default_factory=list)
    rows_written: int = Field(default=0, ge=0)
    rows_failed: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Stored score snapshots
# ---------------------------------------------------------------------------


class RevenueLeakSnapshotRequest(BaseModel):
    """
    Business economics for the estimate; configured defaults when omitted.
    """

    model_config = ConfigDict(extra="forbid")

    config: Optional[RevenueConfigPayload] = None


class RevenueLeakSnapshotResponse(RevenueLeakResponse):
    rows_written: int = Field(default=0, ge=0)
    rows_failed: int = Field(default=0, ge=0)


class AuthoritySnapshotRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active_platform_count: int = Field(default=0, ge=0)
    existing_sameas: list[str] = Field(default_factory=list)


class AuthoritySnapshotResponse(AuthorityScoreResponse):
    citation_total: int = Field(default=0, ge=0)
    rows_written: int = Field(default=0, ge=0)
    rows_failed: int = Field(default=0, ge=0)


class NAPSnapshotRequest(BaseModel):
    """
    Listing data fetched from each platform; ground truth comes from the
    stored location.
    """

    adapter_results: list[AdapterResultPayload] = Field(default_factory=list)
    hours: Optional[dict[str, Any]] = None


class NAPSnapshotResponse(NAPScoreResponse):
    rows_written: int = Field(default=0, ge=0)
    rows_failed: int = Field(default=0, ge=0)
