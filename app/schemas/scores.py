"""
app/schemas/scores.py

Request and response schemas for the pure scoring endpoints.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.config import get_revenue_settings


# ---------------------------------------------------------------------------
# NAP health
# ---------------------------------------------------------------------------


class NAPDataPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    operational_status: Optional[str] = None
    hours: Optional[dict[str, Any]] = None


class GroundTruthPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    org_id: str = ""
    location_id: str = ""
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    phone: Optional[str] = None
    city: str = ""
    state: str = ""
    zip: str = ""
    website: Optional[str] = None
    operational_status: Optional[str] = None
    hours: Optional[dict[str, Any]] = None


class AdapterResultPayload(BaseModel):
    platform: str = Field(..., min_length=1)
    status: Literal["ok", "unconfigured", "api_error", "not_found"]
    data: Optional[NAPDataPayload] = None
    message: Optional[str] = None


class NAPScoreRequest(BaseModel):
    ground_truth: GroundTruthPayload
    adapter_results: list[AdapterResultPayload] = Field(default_factory=list)


class DiscrepantFieldResponse(BaseModel):
    field: str
    severity: str
    ground_truth_value: Optional[str] = None
    platform_value: Optional[str] = None


class PlatformDiscrepancyResponse(BaseModel):
    platform: str
    status: str
    severity: str
    auto_correctable: bool
    discrepant_fields: list[DiscrepantFieldResponse] = Field(default_factory=list)
    fix_instructions: Optional[str] = None


class NAPScoreResponse(BaseModel):
    score: int = Field(..., ge=0, le=100)
    grade: str
    platforms_checked: int = Field(..., ge=0)
    platforms_matched: int = Field(..., ge=0)
    critical_discrepancies: int = Field(..., ge=0)
    deductions: list[str] = Field(default_factory=list)
    discrepancies: list[PlatformDiscrepancyResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Entity authority
# ---------------------------------------------------------------------------


class AuthorityScoreRequest(BaseModel):
    """
    Citation URLs plus the signals the authority scorer needs.

    ``previous_citation_total`` enables velocity; without it velocity is
    unknown.
    """

    business_name: str = Field(..., min_length=1)
    city: str = ""
    brand_domain: Optional[str] = None
    citation_urls: list[str] = Field(default_factory=list)
    existing_sameas: list[str] = Field(default_factory=list)
    active_platform_count: int = Field(default=0, ge=0)
    previous_citation_total: Optional[int] = Field(default=None, ge=0)


class AuthorityRecommendationResponse(BaseModel):
    category: str
    priority: int
    title: str
    description: str
    estimated_score_gain: int
    action_type: str
    autopilot_trigger: bool = False


class AuthorityScoreResponse(BaseModel):
    score: int = Field(..., ge=0, le=100)
    grade: str
    dimensions: dict[str, int]
    tier_breakdown: dict[str, int]
    velocity: Optional[float] = None
    velocity_label: str
    decay_alert: bool
    recommendations: list[AuthorityRecommendationResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Revenue leak
# ---------------------------------------------------------------------------


def _default_avg_ticket() -> float:
    return get_revenue_settings().avg_ticket


def _default_monthly_searches() -> int:
    return get_revenue_settings().monthly_searches


def _default_conversion_rate() -> float:
    return get_revenue_settings().local_conversion_rate


def _default_walk_away_rate() -> float:
    return get_revenue_settings().walk_away_rate


class RevenueConfigPayload(BaseModel):
    avg_ticket: float = Field(default_factory=_default_avg_ticket, ge=0.0)
    monthly_searches: int = Field(default_factory=_default_monthly_searches, ge=0)
    local_conversion_rate: float = Field(default_factory=_default_conversion_rate, ge=0.0, le=1.0)
    walk_away_rate: float = Field(default_factory=_default_walk_away_rate, ge=0.0, le=1.0)


class HallucinationPayload(BaseModel):
    severity: Literal["critical", "high", "medium", "low"]
    correction_status: Literal["open", "fixed", "dismissed"] = "open"


class InterceptPayload(BaseModel):
    query_text: str
    winner: Optional[str] = None


class RevenueLeakRequest(BaseModel):
    share_of_voice: float = Field(..., ge=0.0, le=1.0)
    business_name: str = ""
    hallucinations: list[HallucinationPayload] = Field(default_factory=list)
    intercepts: list[InterceptPayload] = Field(default_factory=list)
    total_queries: Optional[int] = Field(default=None, ge=1)
    config: RevenueConfigPayload = Field(default_factory=RevenueConfigPayload)


class CostRangeResponse(BaseModel):
    low: float
    high: float


class RevenueLeakResponse(BaseModel):
    hallucination_cost: CostRangeResponse
    sov_gap_cost: CostRangeResponse
    competitor_steal_cost: CostRangeResponse
    leak_low: float
    leak_high: float
    total_queries: int
