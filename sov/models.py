"""
sov/models.py

Domain objects for share-of-voice evaluation runs.

All objects are frozen dataclasses: records belong to the run that created
them and are never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

QUERY_CATEGORIES = ("discovery", "near_me", "occasion", "comparison", "custom")
GAP_TYPES = ("untracked", "competitor_discovered", "zero_citation_cluster")
HALLUCINATION_SEVERITIES = ("critical", "high", "medium", "low")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrackedQuery:
    """A question tracked for one location."""

    id: str
    org_id: str
    location_id: str
    query_text: str
    category: str = "custom"
    priority: int = 1


@dataclass(frozen=True)
class Tenant:
    """The business a batch runs for, with the ground truth audits compare against."""

    org_id: str
    location_id: str
    business_name: str
    city: str = ""
    state: str = ""
    categories: tuple[str, ...] = ()
    competitors: tuple[str, ...] = ()
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None


@dataclass(frozen=True)
class EvaluationRecord:
    """Outcome of one (query, engine) pair in one run.

    ``rank_position`` is set exactly when ``cited`` is true and is then at
    least 1.
    """

    query_id: str
    query_text: str
    category: str
    engine: str
    cited: bool
    rank_position: Optional[int]
    mentioned_competitors: tuple[str, ...] = ()
    raw_response: str = ""
    cited_sources: tuple[str, ...] = ()
    sentiment: Optional[str] = None
    run_at: datetime = field(default_factory=_utc_now)
    degraded: bool = False
    degradation_reason: Optional[str] = None

    def __post_init__(self) -> None:
        if self.cited and self.rank_position is None:
            raise ValueError("A cited evaluation must carry a rank position.")
        if not self.cited and self.rank_position is not None:
            raise ValueError("An uncited evaluation must not carry a rank position.")
        if self.rank_position is not None and self.rank_position < 1:
            raise ValueError("rank_position must be >= 1.")


@dataclass(frozen=True)
class Hallucination:
    """A claim an engine made that contradicts the location's ground truth."""

    claim_text: str
    severity: str = "medium"
    category: Optional[str] = None
    expected_truth: Optional[str] = None


@dataclass(frozen=True)
class AccuracyRecord:
    """Outcome of one truth audit on one engine."""

    engine: str
    accuracy_score: float
    hallucinations: tuple[Hallucination, ...] = ()
    response_text: str = ""
    degraded: bool = False
    degradation_reason: Optional[str] = None
    run_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class PairError:
    """Diagnostic for one pair that failed or degraded."""

    engine: str
    code: str
    message: str
    query_id: Optional[str] = None


@dataclass(frozen=True)
class BatchSummary:
    success: bool
    queries_run: int
    queries_cited: int
    first_mover_count: int
    errors: tuple[PairError, ...] = ()
    records: tuple[EvaluationRecord, ...] = ()
    degraded_count: int = 0


@dataclass(frozen=True)
class CompetitorMention:
    name: str
    mention_count: int
    authority: float


@dataclass(frozen=True)
class AggregateSnapshot:
    """Per-run visibility metrics for one (org, location, date)."""

    org_id: str
    location_id: str
    snapshot_date: date
    share_of_voice: float
    citation_rate: float
    first_mover_count: int
    query_count: int
    engines: tuple[str, ...] = ()
    top_competitors: tuple[CompetitorMention, ...] = ()

    def __post_init__(self) -> None:
        if not 0.0 <= self.share_of_voice <= 1.0:
            raise ValueError("share_of_voice must be within [0, 1].")
        if not 0.0 <= self.citation_rate <= 100.0:
            raise ValueError("citation_rate must be within [0, 100].")
        if self.first_mover_count < 0:
            raise ValueError("first_mover_count must be >= 0.")


@dataclass(frozen=True)
class Intercept:
    """Head-to-head comparison outcome for one query."""

    query_text: str
    winner: Optional[str]
    competitor_name: Optional[str] = None
    engine: Optional[str] = None
    run_date: Optional[date] = None


@dataclass(frozen=True)
class QueryHistory:
    """Evaluation history of one tracked query, as read from storage."""

    query: TrackedQuery
    evaluation_count: int
    citation_count: int


@dataclass(frozen=True)
class Gap:
    """A content gap worth acting on."""

    gap_id: str
    gap_type: str
    query_text: str
    category: str
    estimated_impact: str
    suggested_action: str
    query_texts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.gap_type not in GAP_TYPES:
            raise ValueError(f"Unknown gap type '{self.gap_type}'.")


@dataclass(frozen=True)
class AuditSummary:
    """Outcome of a truth audit across engines."""

    success: bool
    records: tuple[AccuracyRecord, ...] = ()
    errors: tuple[PairError, ...] = ()
