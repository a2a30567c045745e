"""
sov/gaps.py

Content gap detection.

Three independent detectors feed one bounded backlog:

- untracked: reference-library questions the location does not track yet
- competitor_discovered: questions a competitor won head-to-head that are
  not tracked yet
- zero_citation_cluster: a group of tracked questions that repeatedly
  fail to cite the business

The lists are concatenated in that order, already-drafted gaps are
removed, and the result is capped at MAX_GAPS.
"""

from __future__ import annotations

import hashlib
import logging
from collections import Counter
from typing import AbstractSet, Sequence

from app.logging_utils import log_event
from engines.validator import business_matches
from sov.models import Gap, Intercept, QueryHistory, Tenant, TrackedQuery
from sov.query_library import build_reference_library, normalize_query_text
from sov.repository import VisibilityReader

logger = logging.getLogger(__name__)

MAX_GAPS = 10
MIN_EVALUATION_RUNS = 2
MIN_CLUSTER_SIZE = 3
CLUSTER_SAMPLE_SIZE = 5


def gap_id(gap_type: str, *texts: str) -> str:
    """Stable identifier for a gap, independent of run time and casing."""
    key = "|".join(sorted(normalize_query_text(text) for text in texts))
    return hashlib.sha256(f"{gap_type}:{key}".encode("utf-8")).hexdigest()[:16]


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


def detect_untracked(tenant: Tenant, tracked: Sequence[TrackedQuery]) -> list[Gap]:
    tracked_texts = {normalize_query_text(query.query_text) for query in tracked}
    library = build_reference_library(
        business_name=tenant.business_name,
        city=tenant.city,
        state=tenant.state,
        categories=tenant.categories,
        competitors=tenant.competitors,
    )

    gaps: list[Gap] = []
    for query in library:
        if normalize_query_text(query.query_text) in tracked_texts:
            continue
        high_impact = query.category == "discovery" and query.priority <= 2
        gaps.append(
            Gap(
                gap_id=gap_id("untracked", query.query_text),
                gap_type="untracked",
                query_text=query.query_text,
                category=query.category,
                estimated_impact="high" if high_impact else "medium",
                suggested_action=(
                    f'Start tracking "{query.query_text}" to see whether AI engines '
                    "recommend you for it."
                ),
            )
        )
    return gaps


def detect_competitor_discovered(
    tenant: Tenant,
    tracked: Sequence[TrackedQuery],
    intercepts: Sequence[Intercept],
) -> list[Gap]:
    tracked_texts = {normalize_query_text(query.query_text) for query in tracked}
    seen: set[str] = set()

    gaps: list[Gap] = []
    for intercept in intercepts:
        winner = (intercept.winner or "").strip()
        if not winner or business_matches(winner, tenant.business_name):
            continue
        key = normalize_query_text(intercept.query_text)
        if not key or key in tracked_texts or key in seen:
            continue
        seen.add(key)
        gaps.append(
            Gap(
                gap_id=gap_id("competitor_discovered", intercept.query_text),
                gap_type="competitor_discovered",
                query_text=intercept.query_text,
                category="comparison",
                estimated_impact="high",
                suggested_action=f"{winner} is winning this query. Track it to measure your progress.",
            )
        )
    return gaps


def detect_zero_citation_cluster(history: Sequence[QueryHistory]) -> list[Gap]:
    never_cited = [
        entry.query
        for entry in history
        if entry.evaluation_count >= MIN_EVALUATION_RUNS and entry.citation_count == 0
    ]
    if len(never_cited) < MIN_CLUSTER_SIZE:
        return []

    sample = tuple(query.query_text for query in never_cited[:CLUSTER_SAMPLE_SIZE])
    dominant_category = Counter(query.category for query in never_cited).most_common(1)[0][0]
    return [
        Gap(
            gap_id=gap_id("zero_citation_cluster", *(q.query_text for q in never_cited)),
            gap_type="zero_citation_cluster",
            query_text=", ".join(sample),
            query_texts=sample,
            category=dominant_category,
            estimated_impact="high",
            suggested_action=(
                f"AI engines have never cited you for {len(never_cited)} related "
                f"{dominant_category} queries. Publish content that answers them directly."
            ),
        )
    ]


def detect_gaps(
    *,
    tenant: Tenant,
    tracked: Sequence[TrackedQuery],
    history: Sequence[QueryHistory],
    intercepts: Sequence[Intercept],
    already_drafted: AbstractSet[str] = frozenset(),
) -> list[Gap]:
    """Combine the three detectors into one capped backlog.

    The same question can appear both as untracked and inside a
    zero-citation cluster; the detectors do not deduplicate across each
    other.

    Args:
        tenant: The location being analysed.
        tracked: Active tracked queries.
        history: Lifetime evaluation and citation counts per tracked query.
        intercepts: Head-to-head comparison outcomes.
        already_drafted: Gap ids the caller has already acted on.

    Returns:
        At most MAX_GAPS gaps.
    """
    combined = (
        detect_untracked(tenant, tracked)
        + detect_competitor_discovered(tenant, tracked, intercepts)
        + detect_zero_citation_cluster(history)
    )
    return [gap for gap in combined if gap.gap_id not in already_drafted][:MAX_GAPS]


# ---------------------------------------------------------------------------
# Service entry point
# ---------------------------------------------------------------------------


class GapDetector:
    """Reads a location's state through a VisibilityReader and detects gaps."""

    def __init__(self, reader: VisibilityReader) -> None:
        self._reader = reader

    def compute_gaps(
        self,
        org_id: str,
        location_id: str,
        already_drafted: AbstractSet[str] = frozenset(),
    ) -> list[Gap]:
        tenant = self._reader.get_tenant(org_id, location_id)
        gaps = detect_gaps(
            tenant=tenant,
            tracked=self._reader.list_tracked_queries(org_id, location_id),
            history=self._reader.list_query_history(org_id, location_id),
            intercepts=self._reader.list_intercepts(org_id, location_id),
            already_drafted=already_drafted,
        )
        log_event(
            logger,
            logging.INFO,
            "gaps_computed",
            org_id=org_id,
            location_id=location_id,
            gap_count=len(gaps),
            gap_types=dict(Counter(gap.gap_type for gap in gaps)),
        )
        return gaps
