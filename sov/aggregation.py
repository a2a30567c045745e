"""
sov/aggregation.py

Metric aggregation over a run's evaluation records.

Every function here is pure: it receives the records it needs and returns
a value. Nothing is cached between calls.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Iterable, Optional, Sequence

from scoring.normalizer import ScoreNormalizer
from sov.models import AggregateSnapshot, CompetitorMention, EvaluationRecord, Intercept, Tenant

FIRST_MOVER_CATEGORIES = frozenset({"discovery", "occasion", "near_me"})

_normalizer = ScoreNormalizer()


def _filter(records: Iterable[EvaluationRecord], engine: Optional[str]) -> list[EvaluationRecord]:
    if engine is None:
        return list(records)
    return [record for record in records if record.engine == engine]


def share_of_voice(records: Sequence[EvaluationRecord], engine: Optional[str] = None) -> float:
    """Fraction of evaluations in which the business was cited, in [0, 1].

    Args:
        records: Evaluations for the period.
        engine: Restrict to one engine when given.

    Returns:
        ``cited / total``, or 0.0 when there are no evaluations.
    """
    selected = _filter(records, engine)
    if not selected:
        return 0.0
    cited = sum(1 for record in selected if record.cited)
    return _normalizer.clamp(cited / len(selected), 0.0, 1.0)


def citation_rate(records: Sequence[EvaluationRecord], engine: Optional[str] = None) -> float:
    """Percentage of citations backed by at least one cited source, in [0, 100].

    Returns 0.0 when nothing was cited.
    """
    cited = [record for record in _filter(records, engine) if record.cited]
    if not cited:
        return 0.0
    sourced = sum(1 for record in cited if record.cited_sources)
    return _normalizer.clamp(round(sourced / len(cited) * 100, 2), 0.0, 100.0)


def competitor_authority(records: Sequence[EvaluationRecord]) -> list[CompetitorMention]:
    """Rank competitors by how often engines mention them.

    Authority is ``mentions / total evaluations``. Names are compared
    case-insensitively and reported with their first-seen spelling. Output
    is sorted by authority descending, then name ascending.
    """
    if not records:
        return []

    counts: Counter[str] = Counter()
    display_names: dict[str, str] = {}
    for record in records:
        # A competitor counts once per evaluation even if listed twice.
        seen_in_record: set[str] = set()
        for name in record.mentioned_competitors:
            key = name.strip().lower()
            if not key or key in seen_in_record:
                continue
            seen_in_record.add(key)
            display_names.setdefault(key, name.strip())
            counts[key] += 1

    total = len(records)
    mentions = [
        CompetitorMention(
            name=display_names[key],
            mention_count=count,
            authority=round(count / total, 4),
        )
        for key, count in counts.items()
    ]
    mentions.sort(key=lambda mention: (-mention.authority, mention.name.lower(), mention.name))
    return mentions


def count_first_movers(
    current: Sequence[EvaluationRecord],
    previous: Sequence[EvaluationRecord],
) -> int:
    """Number of (query, engine) pairs cited now but not cited in the previous run."""
    previously_cited = {(r.query_id, r.engine) for r in previous if r.cited}
    newly_cited = {(r.query_id, r.engine) for r in current if r.cited} - previously_cited
    return len(newly_cited)


def accuracy_proxy(
    evaluation_count: int,
    hallucination_count: int,
    direct_scores: Sequence[float] = (),
) -> float:
    """Truth score in [0, 100].

    Uses the mean of direct per-call accuracy scores when any exist;
    otherwise ``100 - hallucinations / evaluations * 100``.
    """
    if direct_scores:
        return round(_normalizer.clamp(sum(direct_scores) / len(direct_scores), 0.0, 100.0), 2)
    if evaluation_count <= 0:
        return 100.0
    proxy = 100.0 - (hallucination_count / evaluation_count * 100.0)
    return round(_normalizer.clamp(proxy, 0.0, 100.0), 2)


def category_breakdown(records: Sequence[EvaluationRecord]) -> dict[str, dict[str, float]]:
    """Per-category citation counts and percentage, categories in sorted order."""
    totals: Counter[str] = Counter()
    cited: Counter[str] = Counter()
    for record in records:
        totals[record.category] += 1
        if record.cited:
            cited[record.category] += 1

    return {
        category: {
            "total": totals[category],
            "cited": cited[category],
            "citation_percentage": round(cited[category] / totals[category] * 100, 2),
        }
        for category in sorted(totals)
    }


def first_mover_opportunities(records: Sequence[EvaluationRecord]) -> list[str]:
    """Queries nobody wins yet: not cited, no competitor mentioned, open-ended category.

    Returns distinct query texts in first-seen order.
    """
    opportunities: list[str] = []
    cited_queries = {record.query_id for record in records if record.cited}
    contested = {record.query_id for record in records if record.mentioned_competitors}
    for record in records:
        if record.category not in FIRST_MOVER_CATEGORIES:
            continue
        if record.query_id in cited_queries or record.query_id in contested:
            continue
        if record.query_text not in opportunities:
            opportunities.append(record.query_text)
    return opportunities


def comparison_intercepts(tenant: Tenant, records: Sequence[EvaluationRecord]) -> list[Intercept]:
    """Head-to-head outcomes of the run's comparison queries.

    The winner is the business when it ranked first, otherwise the
    top-ranked competitor, otherwise nobody. Degraded records are skipped.
    """
    intercepts: list[Intercept] = []
    for record in records:
        if record.category != "comparison" or record.degraded:
            continue
        if record.cited and record.rank_position == 1:
            winner: Optional[str] = tenant.business_name
        elif record.mentioned_competitors:
            winner = record.mentioned_competitors[0]
        else:
            winner = None
        intercepts.append(
            Intercept(
                query_text=record.query_text,
                winner=winner,
                competitor_name=_named_competitor(tenant, record),
                engine=record.engine,
                run_date=record.run_at.date(),
            )
        )
    return intercepts


def _named_competitor(tenant: Tenant, record: EvaluationRecord) -> Optional[str]:
    query = record.query_text.lower()
    for competitor in tenant.competitors:
        if competitor.strip() and competitor.strip().lower() in query:
            return competitor.strip()
    return record.mentioned_competitors[0] if record.mentioned_competitors else None


def build_snapshot(
    tenant: Tenant,
    records: Sequence[EvaluationRecord],
    previous: Sequence[EvaluationRecord] = (),
    *,
    snapshot_date: date,
    top_competitors: int = 5,
) -> AggregateSnapshot:
    """Aggregate one run into a snapshot for (org, location, date)."""
    return AggregateSnapshot(
        org_id=tenant.org_id,
        location_id=tenant.location_id,
        snapshot_date=snapshot_date,
        share_of_voice=round(share_of_voice(records), 4),
        citation_rate=citation_rate(records),
        first_mover_count=count_first_movers(records, previous),
        query_count=len({record.query_id for record in records}),
        engines=tuple(sorted({record.engine for record in records})),
        top_competitors=tuple(competitor_authority(records)[:top_competitors]),
    )
