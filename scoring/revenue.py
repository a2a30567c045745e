"""
scoring/revenue.py

Revenue Leak Estimate: a monthly dollar range the business plausibly loses
to AI answer engines.

Three independent components are estimated, each as a [low, high] range:
open hallucinations that turn customers away, missing share of voice
against an ideal threshold, and queries where a competitor wins the
recommendation. Totals are the sums of the component bounds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from scoring.normalizer import ScoreNormalizer
from scoring.tables import (
    COMPETITOR_STEAL_FACTOR,
    COMPETITOR_STEAL_RANGE,
    DAYS_PER_MONTH,
    DEFAULT_SEVERITY_MULTIPLIER,
    HALLUCINATION_RANGE,
    HALLUCINATION_SEVERITY_MULTIPLIER,
    IDEAL_SHARE_OF_VOICE,
    SOV_GAP_RANGE,
    RangeFactors,
)

_normalizer = ScoreNormalizer()


@dataclass(frozen=True)
class RevenueConfig:
    """Business economics the estimate is scaled by."""

    avg_ticket: float = 45.0
    monthly_searches: int = 2000
    local_conversion_rate: float = 0.03
    walk_away_rate: float = 0.65


@dataclass(frozen=True)
class HallucinationInput:
    severity: str
    correction_status: str = "open"


@dataclass(frozen=True)
class InterceptInput:
    query_text: str
    winner: Optional[str]


@dataclass(frozen=True)
class CostRange:
    low: float
    high: float


@dataclass(frozen=True)
class RevenueLeak:
    hallucination_cost: CostRange
    sov_gap_cost: CostRange
    competitor_steal_cost: CostRange
    leak_low: float
    leak_high: float
    total_queries: int


def _to_range(amount: float, factors: RangeFactors) -> CostRange:
    return CostRange(
        low=_normalizer.round_currency(amount * factors.low),
        high=_normalizer.round_currency(amount * factors.high),
    )


def hallucination_cost(
    hallucinations: Sequence[HallucinationInput],
    config: RevenueConfig,
) -> CostRange:
    """Monthly cost of open hallucinations, weighted by severity."""
    monthly_total = 0.0
    for item in hallucinations:
        if item.correction_status != "open":
            continue
        multiplier = HALLUCINATION_SEVERITY_MULTIPLIER.get(item.severity, DEFAULT_SEVERITY_MULTIPLIER)
        daily_cost = config.avg_ticket * multiplier * config.walk_away_rate
        monthly_total += daily_cost * DAYS_PER_MONTH
    return _to_range(monthly_total, HALLUCINATION_RANGE)


def sov_gap_cost(share_of_voice: float, config: RevenueConfig) -> CostRange:
    """Customers missed because share of voice sits below the ideal threshold."""
    if share_of_voice >= IDEAL_SHARE_OF_VOICE:
        return CostRange(low=0.0, high=0.0)
    missed_customers = (
        config.monthly_searches
        * (IDEAL_SHARE_OF_VOICE - share_of_voice)
        * config.local_conversion_rate
    )
    return _to_range(missed_customers * config.avg_ticket, SOV_GAP_RANGE)


def competitor_steal_cost(
    intercepts: Sequence[InterceptInput],
    business_name: str,
    total_queries: int,
    config: RevenueConfig,
) -> CostRange:
    """Revenue lost on queries where a competitor won the recommendation."""
    if not intercepts or total_queries <= 0:
        return CostRange(low=0.0, high=0.0)

    own_name = business_name.strip().lower()
    losses = sum(
        1
        for intercept in intercepts
        if intercept.winner is not None and intercept.winner.strip().lower() != own_name
    )
    steal_per_loss = (
        config.avg_ticket
        * config.local_conversion_rate
        * (config.monthly_searches / total_queries)
        * COMPETITOR_STEAL_FACTOR
    )
    return _to_range(losses * steal_per_loss, COMPETITOR_STEAL_RANGE)


def estimate_revenue_leak(
    hallucinations: Sequence[HallucinationInput],
    share_of_voice: float,
    intercepts: Sequence[InterceptInput],
    config: RevenueConfig,
    *,
    business_name: str = "",
    total_queries: Optional[int] = None,
) -> RevenueLeak:
    """Estimate the monthly revenue leak range.

    Args:
        hallucinations: Detected hallucinations; only ``open`` ones count.
        share_of_voice: Actual share of voice in [0, 1].
        intercepts: Head-to-head comparison results.
        config: Business economics.
        business_name: The business itself; intercepts it won are not losses.
        total_queries: Denominator spreading monthly searches over queries.
            Defaults to the number of intercepts, or 1 when there are none.

    Returns:
        A RevenueLeak with each component range and the summed totals, all
        rounded to cents.
    """
    if total_queries is None:
        total_queries = len(intercepts) or 1

    hallucination = hallucination_cost(hallucinations, config)
    sov_gap = sov_gap_cost(share_of_voice, config)
    steal = competitor_steal_cost(intercepts, business_name, total_queries, config)

    return RevenueLeak(
        hallucination_cost=hallucination,
        sov_gap_cost=sov_gap,
        competitor_steal_cost=steal,
        leak_low=_normalizer.round_currency(hallucination.low + sov_gap.low + steal.low),
        leak_high=_normalizer.round_currency(hallucination.high + sov_gap.high + steal.high),
        total_queries=total_queries,
    )
