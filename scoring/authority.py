"""
scoring/authority.py

Entity Authority Score: how strongly the open web vouches for a business.

Citing URLs are classified into authority tiers, sameAs profile candidates
are detected, and five independently bounded dimensions are summed into a
0-100 score. Recommendations are derived from the weakest dimensions and
the high-value profile platforms the business has not linked yet.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlparse

from scoring.normalizer import ScoreNormalizer
from scoring.tables import (
    AUTHORITY_GRADE_THRESHOLDS,
    HIGH_VALUE_SAMEAS_PLATFORMS,
    KNOWN_TIER2_DOMAINS,
    MAX_AUTHORITY_RECOMMENDATIONS,
    PLATFORM_BREADTH_POINTS,
    SAMEAS_MAX_POINTS,
    SAMEAS_POINTS_PER_LINK,
    TIER1_CITATION_POINTS,
    TIER1_GOVERNMENT_SUFFIXES,
    TIER1_NEWS_DOMAINS,
    TIER2_MAX_POINTS,
    TIER2_POINTS_PER_CITATION,
    VELOCITY_BANDS,
    VELOCITY_DECAY_ALERT_THRESHOLD,
    VELOCITY_DECLINING_THRESHOLD,
    VELOCITY_GROWING_THRESHOLD,
    VELOCITY_UNKNOWN_POINTS,
)

# Path fragments that identify a business profile page, per domain.
_SAMEAS_PATH_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("yelp.com", ("/biz/",)),
    ("tripadvisor.com", ("restaurant_review",)),
    ("google.com", ("/maps/place/", "?cid=", "&cid=")),
    ("wikidata.org", ("/wiki/q",)),
    ("opentable.com", ("/restaurant/", "/r/")),
    ("foursquare.com", ("/v/",)),
    ("apple.com", ("/place",)),
)

_FACEBOOK_EXCLUDED_PATHS = ("/groups/", "/events/")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CitationSource:
    """A URL that mentions the business, with its authority classification."""

    url: str
    domain: str
    tier: str
    source_type: str
    is_sameas_candidate: bool = False
    snippet: Optional[str] = None


@dataclass(frozen=True)
class AuthorityDimensions:
    tier1_citation_score: int
    tier2_coverage_score: int
    platform_breadth_score: int
    sameas_score: int
    velocity_score: int

    def total(self) -> int:
        return (
            self.tier1_citation_score
            + self.tier2_coverage_score
            + self.platform_breadth_score
            + self.sameas_score
            + self.velocity_score
        )


@dataclass(frozen=True)
class AuthorityInputs:
    """Everything the authority scorer consumes for one location."""

    citations: tuple[CitationSource, ...] = ()
    active_platform_count: int = 0
    sameas_count: int = 0
    velocity: Optional[float] = None


@dataclass(frozen=True)
class SameAsGap:
    platform: str
    url: str
    estimated_impact: str
    action_label: str
    action_instructions: str


@dataclass(frozen=True)
class AuthorityRecommendation:
    category: str
    priority: int
    title: str
    description: str
    estimated_score_gain: int
    action_type: str
    autopilot_trigger: bool = False


@dataclass(frozen=True)
class AuthorityScore:
    score: int
    grade: str
    dimensions: AuthorityDimensions
    tier_breakdown: dict[str, int]
    velocity: Optional[float]
    velocity_label: str
    decay_alert: bool


# ---------------------------------------------------------------------------
# Source classification
# ---------------------------------------------------------------------------


def extract_domain(url: str) -> str:
    """Lowercased hostname without a leading ``www.``; empty string if unparseable."""
    try:
        hostname = urlparse(url if "://" in url else f"https://{url}").hostname or ""
    except ValueError:
        return ""
    hostname = hostname.lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


def _matches_domain(domain: str, pattern: str) -> bool:
    return domain == pattern or domain.endswith("." + pattern)


def classify_source(url: str, brand_domain: Optional[str] = None) -> tuple[str, str]:
    """Classify a citing URL.

    The brand's own site is checked first, then known directories, then
    government, academic and news patterns.

    Args:
        url: Citing URL.
        brand_domain: The business's own website domain, if known.

    Returns:
        ``(tier, source_type)`` where tier is ``tier1``, ``tier2`` or
        ``tier3``.
    """
    domain = extract_domain(url)
    if not domain:
        return "tier3", "other"

    if brand_domain:
        own = extract_domain(brand_domain)
        if own and _matches_domain(domain, own):
            return "tier1", "brand_website"

    for known_domain, source_type in KNOWN_TIER2_DOMAINS.items():
        if _matches_domain(domain, known_domain):
            return "tier2", source_type

    if domain.endswith(TIER1_GOVERNMENT_SUFFIXES):
        return "tier1", "government" if domain.endswith(".gov") else "academic"

    for news_domain in TIER1_NEWS_DOMAINS:
        if _matches_domain(domain, news_domain):
            return "tier1", "news"

    return "tier3", "other"


def business_slug(business_name: str) -> str:
    """Lowercase slug with runs of non-alphanumerics collapsed to ``-``."""
    return re.sub(r"[^a-z0-9]+", "-", business_name.lower()).strip("-")


def is_sameas_candidate(url: str, business_name: str) -> bool:
    """True when the URL looks like a profile page for this business."""
    lowered = url.lower()
    domain = extract_domain(url)

    for known_domain, fragments in _SAMEAS_PATH_RULES:
        if _matches_domain(domain, known_domain) and any(f in lowered for f in fragments):
            return True

    if _matches_domain(domain, "facebook.com"):
        return not any(path in lowered for path in _FACEBOOK_EXCLUDED_PATHS)
    if _matches_domain(domain, "wikipedia.org"):
        return True

    slug = business_slug(business_name)
    return len(slug) > 3 and slug in lowered


def detect_citation_sources(
    urls: Sequence[str],
    business_name: str,
    brand_domain: Optional[str] = None,
) -> list[CitationSource]:
    """Classify every distinct URL, preserving first-seen order."""
    seen: set[str] = set()
    sources: list[CitationSource] = []
    for url in urls:
        if not url or url in seen:
            continue
        seen.add(url)
        tier, source_type = classify_source(url, brand_domain)
        sources.append(
            CitationSource(
                url=url,
                domain=extract_domain(url),
                tier=tier,
                source_type=source_type,
                is_sameas_candidate=is_sameas_candidate(url, business_name),
            )
        )
    return sources


# ---------------------------------------------------------------------------
# Velocity
# ---------------------------------------------------------------------------


def compute_citation_velocity(current_total: int, previous_total: Optional[int]) -> Optional[float]:
    """Percent change in citation count versus the previous snapshot.

    Returns None when there is no usable previous value.
    """
    if not previous_total:
        return None
    return round((current_total - previous_total) / previous_total * 100, 2)


def velocity_label(velocity: Optional[float]) -> str:
    if velocity is None:
        return "unknown"
    if velocity >= VELOCITY_GROWING_THRESHOLD:
        return "growing"
    if velocity <= VELOCITY_DECLINING_THRESHOLD:
        return "declining"
    return "stable"


def should_alert_decay(velocity: Optional[float]) -> bool:
    return velocity is not None and velocity < VELOCITY_DECAY_ALERT_THRESHOLD


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def _tier1_points(count: int) -> int:
    return TIER1_CITATION_POINTS[min(count, len(TIER1_CITATION_POINTS) - 1)]


def _platform_points(count: int) -> int:
    return PLATFORM_BREADTH_POINTS[min(max(count, 0), len(PLATFORM_BREADTH_POINTS) - 1)]


def _velocity_points(velocity: Optional[float]) -> int:
    if velocity is None:
        return VELOCITY_UNKNOWN_POINTS
    for band in VELOCITY_BANDS:
        if velocity > band.lower or (band.inclusive and velocity == band.lower):
            return band.points
    return 0


def tier_breakdown(citations: Sequence[CitationSource]) -> dict[str, int]:
    breakdown = {"tier1": 0, "tier2": 0, "tier3": 0}
    for citation in citations:
        breakdown[citation.tier] = breakdown.get(citation.tier, 0) + 1
    return breakdown


def compute_dimensions(inputs: AuthorityInputs) -> AuthorityDimensions:
    breakdown = tier_breakdown(inputs.citations)
    return AuthorityDimensions(
        tier1_citation_score=_tier1_points(breakdown["tier1"]),
        tier2_coverage_score=min(breakdown["tier2"] * TIER2_POINTS_PER_CITATION, TIER2_MAX_POINTS),
        platform_breadth_score=_platform_points(inputs.active_platform_count),
        sameas_score=min(max(inputs.sameas_count, 0) * SAMEAS_POINTS_PER_LINK, SAMEAS_MAX_POINTS),
        velocity_score=_velocity_points(inputs.velocity),
    )


def score_entity_authority(inputs: AuthorityInputs) -> AuthorityScore:
    """Compute the Entity Authority Score for one location.

    Args:
        inputs: Classified citations, active listing platform count,
            sameAs link count and citation velocity (percent, or None).

    Returns:
        An AuthorityScore with the summed score in [0, 100], its letter
        grade, the per-dimension breakdown and velocity diagnostics.
    """
    normalizer = ScoreNormalizer()
    dimensions = compute_dimensions(inputs)
    score = int(normalizer.clamp(dimensions.total(), 0, 100))
    return AuthorityScore(
        score=score,
        grade=normalizer.grade(score, AUTHORITY_GRADE_THRESHOLDS),
        dimensions=dimensions,
        tier_breakdown=tier_breakdown(inputs.citations),
        velocity=inputs.velocity,
        velocity_label=velocity_label(inputs.velocity),
        decay_alert=should_alert_decay(inputs.velocity),
    )


# ---------------------------------------------------------------------------
# sameAs gaps and recommendations
# ---------------------------------------------------------------------------


def detect_sameas_gaps(
    existing_sameas: Sequence[str],
    citations: Sequence[CitationSource],
    business_name: str,
    city: str = "",
) -> list[SameAsGap]:
    """High-value profile platforms not yet linked from the business schema.

    When a detected citation already points at a profile on that platform
    its URL is suggested as the link to add.
    """
    linked = {extract_domain(url) for url in existing_sameas if extract_domain(url)}
    candidate_urls = {c.domain: c.url for c in citations if c.is_sameas_candidate}

    gaps: list[SameAsGap] = []
    for platform in HIGH_VALUE_SAMEAS_PLATFORMS:
        if any(_matches_domain(d, platform.domain_pattern) for d in linked):
            continue
        url = next(
            (u for d, u in candidate_urls.items() if _matches_domain(d, platform.domain_pattern)),
            "",
        )
        where = f"{business_name} in {city}".strip() if city else business_name
        if url:
            instructions = f"Add {url} to the sameAs list in your homepage schema."
        else:
            instructions = (
                f"Claim or create the {platform.label} profile for {where}, "
                "then add its URL to the sameAs list in your homepage schema."
            )
        gaps.append(
            SameAsGap(
                platform=platform.platform,
                url=url,
                estimated_impact=platform.estimated_impact,
                action_label=f"Add {platform.label} sameAs",
                action_instructions=instructions,
            )
        )
    return gaps


def generate_recommendations(
    score: AuthorityScore,
    gaps: Sequence[SameAsGap],
    city: Optional[str] = None,
) -> list[AuthorityRecommendation]:
    """Actions ordered by priority ascending then score gain descending, capped at 5."""
    recommendations: list[AuthorityRecommendation] = []
    dimensions = score.dimensions

    if score.tier_breakdown.get("tier1", 0) == 0:
        recommendations.append(
            AuthorityRecommendation(
                category="tier1_citation",
                priority=1,
                title=f"Get featured in {city or 'your city'} local press",
                description=(
                    "No government, academic or news source cites the business. "
                    "One local press mention is worth more than any directory listing."
                ),
                estimated_score_gain=22,
                action_type="outreach",
            )
        )

    if should_alert_decay(score.velocity):
        recommendations.append(
            AuthorityRecommendation(
                category="velocity_recovery",
                priority=1,
                title="Reverse the citation decline",
                description=(
                    f"Citations dropped {abs(score.velocity or 0):.0f}% since the last "
                    "snapshot. Publish fresh content to earn new mentions."
                ),
                estimated_score_gain=10,
                action_type="create_content",
                autopilot_trigger=True,
            )
        )

    for gap in gaps:
        if gap.estimated_impact != "high":
            continue
        recommendations.append(
            AuthorityRecommendation(
                category="sameas",
                priority=2,
                title=gap.action_label,
                description=gap.action_instructions,
                estimated_score_gain=8 if gap.platform in {"wikidata", "wikipedia"} else 5,
                action_type="add_sameas",
            )
        )

    if dimensions.platform_breadth_score < 12:
        recommendations.append(
            AuthorityRecommendation(
                category="platform_breadth",
                priority=2,
                title="Claim more listing platforms",
                description="Claim listings on at least three major platforms.",
                estimated_score_gain=5,
                action_type="claim_listing",
            )
        )

    if score.tier_breakdown.get("tier2", 0) < 3:
        recommendations.append(
            AuthorityRecommendation(
                category="tier2_listing",
                priority=3,
                title="Grow directory coverage",
                description="Ask recent customers for reviews on Yelp and TripAdvisor.",
                estimated_score_gain=3,
                action_type="review_request",
            )
        )

    if dimensions.sameas_score < 9:
        recommendations.append(
            AuthorityRecommendation(
                category="sameas",
                priority=3,
                title="Link more profiles from your schema",
                description="Add at least three profile URLs to your homepage sameAs list.",
                estimated_score_gain=3,
                action_type="add_sameas",
            )
        )

    recommendations.sort(key=lambda r: (r.priority, -r.estimated_score_gain))
    return recommendations[:MAX_AUTHORITY_RECOMMENDATIONS]
