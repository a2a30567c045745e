"""
scoring/tables.py

Immutable penalty, multiplier and threshold tables used by the scoring
modules. Tables are module-level constants wrapped in MappingProxyType or
tuples so no caller can mutate them at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

# ---------------------------------------------------------------------------
# NAP health
# ---------------------------------------------------------------------------

# Severity assigned to a discrepant NAP field.
NAP_FIELD_SEVERITY: Mapping[str, str] = MappingProxyType(
    {
        "phone": "critical",
        "address": "critical",
        "name": "high",
        "operational_status": "high",
        "hours": "medium",
        "website": "low",
    }
)

# Points deducted per discrepant field, by severity.
NAP_SEVERITY_PENALTY: Mapping[str, int] = MappingProxyType(
    {
        "critical": 25,
        "high": 15,
        "medium": 8,
        "low": 3,
    }
)

# Points deducted per platform, by adapter status.
NAP_STATUS_PENALTY: Mapping[str, int] = MappingProxyType(
    {
        "unconfigured": 5,
        "api_error": 2,
    }
)

# Inclusive lower bounds, checked in order.
NAP_GRADE_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (90, "A"),
    (80, "B"),
    (60, "C"),
    (40, "D"),
)

# ---------------------------------------------------------------------------
# Entity authority
# ---------------------------------------------------------------------------

# Tier-1 citation count -> points. Counts above the last key use its value.
TIER1_CITATION_POINTS: tuple[int, ...] = (0, 15, 22, 30)

TIER2_POINTS_PER_CITATION = 5
TIER2_MAX_POINTS = 25

# Active platform count -> points, capped at the last entry.
PLATFORM_BREADTH_POINTS: tuple[int, ...] = (0, 5, 8, 12, 12, 16, 20)

SAMEAS_POINTS_PER_LINK = 3
SAMEAS_MAX_POINTS = 15


@dataclass(frozen=True)
class VelocityBand:
    """Points awarded when citation velocity (percent) clears ``lower``."""

    lower: float
    points: int
    inclusive: bool = True


# Checked in order; velocity below every band scores 0.
VELOCITY_BANDS: tuple[VelocityBand, ...] = (
    VelocityBand(10.0, 10),
    VelocityBand(0.0, 8),
    VelocityBand(-10.0, 6, inclusive=False),
    VelocityBand(-20.0, 3, inclusive=False),
)
VELOCITY_UNKNOWN_POINTS = 5

AUTHORITY_GRADE_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (80, "A"),
    (60, "B"),
    (40, "C"),
    (20, "D"),
)

VELOCITY_GROWING_THRESHOLD = 10.0
VELOCITY_DECLINING_THRESHOLD = -10.0
VELOCITY_DECAY_ALERT_THRESHOLD = -20.0

KNOWN_TIER2_DOMAINS: Mapping[str, str] = MappingProxyType(
    {
        "yelp.com": "yelp",
        "tripadvisor.com": "tripadvisor",
        "maps.google.com": "google_maps",
        "google.com": "google_maps",
        "maps.apple.com": "apple_maps",
        "apple.com": "apple_maps",
        "facebook.com": "facebook",
        "wikipedia.org": "wikipedia",
        "wikidata.org": "wikidata",
        "foursquare.com": "foursquare",
        "opentable.com": "opentable",
        "eater.com": "eater",
        "thrillist.com": "thrillist",
        "zagat.com": "zagat",
        "timeout.com": "timeout",
        "reddit.com": "reddit",
    }
)

TIER1_GOVERNMENT_SUFFIXES: tuple[str, ...] = (".gov", ".edu")

TIER1_NEWS_DOMAINS: tuple[str, ...] = (
    "nytimes.com",
    "wsj.com",
    "latimes.com",
    "washingtonpost.com",
    "cnn.com",
    "forbes.com",
    "ajc.com",
    "usatoday.com",
    "bbc.com",
    "bbc.co.uk",
    "reuters.com",
    "apnews.com",
)


@dataclass(frozen=True)
class SameAsPlatform:
    """A profile platform worth linking from the business schema."""

    platform: str
    domain_pattern: str
    estimated_impact: str
    label: str


HIGH_VALUE_SAMEAS_PLATFORMS: tuple[SameAsPlatform, ...] = (
    SameAsPlatform("wikidata", "wikidata.org", "high", "Wikidata"),
    SameAsPlatform("wikipedia", "wikipedia.org", "high", "Wikipedia"),
    SameAsPlatform("yelp", "yelp.com", "high", "Yelp"),
    SameAsPlatform("tripadvisor", "tripadvisor.com", "high", "TripAdvisor"),
    SameAsPlatform("google_maps", "google.com", "medium", "Google Maps"),
    SameAsPlatform("apple_maps", "maps.apple.com", "medium", "Apple Maps"),
    SameAsPlatform("facebook", "facebook.com", "medium", "Facebook"),
    SameAsPlatform("foursquare", "foursquare.com", "low", "Foursquare"),
    SameAsPlatform("opentable", "opentable.com", "low", "OpenTable"),
)

MAX_AUTHORITY_RECOMMENDATIONS = 5

# ---------------------------------------------------------------------------
# Revenue leak
# ---------------------------------------------------------------------------

HALLUCINATION_SEVERITY_MULTIPLIER: Mapping[str, float] = MappingProxyType(
    {
        "critical": 2.0,
        "high": 1.0,
        "medium": 0.3,
        "low": 0.1,
    }
)
DEFAULT_SEVERITY_MULTIPLIER = 0.1

DAYS_PER_MONTH = 30
IDEAL_SHARE_OF_VOICE = 0.25
COMPETITOR_STEAL_FACTOR = 0.1


@dataclass(frozen=True)
class RangeFactors:
    """Multipliers applied to a point estimate to produce a [low, high] range."""

    low: float
    high: float


HALLUCINATION_RANGE = RangeFactors(low=0.6, high=1.0)
SOV_GAP_RANGE = RangeFactors(low=0.7, high=1.2)
COMPETITOR_STEAL_RANGE = RangeFactors(low=0.5, high=1.0)
