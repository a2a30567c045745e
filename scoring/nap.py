"""
scoring/nap.py

NAP (name, address, phone) consistency checks and the NAP Health Score.

Discrepancy detection compares a location's ground truth with the listing
data each platform adapter returned. The health score starts at 100 and
deducts fixed penalties per discrepant field and per unhealthy adapter.
Everything here is a pure function of its inputs.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from scoring.normalizer import ScoreNormalizer
from scoring.tables import (
    NAP_FIELD_SEVERITY,
    NAP_GRADE_THRESHOLDS,
    NAP_SEVERITY_PENALTY,
    NAP_STATUS_PENALTY,
)

ADAPTER_STATUSES = ("ok", "unconfigured", "api_error", "not_found")
DISCREPANCY_STATUSES = ("match", "discrepancy", "unconfigured", "api_error", "not_found")

AUTO_CORRECTABLE_PLATFORMS = frozenset({"google"})

_PLATFORM_NAMES = {
    "google": "Google Business Profile",
    "yelp": "Yelp for Business",
    "apple_maps": "Apple Maps Connect",
    "bing": "Bing Places",
}

_PLATFORM_FIX_URLS = {
    "google": "https://business.google.com",
    "yelp": "https://biz.yelp.com",
    "apple_maps": "https://mapsconnect.apple.com",
    "bing": "https://www.bingplaces.com",
}

_ADDRESS_ABBREVIATIONS = (
    ("st", "street"),
    ("rd", "road"),
    ("blvd", "boulevard"),
    ("ave", "avenue"),
    ("dr", "drive"),
    ("ln", "lane"),
    ("ct", "court"),
    ("ste", "suite"),
    ("pkwy", "parkway"),
    ("pl", "place"),
    ("cir", "circle"),
    ("hwy", "highway"),
)

_SEVERITY_ORDER = ("critical", "high", "medium", "low")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NAPData:
    """Listing fields as seen on one platform (or as ground truth).

    ``None`` means the platform did not report the field; such fields are
    never flagged.
    """

    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    operational_status: Optional[str] = None
    hours: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class GroundTruth:
    """Canonical identity of a location."""

    org_id: str
    location_id: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    city: str = ""
    state: str = ""
    zip: str = ""
    website: Optional[str] = None
    operational_status: Optional[str] = None
    hours: Optional[dict[str, Any]] = None

    def as_nap_data(self) -> NAPData:
        return NAPData(
            name=self.name,
            address=self.address,
            phone=self.phone,
            website=self.website,
            operational_status=self.operational_status,
            hours=self.hours,
        )


@dataclass(frozen=True)
class AdapterResult:
    """Outcome of fetching one platform's listing."""

    platform: str
    status: str
    data: Optional[NAPData] = None
    message: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status not in ADAPTER_STATUSES:
            raise ValueError(f"Unknown adapter status '{self.status}'.")


@dataclass(frozen=True)
class DiscrepantField:
    """One field whose platform value disagrees with ground truth."""

    field: str
    ground_truth_value: Optional[str]
    platform_value: Optional[str]

    @property
    def severity(self) -> str:
        return NAP_FIELD_SEVERITY.get(self.field, "low")


@dataclass(frozen=True)
class PlatformDiscrepancy:
    """Per-platform comparison result."""

    platform: str
    status: str
    discrepant_fields: tuple[DiscrepantField, ...] = ()
    severity: str = "none"
    auto_correctable: bool = False
    fix_instructions: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status not in DISCREPANCY_STATUSES:
            raise ValueError(f"Unknown discrepancy status '{self.status}'.")


@dataclass(frozen=True)
class NAPHealthScore:
    score: int
    grade: str
    platforms_checked: int
    platforms_matched: int
    critical_discrepancies: int
    deductions: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_phone(phone: str) -> str:
    """Strip non-digits and keep the last 10 digits (drops country codes)."""
    digits = re.sub(r"\D", "", phone)
    return digits[-10:] if len(digits) >= 10 else digits


def normalize_address(address: str) -> str:
    """Lowercase, strip punctuation and expand common street abbreviations."""
    normalized = re.sub(r"[.,#\-]", " ", address.lower())
    for abbreviation, full in _ADDRESS_ABBREVIATIONS:
        normalized = re.sub(rf"\b{abbreviation}\b", full, normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def _normalize_website(url: str) -> str:
    normalized = url.lower().strip()
    normalized = re.sub(r"^https?://", "", normalized)
    normalized = re.sub(r"^www\.", "", normalized)
    return normalized.rstrip("/")


def _normalize_name(name: str) -> str:
    normalized = name.lower().replace("’", "'").replace("‘", "'")
    return re.sub(r"\s+", " ", normalized).strip()


def _hours_differ(truth: dict[str, Any], platform: dict[str, Any]) -> bool:
    for day in set(truth) | set(platform):
        truth_day = truth.get(day)
        platform_day = platform.get(day)
        if not truth_day and not platform_day:
            continue
        if not truth_day or not platform_day:
            return True
        if not isinstance(truth_day, dict) or not isinstance(platform_day, dict):
            # Free-form values such as "9am-5pm" are compared as-is.
            if truth_day != platform_day:
                return True
            continue
        for key in ("open", "close", "closed"):
            if truth_day.get(key) != platform_day.get(key):
                return True
    return False


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------


def diff_nap_data(ground_truth: NAPData, platform_data: NAPData) -> list[DiscrepantField]:
    """Return the fields whose normalized values differ.

    A field is only compared when both sides report it.
    """
    comparisons = (
        ("name", _normalize_name),
        ("address", normalize_address),
        ("phone", normalize_phone),
        ("website", _normalize_website),
        ("operational_status", lambda value: value.lower()),
    )

    diffs: list[DiscrepantField] = []
    for field_name, normalize in comparisons:
        truth_value = getattr(ground_truth, field_name)
        platform_value = getattr(platform_data, field_name)
        if truth_value is None or platform_value is None:
            continue
        if normalize(truth_value) != normalize(platform_value):
            diffs.append(DiscrepantField(field_name, truth_value, platform_value))

    if ground_truth.hours is not None and platform_data.hours is not None:
        if _hours_differ(ground_truth.hours, platform_data.hours):
            diffs.append(
                DiscrepantField(
                    "hours",
                    json.dumps(ground_truth.hours, sort_keys=True),
                    json.dumps(platform_data.hours, sort_keys=True),
                )
            )

    return diffs


def compute_severity(discrepant_fields: Sequence[DiscrepantField]) -> str:
    """Worst field severity in the list, or ``"none"`` when empty."""
    severities = {item.severity for item in discrepant_fields}
    for severity in _SEVERITY_ORDER:
        if severity in severities:
            return severity
    return "none"


def generate_fix_instructions(platform: str, discrepant_fields: Sequence[DiscrepantField]) -> str:
    """Numbered manual-correction steps for a platform without auto-correction."""
    platform_name = _PLATFORM_NAMES.get(platform, platform)
    fix_url = _PLATFORM_FIX_URLS.get(platform)

    login = f"1. Log into {platform_name}"
    if fix_url:
        login += f" at {fix_url}"
    steps = [login, "2. Find your business listing", "3. Edit the business information"]

    step = 4
    for item in discrepant_fields:
        label = "status" if item.field == "operational_status" else item.field
        steps.append(
            f'{step}. Update {label} from "{item.platform_value or "missing"}" '
            f'to "{item.ground_truth_value or "N/A"}"'
        )
        step += 1
    steps.append(f"{step}. Save your changes")
    return "\n".join(steps)


def detect_discrepancies(
    ground_truth: GroundTruth,
    adapter_results: Sequence[AdapterResult],
) -> list[PlatformDiscrepancy]:
    """Compare ground truth with every adapter result, one entry per platform."""
    truth_data = ground_truth.as_nap_data()
    discrepancies: list[PlatformDiscrepancy] = []

    for result in adapter_results:
        if result.status != "ok":
            discrepancies.append(PlatformDiscrepancy(platform=result.platform, status=result.status))
            continue

        auto_correctable = result.platform in AUTO_CORRECTABLE_PLATFORMS
        diffs = diff_nap_data(truth_data, result.data or NAPData())
        if not diffs:
            discrepancies.append(
                PlatformDiscrepancy(
                    platform=result.platform,
                    status="match",
                    auto_correctable=auto_correctable,
                )
            )
            continue

        discrepancies.append(
            PlatformDiscrepancy(
                platform=result.platform,
                status="discrepancy",
                discrepant_fields=tuple(diffs),
                severity=compute_severity(diffs),
                auto_correctable=auto_correctable,
                fix_instructions=(
                    None if auto_correctable else generate_fix_instructions(result.platform, diffs)
                ),
            )
        )

    return discrepancies


# ---------------------------------------------------------------------------
# Health score
# ---------------------------------------------------------------------------


def score_nap_health(
    discrepancies: Sequence[PlatformDiscrepancy],
    adapter_results: Sequence[AdapterResult],
) -> NAPHealthScore:
    """Compute the NAP Health Score.

    Penalties are taken per discrepant field (by the field's own severity)
    and per adapter whose status is ``unconfigured`` or ``api_error``. The
    result is clamped to [0, 100] and graded.

    Args:
        discrepancies: Output of :func:`detect_discrepancies`.
        adapter_results: The adapter results the discrepancies came from.

    Returns:
        A NAPHealthScore.
    """
    normalizer = ScoreNormalizer()
    score = 100
    deductions: list[str] = []

    for discrepancy in discrepancies:
        for item in discrepancy.discrepant_fields:
            penalty = NAP_SEVERITY_PENALTY.get(item.severity, 0)
            score -= penalty
            deductions.append(f"{discrepancy.platform}:{item.field}:-{penalty}")

    for result in adapter_results:
        penalty = NAP_STATUS_PENALTY.get(result.status, 0)
        if penalty:
            score -= penalty
            deductions.append(f"{result.platform}:{result.status}:-{penalty}")

    score = int(normalizer.clamp(score, 0, 100))
    return NAPHealthScore(
        score=score,
        grade=normalizer.grade(score, NAP_GRADE_THRESHOLDS),
        platforms_checked=len(adapter_results),
        platforms_matched=sum(1 for d in discrepancies if d.status == "match"),
        critical_discrepancies=sum(1 for d in discrepancies if d.severity == "critical"),
        deductions=tuple(deductions),
    )
