"""Response payload schemas for AI answer engine output."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SENTIMENTS = frozenset({"positive", "neutral", "negative"})
_SEVERITIES = frozenset({"critical", "high", "medium", "low"})
HALLUCINATION_CATEGORIES = frozenset({"status", "hours", "amenity", "menu", "address", "phone"})


class CitationPayload(BaseModel):
    """Answer to a share-of-voice query: the businesses the engine recommended."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )

    businesses: List[str]
    cited_url: Optional[str] = None
    sentiment: Optional[str] = None

    @field_validator("businesses", mode="before")
    @classmethod
    def _drop_blank_names(cls, value: object) -> object:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, str) and item.strip()]
        return value

    @field_validator("sentiment", mode="before")
    @classmethod
    def _known_sentiment_only(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in _SENTIMENTS:
            return value.strip().lower()
        return None

    @field_validator("cited_url", mode="before")
    @classmethod
    def _blank_url_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class HallucinationItem(BaseModel):
    """One contradicted claim from a truth audit.

    Unknown severities fall back to ``medium`` and unknown categories to
    ``None`` so one sloppy field never discards the claim itself.
    """

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )

    claim_text: str = Field(..., min_length=1)
    severity: str = "medium"
    category: Optional[str] = None
    expected_truth: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _known_severity(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in _SEVERITIES:
            return value.strip().lower()
        return "medium"

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: object) -> object:
        if isinstance(value, str) and value.strip().lower() in HALLUCINATION_CATEGORIES:
            return value.strip().lower()
        return None

    @field_validator("expected_truth", mode="before")
    @classmethod
    def _blank_truth_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AccuracyPayload(BaseModel):
    """Answer to a truth audit: how accurately the engine describes the business."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        str_strip_whitespace=True,
    )

    accuracy_score: float
    hallucinations_detected: List[HallucinationItem] = Field(default_factory=list)
    response_text: str = ""

    @field_validator("accuracy_score", mode="after")
    @classmethod
    def _clamp_score(cls, value: float) -> float:
        return max(0.0, min(100.0, value))

    @field_validator("hallucinations_detected", mode="before")
    @classmethod
    def _coerce_claims(cls, value: object) -> object:
        if not isinstance(value, list):
            return value
        items = []
        for entry in value:
            if isinstance(entry, str):
                entry = {"claim_text": entry}
            if not isinstance(entry, dict):
                continue
            claim = entry.get("claim_text")
            if isinstance(claim, str) and claim.strip():
                items.append(entry)
        return items
