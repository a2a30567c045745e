"""Validation layer for raw engine output.

Parses engine answers into citation or accuracy records. The strict
functions raise ResponseParseError; the ``*_result`` wrappers used by the
orchestrator turn any failure into a degraded minimal record so one bad
reply never aborts a batch.
"""

import json
import logging
import re
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import ValidationError

from app.failure_codes import PARSE_ERROR
from app.logging_utils import log_event
from engines.result import EngineRawResult
from engines.schema import AccuracyPayload, CitationPayload
from sov.models import AccuracyRecord, EvaluationRecord, Hallucination, TrackedQuery

logger = logging.getLogger(__name__)


class ResponseParseError(Exception):
    """Raised when engine output fails parsing or schema validation.

    Attributes:
        stage: Which validation step failed ("json_parse" or "schema").
        errors: List of human-readable error descriptions.
        raw_response: The original string that failed validation.
    """

    def __init__(
        self,
        stage: str,
        errors: List[str],
        raw_response: str,
    ) -> None:
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        message = (
            f"Engine output validation failed at stage '{stage}': "
            + "; ".join(errors)
        )
        super().__init__(message)


def _strip_markdown_fences(text: str) -> str:
    """Remove optional markdown code fences wrapping JSON.

    Args:
        text: Raw engine response string.

    Returns:
        The text with leading/trailing code fences removed, if present.
    """
    stripped = text.strip()
    match = re.match(
        r"^```(?:json)?\s*\n?(.*?)\n?\s*```$",
        stripped,
        re.DOTALL,
    )
    if match:
        return match.group(1).strip()
    return stripped


def _load_object(raw_response: str) -> dict:
    cleaned = _strip_markdown_fences(raw_response)
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ResponseParseError(
            stage="json_parse",
            errors=[str(exc)],
            raw_response=raw_response,
        ) from exc

    if not isinstance(data, dict):
        raise ResponseParseError(
            stage="schema",
            errors=["top-level JSON must be an object"],
            raw_response=raw_response,
        )
    return data


def _schema_errors(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}"
        for e in exc.errors()
    ]


def parse_citation_payload(raw_response: str) -> CitationPayload:
    """Parse and validate a share-of-voice answer.

    Args:
        raw_response: Raw engine text, optionally fenced.

    Returns:
        A validated CitationPayload.

    Raises:
        ResponseParseError: If JSON parsing or schema validation fails.
    """
    data = _load_object(raw_response)
    try:
        return CitationPayload.model_validate(data)
    except ValidationError as exc:
        raise ResponseParseError(
            stage="schema",
            errors=_schema_errors(exc),
            raw_response=raw_response,
        ) from exc


def parse_accuracy_payload(raw_response: str) -> AccuracyPayload:
    """Parse and validate a truth-audit answer.

    The accuracy score is clamped to [0, 100] during validation.

    Raises:
        ResponseParseError: If JSON parsing or schema validation fails.
    """
    data = _load_object(raw_response)
    try:
        return AccuracyPayload.model_validate(data)
    except ValidationError as exc:
        raise ResponseParseError(
            stage="schema",
            errors=_schema_errors(exc),
            raw_response=raw_response,
        ) from exc


def business_matches(candidate: str, business_name: str) -> bool:
    """Case-insensitive substring match in either direction."""
    left = candidate.strip().lower()
    right = business_name.strip().lower()
    if not left or not right:
        return False
    return left in right or right in left


def find_rank(businesses: Sequence[str], business_name: str) -> Optional[int]:
    """1-based position of the first business matching ``business_name``, else None."""
    for index, candidate in enumerate(businesses):
        if business_matches(candidate, business_name):
            return max(1, index + 1)
    return None


def parse_citation_result(
    result: EngineRawResult,
    *,
    query: TrackedQuery,
    business_name: str,
    run_at: datetime,
) -> EvaluationRecord:
    """Turn an adapter result into an EvaluationRecord.

    Never raises on malformed text: the record degrades to "not cited" with
    the raw text retained.
    """
    degradation_reason = getattr(result, "reason", None)

    try:
        payload = parse_citation_payload(result.text)
    except ResponseParseError as exc:
        log_event(
            logger,
            logging.WARNING,
            "response_parse_degraded",
            code=PARSE_ERROR,
            engine=result.engine,
            query_id=query.id,
            stage=exc.stage,
            errors=exc.errors,
        )
        return EvaluationRecord(
            query_id=query.id,
            query_text=query.query_text,
            category=query.category,
            engine=result.engine,
            cited=False,
            rank_position=None,
            raw_response=result.text,
            run_at=run_at,
            degraded=True,
            degradation_reason=degradation_reason or PARSE_ERROR,
        )

    rank = find_rank(payload.businesses, business_name)
    competitors = tuple(
        name for name in payload.businesses if not business_matches(name, business_name)
    )
    cited = rank is not None
    return EvaluationRecord(
        query_id=query.id,
        query_text=query.query_text,
        category=query.category,
        engine=result.engine,
        cited=cited,
        rank_position=rank,
        mentioned_competitors=competitors,
        raw_response=result.text,
        cited_sources=(payload.cited_url,) if cited and payload.cited_url else (),
        sentiment=payload.sentiment,
        run_at=run_at,
        degraded=result.degraded,
        degradation_reason=degradation_reason,
    )


def parse_accuracy_result(result: EngineRawResult, *, run_at: datetime) -> AccuracyRecord:
    """Turn an adapter result into an AccuracyRecord, degrading on malformed text."""
    degradation_reason = getattr(result, "reason", None)

    try:
        payload = parse_accuracy_payload(result.text)
    except ResponseParseError as exc:
        log_event(
            logger,
            logging.WARNING,
            "response_parse_degraded",
            code=PARSE_ERROR,
            engine=result.engine,
            stage=exc.stage,
            errors=exc.errors,
        )
        return AccuracyRecord(
            engine=result.engine,
            accuracy_score=0.0,
            response_text=result.text,
            degraded=True,
            degradation_reason=degradation_reason or PARSE_ERROR,
            run_at=run_at,
        )

    return AccuracyRecord(
        engine=result.engine,
        accuracy_score=payload.accuracy_score,
        hallucinations=tuple(
            Hallucination(
                claim_text=item.claim_text,
                severity=item.severity,
                category=item.category,
                expected_truth=item.expected_truth,
            )
            for item in payload.hallucinations_detected
        ),
        response_text=payload.response_text or result.text,
        degraded=result.degraded,
        degradation_reason=degradation_reason,
        run_at=run_at,
    )
