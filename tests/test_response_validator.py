"""
tests/test_response_validator.py

Unit tests for engine response parsing: fenced JSON, citation matching,
accuracy clamping and degradation on malformed output.
"""

from __future__ import annotations

import json

import pytest

from conftest import RUN_AT, citation_json
from engines.adapter import build_mock_body
from engines.result import Authentic, Degraded
from engines.validator import (
    ResponseParseError,
    business_matches,
    find_rank,
    parse_accuracy_payload,
    parse_accuracy_result,
    parse_citation_payload,
    parse_citation_result,
)
from sov.models import EvaluationRecord, Hallucination


@pytest.fixture()
def query(make_query):
    return make_query("q-1", "best hookah lounge in Alpharetta GA")


def _citation(result, query) -> EvaluationRecord:
    return parse_citation_result(result, query=query, business_name="Charcoal N Chill", run_at=RUN_AT)


class TestStrictParsing:
    def test_accepts_fenced_json(self) -> None:
        raw = '```json\n{"businesses": ["A", "B"], "cited_url": null}\n```'
        payload = parse_citation_payload(raw)
        assert payload.businesses == ["A", "B"]
        assert payload.cited_url is None

    def test_invalid_json_reports_json_stage(self) -> None:
        with pytest.raises(ResponseParseError) as exc_info:
            parse_citation_payload("I recommend Charcoal N Chill!")
        assert exc_info.value.stage == "json_parse"
        assert exc_info.value.raw_response == "I recommend Charcoal N Chill!"

    def test_non_object_is_schema_error(self) -> None:
        with pytest.raises(ResponseParseError) as exc_info:
            parse_citation_payload('["Charcoal N Chill"]')
        assert exc_info.value.stage == "schema"

    def test_missing_businesses_is_schema_error(self) -> None:
        with pytest.raises(ResponseParseError) as exc_info:
            parse_citation_payload('{"cited_url": "https://example.com"}')
        assert exc_info.value.stage == "schema"
        assert any("businesses" in error for error in exc_info.value.errors)

    def test_blank_names_are_dropped(self) -> None:
        payload = parse_citation_payload('{"businesses": ["", "  ", "Cloud 9"]}')
        assert payload.businesses == ["Cloud 9"]

    def test_unknown_sentiment_becomes_none(self) -> None:
        payload = parse_citation_payload('{"businesses": [], "sentiment": "ecstatic"}')
        assert payload.sentiment is None

    @pytest.mark.parametrize(("raw_score", "expected"), [(150, 100.0), (-5, 0.0), (72.5, 72.5)])
    def test_accuracy_score_is_clamped(self, raw_score: float, expected: float) -> None:
        payload = parse_accuracy_payload(json.dumps({"accuracy_score": raw_score}))
        assert payload.accuracy_score == pytest.approx(expected)


class TestBusinessMatching:
    def test_substring_either_direction_case_insensitive(self) -> None:
        assert business_matches("charcoal n chill hookah lounge", "Charcoal N Chill")
        assert business_matches("Charcoal", "Charcoal N Chill")
        assert not business_matches("Cloud 9 Lounge", "Charcoal N Chill")

    def test_blank_never_matches(self) -> None:
        assert not business_matches("", "Charcoal N Chill")

    def test_rank_is_one_based(self) -> None:
        assert find_rank(["Cloud 9", "Charcoal N Chill"], "Charcoal N Chill") == 2
        assert find_rank(["Cloud 9"], "Charcoal N Chill") is None


class TestCitationResult:
    def test_cited_record_has_rank_competitors_and_source(self, query) -> None:
        raw = citation_json(["Cloud 9 Lounge", "Charcoal N Chill", "Sahara"], "https://charcoalnchill.com")
        record = _citation(Authentic(engine="openai", text=raw), query)

        assert record.cited is True
        assert record.rank_position == 2
        assert record.mentioned_competitors == ("Cloud 9 Lounge", "Sahara")
        assert record.cited_sources == ("https://charcoalnchill.com",)
        assert record.degraded is False

    def test_uncited_record_has_no_rank_or_sources(self, query) -> None:
        raw = citation_json(["Cloud 9 Lounge"], "https://cloud9.com")
        record = _citation(Authentic(engine="openai", text=raw), query)

        assert record.cited is False
        assert record.rank_position is None
        assert record.cited_sources == ()
        assert record.mentioned_competitors == ("Cloud 9 Lounge",)

    def test_malformed_text_degrades_with_parse_error(self, query) -> None:
        record = _citation(Authentic(engine="perplexity", text="no json here"), query)

        assert record.degraded is True
        assert record.degradation_reason == "parse_error"
        assert record.cited is False
        assert record.rank_position is None
        assert record.raw_response == "no json here"

    def test_mock_result_keeps_degraded_flag(self, query) -> None:
        result = Degraded(
            engine="openai",
            text=build_mock_body("openai", "OPENAI_API_KEY"),
            reason="missing_credential",
        )
        record = _citation(result, query)

        assert record.degraded is True
        assert record.degradation_reason == "missing_credential"
        assert record.cited is False


class TestAccuracyResult:
    def test_authentic_audit(self) -> None:
        raw = json.dumps(
            {
                "accuracy_score": 64,
                "hallucinations_detected": ["Claims it closes at 9pm"],
                "response_text": "A hookah lounge in Alpharetta.",
            }
        )
        record = parse_accuracy_result(Authentic(engine="anthropic", text=raw), run_at=RUN_AT)

        assert record.accuracy_score == pytest.approx(64.0)
        assert record.hallucinations == (Hallucination(claim_text="Claims it closes at 9pm"),)
        assert record.degraded is False

    def test_structured_hallucinations_keep_their_fields(self) -> None:
        raw = json.dumps(
            {
                "accuracy_score": 40,
                "hallucinations_detected": [
                    {
                        "claim_text": "Permanently closed",
                        "severity": "CRITICAL",
                        "category": "status",
                        "expected_truth": "Open daily from 5pm",
                    },
                    {"claim_text": "Serves brunch", "severity": "extreme", "category": "breakfast"},
                    {"severity": "high"},
                    "",
                ],
            }
        )
        record = parse_accuracy_result(Authentic(engine="openai", text=raw), run_at=RUN_AT)

        assert record.hallucinations == (
            Hallucination(
                claim_text="Permanently closed",
                severity="critical",
                category="status",
                expected_truth="Open daily from 5pm",
            ),
            Hallucination(claim_text="Serves brunch", severity="medium", category=None),
        )
        assert record.degraded is False

    def test_malformed_audit_scores_zero(self) -> None:
        record = parse_accuracy_result(Authentic(engine="anthropic", text="oops"), run_at=RUN_AT)

        assert record.accuracy_score == 0.0
        assert record.hallucinations == ()
        assert record.degraded is True
        assert record.degradation_reason == "parse_error"

    def test_mock_audit_reports_placeholder_score(self) -> None:
        result = Degraded(
            engine="gemini",
            text=build_mock_body("gemini", "GOOGLE_GENERATIVE_AI_API_KEY"),
            reason="missing_credential",
        )
        record = parse_accuracy_result(result, run_at=RUN_AT)

        assert record.accuracy_score == pytest.approx(80.0)
        assert record.response_text.startswith("[MOCK]")
        assert record.degraded is True


class TestEvaluationRecordInvariant:
    def test_cited_requires_rank(self) -> None:
        with pytest.raises(ValueError):
            EvaluationRecord(
                query_id="q", query_text="t", category="custom", engine="openai", cited=True, rank_position=None
            )

    def test_uncited_forbids_rank(self) -> None:
        with pytest.raises(ValueError):
            EvaluationRecord(
                query_id="q", query_text="t", category="custom", engine="openai", cited=False, rank_position=1
            )

    def test_rank_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            EvaluationRecord(
                query_id="q", query_text="t", category="custom", engine="openai", cited=True, rank_position=0
            )
