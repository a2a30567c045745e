"""
tests/test_engine_adapter.py

Unit tests for EngineAdapter: mock fallback, provider failure handling and
the tagged result variants.
"""

from __future__ import annotations

import json

import pytest

from conftest import FakeGateway
from engines.adapter import MOCK_ACCURACY_SCORE, MOCK_MARKER, EngineAdapter, build_mock_body
from engines.gateway import ProviderError
from engines.result import Authentic, Degraded


class TestMockBody:
    def test_names_missing_credential_first(self) -> None:
        body = json.loads(build_mock_body("perplexity", "PERPLEXITY_API_KEY"))
        assert "PERPLEXITY_API_KEY" in body["hallucinations_detected"][0]

    def test_carries_fixed_score_and_marker(self) -> None:
        body = json.loads(build_mock_body("openai", "OPENAI_API_KEY"))
        assert body["accuracy_score"] == MOCK_ACCURACY_SCORE == 80
        assert body["response_text"].startswith(MOCK_MARKER)

    def test_never_cites_a_business(self) -> None:
        body = json.loads(build_mock_body("gemini", "GOOGLE_GENERATIVE_AI_API_KEY"))
        assert body["businesses"] == []
        assert body["cited_url"] is None

    def test_is_deterministic(self) -> None:
        assert build_mock_body("openai", "OPENAI_API_KEY") == build_mock_body("openai", "OPENAI_API_KEY")


class TestEvaluate:
    def test_missing_credential_never_calls_gateway(self) -> None:
        gateway = FakeGateway("openai", api_key=None)
        adapter = EngineAdapter({"openai": gateway})

        result = adapter.evaluate("openai", "best hookah lounge")

        assert isinstance(result, Degraded)
        assert result.reason == "missing_credential"
        assert result.degraded is True
        assert gateway.calls == []
        assert "OPENAI_API_KEY" in json.loads(result.text)["hallucinations_detected"][0]

    def test_credential_present_makes_exactly_one_call(self) -> None:
        gateway = FakeGateway("anthropic", response='{"businesses": []}')
        adapter = EngineAdapter({"anthropic": gateway})

        result = adapter.evaluate("anthropic", "prompt")

        assert isinstance(result, Authentic)
        assert result.degraded is False
        assert result.text == '{"businesses": []}'
        assert len(gateway.calls) == 1

    def test_uses_default_temperature_when_none_given(self) -> None:
        gateway = FakeGateway("openai")
        adapter = EngineAdapter({"openai": gateway}, default_temperature=0.0)

        adapter.evaluate("openai", "prompt")

        assert gateway.calls[0][1] == pytest.approx(0.0)

    def test_caller_temperature_overrides_default(self) -> None:
        gateway = FakeGateway("openai")
        adapter = EngineAdapter({"openai": gateway}, default_temperature=0.0)

        adapter.evaluate("openai", "prompt", temperature=0.3)

        assert gateway.calls[0][1] == pytest.approx(0.3)

    def test_provider_error_returns_mock_tagged_provider_error(self) -> None:
        gateway = FakeGateway("gemini", error=ProviderError("gemini", "HTTP 503", status_code=503))
        adapter = EngineAdapter({"gemini": gateway})

        result = adapter.evaluate("gemini", "prompt")

        assert isinstance(result, Degraded)
        assert result.reason == "provider_error"
        assert "503" in result.detail
        assert result.text == build_mock_body("gemini", "GOOGLE_GENERATIVE_AI_API_KEY")

    def test_unexpected_exception_is_also_contained(self) -> None:
        gateway = FakeGateway("openai", error=RuntimeError("socket closed"))
        adapter = EngineAdapter({"openai": gateway})

        result = adapter.evaluate("openai", "prompt")

        assert isinstance(result, Degraded)
        assert result.reason == "provider_error"

    def test_unknown_engine_is_a_caller_error(self) -> None:
        adapter = EngineAdapter({"openai": FakeGateway("openai")})
        assert adapter.supports("openai")
        assert not adapter.supports("bing")
        with pytest.raises(KeyError):
            adapter.evaluate("bing", "prompt")


class TestDegradedResult:
    def test_rejects_unknown_reason(self) -> None:
        with pytest.raises(ValueError):
            Degraded(engine="openai", text="{}", reason="timeout")
