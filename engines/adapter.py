"""
engines/adapter.py

Engine adapter: turns a prompt into a tagged engine result.

The adapter never raises. A missing credential short-circuits to a
deterministic mock without touching the gateway, and any gateway failure
falls back to the same mock tagged as a provider error.
"""

from __future__ import annotations

import json
import logging
from typing import Mapping, Optional

from app.config import EngineSettings, get_engine_settings
from app.failure_codes import MISSING_CREDENTIAL, PROVIDER_ERROR
from app.logging_utils import log_event, log_failure
from engines.gateway import ProviderGateway, build_gateways
from engines.result import Authentic, Degraded, EngineRawResult

logger = logging.getLogger(__name__)

MOCK_MARKER = "[MOCK]"
MOCK_ACCURACY_SCORE = 80


def build_mock_body(engine: str, credential_name: str) -> str:
    """Deterministic mock payload for an engine.

    The payload satisfies both the citation and the accuracy response
    shapes: it cites no business and reports a placeholder score, so a
    mock can never be mistaken for a real citation.

    Args:
        engine: Engine identifier.
        credential_name: Environment variable the engine's key is read from.

    Returns:
        A JSON string.
    """
    payload = {
        "accuracy_score": MOCK_ACCURACY_SCORE,
        "hallucinations_detected": [
            f"Mock evaluation: no {credential_name} is configured.",
            "Set the API key and re-run the audit to get real results.",
        ],
        "response_text": (
            f"{MOCK_MARKER} Simulated {engine} response. "
            "Configure the API key to run a real audit."
        ),
        "businesses": [],
        "cited_url": None,
    }
    return json.dumps(payload, sort_keys=True)


class EngineAdapter:
    """
    Dispatches prompts to provider gateways with mock fallback.
    """

    def __init__(
        self,
        gateways: Mapping[str, ProviderGateway],
        *,
        default_temperature: float = 0.0,
    ) -> None:
        self._gateways = dict(gateways)
        self._default_temperature = default_temperature

    @property
    def engines(self) -> tuple[str, ...]:
        return tuple(self._gateways)

    def supports(self, engine_id: str) -> bool:
        return engine_id in self._gateways

    def evaluate(
        self,
        engine_id: str,
        prompt: str,
        temperature: Optional[float] = None,
    ) -> EngineRawResult:
        """
        Evaluate one prompt on one engine.

        Unknown engines raise KeyError; callers validate engine ids before
        dispatch. Everything else resolves to Authentic or Degraded.
        """

        gateway = self._gateways[engine_id]
        effective_temperature = self._default_temperature if temperature is None else temperature

        if not gateway.has_credential():
            log_event(
                logger,
                logging.INFO,
                "engine_mock_fallback",
                engine=engine_id,
                code=MISSING_CREDENTIAL,
                credential=gateway.credential_name,
            )
            return Degraded(
                engine=engine_id,
                text=build_mock_body(engine_id, gateway.credential_name),
                reason=MISSING_CREDENTIAL,
                detail=f"{gateway.credential_name} is not set",
            )

        try:
            text = gateway.call(prompt, temperature=effective_temperature)
        except Exception as exc:
            log_failure(
                logger,
                logging.WARNING,
                "engine_call_failed",
                exc,
                code=PROVIDER_ERROR,
                engine=engine_id,
            )
            return Degraded(
                engine=engine_id,
                text=build_mock_body(engine_id, gateway.credential_name),
                reason=PROVIDER_ERROR,
                detail=str(exc),
            )

        return Authentic(engine=engine_id, text=text)


def build_engine_adapter(settings: EngineSettings | None = None) -> EngineAdapter:
    """
    Construct an adapter over every configured engine.
    """

    resolved = settings or get_engine_settings()
    return EngineAdapter(
        build_gateways(resolved),
        default_temperature=resolved.default_temperature,
    )
