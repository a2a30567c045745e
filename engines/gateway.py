"""
engines/gateway.py

Provider gateways: one per AI answer engine.

A gateway owns the provider-specific request and response shapes and
exposes only ``call(prompt) -> text`` plus a credential-presence check.
Failures are raised as ProviderError; turning them into mock results is
the adapter's job, not the gateway's.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from app.config import EngineConfig, EngineSettings

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """
    Raised when a provider call fails: transport error, timeout, non-2xx
    status or an answer without text.
    """

    def __init__(self, engine: str, message: str, status_code: Optional[int] = None) -> None:
        self.engine = engine
        self.status_code = status_code
        super().__init__(f"{engine}: {message}")


class ProviderGateway(ABC):
    """
    Engine-specific transport behind a uniform call interface.
    """

    def __init__(self, config: EngineConfig, *, timeout_seconds: float, max_tokens: int) -> None:
        self.engine = config.engine
        self.credential_name = config.credential_name
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._max_tokens = max_tokens

    def has_credential(self) -> bool:
        return bool(self._config.api_key)

    @abstractmethod
    def call(self, prompt: str, *, temperature: float) -> str:
        """
        Send one prompt and return the answer text.

        Raises ProviderError on any failure.
        """


class OpenAIChatGateway(ProviderGateway):
    """
    Chat-completions gateway for OpenAI and OpenAI-compatible engines
    (Perplexity serves the same API shape under its own base URL).
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        timeout_seconds: float,
        max_tokens: int,
        client: Any = None,
    ) -> None:
        super().__init__(config, timeout_seconds=timeout_seconds, max_tokens=max_tokens)
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                timeout=self._timeout_seconds,
                max_retries=0,
            )
        return self._client

    def call(self, prompt: str, *, temperature: float) -> str:
        from openai import OpenAIError

        try:
            response = self._get_client().chat.completions.create(
                model=self._config.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=self._max_tokens,
                stream=False,
            )
        except OpenAIError as exc:
            raise ProviderError(self.engine, str(exc), getattr(exc, "status_code", None)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError(self.engine, "empty completion")
        return content


class _HTTPGateway(ProviderGateway):
    """
    Shared single-request mechanics for gateways that speak raw HTTP.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        timeout_seconds: float,
        max_tokens: int,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(config, timeout_seconds=timeout_seconds, max_tokens=max_tokens)
        self._session = session or requests.Session()

    def _post_json(
        self,
        url: str,
        *,
        payload: dict[str, Any],
        headers: dict[str, str],
        params: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = self._session.post(
                url,
                json=payload,
                headers=headers,
                params=params,
                timeout=self._timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise ProviderError(self.engine, f"transport failure: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Provider request failed engine=%s status=%s",
                self.engine,
                response.status_code,
            )
            raise ProviderError(
                self.engine,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.engine, "response was not valid JSON") from exc


class AnthropicGateway(_HTTPGateway):
    """
    Messages API gateway.
    """

    API_VERSION = "2023-06-01"

    def call(self, prompt: str, *, temperature: float) -> str:
        body = self._post_json(
            self._config.base_url,
            payload={
                "model": self._config.model,
                "max_tokens": self._max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
            headers={
                "x-api-key": self._config.api_key or "",
                "anthropic-version": self.API_VERSION,
                "content-type": "application/json",
            },
        )
        blocks = body.get("content") if isinstance(body, dict) else None
        text = "".join(
            block.get("text", "")
            for block in blocks or []
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text:
            raise ProviderError(self.engine, "no text content in response")
        return text


class GeminiGateway(_HTTPGateway):
    """
    generateContent gateway.
    """

    def call(self, prompt: str, *, temperature: float) -> str:
        url = f"{self._config.base_url.rstrip('/')}/{self._config.model}:generateContent"
        body = self._post_json(
            url,
            payload={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "maxOutputTokens": self._max_tokens,
                },
            },
            headers={"content-type": "application/json"},
            params={"key": self._config.api_key or ""},
        )
        candidates = body.get("candidates") if isinstance(body, dict) else None
        if not candidates:
            raise ProviderError(self.engine, "no candidates in response")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not text:
            raise ProviderError(self.engine, "no text content in response")
        return text


_GATEWAY_CLASSES: dict[str, type[ProviderGateway]] = {
    "openai": OpenAIChatGateway,
    "perplexity": OpenAIChatGateway,
    "anthropic": AnthropicGateway,
    "gemini": GeminiGateway,
}


def build_gateways(settings: EngineSettings) -> dict[str, ProviderGateway]:
    """
    Instantiate one gateway per configured engine.
    """

    return {
        engine: _GATEWAY_CLASSES[engine](
            config,
            timeout_seconds=settings.timeout_seconds,
            max_tokens=settings.max_tokens,
        )
        for engine, config in settings.engines.items()
        if engine in _GATEWAY_CLASSES
    }
