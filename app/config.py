"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files

SUPPORTED_ENGINES: tuple[str, ...] = ("openai", "perplexity", "anthropic", "gemini")

# Environment variable holding each engine's provider credential.
ENGINE_CREDENTIAL_NAMES: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GOOGLE_GENERATIVE_AI_API_KEY",
}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """
    Read a comma-separated list from environment variables.
    """

    raw_value = _get_optional_str_env(name)
    if raw_value is None:
        return default
    items = tuple(item.strip().lower() for item in raw_value.split(",") if item.strip())
    return items or default


@dataclass(frozen=True)
class EngineConfig:
    """
    Connection settings for one AI answer engine.
    """

    engine: str
    credential_name: str
    api_key: str | None
    model: str
    base_url: str


@dataclass(frozen=True)
class EngineSettings:
    """
    Provider call behaviour shared by every engine.
    """

    engines: dict[str, EngineConfig] = field(default_factory=dict)
    default_temperature: float = 0.0
    sov_temperature: float = 0.3
    timeout_seconds: float = 30.0
    max_tokens: int = 1024


@dataclass(frozen=True)
class BatchSettings:
    """
    Fan-out settings for SOV batches.
    """

    max_workers: int = 4
    engine_delay_seconds: float = 0.5
    default_engines: tuple[str, ...] = ("openai", "perplexity")


@dataclass(frozen=True)
class RevenueSettings:
    """
    Default business economics for revenue leak estimates.
    """

    avg_ticket: float = 45.0
    monthly_searches: int = 2000
    local_conversion_rate: float = 0.03
    walk_away_rate: float = 0.65


_ENGINE_DEFAULTS: dict[str, tuple[str, str]] = {
    "openai": ("gpt-4o-mini", "https://api.openai.com/v1"),
    "perplexity": ("sonar", "https://api.perplexity.ai"),
    "anthropic": ("claude-3-5-haiku-latest", "https://api.anthropic.com/v1/messages"),
    "gemini": (
        "gemini-1.5-flash",
        "https://generativelanguage.googleapis.com/v1beta/models",
    ),
}


@lru_cache(maxsize=1)
def get_engine_settings() -> EngineSettings:
    """
    Return cached engine settings.

    Credentials are read from the provider-specific variables listed in
    ENGINE_CREDENTIAL_NAMES; a missing credential is not an error.
    ENGINE_MOCK_MODE drops every credential so all engines use the mock.
    """

    mock_mode = is_mock_mode()
    engines: dict[str, EngineConfig] = {}
    for engine in SUPPORTED_ENGINES:
        default_model, default_base_url = _ENGINE_DEFAULTS[engine]
        prefix = engine.upper()
        credential_name = ENGINE_CREDENTIAL_NAMES[engine]
        engines[engine] = EngineConfig(
            engine=engine,
            credential_name=credential_name,
            api_key=None if mock_mode else _get_optional_str_env(credential_name),
            model=_get_str_env(f"{prefix}_MODEL", default_model),
            base_url=_get_str_env(f"{prefix}_BASE_URL", default_base_url),
        )

    return EngineSettings(
        engines=engines,
        default_temperature=_get_float_env("ENGINE_DEFAULT_TEMPERATURE", 0.0),
        sov_temperature=_get_float_env("SOV_TEMPERATURE", 0.3),
        timeout_seconds=max(1.0, _get_float_env("ENGINE_TIMEOUT_SECONDS", 30.0)),
        max_tokens=max(64, _get_int_env("ENGINE_MAX_TOKENS", 1024)),
    )


@lru_cache(maxsize=1)
def get_batch_settings() -> BatchSettings:
    """
    Return cached SOV batch settings.
    """

    default_engines = tuple(
        engine
        for engine in _get_list_env("SOV_ENGINES", ("openai", "perplexity"))
        if engine in SUPPORTED_ENGINES
    )
    return BatchSettings(
        max_workers=max(1, _get_int_env("SOV_BATCH_MAX_WORKERS", 4)),
        engine_delay_seconds=max(0.0, _get_float_env("SOV_ENGINE_DELAY_SECONDS", 0.5)),
        default_engines=default_engines or ("openai",),
    )


@lru_cache(maxsize=1)
def get_revenue_settings() -> RevenueSettings:
    """
    Return cached revenue leak defaults.
    """

    return RevenueSettings(
        avg_ticket=_get_float_env("REVENUE_AVG_TICKET", 45.0),
        monthly_searches=max(0, _get_int_env("REVENUE_MONTHLY_SEARCHES", 2000)),
        local_conversion_rate=_get_float_env("REVENUE_LOCAL_CONVERSION_RATE", 0.03),
        walk_away_rate=_get_float_env("REVENUE_WALK_AWAY_RATE", 0.65),
    )


def is_mock_mode() -> bool:
    """
    True when ENGINE_MOCK_MODE forces every engine onto the mock path.
    """

    return _get_bool_env("ENGINE_MOCK_MODE", False)
