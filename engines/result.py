"""
engines/result.py

Tagged result types returned by the engine adapter.

Every adapter call yields exactly one of two variants: ``Authentic`` when a
provider answered, ``Degraded`` when the deterministic mock stood in. Callers
branch on the variant instead of catching exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from app.failure_codes import MISSING_CREDENTIAL, PROVIDER_ERROR

DEGRADATION_REASONS = (MISSING_CREDENTIAL, PROVIDER_ERROR)


@dataclass(frozen=True)
class Authentic:
    """Text produced by a real provider call."""

    engine: str
    text: str

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded:
    """Mock text substituted for a provider answer.

    Attributes:
        engine: Engine the mock stands in for.
        text: Deterministic mock body.
        reason: ``missing_credential`` or ``provider_error``.
        detail: Human-readable cause, e.g. the exception message.
    """

    engine: str
    text: str
    reason: str
    detail: str = ""

    def __post_init__(self) -> None:
        if self.reason not in DEGRADATION_REASONS:
            raise ValueError(f"Unknown degradation reason '{self.reason}'.")

    @property
    def degraded(self) -> bool:
        return True


EngineRawResult = Union[Authentic, Degraded]
