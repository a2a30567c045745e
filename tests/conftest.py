"""
tests/conftest.py

Shared fixtures: tenants, tracked queries and in-memory provider gateways.
No test touches the network or a database.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Union

import pytest

from app.config import ENGINE_CREDENTIAL_NAMES, EngineConfig
from engines.gateway import ProviderGateway
from sov.models import Tenant, TrackedQuery

ORG_ID = "0b6f3c1e-5d7a-4c1f-9a63-1f2e3d4c5b6a"
LOCATION_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"
RUN_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeGateway(ProviderGateway):
    """Gateway that answers from memory and records every prompt it receives."""

    def __init__(
        self,
        engine: str,
        *,
        api_key: Optional[str] = "test-key",
        response: Union[str, Callable[[str], str]] = "{}",
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            EngineConfig(
                engine=engine,
                credential_name=ENGINE_CREDENTIAL_NAMES.get(engine, "TEST_API_KEY"),
                api_key=api_key,
                model="test-model",
                base_url="http://localhost.invalid",
            ),
            timeout_seconds=1.0,
            max_tokens=64,
        )
        self._response = response
        self._error = error
        self._lock = threading.Lock()
        self.calls: list[tuple[str, float]] = []

    def call(self, prompt: str, *, temperature: float) -> str:
        with self._lock:
            self.calls.append((prompt, temperature))
        if self._error is not None:
            raise self._error
        if callable(self._response):
            return self._response(prompt)
        return self._response


def citation_json(businesses: list[str], cited_url: Optional[str] = None) -> str:
    return json.dumps({"businesses": businesses, "cited_url": cited_url})


@pytest.fixture()
def tenant() -> Tenant:
    return Tenant(
        org_id=ORG_ID,
        location_id=LOCATION_ID,
        business_name="Charcoal N Chill",
        city="Alpharetta",
        state="GA",
        categories=("hookah lounge",),
        competitors=("Cloud 9 Lounge", "Sahara Hookah"),
        address="11950 Jones Bridge Rd Ste 103",
        phone="(470) 546-4866",
        website="https://charcoalnchill.com",
    )


@pytest.fixture()
def make_query() -> Callable[..., TrackedQuery]:
    def _make(
        query_id: str,
        text: str,
        category: str = "discovery",
        *,
        org_id: str = ORG_ID,
        location_id: str = LOCATION_ID,
        priority: int = 1,
    ) -> TrackedQuery:
        return TrackedQuery(
            id=query_id,
            org_id=org_id,
            location_id=location_id,
            query_text=text,
            category=category,
            priority=priority,
        )

    return _make
