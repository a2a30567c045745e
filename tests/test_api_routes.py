"""
tests/test_api_routes.py

HTTP tests for the scoring and visibility routers. The visibility service
and the database session are replaced through dependency overrides.
"""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routers import scores_router, visibility_router
from app.services.visibility_service import (
    AuditRunResult,
    AuthorityRunResult,
    BatchRunResult,
    NAPHealthRunResult,
    PersistenceSummary,
    RevenueLeakRunResult,
    get_visibility_service,
)
from conftest import LOCATION_ID, ORG_ID, RUN_AT
from db.repositories import LocationNotFoundError
from db.session import get_db
from scoring.authority import AuthorityInputs, score_entity_authority
from scoring.nap import AdapterResult, PlatformDiscrepancy, score_nap_health
from scoring.revenue import HallucinationInput, RevenueConfig, estimate_revenue_leak
from sov.models import (
    AccuracyRecord,
    AggregateSnapshot,
    AuditSummary,
    BatchSummary,
    EvaluationRecord,
    Gap,
    Hallucination,
    PairError,
)


@pytest.fixture()
def service() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def client(service: MagicMock) -> TestClient:
    app = FastAPI()
    app.include_router(scores_router)
    app.include_router(visibility_router)
    app.dependency_overrides[get_db] = lambda: MagicMock()
    app.dependency_overrides[get_visibility_service] = lambda: service
    return TestClient(app)


class TestNAPRoute:
    def test_scores_platform_listings(self, client: TestClient) -> None:
        response = client.post(
            "/scores/nap",
            json={
                "ground_truth": {"name": "Charcoal N Chill", "address": "11950 Jones Bridge Rd", "phone": "4705464866"},
                "adapter_results": [
                    {"platform": "google", "status": "ok", "data": {"phone": "470-555-0000"}},
                    {"platform": "bing", "status": "unconfigured"},
                ],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 70
        assert body["grade"] == "C"
        assert body["platforms_checked"] == 2
        assert body["discrepancies"][0]["discrepant_fields"][0]["severity"] == "critical"
        assert body["discrepancies"][0]["auto_correctable"] is True

    def test_ground_truth_without_phone_flags_nothing(self, client: TestClient) -> None:
        response = client.post(
            "/scores/nap",
            json={
                "ground_truth": {"name": "Cafe", "address": "1 Main St"},
                "adapter_results": [
                    {
                        "platform": "yelp",
                        "status": "ok",
                        "data": {"name": "Cafe", "address": "1 Main St", "phone": "(555) 123-4567"},
                    }
                ],
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 100
        assert body["grade"] == "A"
        assert body["critical_discrepancies"] == 0

    def test_free_form_hours_are_compared(self, client: TestClient) -> None:
        response = client.post(
            "/scores/nap",
            json={
                "ground_truth": {"name": "Cafe", "hours": {"monday": "9am-5pm"}},
                "adapter_results": [
                    {"platform": "yelp", "status": "ok", "data": {"hours": {"monday": "9am-5pm"}}},
                    {"platform": "bing", "status": "ok", "data": {"hours": {"monday": "10am-5pm"}}},
                ],
            },
        )

        assert response.status_code == 200
        statuses = [item["status"] for item in response.json()["discrepancies"]]
        assert statuses == ["match", "discrepancy"]

    def test_unknown_status_is_a_validation_error(self, client: TestClient) -> None:
        response = client.post(
            "/scores/nap",
            json={"ground_truth": {"name": "X"}, "adapter_results": [{"platform": "yelp", "status": "timeout"}]},
        )
        assert response.status_code == 422


class TestAuthorityRoute:
    def test_scores_citations(self, client: TestClient) -> None:
        response = client.post(
            "/scores/authority",
            json={
                "business_name": "Charcoal N Chill",
                "city": "Alpharetta",
                "brand_domain": "charcoalnchill.com",
                "citation_urls": ["https://charcoalnchill.com", "https://www.yelp.com/biz/charcoal-n-chill"],
                "active_platform_count": 3,
                "previous_citation_total": 1,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["tier_breakdown"] == {"tier1": 1, "tier2": 1, "tier3": 0}
        assert body["velocity"] == pytest.approx(100.0)
        assert body["velocity_label"] == "growing"
        # 15 tier-1 + 5 tier-2 + 12 breadth + 0 sameAs + 10 velocity
        assert body["score"] == 42
        assert 0 < len(body["recommendations"]) <= 5


class TestRevenueLeakRoute:
    def test_estimates_range(self, client: TestClient) -> None:
        response = client.post(
            "/scores/revenue-leak",
            json={
                "share_of_voice": 0.1,
                "hallucinations": [{"severity": "critical"}],
                "config": {"avg_ticket": 45, "monthly_searches": 2000, "local_conversion_rate": 0.03, "walk_away_rate": 0.65},
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["sov_gap_cost"] == {"low": pytest.approx(283.5), "high": pytest.approx(486.0)}
        assert body["leak_low"] == pytest.approx(1336.5)
        assert body["leak_high"] == pytest.approx(2241.0)

    def test_share_of_voice_must_be_a_fraction(self, client: TestClient) -> None:
        assert client.post("/scores/revenue-leak", json={"share_of_voice": 25}).status_code == 422


class TestSovBatchRoute:
    def test_returns_summary_and_snapshot(self, client: TestClient, service: MagicMock) -> None:
        record = EvaluationRecord(
            query_id="q-1",
            query_text="best hookah lounge in Alpharetta GA",
            category="discovery",
            engine="openai",
            cited=True,
            rank_position=1,
            run_at=RUN_AT,
        )
        service.run_sov_batch.return_value = BatchRunResult(
            summary=BatchSummary(success=True, queries_run=1, queries_cited=1, first_mover_count=1, records=(record,)),
            snapshot=AggregateSnapshot(
                org_id=ORG_ID,
                location_id=LOCATION_ID,
                snapshot_date=date(2026, 3, 1),
                share_of_voice=1.0,
                citation_rate=0.0,
                first_mover_count=1,
                query_count=1,
                engines=("openai",),
            ),
            persistence=PersistenceSummary(rows_written=2),
        )

        response = client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/sov-batch", json={"engines": ["OpenAI"]})

        assert response.status_code == 200
        body = response.json()
        assert body["queries_run"] == 1
        assert body["records"][0]["rank_position"] == 1
        assert body["snapshot"]["share_of_voice"] == 1.0
        assert body["rows_written"] == 2
        assert service.run_sov_batch.call_args.kwargs["engines"] == ["openai"]

    def test_body_is_optional(self, client: TestClient, service: MagicMock) -> None:
        service.run_sov_batch.return_value = BatchRunResult(
            summary=BatchSummary(success=False, queries_run=0, queries_cited=0, first_mover_count=0),
            snapshot=None,
            persistence=PersistenceSummary(),
        )

        response = client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/sov-batch")

        assert response.status_code == 200
        assert response.json()["snapshot"] is None
        assert service.run_sov_batch.call_args.kwargs["engines"] is None

    def test_unknown_location_is_404(self, client: TestClient, service: MagicMock) -> None:
        service.run_sov_batch.side_effect = LocationNotFoundError("Location not found.")
        assert client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/sov-batch").status_code == 404

    def test_malformed_id_is_400(self, client: TestClient, service: MagicMock) -> None:
        service.run_sov_batch.side_effect = ValueError("badly formed hexadecimal UUID string")
        assert client.post(f"/visibility/{ORG_ID}/not-a-uuid/sov-batch").status_code == 400


class TestGapsRoute:
    def test_lists_gaps_without_persisting_by_default(self, client: TestClient, service: MagicMock) -> None:
        service.compute_gaps.return_value = [
            Gap(
                gap_id="abc123",
                gap_type="untracked",
                query_text="best hookah lounge in Alpharetta GA",
                category="discovery",
                estimated_impact="high",
                suggested_action="Track this query.",
            )
        ]

        response = client.get(f"/visibility/{ORG_ID}/{LOCATION_ID}/gaps", params={"exclude": ["x1", "x2"]})

        assert response.status_code == 200
        assert response.json()[0]["gap_id"] == "abc123"
        kwargs = service.compute_gaps.call_args.kwargs
        assert kwargs["persist"] is False
        assert kwargs["already_drafted"] == frozenset({"x1", "x2"})


class TestTruthAuditRoute:
    def test_returns_structured_hallucinations(self, client: TestClient, service: MagicMock) -> None:
        record = AccuracyRecord(
            engine="openai",
            accuracy_score=55.0,
            hallucinations=(
                Hallucination(
                    claim_text="Permanently closed",
                    severity="critical",
                    category="status",
                    expected_truth="Open nightly",
                ),
            ),
            response_text="A hookah lounge.",
            run_at=RUN_AT,
        )
        service.run_truth_audit.return_value = AuditRunResult(
            summary=AuditSummary(
                success=True,
                records=(record,),
                errors=(PairError(engine="gemini", code="provider_error", message="HTTP 500"),),
            ),
            persistence=PersistenceSummary(rows_written=2),
        )

        response = client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/truth-audit", json={"engines": ["OpenAI", "gemini"]})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["records"][0]["hallucinations"][0] == {
            "claim_text": "Permanently closed",
            "severity": "critical",
            "category": "status",
            "expected_truth": "Open nightly",
        }
        assert body["errors"][0]["code"] == "provider_error"
        assert body["rows_written"] == 2
        assert service.run_truth_audit.call_args.kwargs["engines"] == ["openai", "gemini"]

    def test_body_is_optional(self, client: TestClient, service: MagicMock) -> None:
        service.run_truth_audit.return_value = AuditRunResult(
            summary=AuditSummary(success=False), persistence=PersistenceSummary()
        )

        response = client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/truth-audit")

        assert response.status_code == 200
        assert response.json()["records"] == []
        assert service.run_truth_audit.call_args.kwargs["engines"] is None

    def test_unknown_location_is_404(self, client: TestClient, service: MagicMock) -> None:
        service.run_truth_audit.side_effect = LocationNotFoundError("Location not found.")
        assert client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/truth-audit").status_code == 404


class TestScoreSnapshotRoutes:
    def test_revenue_leak_snapshot(self, client: TestClient, service: MagicMock) -> None:
        config = RevenueConfig()
        service.snapshot_revenue_leak.return_value = RevenueLeakRunResult(
            leak=estimate_revenue_leak([HallucinationInput(severity="critical")], 0.1, [], config),
            persistence=PersistenceSummary(rows_written=1),
        )

        response = client.post(
            f"/visibility/{ORG_ID}/{LOCATION_ID}/revenue-leak",
            json={"config": {"avg_ticket": 45, "monthly_searches": 2000, "local_conversion_rate": 0.03, "walk_away_rate": 0.65}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["leak_high"] == pytest.approx(1755.0 + 486.0)
        assert body["rows_written"] == 1
        assert service.snapshot_revenue_leak.call_args.kwargs["config"] == config

    def test_revenue_leak_snapshot_defaults_config(self, client: TestClient, service: MagicMock) -> None:
        service.snapshot_revenue_leak.return_value = RevenueLeakRunResult(
            leak=estimate_revenue_leak([], 0.5, [], RevenueConfig()),
            persistence=PersistenceSummary(rows_written=1),
        )

        assert client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/revenue-leak").status_code == 200
        assert service.snapshot_revenue_leak.call_args.kwargs["config"] is None

    def test_authority_snapshot(self, client: TestClient, service: MagicMock) -> None:
        score = score_entity_authority(AuthorityInputs(active_platform_count=3))
        service.snapshot_authority.return_value = AuthorityRunResult(
            score=score,
            citation_total=0,
            recommendations=(),
            persistence=PersistenceSummary(rows_written=1),
        )

        response = client.post(f"/visibility/{ORG_ID}/{LOCATION_ID}/authority", json={"active_platform_count": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["score"] == score.score
        assert body["dimensions"]["platform_breadth_score"] == 12
        assert body["citation_total"] == 0
        assert service.snapshot_authority.call_args.kwargs["active_platform_count"] == 3

    def test_nap_health_snapshot(self, client: TestClient, service: MagicMock) -> None:
        results = [AdapterResult(platform="bing", status="unconfigured")]
        discrepancies = [PlatformDiscrepancy(platform="bing", status="unconfigured")]
        service.snapshot_nap_health.return_value = NAPHealthRunResult(
            score=score_nap_health(discrepancies, results),
            discrepancies=tuple(discrepancies),
            persistence=PersistenceSummary(rows_written=1),
        )

        response = client.post(
            f"/visibility/{ORG_ID}/{LOCATION_ID}/nap-health",
            json={"adapter_results": [{"platform": "bing", "status": "unconfigured"}]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 95
        assert body["discrepancies"][0]["status"] == "unconfigured"
        passed = service.snapshot_nap_health.call_args.kwargs["adapter_results"]
        assert passed == [AdapterResult(platform="bing", status="unconfigured")]

    def test_malformed_id_is_400(self, client: TestClient, service: MagicMock) -> None:
        service.snapshot_authority.side_effect = ValueError("location_id must be a valid UUID.")
        assert client.post(f"/visibility/{ORG_ID}/not-a-uuid/authority").status_code == 400
