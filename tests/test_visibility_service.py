"""
tests/test_visibility_service.py

Service-level tests: reads come from an in-memory reader, writes go to a
recording writer and the session is a MagicMock.
"""

from __future__ import annotations

import json
import uuid
from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.services.visibility_service import VisibilityService
from conftest import LOCATION_ID, ORG_ID, RUN_AT, FakeGateway, citation_json
from db.repositories import LocationNotFoundError, PersistenceError, ResultWriter
from engines.adapter import EngineAdapter
from scoring.nap import AdapterResult, NAPData
from scoring.revenue import RevenueConfig, sov_gap_cost
from sov.models import EvaluationRecord, Hallucination, Intercept, QueryHistory
from sov.orchestrator import BatchOrchestrator
from sov.rate_limiter import EngineRateLimiter
from sov.repository import VisibilityReader

QUERY_1 = "5f0c3b7e-1b4a-4b7e-9a1d-2c3e4f5a6b70"
QUERY_2 = "5f0c3b7e-1b4a-4b7e-9a1d-2c3e4f5a6b71"


class FakeReader(VisibilityReader):
    def __init__(
        self,
        tenant,
        queries,
        *,
        previous=(),
        history=(),
        intercepts=(),
        hallucinations=(),
        share_of_voice=None,
        citation_total=None,
    ) -> None:
        self.tenant = tenant
        self.queries = list(queries)
        self.previous = list(previous)
        self.history = list(history)
        self.intercepts = list(intercepts)
        self.hallucinations = list(hallucinations)
        self.share_of_voice = share_of_voice
        self.citation_total = citation_total
        self.previous_before = None
        self.citation_before = None

    def get_tenant(self, org_id, location_id):
        if (org_id, location_id) != (self.tenant.org_id, self.tenant.location_id):
            raise LocationNotFoundError(f"Location {location_id} not found.")
        return self.tenant

    def list_tracked_queries(self, org_id, location_id):
        return list(self.queries)

    def list_query_history(self, org_id, location_id):
        return list(self.history)

    def list_intercepts(self, org_id, location_id):
        return list(self.intercepts)

    def list_previous_run(self, org_id, location_id, *, before=None):
        self.previous_before = before
        return list(self.previous)

    def list_open_hallucinations(self, org_id, location_id):
        return list(self.hallucinations)

    def latest_share_of_voice(self, org_id, location_id):
        return self.share_of_voice

    def latest_citation_total(self, org_id, location_id, *, before=None):
        self.citation_before = before
        return self.citation_total


class RecordingWriter(ResultWriter):
    def __init__(self, fail_kinds=()) -> None:
        self.fail_kinds = set(fail_kinds)
        self.rows: list[tuple[str, dict]] = []

    def write(self, kind, row):
        if kind in self.fail_kinds:
            raise PersistenceError(kind, f"Failed to write {kind} row")
        self.rows.append((kind, dict(row)))
        return str(uuid.uuid4())

    def of(self, kind: str) -> list[dict]:
        return [row for written_kind, row in self.rows if written_kind == kind]


class _TestService(VisibilityService):
    def __init__(self, reader, writer, gateways) -> None:
        super().__init__(
            orchestrator=BatchOrchestrator(
                EngineAdapter(gateways),
                rate_limiter=EngineRateLimiter(delay_seconds=0),
            ),
            default_engines=tuple(gateways),
        )
        self.reader = reader
        self.writer = writer

    def _reader(self, db):
        return self.reader

    def _writer(self, db):
        return self.writer


def _answer(prompt: str) -> str:
    if "hookah" in prompt:
        return citation_json(["Charcoal N Chill", "Cloud 9 Lounge"], "https://charcoalnchill.com")
    return citation_json(["Cloud 9 Lounge"])


@pytest.fixture()
def queries(make_query):
    return [
        make_query(QUERY_1, "best hookah lounge in Alpharetta GA"),
        make_query(QUERY_2, "birthday dinner Alpharetta", "occasion"),
    ]


@pytest.fixture()
def gateways():
    return {
        "openai": FakeGateway("openai", response=_answer),
        "perplexity": FakeGateway("perplexity", response=_answer),
    }


class TestRunSovBatch:
    def test_persists_evaluations_and_snapshot(self, tenant, queries, gateways) -> None:
        reader = FakeReader(tenant, queries)
        writer = RecordingWriter()
        db = MagicMock()

        result = _TestService(reader, writer, gateways).run_sov_batch(
            db=db, org_id=ORG_ID, location_id=LOCATION_ID, run_at=RUN_AT
        )

        assert result.summary.success is True
        assert result.summary.queries_run == 4
        assert len(writer.of("sov_evaluation")) == 4
        assert all(row["run_date"] == RUN_AT.date() for row in writer.of("sov_evaluation"))
        snapshot_rows = writer.of("visibility_snapshot")
        assert len(snapshot_rows) == 1
        assert snapshot_rows[0]["share_of_voice"] == pytest.approx(0.5)
        assert "category_breakdown" in snapshot_rows[0]["details"]
        assert result.snapshot is not None
        assert result.persistence.rows_written == 5
        assert result.persistence.rows_failed == 0
        assert reader.previous_before == RUN_AT.date()
        db.commit.assert_called_once()

    def test_comparison_queries_record_intercepts(self, tenant, make_query, gateways) -> None:
        queries = [make_query(QUERY_1, "Charcoal N Chill vs Cloud 9 Lounge", "comparison")]
        writer = RecordingWriter()

        _TestService(FakeReader(tenant, queries), writer, gateways).run_sov_batch(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID, run_at=RUN_AT
        )

        intercepts = writer.of("competitor_intercept")
        assert sorted(row["engine"] for row in intercepts) == ["openai", "perplexity"]
        assert {row["winner"] for row in intercepts} == {"Cloud 9 Lounge"}
        assert {row["competitor_name"] for row in intercepts} == {"Cloud 9 Lounge"}
        assert all(row["run_date"] == RUN_AT.date() for row in intercepts)

    def test_engine_override(self, tenant, queries, gateways) -> None:
        writer = RecordingWriter()
        result = _TestService(FakeReader(tenant, queries), writer, gateways).run_sov_batch(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID, engines=["openai"]
        )

        assert result.summary.queries_run == 2
        assert {row["engine"] for row in writer.of("sov_evaluation")} == {"openai"}
        assert gateways["perplexity"].calls == []

    def test_failed_rows_do_not_stop_the_run(self, tenant, queries, gateways) -> None:
        writer = RecordingWriter(fail_kinds={"visibility_snapshot"})
        result = _TestService(FakeReader(tenant, queries), writer, gateways).run_sov_batch(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID
        )

        assert result.persistence.rows_written == 4
        assert result.persistence.rows_failed == 1

    def test_commit_failure_rolls_back(self, tenant, queries, gateways) -> None:
        db = MagicMock()
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection lost"))

        result = _TestService(FakeReader(tenant, queries), RecordingWriter(), gateways).run_sov_batch(
            db=db, org_id=ORG_ID, location_id=LOCATION_ID
        )

        db.rollback.assert_called_once()
        assert result.summary.success is True
        assert result.persistence.rows_written == 0
        assert result.persistence.rows_failed == 5

    def test_empty_batch_writes_nothing(self, tenant, gateways) -> None:
        writer = RecordingWriter()
        db = MagicMock()
        result = _TestService(FakeReader(tenant, []), writer, gateways).run_sov_batch(
            db=db, org_id=ORG_ID, location_id=LOCATION_ID
        )

        assert result.summary.success is False
        assert result.snapshot is None
        assert writer.rows == []
        db.commit.assert_not_called()

    def test_unknown_location_raises(self, tenant, queries, gateways) -> None:
        service = _TestService(FakeReader(tenant, queries), RecordingWriter(), gateways)
        with pytest.raises(LocationNotFoundError):
            service.run_sov_batch(db=MagicMock(), org_id=ORG_ID, location_id=str(uuid.uuid4()))


class TestRunTruthAudit:
    @staticmethod
    def _audit_gateway() -> FakeGateway:
        payload = {
            "accuracy_score": 70,
            "hallucinations_detected": [
                "Claims it closes at 9pm",
                "Claims it closes at 9pm",
                {"claim_text": "Lists a wrong phone", "severity": "critical", "category": "phone"},
            ],
            "response_text": "A hookah lounge.",
        }
        return FakeGateway("openai", response=json.dumps(payload))

    def test_writes_evaluation_then_distinct_hallucinations(self, tenant) -> None:
        writer = RecordingWriter()
        gateways = {"openai": self._audit_gateway(), "gemini": FakeGateway("gemini", api_key=None)}

        result = _TestService(FakeReader(tenant, []), writer, gateways).run_truth_audit(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID, run_at=RUN_AT
        )

        assert result.summary.success is True
        assert len(writer.of("ai_evaluation")) == 2
        hallucinations = writer.of("ai_hallucination")
        assert [row["claim_text"] for row in hallucinations] == ["Claims it closes at 9pm", "Lists a wrong phone"]
        assert all(row["evaluation_id"] is not None for row in hallucinations)
        assert all(row["engine"] == "openai" for row in hallucinations)
        assert [row["severity"] for row in hallucinations] == ["medium", "critical"]
        assert hallucinations[1]["category"] == "phone"

    def test_hallucinations_survive_a_failed_evaluation_row(self, tenant) -> None:
        writer = RecordingWriter(fail_kinds={"ai_evaluation"})
        result = _TestService(FakeReader(tenant, []), writer, {"openai": self._audit_gateway()}).run_truth_audit(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID
        )

        hallucinations = writer.of("ai_hallucination")
        assert len(hallucinations) == 2
        assert all(row["evaluation_id"] is None for row in hallucinations)
        assert result.persistence.rows_failed == 1
        assert result.persistence.rows_written == 2


class TestComputeGaps:
    def test_persists_gaps_by_default(self, tenant, make_query) -> None:
        history = [
            QueryHistory(query=make_query(f"h-{i}", f"zero query {i}"), evaluation_count=2, citation_count=0)
            for i in range(3)
        ]
        intercepts = [Intercept(query_text="hookah with live music", winner="Cloud 9 Lounge")]
        reader = FakeReader(tenant, [], history=history, intercepts=intercepts)
        writer = RecordingWriter()
        db = MagicMock()

        gaps = _TestService(reader, writer, {}).compute_gaps(db=db, org_id=ORG_ID, location_id=LOCATION_ID)

        assert len(gaps) == 10
        assert len(writer.of("query_gap")) == 10
        assert {row["gap_id"] for row in writer.of("query_gap")} == {gap.gap_id for gap in gaps}
        db.commit.assert_called_once()

    def test_read_only_mode(self, tenant) -> None:
        writer = RecordingWriter()
        db = MagicMock()
        gaps = _TestService(FakeReader(tenant, []), writer, {}).compute_gaps(
            db=db, org_id=ORG_ID, location_id=LOCATION_ID, persist=False
        )

        assert gaps
        assert writer.rows == []
        db.commit.assert_not_called()


class TestSeedQueries:
    def test_tracks_missing_library_queries(self, tenant, make_query) -> None:
        tracked = [make_query(QUERY_1, "best hookah lounge in Alpharetta GA")]
        writer = RecordingWriter()

        seeded = _TestService(FakeReader(tenant, tracked), writer, {}).seed_queries(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID, limit=5
        )

        assert len(seeded) == 5
        rows = writer.of("target_query")
        assert [row["query_text"] for row in rows] == [query.query_text for query in seeded]
        assert "best hookah lounge in Alpharetta GA" not in {row["query_text"] for row in rows}
        assert all(row["is_active"] for row in rows)

    def test_failed_writes_are_not_reported_as_seeded(self, tenant) -> None:
        writer = RecordingWriter(fail_kinds={"target_query"})
        seeded = _TestService(FakeReader(tenant, []), writer, {}).seed_queries(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID
        )
        assert seeded == []


def _cited(query_id: str, source: str, *, degraded: bool = False) -> EvaluationRecord:
    return EvaluationRecord(
        query_id=query_id,
        query_text="best hookah lounge in Alpharetta GA",
        category="discovery",
        engine="openai",
        cited=True,
        rank_position=1,
        cited_sources=(source,),
        run_at=RUN_AT,
        degraded=degraded,
    )


class TestSnapshotRevenueLeak:
    def test_estimates_from_stored_results(self, tenant) -> None:
        reader = FakeReader(
            tenant,
            [],
            hallucinations=[Hallucination("Permanently closed", severity="critical")],
            share_of_voice=0.1,
            intercepts=[
                Intercept(query_text="Charcoal N Chill vs Cloud 9 Lounge", winner="Cloud 9 Lounge"),
                Intercept(query_text="Charcoal N Chill vs Sahara Hookah", winner="Charcoal N Chill"),
            ],
        )
        writer = RecordingWriter()
        db = MagicMock()

        result = _TestService(reader, writer, {}).snapshot_revenue_leak(
            db=db,
            org_id=ORG_ID,
            location_id=LOCATION_ID,
            config=RevenueConfig(),
            snapshot_date=date(2026, 3, 1),
        )

        # one loss over two comparisons: 45 * 0.03 * (2000 / 2) * 0.1 = 135
        assert result.leak.hallucination_cost.high == pytest.approx(1755.0)
        assert result.leak.sov_gap_cost.high == pytest.approx(486.0)
        assert result.leak.competitor_steal_cost.high == pytest.approx(135.0)
        assert result.leak.leak_high == pytest.approx(1755.0 + 486.0 + 135.0)
        rows = writer.of("revenue_leak_snapshot")
        assert len(rows) == 1
        assert rows[0]["snapshot_date"] == date(2026, 3, 1)
        assert rows[0]["leak_low"] == result.leak.leak_low
        assert rows[0]["details"]["inputs"]["hallucination_count"] == 1
        assert rows[0]["details"]["inputs"]["intercept_count"] == 2
        assert result.persistence.rows_written == 1
        db.commit.assert_called_once()

    def test_unmeasured_location_counts_as_zero_share(self, tenant) -> None:
        result = _TestService(FakeReader(tenant, []), RecordingWriter(), {}).snapshot_revenue_leak(
            db=MagicMock(), org_id=ORG_ID, location_id=LOCATION_ID, config=RevenueConfig()
        )

        assert result.leak.sov_gap_cost == sov_gap_cost(0.0, RevenueConfig())
        assert result.leak.hallucination_cost.high == 0.0


class TestSnapshotAuthority:
    def test_scores_latest_run_citations(self, tenant) -> None:
        reader = FakeReader(
            tenant,
            [],
            previous=[
                _cited(QUERY_1, "https://charcoalnchill.com"),
                _cited(QUERY_2, "https://www.yelp.com/biz/charcoal-n-chill"),
                _cited(QUERY_2, "https://someblog.net/post", degraded=True),
            ],
            citation_total=1,
        )
        writer = RecordingWriter()

        result = _TestService(reader, writer, {}).snapshot_authority(
            db=MagicMock(),
            org_id=ORG_ID,
            location_id=LOCATION_ID,
            active_platform_count=3,
            snapshot_date=date(2026, 3, 1),
        )

        # 15 tier-1 + 5 tier-2 + 12 breadth + 0 sameAs + 10 velocity
        assert result.score.score == 42
        assert result.score.velocity_label == "growing"
        assert result.citation_total == 2
        assert 0 < len(result.recommendations) <= 5
        assert reader.citation_before == date(2026, 3, 1)
        rows = writer.of("authority_snapshot")
        assert rows[0]["citation_total"] == 2
        assert rows[0]["score"] == 42


class TestSnapshotNAPHealth:
    def test_scores_listings_against_stored_location(self, tenant) -> None:
        writer = RecordingWriter()
        adapter_results = [
            AdapterResult(platform="google", status="ok", data=NAPData(phone="470-555-0000")),
            AdapterResult(platform="yelp", status="ok", data=NAPData(name="Charcoal N Chill", phone="470.546.4866")),
            AdapterResult(platform="bing", status="unconfigured"),
        ]

        result = _TestService(FakeReader(tenant, []), writer, {}).snapshot_nap_health(
            db=MagicMock(),
            org_id=ORG_ID,
            location_id=LOCATION_ID,
            adapter_results=adapter_results,
            snapshot_date=date(2026, 3, 1),
        )

        assert result.score.score == 70
        assert [item.status for item in result.discrepancies] == ["discrepancy", "match", "unconfigured"]
        rows = writer.of("nap_health_snapshot")
        assert rows[0]["score"] == 70
        assert rows[0]["platforms_matched"] == 1
        assert rows[0]["snapshot_date"] == date(2026, 3, 1)

    def test_unknown_location_raises(self, tenant) -> None:
        with pytest.raises(LocationNotFoundError):
            _TestService(FakeReader(tenant, []), RecordingWriter(), {}).snapshot_nap_health(
                db=MagicMock(), org_id=ORG_ID, location_id=str(uuid.uuid4()), adapter_results=[]
            )
