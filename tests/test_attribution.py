"""Tests for per-opportunity attribution and batch analysis."""

import asyncio
import threading
import time
import pytest
from datetime import date, datetime, timedelta

from attribution import AttributionAnalyzer, build_attribution_result
from attribution_engine import AttributionEngine
from db import Database
from exceptions import OpportunityNotFoundError, StoreUnavailableError
from models import AttributionModel, DateRange, Opportunity, Touchpoint, TouchpointType
from repository import TouchpointRepository


@pytest.fixture
def engine():
    return AttributionEngine(strict=True)


@pytest.fixture
def sample_opportunity():
    """Opportunity with touchpoints recorded out of order."""
    base = datetime(2025, 2, 1, 10, 0)
    return Opportunity(
        id="OPP-001",
        name="Acme Corp - Platform Expansion",
        total_value=100000.0,
        touchpoints=[
            Touchpoint("T3", "OPP-001", TouchpointType.MEETING, base + timedelta(days=10), "Demo"),
            Touchpoint("T1", "OPP-001", TouchpointType.EMAIL, base, "Intro email"),
            Touchpoint("T4", "OPP-001", TouchpointType.QUOTE_SENT, base + timedelta(days=20), "Quote"),
            Touchpoint("T2", "OPP-001", TouchpointType.CALL, base + timedelta(days=3), "Discovery"),
        ]
    )


# ============================================================================
# build_attribution_result
# ============================================================================

def test_result_sorts_touchpoints(engine, sample_opportunity):
    result = build_attribution_result(sample_opportunity, engine)
    assert [tp.id for tp in result.touchpoints] == ["T1", "T2", "T3", "T4"]
    assert result.attribution[AttributionModel.FIRST_TOUCH]["T1"] == 100.0
    assert result.attribution[AttributionModel.LAST_TOUCH]["T4"] == 100.0
    assert result.attribution[AttributionModel.U_SHAPED] == pytest.approx(
        {"T1": 40.0, "T2": 10.0, "T3": 10.0, "T4": 40.0}
    )


def test_every_model_sums_to_100(engine, sample_opportunity):
    result = build_attribution_result(sample_opportunity, engine)
    for model in AttributionModel:
        assert sum(result.attribution[model].values()) == pytest.approx(100.0, abs=0.01)


def test_empty_opportunity_has_empty_maps(engine):
    result = build_attribution_result(Opportunity("OPP-002", "Empty", 5000.0), engine)
    assert not result.has_touchpoints
    assert all(credits == {} for credits in result.attribution.values())
    assert set(result.attribution.keys()) == set(AttributionModel)


def test_build_is_idempotent(engine, sample_opportunity):
    first = build_attribution_result(sample_opportunity, engine)
    second = build_attribution_result(sample_opportunity, engine)
    assert first.to_dict() == second.to_dict()


def test_to_dict_wire_shape(engine, sample_opportunity):
    payload = build_attribution_result(sample_opportunity, engine).to_dict()

    assert payload["opportunityId"] == "OPP-001"
    assert payload["opportunityName"] == "Acme Corp - Platform Expansion"
    assert payload["totalValue"] == 100000.0
    assert set(payload["attribution"].keys()) == {
        "firstTouch", "lastTouch", "linear", "timeDecay", "uShaped", "wShaped"
    }
    assert payload["touchpoints"][0] == {
        "id": "T1",
        "opportunityId": "OPP-001",
        "type": "EMAIL",
        "timestamp": "2025-02-01T10:00:00",
        "description": "Intro email",
    }


def test_attributed_value(engine, sample_opportunity):
    result = build_attribution_result(sample_opportunity, engine)
    assert result.attributed_value(AttributionModel.LINEAR, "T1") == pytest.approx(25000.0)
    assert result.attributed_value(AttributionModel.LINEAR, "missing") == 0.0


# ============================================================================
# AttributionAnalyzer
# ============================================================================

class FakeRepository:
    """In-memory stand-in for TouchpointRepository."""

    def __init__(self, opportunities, failures=None, delays=None):
        self.opportunities = {opp.id: opp for opp in opportunities}
        self.failures = failures or {}
        self.delays = delays or {}
        self.listed_with = None

    def list_opportunity_ids(self, tenant_id, date_range, owner_id=None, stage=None):
        self.listed_with = (tenant_id, date_range, owner_id, stage)
        return list(self.opportunities.keys()) + list(self.failures.keys())

    def fetch_opportunity_touchpoints(self, opportunity_id, date_range, tenant_id=None):
        if opportunity_id in self.delays:
            time.sleep(self.delays[opportunity_id])
        if opportunity_id in self.failures:
            raise self.failures[opportunity_id]
        return self.opportunities[opportunity_id]


def one_touch(opp_id, value, touchpoint_type=TouchpointType.CALL):
    return Opportunity(
        id=opp_id,
        name=f"Deal {opp_id}",
        total_value=value,
        touchpoints=[Touchpoint(f"{opp_id}-T1", opp_id, touchpoint_type, datetime(2025, 3, 1))]
    )


DATE_RANGE = DateRange(date(2025, 1, 1), date(2025, 3, 31))


def test_analyzer_returns_results_in_enumeration_order(engine):
    repository = FakeRepository([one_touch("A", 100.0), one_touch("B", 200.0), one_touch("C", 300.0)])
    analyzer = AttributionAnalyzer(repository, engine, max_concurrency=2)

    results = asyncio.run(analyzer.analyze("ORG001", DATE_RANGE, owner_id="rep-1", stage="Closed Won"))

    assert [r.opportunity_id for r in results] == ["A", "B", "C"]
    assert repository.listed_with == ("ORG001", DATE_RANGE, "rep-1", "Closed Won")


def test_analyzer_excludes_failed_fetches(engine, caplog):
    repository = FakeRepository(
        [one_touch("A", 100.0)],
        failures={
            "MISSING": OpportunityNotFoundError("MISSING"),
            "DOWN": StoreUnavailableError("connection refused", opportunity_id="DOWN"),
        }
    )
    analyzer = AttributionAnalyzer(repository, engine)

    with caplog.at_level("WARNING"):
        results = asyncio.run(analyzer.analyze("ORG001", DATE_RANGE))

    assert [r.opportunity_id for r in results] == ["A"]
    assert "MISSING" in caplog.text
    assert "DOWN" in caplog.text


def test_analyzer_excludes_timed_out_fetch(engine):
    repository = FakeRepository([one_touch("FAST", 100.0), one_touch("SLOW", 100.0)], delays={"SLOW": 0.5})
    analyzer = AttributionAnalyzer(repository, engine, fetch_timeout=0.1)

    results = asyncio.run(analyzer.analyze("ORG001", DATE_RANGE))

    assert [r.opportunity_id for r in results] == ["FAST"]


def test_analyzer_with_no_opportunities(engine):
    analyzer = AttributionAnalyzer(FakeRepository([]), engine)
    assert asyncio.run(analyzer.analyze("ORG001", DATE_RANGE)) == []


def test_analyzer_keeps_opportunities_without_touchpoints(engine):
    repository = FakeRepository([one_touch("A", 100.0), Opportunity("EMPTY", "No touches", 50.0)])
    results = asyncio.run(AttributionAnalyzer(repository, engine).analyze("ORG001", DATE_RANGE))

    assert [r.opportunity_id for r in results] == ["A", "EMPTY"]
    assert not results[1].has_touchpoints


def test_analyzer_caps_reads_still_running_after_timeout(engine):
    active = 0
    peak = 0
    lock = threading.Lock()

    class SlowRepository(FakeRepository):
        def fetch_opportunity_touchpoints(self, opportunity_id, date_range, tenant_id=None):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            try:
                time.sleep(0.2)
                return self.opportunities[opportunity_id]
            finally:
                with lock:
                    active -= 1

    repository = SlowRepository([one_touch("A", 100.0), one_touch("B", 100.0), one_touch("C", 100.0)])
    analyzer = AttributionAnalyzer(repository, engine, fetch_timeout=0.05, max_concurrency=1)

    results = asyncio.run(analyzer.analyze("ORG001", DATE_RANGE))

    assert results == []
    assert peak == 1


# ============================================================================
# Batch over a real store
# ============================================================================

@pytest.fixture
def store_repository(tmp_path):
    """Store with one clean won deal and one whose rows are corrupt."""
    db = Database(str(tmp_path / "batch.db"))
    db.init_db()
    repository = TouchpointRepository(db)

    for opp_id in ("GOOD", "BAD"):
        repository.add_opportunity("ORG001", opp_id, f"Deal {opp_id}", 1000.0,
                                   created_at=datetime(2025, 1, 2), actual_close_date="2025-02-01")
        repository.add_activity(opp_id, "EMAIL", datetime(2025, 1, 10), "Intro", activity_id=f"{opp_id}-A")

    return repository


def test_analyzer_skips_opportunity_with_unparsable_timestamp(engine, store_repository, caplog):
    store_repository.db.run_sql(
        "INSERT INTO activities(activity_id, opportunity_id, activity_type, subject, created_at) VALUES (?, ?, ?, ?, ?);",
        ("BAD-B", "BAD", "CALL", "Garbled", "not-a-date")
    )
    analyzer = AttributionAnalyzer(store_repository, engine)

    with caplog.at_level("WARNING"):
        results = asyncio.run(analyzer.analyze("ORG001", DATE_RANGE))

    assert [r.opportunity_id for r in results] == ["GOOD"]
    assert "Excluding opportunity BAD" in caplog.text


def test_analyzer_skips_opportunity_with_negative_stored_amount(engine, store_repository):
    store_repository.db.run_sql("UPDATE opportunities SET amount = -5 WHERE opportunity_id = ?;", ("BAD",))
    analyzer = AttributionAnalyzer(store_repository, engine)

    results = asyncio.run(analyzer.analyze("ORG001", DATE_RANGE))

    assert [r.opportunity_id for r in results] == ["GOOD"]
