"""Tests for the attribution model library."""

import pytest
from datetime import datetime, timedelta

from attribution_engine import (
    AttributionEngine,
    MODEL_FUNCTIONS,
    check_credit_total,
    credit_total,
    first_touch,
    last_touch,
    linear,
    sort_touchpoints,
    split_evenly,
    time_decay,
    u_shaped,
    w_shaped,
    w_shaped_milestone_index
)
from exceptions import ComputationInvariantError, ConfigurationError
from models import AttributionModel, Touchpoint, TouchpointType


def make_touchpoints(count, start=datetime(2025, 1, 1), step_days=3, ids=None):
    ids = ids or [f"T{i}" for i in range(count)]
    return [
        Touchpoint(
            id=ids[i],
            opportunity_id="OPP-1",
            type=TouchpointType.EMAIL,
            timestamp=start + timedelta(days=step_days * i)
        )
        for i in range(count)
    ]


# ============================================================================
# Degenerate touchpoint counts
# ============================================================================

@pytest.mark.parametrize("model", list(AttributionModel))
def test_empty_touchpoints_give_empty_credit(model):
    assert MODEL_FUNCTIONS[model]([]) == {}


@pytest.mark.parametrize("model", list(AttributionModel))
def test_single_touchpoint_gets_full_credit(model):
    touchpoints = make_touchpoints(1)
    assert MODEL_FUNCTIONS[model](touchpoints) == {"T0": 100.0}


@pytest.mark.parametrize("model", list(AttributionModel))
@pytest.mark.parametrize("count", [1, 2, 3, 4, 5, 7, 10, 33])
def test_credits_sum_to_100(model, count):
    credits = MODEL_FUNCTIONS[model](make_touchpoints(count))
    assert len(credits) == count
    assert credit_total(credits) == pytest.approx(100.0, abs=0.01)


# ============================================================================
# Individual models
# ============================================================================

def test_first_touch():
    credits = first_touch(make_touchpoints(4))
    assert credits == {"T0": 100.0, "T1": 0.0, "T2": 0.0, "T3": 0.0}


def test_last_touch():
    credits = last_touch(make_touchpoints(4))
    assert credits == {"T0": 0.0, "T1": 0.0, "T2": 0.0, "T3": 100.0}


def test_linear_equal_shares():
    credits = linear(make_touchpoints(3))
    for value in credits.values():
        assert value == pytest.approx(100 / 3, abs=0.01)
    assert sum(credits.values()) == 100.0


def test_split_evenly_gives_remainder_to_last():
    splits = split_evenly(100.0, ["a", "b", "c"])
    assert splits["a"] == splits["b"] == 100.0 / 3
    assert splits["a"] + splits["b"] + splits["c"] == 100.0


def test_time_decay_is_monotonic_toward_most_recent():
    touchpoints = make_touchpoints(6, step_days=5)
    credits = time_decay(touchpoints, half_life_days=7)
    values = [credits[tp.id] for tp in touchpoints]
    assert values == sorted(values)
    assert values[-1] > values[0]


def test_time_decay_halves_per_half_life():
    touchpoints = make_touchpoints(2, step_days=7)
    credits = time_decay(touchpoints, half_life_days=7)
    # weights 0.5 and 1.0
    assert credits["T0"] == pytest.approx(100 / 3)
    assert credits["T1"] == pytest.approx(200 / 3)


def test_time_decay_same_timestamp_splits_evenly():
    touchpoints = make_touchpoints(4, step_days=0)
    credits = time_decay(touchpoints)
    for value in credits.values():
        assert value == pytest.approx(25.0)


def test_time_decay_rejects_non_positive_half_life():
    with pytest.raises(ConfigurationError):
        time_decay(make_touchpoints(2), half_life_days=0)


def test_u_shaped_four_touchpoints():
    credits = u_shaped(make_touchpoints(4, ids=["A", "B", "C", "D"]))
    assert credits == pytest.approx({"A": 40.0, "B": 10.0, "C": 10.0, "D": 40.0})


def test_u_shaped_two_touchpoints():
    assert u_shaped(make_touchpoints(2)) == {"T0": 50.0, "T1": 50.0}


def test_u_shaped_three_touchpoints():
    assert u_shaped(make_touchpoints(3)) == pytest.approx({"T0": 40.0, "T1": 20.0, "T2": 40.0})


def test_w_shaped_five_touchpoints():
    credits = w_shaped(make_touchpoints(5, ids=["A", "B", "C", "D", "E"]))
    assert credits == pytest.approx({"A": 30.0, "B": 5.0, "C": 30.0, "D": 5.0, "E": 30.0})
    assert credit_total(credits) == pytest.approx(100.0)


def test_w_shaped_three_touchpoints_redistributes_remainder():
    credits = w_shaped(make_touchpoints(3))
    for value in credits.values():
        assert value == pytest.approx(100 / 3)


def test_w_shaped_four_touchpoints():
    # Milestone is index 1, so only index 2 shares the 10
    credits = w_shaped(make_touchpoints(4, ids=["A", "B", "C", "D"]))
    assert credits == pytest.approx({"A": 30.0, "B": 30.0, "C": 10.0, "D": 30.0})


def test_w_shaped_two_touchpoints():
    assert w_shaped(make_touchpoints(2)) == {"T0": 50.0, "T1": 50.0}


@pytest.mark.parametrize("count,expected", [(3, 1), (4, 1), (5, 2), (6, 2), (7, 3)])
def test_w_shaped_milestone_index(count, expected):
    assert w_shaped_milestone_index(count) == expected


def test_sort_touchpoints_is_stable_on_ties():
    same_time = datetime(2025, 3, 1, 9, 0)
    touchpoints = [
        Touchpoint(id="late", opportunity_id="O", type=TouchpointType.CALL, timestamp=same_time + timedelta(hours=1)),
        Touchpoint(id="first", opportunity_id="O", type=TouchpointType.CALL, timestamp=same_time),
        Touchpoint(id="second", opportunity_id="O", type=TouchpointType.NOTE, timestamp=same_time),
    ]
    assert [tp.id for tp in sort_touchpoints(touchpoints)] == ["first", "second", "late"]


# ============================================================================
# Invariant enforcement
# ============================================================================

def test_check_credit_total_strict_raises():
    with pytest.raises(ComputationInvariantError) as exc:
        check_credit_total(AttributionModel.LINEAR, {"a": 60.0, "b": 30.0}, strict=True)
    assert exc.value.details["model"] == "linear"


def test_check_credit_total_lenient_renormalizes():
    credits = check_credit_total(AttributionModel.LINEAR, {"a": 60.0, "b": 30.0}, strict=False)
    assert credit_total(credits) == pytest.approx(100.0)
    assert credits["a"] == pytest.approx(200 / 3)


def test_check_credit_total_passes_within_tolerance():
    credits = {"a": 50.004, "b": 50.0}
    assert check_credit_total(AttributionModel.LINEAR, credits, strict=True) is credits


# ============================================================================
# Engine
# ============================================================================

def test_engine_runs_every_model_on_unsorted_input():
    engine = AttributionEngine(strict=True)
    touchpoints = make_touchpoints(5)
    results = engine.calculate(list(reversed(touchpoints)))

    assert set(results.keys()) == set(AttributionModel)
    assert results[AttributionModel.FIRST_TOUCH]["T0"] == 100.0
    assert results[AttributionModel.LAST_TOUCH]["T4"] == 100.0


def test_engine_uses_configured_half_life():
    touchpoints = make_touchpoints(2, step_days=14)
    results = AttributionEngine(half_life_days=14, strict=True).calculate(touchpoints)
    assert results[AttributionModel.TIME_DECAY]["T0"] == pytest.approx(100 / 3)


def test_engine_rejects_invalid_half_life():
    with pytest.raises(ConfigurationError):
        AttributionEngine(half_life_days=-1)


def test_engine_explain():
    engine = AttributionEngine()
    assert "100%" in engine.explain(AttributionModel.FIRST_TOUCH, 3)
    assert "positions 1, 3 and 5" in engine.explain(AttributionModel.W_SHAPED, 5)
    assert "No touchpoints" in engine.explain(AttributionModel.LINEAR, 0)
