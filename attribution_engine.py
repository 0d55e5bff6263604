"""
Attribution Model Library
=========================

Six credit models over an opportunity's touchpoints:
1. First touch - 100% to the earliest touchpoint
2. Last touch - 100% to the most recent touchpoint
3. Linear - equal credit to every touchpoint
4. Time decay - credit halves for every half-life of age
5. U-shaped - 40% first, 40% last, 20% across the middle
6. W-shaped - 30% first, 30% midpoint milestone, 30% last, 10% across the rest

Every model function takes touchpoints already sorted ascending by timestamp
and returns {touchpoint_id: credit_percentage} on a 0-100 scale. They are
pure: no I/O, no clock, no shared state.
"""

import logging
import math
from typing import List, Dict, Callable, Optional

import config
from exceptions import ComputationInvariantError, ConfigurationError
from models import Touchpoint, AttributionModel

logger = logging.getLogger(__name__)

FULL_CREDIT = 100.0
SECONDS_PER_DAY = 86400.0

# U-shaped weights
U_ENDPOINT_WEIGHT = 40.0
U_MIDDLE_WEIGHT = 20.0

# W-shaped weights
W_KEY_WEIGHT = 30.0
W_OTHER_WEIGHT = 10.0


# ============================================================================
# Shared Helpers
# ============================================================================

def sort_touchpoints(touchpoints: List[Touchpoint]) -> List[Touchpoint]:
    """Sort ascending by timestamp. Stable, so ties keep store order."""
    return sorted(touchpoints, key=lambda tp: tp.timestamp)


def split_evenly(total: float, touchpoint_ids: List[str]) -> Dict[str, float]:
    """
    Divide total evenly across ids.

    The floating-point remainder goes to the last id so the shares add up
    to exactly total.
    """
    if not touchpoint_ids:
        return {}

    share = total / len(touchpoint_ids)
    splits = {tp_id: share for tp_id in touchpoint_ids[:-1]}
    splits[touchpoint_ids[-1]] = total - share * (len(touchpoint_ids) - 1)
    return splits


def credit_total(credits: Dict[str, float]) -> float:
    return math.fsum(credits.values())


def _endpoint_split(touchpoints: List[Touchpoint]) -> Optional[Dict[str, float]]:
    """Shared n <= 2 handling for the position-based models."""
    if not touchpoints:
        return {}
    if len(touchpoints) == 1:
        return {touchpoints[0].id: FULL_CREDIT}
    if len(touchpoints) == 2:
        return split_evenly(FULL_CREDIT, [touchpoints[0].id, touchpoints[1].id])
    return None


# ============================================================================
# Calculation Methods (one per attribution model)
# ============================================================================

def first_touch(touchpoints: List[Touchpoint]) -> Dict[str, float]:
    """
    100% credit to the earliest touchpoint, 0% to the rest.
    """
    if not touchpoints:
        return {}

    credits = {tp.id: 0.0 for tp in touchpoints}
    credits[touchpoints[0].id] = FULL_CREDIT
    return credits


def last_touch(touchpoints: List[Touchpoint]) -> Dict[str, float]:
    """
    100% credit to the most recent touchpoint, 0% to the rest.
    """
    if not touchpoints:
        return {}

    credits = {tp.id: 0.0 for tp in touchpoints}
    credits[touchpoints[-1].id] = FULL_CREDIT
    return credits


def linear(touchpoints: List[Touchpoint]) -> Dict[str, float]:
    """
    Equal credit to every touchpoint.

    Example: 3 touchpoints → 33.33% each (last one absorbs the remainder)
    """
    return split_evenly(FULL_CREDIT, [tp.id for tp in touchpoints])


def time_decay(
    touchpoints: List[Touchpoint],
    half_life_days: float = config.TIME_DECAY_HALF_LIFE_DAYS
) -> Dict[str, float]:
    """
    More recent touchpoints get more credit (exponential decay).

    Age is measured from the most recent touchpoint, so the result depends
    only on the touchpoints themselves.

    Formula: weight = 2 ^ (-age_days / half_life_days), normalized to 100
    """
    if half_life_days <= 0:
        raise ConfigurationError(
            f"Half-life must be positive, got {half_life_days}",
            setting_key="TIME_DECAY_HALF_LIFE_DAYS"
        )

    if not touchpoints:
        return {}

    if len(touchpoints) == 1:
        return {touchpoints[0].id: FULL_CREDIT}

    reference = touchpoints[-1].timestamp
    weights = {}
    for tp in touchpoints:
        age_days = max((reference - tp.timestamp).total_seconds(), 0.0) / SECONDS_PER_DAY
        weights[tp.id] = math.pow(2.0, -age_days / half_life_days)

    total_weight = math.fsum(weights.values())
    return {tp_id: FULL_CREDIT * weight / total_weight for tp_id, weight in weights.items()}


def u_shaped(touchpoints: List[Touchpoint]) -> Dict[str, float]:
    """
    Position-based attribution: heavy weight on first and last touch.

    Example: [A, B, C, D] → {A: 40, B: 10, C: 10, D: 40}
    """
    endpoints = _endpoint_split(touchpoints)
    if endpoints is not None:
        return endpoints

    credits = {touchpoints[0].id: U_ENDPOINT_WEIGHT}
    credits.update(split_evenly(U_MIDDLE_WEIGHT, [tp.id for tp in touchpoints[1:-1]]))
    credits[touchpoints[-1].id] = U_ENDPOINT_WEIGHT
    return credits


def w_shaped_milestone_index(count: int) -> int:
    """Index of the middle milestone: the touchpoint nearest the midpoint."""
    return (count - 1) // 2


def w_shaped(touchpoints: List[Touchpoint]) -> Dict[str, float]:
    """
    W-shaped attribution: first touch, middle milestone and last touch.

    Example: [A, B, C, D, E] → {A: 30, B: 5, C: 30, D: 5, E: 30}

    With exactly three touchpoints there is nobody left for the 10%, so it
    goes back to the three key positions in proportion to their weight.
    """
    endpoints = _endpoint_split(touchpoints)
    if endpoints is not None:
        return endpoints

    n = len(touchpoints)
    key_indexes = [0, w_shaped_milestone_index(n), n - 1]
    other_ids = [tp.id for i, tp in enumerate(touchpoints) if i not in key_indexes]

    key_weight = W_KEY_WEIGHT
    if not other_ids:
        # Key positions carry equal weight, so proportional means equal shares
        key_weight += W_OTHER_WEIGHT / len(key_indexes)

    credits = {tp.id: 0.0 for tp in touchpoints}
    credits.update(split_evenly(W_OTHER_WEIGHT, other_ids))
    for i in key_indexes:
        credits[touchpoints[i].id] = key_weight
    return credits


MODEL_FUNCTIONS: Dict[AttributionModel, Callable[[List[Touchpoint]], Dict[str, float]]] = {
    AttributionModel.FIRST_TOUCH: first_touch,
    AttributionModel.LAST_TOUCH: last_touch,
    AttributionModel.LINEAR: linear,
    AttributionModel.TIME_DECAY: time_decay,
    AttributionModel.U_SHAPED: u_shaped,
    AttributionModel.W_SHAPED: w_shaped,
}


# ============================================================================
# Invariant Enforcement
# ============================================================================

def check_credit_total(
    model: AttributionModel,
    credits: Dict[str, float],
    tolerance: float = config.CREDIT_TOLERANCE,
    strict: bool = config.STRICT_INVARIANTS
) -> Dict[str, float]:
    """
    Verify that a non-empty credit map sums to 100.

    strict=True raises ComputationInvariantError on a miss. Otherwise the
    miss is logged and the credits are renormalized so one bad model can't
    fail a whole request.
    """
    if not credits:
        return credits

    total = credit_total(credits)
    if abs(total - FULL_CREDIT) <= tolerance:
        return credits

    if strict:
        raise ComputationInvariantError(model.value, total, tolerance)

    logger.error(f"{model.value} credits total {total:.4f}, renormalizing to 100")
    if total <= 0:
        return split_evenly(FULL_CREDIT, list(credits.keys()))
    return {tp_id: max(pct, 0.0) * FULL_CREDIT / total for tp_id, pct in credits.items()}


# ============================================================================
# Engine
# ============================================================================

class AttributionEngine:
    """
    Run every attribution model over one opportunity's touchpoints.

    This engine is stateless apart from its settings - it takes touchpoints
    and returns credit maps. No database dependencies.
    """

    def __init__(
        self,
        half_life_days: float = config.TIME_DECAY_HALF_LIFE_DAYS,
        strict: bool = config.STRICT_INVARIANTS,
        tolerance: float = config.CREDIT_TOLERANCE
    ):
        if half_life_days <= 0:
            raise ConfigurationError(
                f"Half-life must be positive, got {half_life_days}",
                setting_key="TIME_DECAY_HALF_LIFE_DAYS"
            )
        self.half_life_days = half_life_days
        self.strict = strict
        self.tolerance = tolerance

    def calculate(
        self,
        touchpoints: List[Touchpoint],
        models: Optional[List[AttributionModel]] = None
    ) -> Dict[AttributionModel, Dict[str, float]]:
        """
        Main entry point: credit maps for each requested model (default: all).

        Touchpoints may arrive in any order; they are sorted here.
        """
        ordered = sort_touchpoints(touchpoints)
        results = {}

        for model in models or list(AttributionModel):
            credits = self.calculate_model(model, ordered)
            results[model] = check_credit_total(model, credits, self.tolerance, self.strict)

        return results

    def calculate_model(
        self,
        model: AttributionModel,
        ordered: List[Touchpoint]
    ) -> Dict[str, float]:
        """Credit map for one model over touchpoints already in timestamp order."""
        if model == AttributionModel.TIME_DECAY:
            return time_decay(ordered, self.half_life_days)
        return MODEL_FUNCTIONS[model](ordered)

    def explain(self, model: AttributionModel, touchpoint_count: int) -> str:
        """
        Generate human-readable explanation of how a model splits credit.
        """
        if touchpoint_count == 0:
            return "No touchpoints in range: no credit assigned"

        if touchpoint_count == 1:
            return "Single touchpoint → 100%"

        if model == AttributionModel.FIRST_TOUCH:
            return "First touch (earliest touchpoint) → 100%"

        elif model == AttributionModel.LAST_TOUCH:
            return "Last touch (most recent touchpoint) → 100%"

        elif model == AttributionModel.LINEAR:
            return f"Linear split among {touchpoint_count} touchpoints: {FULL_CREDIT / touchpoint_count:.1f}% each"

        elif model == AttributionModel.TIME_DECAY:
            return f"Time-decay ({self.half_life_days:g}d half-life from the most recent touchpoint)"

        elif touchpoint_count == 2:
            return f"{model.value} with two touchpoints → 50% each"

        elif model == AttributionModel.U_SHAPED:
            return f"U-shaped: 40% first, 40% last, 20% across {touchpoint_count - 2} middle touchpoints"

        else:
            milestone = w_shaped_milestone_index(touchpoint_count)
            return f"W-shaped: 30% to positions 1, {milestone + 1} and {touchpoint_count}, 10% across the rest"
