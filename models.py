"""
Attribution Data Models
=======================

Types shared by the collector, the model library and the aggregators.

Core Types:
1. Touchpoint - A single recorded interaction on an opportunity
2. Opportunity - A closed deal plus its touchpoints (immutable snapshot)
3. AttributionResult - Per-opportunity credit under every model
4. AttributionSummary - Credit rolled up by touchpoint type

Results and summaries are derived views: computed per request, never stored.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Dict, List, Tuple, Any
from enum import Enum

from exceptions import InvalidDateRangeError, ValidationError


# ============================================================================
# Enums and Constants
# ============================================================================

class TouchpointType(str, Enum):
    """How an interaction with the buyer was recorded"""
    EMAIL = "EMAIL"
    CALL = "CALL"
    MEETING = "MEETING"
    TASK = "TASK"
    NOTE = "NOTE"
    QUOTE_SENT = "QUOTE_SENT"
    WEBINAR = "WEBINAR"
    EVENT = "EVENT"
    CAMPAIGN = "CAMPAIGN"
    WEBSITE = "WEBSITE"
    REFERRAL = "REFERRAL"


class AttributionModel(str, Enum):
    """Attribution calculation methodologies"""
    FIRST_TOUCH = "first_touch"      # 100% to earliest touchpoint
    LAST_TOUCH = "last_touch"        # 100% to most recent touchpoint
    LINEAR = "linear"                # Equal credit to every touchpoint
    TIME_DECAY = "time_decay"        # Half-life weighting toward the most recent
    U_SHAPED = "u_shaped"            # 40% first, 40% last, 20% middle
    W_SHAPED = "w_shaped"            # 30% first, 30% midpoint, 30% last, 10% other

    @property
    def wire_name(self) -> str:
        """camelCase key used in JSON payloads."""
        return MODEL_WIRE_NAMES[self]

    @classmethod
    def from_name(cls, name: str) -> "AttributionModel":
        """Accept either the enum value (time_decay) or the wire name (timeDecay)."""
        for model in cls:
            if name in (model.value, model.wire_name):
                return model
        raise ValidationError(f"Unknown attribution model: {name}", field="model", value=name)


MODEL_WIRE_NAMES = {
    AttributionModel.FIRST_TOUCH: "firstTouch",
    AttributionModel.LAST_TOUCH: "lastTouch",
    AttributionModel.LINEAR: "linear",
    AttributionModel.TIME_DECAY: "timeDecay",
    AttributionModel.U_SHAPED: "uShaped",
    AttributionModel.W_SHAPED: "wShaped",
}

# Models reported in the summary payload unless one is requested explicitly
SUMMARY_MODELS = [
    AttributionModel.LINEAR,
    AttributionModel.TIME_DECAY,
    AttributionModel.U_SHAPED,
    AttributionModel.W_SHAPED,
]

# Store activity types that map straight onto the touchpoint taxonomy
ACTIVITY_TYPE_MAP = {
    "EMAIL": TouchpointType.EMAIL,
    "CALL": TouchpointType.CALL,
    "MEETING": TouchpointType.MEETING,
    "TASK": TouchpointType.TASK,
    "NOTE": TouchpointType.NOTE,
    "QUOTE_SENT": TouchpointType.QUOTE_SENT,
}

LEAD_SOURCE_MAP = {
    "WEB_FORM": TouchpointType.WEBSITE,
    "EMAIL": TouchpointType.EMAIL,
    "PHONE": TouchpointType.CALL,
    "EVENT": TouchpointType.EVENT,
    "REFERRAL": TouchpointType.REFERRAL,
    "SOCIAL_MEDIA": TouchpointType.CAMPAIGN,
    "LINKEDIN": TouchpointType.CAMPAIGN,
    "ADVERTISING": TouchpointType.CAMPAIGN,
}


def map_activity_type(activity_type: Optional[str]) -> TouchpointType:
    """Map a stored activity type to a touchpoint type (unknown types count as calls)."""
    return ACTIVITY_TYPE_MAP.get((activity_type or "").upper(), TouchpointType.CALL)


def map_lead_source(lead_source: str) -> TouchpointType:
    """Map an opportunity's lead source to a touchpoint type."""
    return LEAD_SOURCE_MAP.get((lead_source or "").upper(), TouchpointType.CAMPAIGN)


def lead_source_touchpoint_id(opportunity_id: str) -> str:
    return f"lead-source-{opportunity_id}"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class DateRange:
    """Inclusive window of calendar dates."""
    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidDateRangeError(
                f"startDate {self.start.isoformat()} is after endDate {self.end.isoformat()}",
                start=self.start,
                end=self.end
            )

    def contains(self, timestamp: datetime) -> bool:
        """True if the timestamp's calendar date is within [start, end]."""
        day = timestamp.date() if isinstance(timestamp, datetime) else timestamp
        return self.start <= day <= self.end

    def to_dict(self) -> Dict[str, str]:
        return {"startDate": self.start.isoformat(), "endDate": self.end.isoformat()}


@dataclass(frozen=True)
class Touchpoint:
    """
    A recorded interaction (call, email, meeting, ...) on one opportunity.

    Immutable once recorded. Ordering key is timestamp; ties keep the order
    the store returned them in.
    """
    id: str
    opportunity_id: str
    type: TouchpointType
    timestamp: datetime
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "opportunityId": self.opportunity_id,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "description": self.description,
        }


@dataclass(frozen=True)
class Opportunity:
    """
    A closed opportunity snapshot.

    total_value is the credit pool distributed across the touchpoints.
    """
    id: str
    name: str
    total_value: float
    touchpoints: Tuple[Touchpoint, ...] = ()

    def __post_init__(self):
        if self.total_value is None or self.total_value < 0:
            raise ValidationError(
                f"Opportunity {self.id} has invalid total value",
                field="total_value",
                value=self.total_value
            )
        # Accept lists from callers but keep the snapshot immutable
        if not isinstance(self.touchpoints, tuple):
            object.__setattr__(self, "touchpoints", tuple(self.touchpoints))


@dataclass
class AttributionResult:
    """
    Credit for one opportunity under every attribution model.

    attribution maps each model to {touchpoint_id: credit percentage}. Every
    non-empty map sums to 100; an opportunity without touchpoints has all
    maps empty.
    """
    opportunity_id: str
    opportunity_name: str
    total_value: float
    touchpoints: List[Touchpoint]
    attribution: Dict[AttributionModel, Dict[str, float]]

    @property
    def has_touchpoints(self) -> bool:
        return len(self.touchpoints) > 0

    def credit(self, model: AttributionModel, touchpoint_id: str) -> float:
        return self.attribution.get(model, {}).get(touchpoint_id, 0.0)

    def attributed_value(self, model: AttributionModel, touchpoint_id: str) -> float:
        """Dollar value credited to a touchpoint under a model."""
        return self.credit(model, touchpoint_id) / 100.0 * self.total_value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunityId": self.opportunity_id,
            "opportunityName": self.opportunity_name,
            "totalValue": self.total_value,
            "touchpoints": [tp.to_dict() for tp in self.touchpoints],
            "attribution": {
                model.wire_name: dict(self.attribution.get(model, {}))
                for model in AttributionModel
            },
        }


@dataclass
class SummaryRow:
    """Attributed value rolled up for one touchpoint type."""
    count: int = 0
    total_value: float = 0.0
    values: Dict[AttributionModel, float] = field(
        default_factory=lambda: {model: 0.0 for model in AttributionModel}
    )

    def to_dict(self, models: List[AttributionModel] = None) -> Dict[str, Any]:
        models = models or SUMMARY_MODELS
        row = {"count": self.count, "totalValue": self.total_value}
        for model in models:
            row[model.wire_name] = self.values.get(model, 0.0)
        return row


@dataclass
class AttributionSummary:
    """
    Attribution rolled up by touchpoint type across opportunities.

    opportunity_count counts every result handed to the aggregator;
    attributed_count those that contributed credit; excluded_count those
    skipped for having no touchpoints in the window.
    """
    rows: Dict[str, SummaryRow] = field(default_factory=dict)
    models: List[AttributionModel] = field(default_factory=lambda: list(SUMMARY_MODELS))
    date_range: Optional[DateRange] = None
    opportunity_count: int = 0
    attributed_count: int = 0
    excluded_count: int = 0

    def total(self, model: AttributionModel) -> float:
        """Attributed value for a model summed across all touchpoint types."""
        return sum(row.values.get(model, 0.0) for row in self.rows.values())

    def coverage(self) -> Dict[str, Any]:
        return {
            "opportunityCount": self.opportunity_count,
            "attributedCount": self.attributed_count,
            "excludedCount": self.excluded_count,
        }

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            touchpoint_type: row.to_dict(self.models)
            for touchpoint_type, row in self.rows.items()
        }
