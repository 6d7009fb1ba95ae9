from enum import Enum
from pydantic import BaseModel


class OrderStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class TriggerStatus(str, Enum):
    pending = "pending"
    converted = "converted"
    abandoned = "abandoned"


class JourneyStage(str, Enum):
    discovery = "discovery"
    consideration = "consideration"
    purchase = "purchase"
    post_purchase = "post_purchase"


class Urgency(str, Enum):
    standard = "standard"
    expedited = "expedited"
    emergency = "emergency"


class FactorType(str, Enum):
    credit_score = "credit_score"
    vehicle_value = "vehicle_value"
    loyalty = "loyalty"
    seasonal = "seasonal"
    market = "market"
    urgency = "urgency"
    volume = "volume"


class CascadeOutcome(str, Enum):
    """Terminal state of one (entry order, rule) evaluation."""

    threshold_failed = "threshold_failed"
    already_held = "already_held"
    conditions_failed = "conditions_failed"
    probability_miss = "probability_miss"
    triggered = "triggered"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
