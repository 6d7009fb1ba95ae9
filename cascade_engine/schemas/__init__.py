from cascade_engine.schemas.common import (
    CascadeOutcome,
    FactorType,
    JourneyStage,
    OrderStatus,
    SuccessResponse,
    TriggerStatus,
    Urgency,
)
from cascade_engine.schemas.customer import CustomerSnapshot
from cascade_engine.schemas.pricing import (
    AdjustmentFactor,
    PriceQuoteRequest,
    PricingOptions,
    PricingResult,
)
from cascade_engine.schemas.cascade import (
    CascadeMetricsOut,
    CascadeRuleList,
    CascadeRuleOut,
    OrderCompletedAccepted,
    OrderCompletedEvent,
    RuleReloadResponse,
    TriggerOut,
)

__all__ = [
    "CascadeOutcome",
    "FactorType",
    "JourneyStage",
    "OrderStatus",
    "SuccessResponse",
    "TriggerStatus",
    "Urgency",
    "CustomerSnapshot",
    "AdjustmentFactor",
    "PriceQuoteRequest",
    "PricingOptions",
    "PricingResult",
    "CascadeMetricsOut",
    "CascadeRuleList",
    "CascadeRuleOut",
    "OrderCompletedAccepted",
    "OrderCompletedEvent",
    "RuleReloadResponse",
    "TriggerOut",
]
