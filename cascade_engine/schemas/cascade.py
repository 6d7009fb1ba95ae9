"""Cascade-specific Pydantic schemas (events, rules, metrics)."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from cascade_engine.schemas.common import SuccessResponse, TriggerStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class OrderCompletedEvent(BaseModel):
    """Inbound "order completed" event from the order-management boundary.

    ``cascade_depth`` is optional.  The order's stored depth is a floor:
    a lower event depth never restarts the chain.
    """

    customer_id: UUID
    cascade_depth: Optional[int] = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class OrderCompletedAccepted(SuccessResponse):
    """Returned once the completion has been queued for cascade evaluation."""

    order_id: UUID
    queued: bool = True


class CascadeRuleOut(BaseModel):
    """One indexed rule, in evaluation order."""

    rule_id: UUID
    entry_service_id: UUID
    triggered_service_id: UUID
    entry_service_name: Optional[str] = None
    triggered_service_name: Optional[str] = None
    conversion_rate: float = Field(..., ge=0, le=1)
    priority: int = Field(..., gt=0)
    conditions: Dict[str, Any] = Field(default_factory=dict)


class CascadeRuleList(BaseModel):
    service_id: UUID
    rules: List[CascadeRuleOut] = Field(default_factory=list)


class RuleReloadResponse(SuccessResponse):
    rules_loaded: int
    services_indexed: int
    rules_rejected: int


class CascadeMetricsOut(BaseModel):
    """Trigger / conversion aggregates over a trailing window."""

    days: int
    total_triggers: int = 0
    successful_conversions: int = 0
    conversion_rate: float = 0.0
    avg_revenue: float = 0.0
    total_revenue: float = 0.0


class TriggerOut(BaseModel):
    trigger_id: UUID
    status: TriggerStatus
    converted: bool
    failure_reason: Optional[str] = None
    abandoned_at: Optional[datetime] = None
