"""Pricing request / result schemas."""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from cascade_engine.schemas.common import FactorType, Urgency


class PricingOptions(BaseModel):
    """Per-request modifiers on top of the customer/service factors."""

    urgency: Optional[Urgency] = None
    bundle_size: Optional[int] = Field(default=None, ge=1)


class AdjustmentFactor(BaseModel):
    """One multiplicative adjustment applied to the base price."""

    type: FactorType
    factor: float = Field(..., gt=0)
    description: str


class PricingResult(BaseModel):
    """Itemised price breakdown, suitable for showing to a customer or auditor."""

    service_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    base_price: float
    final_price: float
    min_price: float
    max_price: float
    adjustment_factors: List[AdjustmentFactor] = Field(default_factory=list)
    estimated_cost: float
    profit_margin: float
    discount_amount: float = 0.0
    premium_amount: float = 0.0
    total_adjustment: float = 0.0
    complete: bool = True


class PriceQuoteRequest(BaseModel):
    """Request body for POST /api/v1/pricing/quote."""

    service_id: UUID
    customer_id: UUID
    urgency: Optional[Urgency] = None
    bundle_size: Optional[int] = Field(default=None, ge=1, le=50)

    def to_options(self) -> PricingOptions:
        return PricingOptions(urgency=self.urgency, bundle_size=self.bundle_size)
