"""Customer snapshot shared by condition evaluation and pricing."""

from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from cascade_engine.core.constants import NO_ORDER_HISTORY_DAYS


class CustomerSnapshot(BaseModel):
    """Aggregated, point-in-time view of a customer.

    Built by joining the customer row, its order history and its most
    recent vehicles.  Cached for up to 30 minutes: rule evaluation
    tolerates that much staleness.  Every attribute is optional because
    pricing and conditions must cope with incomplete profiles.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: UUID
    customer_type: str = "individual"
    business_name: Optional[str] = None
    credit_score: Optional[int] = None
    vehicle_value: Optional[float] = None
    annual_income: Optional[float] = None
    journey_stage: Optional[str] = None
    lifetime_spend: float = 0.0
    order_count: Optional[int] = 0
    recent_vehicle_conditions: Tuple[str, ...] = ()
    days_since_last_order: int = NO_ORDER_HISTORY_DAYS
    last_order_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None

    @property
    def is_business(self) -> bool:
        return self.customer_type == "business" or bool(self.business_name)
