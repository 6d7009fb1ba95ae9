from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from cascade_engine.models.base import Base


class CustomerJourney(Base):
    """Append-only log of customer journey touchpoints."""

    __tablename__ = "customer_journey"
    journey_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
    )
    stage = Column(String(50), nullable=False)
    touchpoints = Column(JSONB)
    conversion_probability = Column(Numeric(5, 4))
    next_recommended_action = Column(String(200))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
