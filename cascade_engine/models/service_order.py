from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from cascade_engine.models.base import Base


class ServiceOrder(Base):
    """A purchased (or cascade-proposed) unit of work for a customer.

    ``cascade_depth`` is 0 for organic orders and ``n + 1`` for orders
    materialised by a cascade from a depth-``n`` order, so the depth
    limit survives process restarts.  ``revenue_recorded_at`` is set
    once, when the completion is booked, so a repeated completion event
    does not book the revenue twice.  ``service_data`` keeps the cascade
    provenance and the pricing breakdown.
    """

    __tablename__ = "service_orders"
    order_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
    )
    service_id = Column(
        UUID(as_uuid=True), ForeignKey("services.service_id"), nullable=False
    )
    order_number = Column(String(30), nullable=False, unique=True)
    status = Column(String(20), nullable=False, server_default="pending")
    base_price = Column(Numeric(10, 2), nullable=False)
    final_price = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), server_default=text("0"))
    priority = Column(Integer, server_default=text("1"))
    cascade_depth = Column(Integer, nullable=False, server_default=text("0"))
    service_data = Column(JSONB)
    notes = Column(Text)
    completed_at = Column(DateTime(timezone=True))
    revenue_recorded_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    customer = relationship("Customer", back_populates="orders")
    service = relationship("Service", back_populates="orders")

    __table_args__ = (
        Index("idx_service_orders_customer_service", "customer_id", "service_id"),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'cancelled')",
            name="ck_service_order_status",
        ),
        CheckConstraint("cascade_depth >= 0", name="ck_service_order_cascade_depth"),
    )
