from sqlalchemy import (
    Boolean,
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
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func, text

from cascade_engine.models.base import Base


class CascadeTrigger(Base):
    """A recorded cascade decision linking an entry order to a follow-on order.

    Created ``pending`` when the rule fires, then updated exactly once to
    ``converted`` (the triggered order exists) or ``abandoned`` (timeout,
    cancellation, duplicate or materialisation failure).  Never deleted.

    The partial unique index allows at most one live (pending or
    converted) trigger per customer and triggered service.
    """

    __tablename__ = "cascade_triggers"
    trigger_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
    )
    entry_order_id = Column(
        UUID(as_uuid=True), ForeignKey("service_orders.order_id"), nullable=False
    )
    triggered_order_id = Column(
        UUID(as_uuid=True), ForeignKey("service_orders.order_id"), nullable=True
    )
    cascade_rule_id = Column(
        UUID(as_uuid=True), ForeignKey("service_cascades.rule_id"), nullable=False
    )
    triggered_service_id = Column(
        UUID(as_uuid=True), ForeignKey("services.service_id"), nullable=False
    )
    depth = Column(Integer, nullable=False, server_default=text("0"))
    status = Column(String(20), nullable=False, server_default="pending")
    converted = Column(Boolean, nullable=False, server_default=text("false"))
    triggered_at = Column(DateTime(timezone=True), server_default=func.now())
    converted_at = Column(DateTime(timezone=True))
    abandoned_at = Column(DateTime(timezone=True))
    failure_reason = Column(Text)
    revenue_generated = Column(Numeric(10, 2), server_default=text("0"))

    __table_args__ = (
        Index(
            "uq_cascade_trigger_customer_service",
            "customer_id",
            "triggered_service_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'converted')"),
        ),
        Index("idx_cascade_triggers_rule_triggered_at", "cascade_rule_id", "triggered_at"),
        CheckConstraint(
            "status IN ('pending', 'converted', 'abandoned')",
            name="ck_cascade_trigger_status",
        ),
        CheckConstraint(
            "converted = (status = 'converted')", name="ck_cascade_trigger_converted"
        ),
    )
