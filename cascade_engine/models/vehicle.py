from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from cascade_engine.models.base import Base


class Vehicle(Base):
    """A vehicle owned by a customer; its condition feeds cascade conditions."""

    __tablename__ = "vehicles"
    vehicle_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.customer_id", ondelete="CASCADE"),
        nullable=False,
    )
    make = Column(String(50), nullable=False)
    model = Column(String(50), nullable=False)
    year = Column(Integer, nullable=False)
    condition = Column(String(20))
    estimated_value = Column(Numeric(10, 2))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    customer = relationship("Customer", back_populates="vehicles")

    __table_args__ = (
        CheckConstraint(
            "condition IS NULL OR condition IN ('excellent', 'good', 'fair', 'poor')",
            name="ck_vehicle_condition",
        ),
    )
