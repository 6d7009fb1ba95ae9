from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from cascade_engine.models.base import Base


class Customer(Base):
    """A client of the business.

    Holds the credit, income and vehicle attributes that cascade
    conditions and pricing factors read through ``CustomerSnapshot``.
    """

    __tablename__ = "customers"
    customer_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    full_name = Column(String(200), nullable=False)
    email = Column(String(255))
    customer_type = Column(String(20), nullable=False, server_default="individual")
    business_name = Column(String(255))
    credit_score = Column(Integer)
    vehicle_value = Column(Numeric(12, 2))
    annual_income = Column(Numeric(12, 2))
    journey_stage = Column(String(50), nullable=False, server_default="discovery")
    lifetime_value = Column(Numeric(12, 2), server_default=text("0"))
    total_spent = Column(Numeric(12, 2), server_default=text("0"))
    services_count = Column(Integer, server_default=text("0"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    vehicles = relationship(
        "Vehicle", back_populates="customer", cascade="all, delete-orphan"
    )
    orders = relationship("ServiceOrder", back_populates="customer")

    __table_args__ = (
        CheckConstraint(
            "credit_score IS NULL OR credit_score BETWEEN 300 AND 850",
            name="ck_customer_credit_score",
        ),
        CheckConstraint(
            "customer_type IN ('individual', 'business', 'dealer')",
            name="ck_customer_type",
        ),
        CheckConstraint(
            "journey_stage IN ('discovery', 'consideration', 'purchase', 'post_purchase')",
            name="ck_customer_journey_stage",
        ),
    )
