from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from cascade_engine.models.base import Base


class Service(Base):
    """A sellable unit of work (credit analysis, inspection, transport ...).

    ``base_price`` is the list price every dynamic price is computed from.
    It only changes through administrative price optimisation, which keeps
    each step within ``[0.8x, 1.3x]`` of the current value.
    """

    __tablename__ = "services"
    service_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    service_category = Column(String(50))
    base_price = Column(Numeric(10, 2), nullable=False)
    markup_percentage = Column(Numeric(5, 2), server_default=text("0"))
    annual_revenue_target = Column(Numeric(12, 2))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    orders = relationship("ServiceOrder", back_populates="service")

    __table_args__ = (
        CheckConstraint("base_price >= 0", name="ck_service_base_price"),
    )
