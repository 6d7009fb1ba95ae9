from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func, text

from cascade_engine.models.base import Base


class CascadeRule(Base):
    """Directed recommendation edge from one service to another.

    ``conditions`` is a JSONB mapping of predicate name to operand (see
    ``ConditionKind``).  Rules are read-cached by ``CascadeRuleIndex``
    and ordered by ``(priority ASC, conversion_rate DESC)``.  The
    outcome tracker rewrites ``conversion_rate`` from realised results.
    """

    __tablename__ = "service_cascades"
    rule_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    entry_service_id = Column(
        UUID(as_uuid=True), ForeignKey("services.service_id"), nullable=False
    )
    triggered_service_id = Column(
        UUID(as_uuid=True), ForeignKey("services.service_id"), nullable=False
    )
    conversion_rate = Column(Numeric(5, 4), nullable=False)
    priority = Column(Integer, nullable=False, server_default=text("1"))
    conditions = Column(JSONB)
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "conversion_rate BETWEEN 0 AND 1", name="ck_cascade_conversion_rate"
        ),
        CheckConstraint("priority > 0", name="ck_cascade_priority"),
        CheckConstraint(
            "entry_service_id <> triggered_service_id",
            name="ck_cascade_distinct_services",
        ),
    )
