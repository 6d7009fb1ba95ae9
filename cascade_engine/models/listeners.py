from datetime import datetime, timezone

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from cascade_engine.core.constants import (
    TRIGGER_ABANDONED,
    TRIGGER_CONVERTED,
    TRIGGER_PENDING,
)
from cascade_engine.models.cascade_rule import CascadeRule
from cascade_engine.models.cascade_trigger import CascadeTrigger
from cascade_engine.models.customer import Customer
from cascade_engine.models.service import Service
from cascade_engine.models.service_order import ServiceOrder


# Auto updated_at
@event.listens_for(Service, "before_update")
@event.listens_for(Customer, "before_update")
@event.listens_for(ServiceOrder, "before_update")
@event.listens_for(CascadeRule, "before_update")
def update_timestamp(mapper, connection, target):
    target.updated_at = datetime.now(timezone.utc)


# Trigger lifecycle: pending is the only non-terminal state
ALLOWED_TRIGGER_TRANSITIONS = {
    TRIGGER_PENDING: {TRIGGER_CONVERTED, TRIGGER_ABANDONED},
    TRIGGER_CONVERTED: set(),
    TRIGGER_ABANDONED: set(),
}


@event.listens_for(Session, "before_flush")
def validate_trigger_transition(session: Session, flush_context, instances):
    for obj in session.dirty:
        if isinstance(obj, CascadeTrigger):
            history = inspect(obj).attrs.status.history
            if not history.has_changes():
                continue
            old = history.deleted[0] if history.deleted else None
            new = history.added[0]
            if old and new not in ALLOWED_TRIGGER_TRANSITIONS.get(old, set()):
                raise ValueError(f"Invalid cascade trigger transition: {old} → {new}")
