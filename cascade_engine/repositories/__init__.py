"""Repository layer – all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
(index, orchestrator, outcome tracker) only contains business logic.
"""

from cascade_engine.repositories.cascade_rule_repository import CascadeRuleRepository
from cascade_engine.repositories.cascade_trigger_repository import (
    CascadeTriggerRepository,
)
from cascade_engine.repositories.customer_repository import CustomerRepository
from cascade_engine.repositories.journey_repository import JourneyRepository
from cascade_engine.repositories.service_order_repository import ServiceOrderRepository
from cascade_engine.repositories.service_repository import ServiceRepository

__all__ = [
    "CascadeRuleRepository",
    "CascadeTriggerRepository",
    "CustomerRepository",
    "JourneyRepository",
    "ServiceOrderRepository",
    "ServiceRepository",
]
