from cascade_engine.models.base import Base
from cascade_engine.models.service import Service
from cascade_engine.models.customer import Customer
from cascade_engine.models.vehicle import Vehicle
from cascade_engine.models.service_order import ServiceOrder
from cascade_engine.models.cascade_rule import CascadeRule
from cascade_engine.models.cascade_trigger import CascadeTrigger
from cascade_engine.models.customer_journey import CustomerJourney

# Import event listeners to register them
from cascade_engine.models import listeners  # noqa: F401

__all__ = [
    "Base",
    "Service",
    "Customer",
    "Vehicle",
    "ServiceOrder",
    "CascadeRule",
    "CascadeTrigger",
    "CustomerJourney",
]
