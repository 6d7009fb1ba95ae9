"""API-layer dependency functions.

Engine components are built once in the application lifespan and kept
on ``app.state.engine``; these factories hand them to endpoints.
"""

from fastapi import Request

from cascade_engine.core.database import get_db
from cascade_engine.core.exceptions import EngineNotReadyError
from cascade_engine.services.cascade_metrics import CascadeMetrics
from cascade_engine.services.cascade_orchestrator import CascadeOrchestrator
from cascade_engine.services.customer_profile import CustomerProfileProvider
from cascade_engine.services.engine import CascadeEngine
from cascade_engine.services.outcome_tracker import OutcomeTracker
from cascade_engine.services.pricing import PricingCalculator
from cascade_engine.services.rule_index import CascadeRuleIndex


def get_engine(request: Request) -> CascadeEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise EngineNotReadyError()
    return engine


def get_rule_index(request: Request) -> CascadeRuleIndex:
    return get_engine(request).rule_index


def get_orchestrator(request: Request) -> CascadeOrchestrator:
    return get_engine(request).orchestrator


def get_calculator(request: Request) -> PricingCalculator:
    return get_engine(request).calculator


def get_profile_provider(request: Request) -> CustomerProfileProvider:
    return get_engine(request).profiles


def get_outcome_tracker(request: Request) -> OutcomeTracker:
    return get_engine(request).outcome_tracker


def get_metrics(request: Request) -> CascadeMetrics:
    return get_engine(request).metrics


__all__ = [
    "get_db",
    "get_engine",
    "get_rule_index",
    "get_orchestrator",
    "get_calculator",
    "get_profile_provider",
    "get_outcome_tracker",
    "get_metrics",
]
