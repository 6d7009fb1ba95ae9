import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.core.cache import CacheService
from cascade_engine.core.config import (
    CascadeConfig,
    OutcomeConfig,
    PricingConfig,
    Settings,
)
from cascade_engine.repositories.cascade_rule_repository import CascadeRuleRepository
from cascade_engine.services.cascade_metrics import CascadeMetrics
from cascade_engine.services.cascade_orchestrator import CascadeOrchestrator
from cascade_engine.services.condition_evaluator import ConditionEvaluator
from cascade_engine.services.customer_profile import CustomerProfileProvider
from cascade_engine.services.notifications import NotificationPublisher
from cascade_engine.services.outcome_tracker import OutcomeTracker
from cascade_engine.services.pricing import PricingCalculator
from cascade_engine.services.rule_index import CascadeRuleIndex

logger = logging.getLogger(__name__)


@dataclass
class CascadeEngine:
    """The explicitly-owned set of engine components for one process."""

    session_factory: Callable[..., AsyncSession]
    cache: CacheService
    rule_index: CascadeRuleIndex
    evaluator: ConditionEvaluator
    calculator: PricingCalculator
    profiles: CustomerProfileProvider
    metrics: CascadeMetrics
    notifier: NotificationPublisher
    orchestrator: CascadeOrchestrator
    outcome_tracker: OutcomeTracker
    outcome_config: OutcomeConfig

    async def start(self, seed_defaults: bool = True) -> None:
        """Seed defaults, load the rule index and resume pending triggers.

        The rule index load is fatal: ``RuleIndexLoadError`` propagates.
        """
        if seed_defaults:
            try:
                async with self.session_factory() as session:
                    await CascadeRuleRepository(session).seed_if_empty()
                    await session.commit()
            except Exception:
                logger.warning("Failed to seed default cascade rules", exc_info=True)

        await self.rule_index.load()
        await self.calculator.refresh_tables(self.cache)
        await self.orchestrator.recover_pending_triggers()

    async def stop(self) -> None:
        await self.orchestrator.shutdown()


def build_engine(
    session_factory: Callable[..., AsyncSession],
    cache: CacheService,
    app_settings: Settings,
    rng: Optional[random.Random] = None,
) -> CascadeEngine:
    """Wire every component from configuration."""
    cascade_config = CascadeConfig.from_settings(app_settings)
    pricing_config = PricingConfig.from_settings(app_settings)
    outcome_config = OutcomeConfig.from_settings(app_settings)

    rule_index = CascadeRuleIndex(session_factory)
    evaluator = ConditionEvaluator()
    calculator = PricingCalculator(pricing_config)
    profiles = CustomerProfileProvider(cache, cascade_config.profile_ttl_seconds)
    metrics = CascadeMetrics(cache)
    notifier = NotificationPublisher(cache)
    orchestrator = CascadeOrchestrator(
        session_factory=session_factory,
        rule_index=rule_index,
        evaluator=evaluator,
        calculator=calculator,
        profile_provider=profiles,
        cache=cache,
        metrics=metrics,
        notifier=notifier,
        config=cascade_config,
        rng=rng,
    )
    outcome_tracker = OutcomeTracker(
        session_factory=session_factory,
        rule_index=rule_index,
        metrics=metrics,
        config=outcome_config,
        pending_timeout_minutes=cascade_config.pending_timeout_minutes,
    )
    return CascadeEngine(
        session_factory=session_factory,
        cache=cache,
        rule_index=rule_index,
        evaluator=evaluator,
        calculator=calculator,
        profiles=profiles,
        metrics=metrics,
        notifier=notifier,
        orchestrator=orchestrator,
        outcome_tracker=outcome_tracker,
        outcome_config=outcome_config,
    )
