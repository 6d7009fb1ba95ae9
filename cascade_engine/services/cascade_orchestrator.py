import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.core.cache import CacheService
from cascade_engine.core.config import CascadeConfig
from cascade_engine.core.constants import (
    TRIGGER_PENDING,
    TRIGGERED_SERVICE_KEY,
    TRIGGERED_SERVICE_TTL,
)
from cascade_engine.core.exceptions import (
    DuplicateTriggerError,
    InvalidTriggerStateError,
    TriggerNotFoundError,
)
from cascade_engine.models.cascade_trigger import CascadeTrigger
from cascade_engine.repositories.cascade_rule_repository import CascadeRuleRepository
from cascade_engine.repositories.cascade_trigger_repository import (
    CascadeTriggerRepository,
)
from cascade_engine.repositories.journey_repository import JourneyRepository
from cascade_engine.repositories.service_order_repository import ServiceOrderRepository
from cascade_engine.repositories.service_repository import ServiceRepository
from cascade_engine.schemas.common import CascadeOutcome, OrderStatus
from cascade_engine.schemas.customer import CustomerSnapshot
from cascade_engine.services.cascade_metrics import CascadeMetrics
from cascade_engine.services.condition_evaluator import ConditionEvaluator
from cascade_engine.services.customer_profile import CustomerProfileProvider
from cascade_engine.services.notifications import NotificationPublisher
from cascade_engine.services.pricing import PricingCalculator
from cascade_engine.services.rule_index import CascadeRuleIndex, IndexedRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeDecision:
    """Outcome of evaluating one rule against one completed order."""

    rule_id: UUID
    triggered_service_id: UUID
    outcome: CascadeOutcome
    trigger_id: Optional[UUID] = None


@dataclass(frozen=True)
class ScheduledCascade:
    """Payload of a deferred order materialisation.

    Everything needed to create the triggered order is carried here or
    re-read from the store, so a job rebuilt from a pending
    ``cascade_triggers`` row after a restart behaves exactly like the
    original one.
    """

    trigger_id: UUID
    rule_id: UUID
    customer_id: UUID
    entry_order_id: UUID
    triggered_service_id: UUID
    depth: int
    conversion_rate: Optional[float] = None
    priority: Optional[int] = None
    entry_service_name: Optional[str] = None


class CascadeOrchestrator:
    """Turn order completions into follow-on service orders.

    For every completed order the rules of its service are evaluated in
    index order.  A rule fires only when its conversion rate clears the
    activation threshold, the customer holds no order for the target
    service, its conditions pass and a random draw lands below the rate.
    A fired rule is recorded as a pending ``CascadeTrigger`` and the
    order itself is created after ``delay_seconds`` by a scheduled task.

    Orders created here carry ``cascade_depth = depth + 1``; their own
    completion re-enters ``on_order_completed`` at that depth, which
    bounds the chain at ``max_depth``.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        rule_index: CascadeRuleIndex,
        evaluator: ConditionEvaluator,
        calculator: PricingCalculator,
        profile_provider: CustomerProfileProvider,
        cache: CacheService,
        metrics: CascadeMetrics,
        notifier: NotificationPublisher,
        config: CascadeConfig,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._session_factory = session_factory
        self._rule_index = rule_index
        self._evaluator = evaluator
        self._calculator = calculator
        self._profiles = profile_provider
        self._cache = cache
        self._metrics = metrics
        self._notifier = notifier
        self._config = config
        self._rng = rng or random.Random()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Completion handling
    # ------------------------------------------------------------------

    def submit_completion(
        self, order_id: UUID, customer_id: UUID, depth: Optional[int] = None
    ) -> asyncio.Task:
        """Evaluate a completion in the background.

        Failures are logged and never reach the caller, so the order's own
        completion flow is unaffected by cascade problems.
        """

        async def _run() -> None:
            try:
                await self.on_order_completed(order_id, customer_id, depth)
            except Exception:
                logger.error(
                    "Cascade evaluation failed for order %s", order_id, exc_info=True
                )

        return self._track(asyncio.create_task(_run()))

    async def on_order_completed(
        self, order_id: UUID, customer_id: UUID, depth: Optional[int] = None
    ) -> List[CascadeDecision]:
        """Evaluate every rule of the completed order's service.

        The effective depth is the larger of *depth* and the
        ``cascade_depth`` stored on the order, so an event can never
        restart a chain below the depth the store already recorded.
        Returns one ``CascadeDecision`` per evaluated rule.
        """
        if depth is not None and depth >= self._config.max_depth:
            logger.info("Cascade depth %d reached for order %s", depth, order_id)
            return []

        async with self._session_factory() as session:
            order = await ServiceOrderRepository(session).get_by_id(order_id)
            if order is None:
                logger.warning("Completed order %s not found; no cascade", order_id)
                return []
            if order.status != OrderStatus.completed.value:
                logger.info(
                    "Order %s is %s, not completed; no cascade", order_id, order.status
                )
                return []
            if order.customer_id != customer_id:
                logger.warning(
                    "Order %s does not belong to customer %s; no cascade",
                    order_id,
                    customer_id,
                )
                return []

            depth = max(depth or 0, order.cascade_depth or 0)
            if depth >= self._config.max_depth:
                logger.info("Cascade depth %d reached for order %s", depth, order_id)
                return []

            entry_service_id = order.service_id
            rules = self._rule_index.rules_for(entry_service_id)
            if not rules:
                return []

            customer = await self._profiles.get_snapshot(session, customer_id)
            if customer is None:
                logger.warning("Customer %s not found; no cascade", customer_id)
                return []

            decisions = []
            for rule in rules:
                outcome, trigger_id = await self._evaluate_rule(
                    session, rule, order_id, order, customer, depth
                )
                decisions.append(
                    CascadeDecision(
                        rule_id=rule.rule_id,
                        triggered_service_id=rule.triggered_service_id,
                        outcome=outcome,
                        trigger_id=trigger_id,
                    )
                )

        logger.info(
            "Cascade evaluation for order %s (depth %d): %d rule(s), %d triggered",
            order_id,
            depth,
            len(decisions),
            sum(1 for d in decisions if d.outcome is CascadeOutcome.triggered),
        )
        return decisions

    async def _evaluate_rule(
        self,
        session: AsyncSession,
        rule: IndexedRule,
        order_id: UUID,
        order,
        customer: CustomerSnapshot,
        depth: int,
    ) -> Tuple[CascadeOutcome, Optional[UUID]]:
        if rule.conversion_rate < self._config.activation_threshold:
            return CascadeOutcome.threshold_failed, None

        existing = await ServiceOrderRepository(session).find_for_customer_service(
            customer.customer_id, rule.triggered_service_id
        )
        if existing is not None:
            return CascadeOutcome.already_held, None

        try:
            passed = self._evaluator.evaluate(rule.conditions, customer, order)
        except Exception:
            logger.warning(
                "Condition evaluation raised for rule %s; treating as failed",
                rule.rule_id,
                exc_info=True,
            )
            passed = False
        if not passed:
            return CascadeOutcome.conditions_failed, None

        if self._rng.random() >= rule.conversion_rate:
            return CascadeOutcome.probability_miss, None

        trigger_repo = CascadeTriggerRepository(session)
        try:
            trigger = await trigger_repo.create(
                customer_id=customer.customer_id,
                entry_order_id=order_id,
                cascade_rule_id=rule.rule_id,
                triggered_service_id=rule.triggered_service_id,
                depth=depth,
            )
        except DuplicateTriggerError:
            return CascadeOutcome.already_held, None
        trigger_id = trigger.trigger_id
        await trigger_repo.commit()

        logger.info(
            "Cascade triggered: customer %s, %s -> %s (rate %.2f, depth %d)",
            customer.customer_id,
            rule.entry_service_name or rule.entry_service_id,
            rule.triggered_service_name or rule.triggered_service_id,
            rule.conversion_rate,
            depth,
        )
        await self._metrics.record_triggered(rule.rule_id)
        self.schedule(
            ScheduledCascade(
                trigger_id=trigger_id,
                rule_id=rule.rule_id,
                customer_id=customer.customer_id,
                entry_order_id=order_id,
                triggered_service_id=rule.triggered_service_id,
                depth=depth,
                conversion_rate=rule.conversion_rate,
                priority=rule.priority,
                entry_service_name=rule.entry_service_name,
            )
        )
        return CascadeOutcome.triggered, trigger_id

    # ------------------------------------------------------------------
    # Deferred materialisation
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def schedule(self, job: ScheduledCascade, delay: Optional[float] = None) -> asyncio.Task:
        """Create the triggered order after *delay* seconds (default: configured)."""
        if delay is None:
            delay = self._config.delay_seconds
        return self._track(asyncio.create_task(self._run_later(job, delay)))

    async def _run_later(self, job: ScheduledCascade, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await self.materialize(job)
        except Exception:
            logger.error(
                "Unhandled error materialising trigger %s", job.trigger_id, exc_info=True
            )

    async def materialize(self, job: ScheduledCascade) -> Optional[UUID]:
        """Create the order for a pending trigger and mark it converted.

        Idempotent: a trigger that is no longer pending is left alone, and
        a customer who meanwhile acquired an order for the service gets
        the trigger abandoned instead of a second order.  Returns the new
        order id, or ``None`` when no order was created.
        """
        async with self._session_factory() as session:
            trigger_repo = CascadeTriggerRepository(session)
            trigger = await trigger_repo.get_by_id(job.trigger_id)
            if trigger is None:
                logger.warning("Scheduled trigger %s no longer exists", job.trigger_id)
                return None
            if trigger.status != TRIGGER_PENDING:
                logger.info(
                    "Trigger %s is %s; skipping materialisation",
                    job.trigger_id,
                    trigger.status,
                )
                return None

            try:
                order_repo = ServiceOrderRepository(session)
                existing = await order_repo.find_for_customer_service(
                    job.customer_id, job.triggered_service_id
                )
                if existing is not None:
                    await trigger_repo.mark_abandoned(
                        trigger, CascadeOutcome.already_held.value
                    )
                    await session.commit()
                    return None

                service = await ServiceRepository(session).get_active_by_id(
                    job.triggered_service_id
                )
                if service is None:
                    await trigger_repo.mark_abandoned(trigger, "service_unavailable")
                    await session.commit()
                    return None
                service_name = service.name

                customer = await self._profiles.get_snapshot(session, job.customer_id)
                pricing = self._calculator.calculate(service, customer)

                extra = {"priority": job.priority} if job.priority is not None else {}
                order = await order_repo.create(
                    customer_id=job.customer_id,
                    service_id=job.triggered_service_id,
                    status=OrderStatus.pending.value,
                    base_price=Decimal(str(pricing.base_price)),
                    final_price=Decimal(str(pricing.final_price)),
                    discount_amount=Decimal(str(pricing.discount_amount)),
                    **extra,
                    cascade_depth=job.depth + 1,
                    service_data={
                        "triggered_by": "cascade",
                        "cascade_trigger_id": str(job.trigger_id),
                        "cascade_rule_id": str(job.rule_id),
                        "entry_order_id": str(job.entry_order_id),
                        "original_conversion_rate": job.conversion_rate,
                        "depth": job.depth + 1,
                        "pricing": pricing.model_dump(mode="json"),
                    },
                    notes=(
                        f"Automatically triggered by {job.entry_service_name} completion"
                        if job.entry_service_name
                        else "Automatically triggered by cascade"
                    ),
                )
                order_id = order.order_id
                await trigger_repo.mark_converted(trigger, order_id)
                await JourneyRepository(session).create(
                    customer_id=job.customer_id,
                    stage="service_triggered",
                    touchpoints={
                        "service_id": str(job.triggered_service_id),
                        "service_name": service_name,
                        "triggered_by": job.entry_service_name,
                        "order_id": str(order_id),
                    },
                    conversion_probability=job.conversion_rate,
                    next_recommended_action=f"Follow up on {service_name}",
                )
                await session.commit()
            except Exception as exc:
                logger.error(
                    "Failed to materialise trigger %s", job.trigger_id, exc_info=True
                )
                await session.rollback()
                await self._abandon(job.trigger_id, f"materialization_failed: {exc}")
                return None

        await self._after_materialize(job, order_id, service_name, pricing.final_price)
        return order_id

    async def _after_materialize(
        self,
        job: ScheduledCascade,
        order_id: UUID,
        service_name: str,
        final_price: float,
    ) -> None:
        await self._notifier.service_recommended(
            customer_id=job.customer_id,
            service_id=job.triggered_service_id,
            order_id=order_id,
            final_price=final_price,
            service_name=service_name,
        )
        await self._notifier.cascade_triggered(
            customer_id=job.customer_id,
            rule_id=job.rule_id,
            entry_order_id=job.entry_order_id,
            service_id=job.triggered_service_id,
            order_id=order_id,
            final_price=final_price,
            conversion_rate=job.conversion_rate,
        )
        await self._metrics.record_converted(job.rule_id)
        await self._cache.set_json(
            TRIGGERED_SERVICE_KEY.format(
                customer_id=job.customer_id, service_id=job.triggered_service_id
            ),
            {
                "order_id": str(order_id),
                "triggered_at": datetime.now(timezone.utc).isoformat(),
                "conversion_rate": job.conversion_rate,
            },
            ttl=TRIGGERED_SERVICE_TTL,
        )
        await self._profiles.invalidate(job.customer_id)
        logger.info(
            "Cascade conversion: order %s created for customer %s (%s, %.2f)",
            order_id,
            job.customer_id,
            service_name,
            final_price,
        )

    async def _abandon(self, trigger_id: UUID, reason: str) -> None:
        """Mark a still-pending trigger abandoned in a fresh session."""
        try:
            async with self._session_factory() as session:
                repo = CascadeTriggerRepository(session)
                trigger = await repo.get_by_id(trigger_id)
                if trigger is None or trigger.status != TRIGGER_PENDING:
                    return
                await repo.mark_abandoned(trigger, reason[:500])
                await session.commit()
        except Exception:
            logger.error("Could not abandon trigger %s", trigger_id, exc_info=True)

    # ------------------------------------------------------------------
    # Operator and lifecycle operations
    # ------------------------------------------------------------------

    async def cancel_trigger(self, trigger_id: UUID) -> CascadeTrigger:
        """Abandon a pending trigger before its order is created.

        Raises ``TriggerNotFoundError`` or ``InvalidTriggerStateError``.
        """
        async with self._session_factory() as session:
            repo = CascadeTriggerRepository(session)
            trigger = await repo.get_by_id(trigger_id)
            if trigger is None:
                raise TriggerNotFoundError()
            if trigger.status != TRIGGER_PENDING:
                raise InvalidTriggerStateError(
                    f"Cascade trigger is already {trigger.status}"
                )
            await repo.mark_abandoned(trigger, "cancelled")
            await session.commit()
        logger.info("Cascade trigger %s cancelled by operator", trigger_id)
        return trigger

    async def recover_pending_triggers(self) -> Dict[str, int]:
        """Resume or expire triggers left pending by a previous process.

        Triggers younger than the pending timeout are rescheduled for the
        remainder of their delay; older ones are abandoned as ``timeout``.
        """
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self._config.pending_timeout_minutes)
        jobs: List[Tuple[ScheduledCascade, float]] = []
        abandoned = 0

        async with self._session_factory() as session:
            repo = CascadeTriggerRepository(session)
            for trigger in await repo.get_pending():
                triggered_at = trigger.triggered_at or now
                if triggered_at < cutoff:
                    await repo.mark_abandoned(trigger, "timeout")
                    abandoned += 1
                    continue
                rule = await self._rule_metadata(session, trigger.cascade_rule_id)
                elapsed = (now - triggered_at).total_seconds()
                jobs.append(
                    (
                        ScheduledCascade(
                            trigger_id=trigger.trigger_id,
                            rule_id=trigger.cascade_rule_id,
                            customer_id=trigger.customer_id,
                            entry_order_id=trigger.entry_order_id,
                            triggered_service_id=trigger.triggered_service_id,
                            depth=trigger.depth or 0,
                            conversion_rate=rule.get("conversion_rate"),
                            priority=rule.get("priority"),
                            entry_service_name=rule.get("entry_service_name"),
                        ),
                        max(0.0, self._config.delay_seconds - elapsed),
                    )
                )
            await session.commit()

        for job, delay in jobs:
            self.schedule(job, delay=delay)
        if jobs or abandoned:
            logger.info(
                "Recovered pending triggers: %d rescheduled, %d abandoned",
                len(jobs),
                abandoned,
            )
        return {"rescheduled": len(jobs), "abandoned": abandoned}

    async def _rule_metadata(
        self, session: AsyncSession, rule_id: UUID
    ) -> Dict[str, Any]:
        """Rate, priority and entry name of a rule, indexed or not.

        A rule deactivated since its trigger fired is read from the store;
        a deleted one yields an empty mapping.
        """
        rule = self._rule_index.get_rule(rule_id)
        if rule is not None:
            return {
                "conversion_rate": rule.conversion_rate,
                "priority": rule.priority,
                "entry_service_name": rule.entry_service_name,
            }
        row = await CascadeRuleRepository(session).get_rule_with_services(rule_id)
        if row is None:
            logger.warning("Rule %s of a pending trigger no longer exists", rule_id)
            return {}
        return row

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled evaluation and materialisation finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding tasks; their triggers stay pending for recovery."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Cascade orchestrator stopped (%d task(s) cancelled)", len(tasks))
