import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.core.config import OutcomeConfig
from cascade_engine.models.service_order import ServiceOrder
from cascade_engine.repositories.cascade_rule_repository import CascadeRuleRepository
from cascade_engine.repositories.cascade_trigger_repository import (
    CascadeTriggerRepository,
)
from cascade_engine.repositories.customer_repository import CustomerRepository
from cascade_engine.repositories.service_order_repository import ServiceOrderRepository
from cascade_engine.repositories.service_repository import ServiceRepository
from cascade_engine.schemas.common import OrderStatus
from cascade_engine.services.cascade_metrics import CascadeMetrics
from cascade_engine.services.rule_index import CascadeRuleIndex

logger = logging.getLogger(__name__)

# Price optimisation heuristics
_HIGH_CANCELLATION_RATE = 0.2
_UNDER_TARGET_PROGRESS = 0.5
_OVER_TARGET_PROGRESS = 1.2
_PRICE_STEP_DOWN = 0.95
_PRICE_STEP_UP = 1.05
_MIN_SIGNIFICANT_CHANGE = 0.02


class OutcomeTracker:
    """Feed realised results back into rule probabilities and base prices.

    Runs off the request path.  Rule rates move to the conversion rate
    actually observed over the trailing window; base prices move in
    small bounded steps based on cancellations and revenue against
    target.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        rule_index: CascadeRuleIndex,
        metrics: CascadeMetrics,
        config: OutcomeConfig,
        pending_timeout_minutes: int = 60,
    ) -> None:
        self._session_factory = session_factory
        self._rule_index = rule_index
        self._metrics = metrics
        self._config = config
        self._pending_timeout = timedelta(minutes=pending_timeout_minutes)

    def _window_start(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=self._config.window_days)

    async def optimize_rule_probabilities(self) -> List[Dict[str, Any]]:
        """Rewrite rule rates that drifted from their realised conversion.

        Only rules with at least ``min_sample_size`` triggers in the window
        are considered.  The index is reloaded when anything changed.
        """
        updates: List[Dict[str, Any]] = []
        async with self._session_factory() as session:
            repo = CascadeRuleRepository(session)
            performance = await repo.get_rule_performance(
                self._window_start(), self._config.min_sample_size
            )
            for row in performance:
                total = row["total_triggers"]
                if not total:
                    continue
                actual = row["successful_conversions"] / total
                expected = row["expected_rate"]
                if abs(actual - expected) <= self._config.rate_tolerance:
                    continue
                new_rate = round(actual, 4)
                await repo.update_conversion_rate(row["rule_id"], new_rate)
                updates.append(
                    {"rule_id": row["rule_id"], "old_rate": expected, "new_rate": new_rate}
                )
                logger.info(
                    "Cascade rule %s rate %.4f -> %.4f (%d/%d converted)",
                    row["rule_id"],
                    expected,
                    new_rate,
                    row["successful_conversions"],
                    total,
                )
            await session.commit()

        if updates:
            await self._rule_index.reload()
        return updates

    def price_adjustment(self, row: Dict[str, Any]) -> float:
        """Multiplicative base-price nudge for one service's performance row."""
        adjustment = 1.0
        total_orders = row["total_orders"]
        cancellation_rate = row["cancelled_orders"] / total_orders if total_orders else 0.0
        if cancellation_rate > _HIGH_CANCELLATION_RATE:
            adjustment *= _PRICE_STEP_DOWN

        target = row.get("annual_revenue_target")
        if target:
            annualised = row["revenue"] * 365 / self._config.window_days
            progress = annualised / target
            if progress < _UNDER_TARGET_PROGRESS:
                adjustment *= _PRICE_STEP_UP
            elif progress > _OVER_TARGET_PROGRESS:
                adjustment *= _PRICE_STEP_DOWN
        return adjustment

    async def optimize_service_prices(self) -> List[Dict[str, Any]]:
        """Nudge base prices of services with orders in the window."""
        updates: List[Dict[str, Any]] = []
        async with self._session_factory() as session:
            repo = ServiceRepository(session)
            for row in await repo.get_performance(self._window_start()):
                current: Decimal = row["base_price"]
                if not current:
                    continue
                adjustment = self.price_adjustment(row)
                if abs(adjustment - 1.0) <= _MIN_SIGNIFICANT_CHANGE:
                    continue
                if not (
                    self._config.min_price_factor
                    <= adjustment
                    <= self._config.max_price_factor
                ):
                    logger.warning(
                        "Price adjustment %.3f for service %s outside bounds; skipped",
                        adjustment,
                        row["slug"],
                    )
                    continue
                new_price = (current * Decimal(str(adjustment))).quantize(
                    Decimal("0.01"), rounding=ROUND_HALF_UP
                )
                await repo.update_base_price(row["service_id"], new_price)
                updates.append(
                    {
                        "service_id": row["service_id"],
                        "old_price": float(current),
                        "new_price": float(new_price),
                        "adjustment": adjustment,
                    }
                )
                logger.info(
                    "Service %s base price %s -> %s (x%.3f)",
                    row["slug"],
                    current,
                    new_price,
                    adjustment,
                )
            await session.commit()
        return updates

    async def cleanup_stale_triggers(self) -> int:
        """Abandon triggers that stayed pending past the timeout."""
        cutoff = datetime.now(timezone.utc) - self._pending_timeout
        async with self._session_factory() as session:
            count = await CascadeTriggerRepository(session).abandon_stale(cutoff)
            await session.commit()
        if count:
            logger.info("Abandoned %d stale cascade trigger(s)", count)
        return count

    async def record_order_completion(
        self, session: AsyncSession, order: ServiceOrder
    ) -> Optional[UUID]:
        """Book the revenue of a completed order exactly once.

        Updates the customer's running totals, credits the cascade trigger
        that produced the order (if any) and bumps the revenue counters.
        A repeated completion of the same order books nothing.  Returns
        the credited trigger id.
        """
        if order.status != OrderStatus.completed.value:
            return None
        if not await ServiceOrderRepository(session).mark_revenue_recorded(
            order.order_id
        ):
            logger.info("Revenue of order %s already booked; skipped", order.order_id)
            return None
        amount = Decimal(str(order.final_price or 0))
        trigger_id = None

        await CustomerRepository(session).add_spend(order.customer_id, amount)
        trigger_repo = CascadeTriggerRepository(session)
        trigger = await trigger_repo.find_by_triggered_order(order.order_id)
        if trigger is not None:
            trigger_id = trigger.trigger_id
            await trigger_repo.set_revenue(trigger_id, amount)
        await session.commit()

        await self._metrics.record_revenue(order.service_id, float(amount))
        return trigger_id

    async def run_cycle(self) -> Dict[str, int]:
        """One full pass: stale cleanup, rule rates, then base prices."""
        abandoned = await self.cleanup_stale_triggers()
        rule_updates = await self.optimize_rule_probabilities()
        price_updates = await self.optimize_service_prices()
        return {
            "triggers_abandoned": abandoned,
            "rules_updated": len(rule_updates),
            "prices_updated": len(price_updates),
        }


async def start_outcome_tracking_loop(
    tracker: OutcomeTracker, interval_seconds: int = 3600
) -> None:
    """Infinite loop that runs ``OutcomeTracker.run_cycle`` on a fixed interval.

    A failed cycle is logged and retried on the next tick.
    """
    logger.info("Outcome tracking background task started (interval=%ds)", interval_seconds)
    while True:
        try:
            summary = await tracker.run_cycle()
            logger.info(
                "Outcome tracking cycle complete: %d rule(s), %d price(s), %d trigger(s) abandoned",
                summary["rules_updated"],
                summary["prices_updated"],
                summary["triggers_abandoned"],
            )
        except Exception:
            logger.error("Outcome tracking cycle failed", exc_info=True)
        await asyncio.sleep(interval_seconds)
