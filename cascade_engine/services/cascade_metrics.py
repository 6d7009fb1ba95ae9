import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.core.cache import CacheService
from cascade_engine.repositories.cascade_trigger_repository import (
    CascadeTriggerRepository,
)
from cascade_engine.schemas.cascade import CascadeMetricsOut

logger = logging.getLogger(__name__)

RULE_COUNTER_KEY = "metrics:cascade_rule:{rule_id}:{event}"
SERVICE_REVENUE_KEY = "metrics:service_revenue:{service_id}:{day}"
DAILY_REVENUE_KEY = "metrics:revenue:daily:{day}"
MONTHLY_REVENUE_KEY = "metrics:revenue:monthly:{month}"
ANNUAL_REVENUE_KEY = "metrics:revenue:annual:{year}"

# Counter retention (seconds)
_DAILY_TTL = 90 * 86400
_MONTHLY_TTL = 400 * 86400


class CascadeMetrics:
    """Per-rule and revenue counters kept in the cache.

    Counters are best-effort: with no cache they are silently skipped.
    Durable aggregates come from ``cascade_triggers`` instead.
    """

    def __init__(self, cache: CacheService) -> None:
        self._cache = cache

    async def record_triggered(self, rule_id: UUID) -> None:
        await self._cache.incr(RULE_COUNTER_KEY.format(rule_id=rule_id, event="triggered"))

    async def record_converted(self, rule_id: UUID) -> None:
        await self._cache.incr(RULE_COUNTER_KEY.format(rule_id=rule_id, event="converted"))

    async def record_revenue(
        self, service_id: UUID, amount: float, day: Optional[date] = None
    ) -> None:
        """Add *amount* to the per-service daily and the global day/month/year totals."""
        day = day or datetime.now(timezone.utc).date()
        await self._cache.incr_float(
            SERVICE_REVENUE_KEY.format(service_id=service_id, day=day.isoformat()),
            amount,
            ttl=_DAILY_TTL,
        )
        await self._cache.incr_float(
            DAILY_REVENUE_KEY.format(day=day.isoformat()), amount, ttl=_DAILY_TTL
        )
        await self._cache.incr_float(
            MONTHLY_REVENUE_KEY.format(month=day.strftime("%Y-%m")),
            amount,
            ttl=_MONTHLY_TTL,
        )
        await self._cache.incr_float(
            ANNUAL_REVENUE_KEY.format(year=day.year), amount
        )

    async def get_cascade_metrics(
        self, session: AsyncSession, days: int = 30
    ) -> CascadeMetricsOut:
        """Trigger and conversion aggregates over the trailing *days*."""
        since = datetime.now(timezone.utc) - timedelta(days=days)
        stats = await CascadeTriggerRepository(session).get_metrics(since)
        total = stats["total_triggers"]
        conversion_rate = (
            round(stats["successful_conversions"] / total * 100, 2) if total else 0.0
        )
        return CascadeMetricsOut(
            days=days,
            total_triggers=total,
            successful_conversions=stats["successful_conversions"],
            conversion_rate=conversion_rate,
            avg_revenue=round(stats["avg_revenue"], 2),
            total_revenue=round(stats["total_revenue"], 2),
        )
