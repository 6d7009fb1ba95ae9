import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.core.cache import CacheService
from cascade_engine.core.constants import CUSTOMER_PROFILE_KEY, NO_ORDER_HISTORY_DAYS
from cascade_engine.repositories.customer_repository import CustomerRepository
from cascade_engine.schemas.customer import CustomerSnapshot

logger = logging.getLogger(__name__)


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


class CustomerProfileProvider:
    """Read-through cache of ``CustomerSnapshot`` objects.

    Snapshots live under ``customer_profile:{customer_id}`` for
    ``ttl_seconds``.  A cache outage or an unreadable entry falls
    through to the database.
    """

    def __init__(self, cache: CacheService, ttl_seconds: int = 1800) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    @staticmethod
    def _key(customer_id: UUID) -> str:
        return CUSTOMER_PROFILE_KEY.format(customer_id=customer_id)

    async def get_snapshot(
        self, session: AsyncSession, customer_id: UUID
    ) -> Optional[CustomerSnapshot]:
        """Return the customer's snapshot, or ``None`` if the customer is unknown."""
        key = self._key(customer_id)
        cached = await self._cache.get_json(key)
        if cached:
            try:
                return CustomerSnapshot.model_validate(cached)
            except ValidationError:
                logger.warning("Discarding unreadable profile cache entry %s", key)
                await self._cache.delete(key)

        snapshot = await self.build_snapshot(session, customer_id)
        if snapshot is not None:
            await self._cache.set_json(
                key, snapshot.model_dump(mode="json"), ttl=self._ttl
            )
        return snapshot

    async def build_snapshot(
        self, session: AsyncSession, customer_id: UUID
    ) -> Optional[CustomerSnapshot]:
        repo = CustomerRepository(session)
        customer = await repo.get_by_id(customer_id)
        if customer is None:
            return None

        aggregate = await repo.get_order_aggregate(customer_id)
        conditions = await repo.get_recent_vehicle_conditions(customer_id)

        now = datetime.now(timezone.utc)
        last_order_at = aggregate["last_order_at"]
        if last_order_at is None:
            days_since_last_order = NO_ORDER_HISTORY_DAYS
        else:
            days_since_last_order = max(0, (now - last_order_at).days)

        return CustomerSnapshot(
            customer_id=customer.customer_id,
            customer_type=customer.customer_type or "individual",
            business_name=customer.business_name,
            credit_score=customer.credit_score,
            vehicle_value=_as_float(customer.vehicle_value),
            annual_income=_as_float(customer.annual_income),
            journey_stage=customer.journey_stage,
            lifetime_spend=aggregate["total_spent"],
            order_count=aggregate["order_count"],
            recent_vehicle_conditions=tuple(conditions),
            days_since_last_order=days_since_last_order,
            last_order_at=last_order_at,
            captured_at=now,
        )

    async def invalidate(self, customer_id: UUID) -> None:
        """Drop the cached snapshot so the next read recomputes it."""
        await self._cache.delete(self._key(customer_id))
