"""Service order repository – order lookups and creation."""

import secrets
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select, update

from cascade_engine.core.constants import ORDER_NUMBER_PREFIX
from cascade_engine.models.service_order import ServiceOrder
from cascade_engine.repositories.base import BaseRepository


class ServiceOrderRepository(BaseRepository):
    """Encapsulates queries against the ``service_orders`` table."""

    async def get_by_id(self, order_id: UUID) -> Optional[ServiceOrder]:
        """Return a single order by primary key, or ``None``."""
        result = await self._db.execute(
            select(ServiceOrder).where(ServiceOrder.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def find_for_customer_service(
        self, customer_id: UUID, service_id: UUID
    ) -> Optional[ServiceOrder]:
        """Return any order (in any status) the customer holds for a service.

        A customer who already bought a service is never cascaded into it
        again, so cancelled and completed orders count as well.
        """
        result = await self._db.execute(
            select(ServiceOrder)
            .where(
                ServiceOrder.customer_id == customer_id,
                ServiceOrder.service_id == service_id,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def mark_revenue_recorded(self, order_id: UUID) -> bool:
        """Stamp ``revenue_recorded_at`` unless it is already set.

        Returns ``True`` only for the call that set it.  The row lock taken
        by the UPDATE serialises concurrent callers until commit.
        """
        result = await self._db.execute(
            update(ServiceOrder)
            .where(
                ServiceOrder.order_id == order_id,
                ServiceOrder.revenue_recorded_at.is_(None),
            )
            .values(revenue_recorded_at=func.now())
        )
        return result.rowcount == 1

    async def create(self, **kwargs: Any) -> ServiceOrder:
        """Insert a new order and flush so its primary key is populated."""
        kwargs.setdefault("order_number", self.generate_order_number())
        order = ServiceOrder(**kwargs)
        self._db.add(order)
        await self._db.flush()
        return order

    @staticmethod
    def generate_order_number() -> str:
        """Human-readable order reference, e.g. ``SCE-20261018-4F9A1C2B``."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
        return f"{ORDER_NUMBER_PREFIX}-{stamp}-{secrets.token_hex(4).upper()}"
