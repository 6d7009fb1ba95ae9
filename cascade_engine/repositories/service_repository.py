from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func, select, update

from cascade_engine.models.service import Service
from cascade_engine.models.service_order import ServiceOrder
from cascade_engine.repositories.base import BaseRepository


class ServiceRepository(BaseRepository):
    """Encapsulates queries against the ``services`` table."""

    async def get_by_id(self, service_id: UUID) -> Optional[Service]:
        """Return a single service by primary key, or ``None``."""
        result = await self._db.execute(
            select(Service).where(Service.service_id == service_id)
        )
        return result.scalar_one_or_none()

    async def get_active_by_id(self, service_id: UUID) -> Optional[Service]:
        """Return the service only if it is currently offered."""
        result = await self._db.execute(
            select(Service).where(
                Service.service_id == service_id, Service.is_active.is_(True)
            )
        )
        return result.scalar_one_or_none()

    async def update_base_price(self, service_id: UUID, price: Decimal) -> None:
        await self._db.execute(
            update(Service).where(Service.service_id == service_id).values(base_price=price)
        )

    async def get_performance(self, since: datetime) -> List[Dict[str, Any]]:
        """Per-service order volume, cancellation and revenue since *since*.

        Only active services with at least one order in the window are
        returned.  Revenue sums ``final_price`` over completed orders.
        """
        total_orders = func.count(ServiceOrder.order_id)
        cancelled = func.count(ServiceOrder.order_id).filter(
            ServiceOrder.status == "cancelled"
        )
        revenue = func.coalesce(
            func.sum(
                case(
                    (ServiceOrder.status == "completed", ServiceOrder.final_price),
                    else_=0,
                )
            ),
            0,
        )
        query = (
            select(
                Service.service_id,
                Service.slug,
                Service.base_price,
                Service.annual_revenue_target,
                total_orders.label("total_orders"),
                cancelled.label("cancelled_orders"),
                revenue.label("revenue"),
            )
            .join(ServiceOrder, ServiceOrder.service_id == Service.service_id)
            .where(Service.is_active.is_(True), ServiceOrder.created_at >= since)
            .group_by(
                Service.service_id,
                Service.slug,
                Service.base_price,
                Service.annual_revenue_target,
            )
        )
        rows = await self._db.execute(query)
        return [
            {
                "service_id": row.service_id,
                "slug": row.slug,
                "base_price": Decimal(row.base_price or 0),
                "annual_revenue_target": (
                    float(row.annual_revenue_target)
                    if row.annual_revenue_target is not None
                    else None
                ),
                "total_orders": int(row.total_orders),
                "cancelled_orders": int(row.cancelled_orders),
                "revenue": float(row.revenue or 0),
            }
            for row in rows
        ]
