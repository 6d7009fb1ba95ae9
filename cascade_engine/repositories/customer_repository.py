from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update

from cascade_engine.models.customer import Customer
from cascade_engine.models.service_order import ServiceOrder
from cascade_engine.models.vehicle import Vehicle
from cascade_engine.repositories.base import BaseRepository


class CustomerRepository(BaseRepository):
    """Encapsulates queries against ``customers`` and their history."""

    async def get_by_id(self, customer_id: UUID) -> Optional[Customer]:
        """Return a single customer by primary key, or ``None``."""
        result = await self._db.execute(
            select(Customer).where(Customer.customer_id == customer_id)
        )
        return result.scalar_one_or_none()

    async def get_order_aggregate(self, customer_id: UUID) -> Dict[str, Any]:
        """Count, spend and most recent date of the customer's non-cancelled orders."""
        query = select(
            func.count(ServiceOrder.order_id).label("order_count"),
            func.coalesce(func.sum(ServiceOrder.final_price), 0).label("total_spent"),
            func.max(ServiceOrder.created_at).label("last_order_at"),
        ).where(
            ServiceOrder.customer_id == customer_id,
            ServiceOrder.status != "cancelled",
        )
        row = (await self._db.execute(query)).one()
        return {
            "order_count": int(row.order_count or 0),
            "total_spent": float(row.total_spent or 0),
            "last_order_at": row.last_order_at,
        }

    async def get_recent_vehicle_conditions(
        self, customer_id: UUID, limit: int = 5
    ) -> List[str]:
        """Conditions of the customer's most recently added vehicles."""
        result = await self._db.execute(
            select(Vehicle.condition)
            .where(Vehicle.customer_id == customer_id, Vehicle.condition.is_not(None))
            .order_by(Vehicle.created_at.desc())
            .limit(limit)
        )
        return [condition for condition in result.scalars().all()]

    async def add_spend(self, customer_id: UUID, amount: Decimal) -> None:
        """Roll a completed order's price into the customer's running totals."""
        await self._db.execute(
            update(Customer)
            .where(Customer.customer_id == customer_id)
            .values(
                total_spent=func.coalesce(Customer.total_spent, 0) + amount,
                lifetime_value=func.coalesce(Customer.lifetime_value, 0) + amount,
                services_count=func.coalesce(Customer.services_count, 0) + 1,
            )
        )
