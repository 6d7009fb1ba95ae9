"""Cascade trigger repository – lifecycle writes and aggregate reads."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from cascade_engine.core.constants import (
    TRIGGER_ABANDONED,
    TRIGGER_CONVERTED,
    TRIGGER_PENDING,
)
from cascade_engine.core.exceptions import DuplicateTriggerError
from cascade_engine.models.cascade_trigger import CascadeTrigger
from cascade_engine.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class CascadeTriggerRepository(BaseRepository):
    """Encapsulates queries against the ``cascade_triggers`` table."""

    async def create(self, **kwargs: Any) -> CascadeTrigger:
        """Insert a pending trigger and flush so the unique index is checked.

        Raises ``DuplicateTriggerError`` when a live trigger already
        exists for the same customer and triggered service.  The session
        is rolled back before raising.
        """
        trigger = CascadeTrigger(status=TRIGGER_PENDING, converted=False, **kwargs)
        self._db.add(trigger)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            await self._db.rollback()
            logger.info(
                "Live trigger already exists for customer %s / service %s",
                kwargs.get("customer_id"),
                kwargs.get("triggered_service_id"),
            )
            raise DuplicateTriggerError() from exc
        return trigger

    async def get_by_id(self, trigger_id: UUID) -> Optional[CascadeTrigger]:
        """Return a single trigger by primary key, or ``None``."""
        result = await self._db.execute(
            select(CascadeTrigger).where(CascadeTrigger.trigger_id == trigger_id)
        )
        return result.scalar_one_or_none()

    async def find_by_triggered_order(self, order_id: UUID) -> Optional[CascadeTrigger]:
        """Return the trigger that materialised *order_id*, if any."""
        result = await self._db.execute(
            select(CascadeTrigger).where(CascadeTrigger.triggered_order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def get_pending(self) -> List[CascadeTrigger]:
        """Return every pending trigger, oldest first."""
        result = await self._db.execute(
            select(CascadeTrigger)
            .where(CascadeTrigger.status == TRIGGER_PENDING)
            .order_by(CascadeTrigger.triggered_at.asc())
        )
        return list(result.scalars().all())

    async def mark_converted(self, trigger: CascadeTrigger, order_id: UUID) -> None:
        """Link the triggered order and close the trigger as converted."""
        trigger.status = TRIGGER_CONVERTED
        trigger.converted = True
        trigger.triggered_order_id = order_id
        trigger.converted_at = datetime.now(timezone.utc)

    async def mark_abandoned(self, trigger: CascadeTrigger, reason: str) -> None:
        """Close a trigger without an order, recording why."""
        trigger.status = TRIGGER_ABANDONED
        trigger.converted = False
        trigger.failure_reason = reason
        trigger.abandoned_at = datetime.now(timezone.utc)

    async def abandon_stale(self, cutoff: datetime, reason: str = "timeout") -> int:
        """Abandon every trigger still pending since before *cutoff*.

        Returns the number of triggers closed.
        """
        result = await self._db.execute(
            update(CascadeTrigger)
            .where(
                CascadeTrigger.status == TRIGGER_PENDING,
                CascadeTrigger.triggered_at < cutoff,
            )
            .values(
                status=TRIGGER_ABANDONED,
                converted=False,
                failure_reason=reason,
                abandoned_at=func.now(),
            )
        )
        return result.rowcount or 0

    async def set_revenue(self, trigger_id: UUID, amount: Decimal) -> None:
        """Record the revenue realised by the order a trigger produced."""
        await self._db.execute(
            update(CascadeTrigger)
            .where(CascadeTrigger.trigger_id == trigger_id)
            .values(revenue_generated=amount)
        )

    async def get_metrics(self, since: datetime) -> Dict[str, Any]:
        """Aggregate trigger counts and realised revenue since *since*."""
        query = select(
            func.count(CascadeTrigger.trigger_id).label("total_triggers"),
            func.count(CascadeTrigger.trigger_id)
            .filter(CascadeTrigger.converted.is_(True))
            .label("successful_conversions"),
            func.coalesce(func.avg(CascadeTrigger.revenue_generated), 0).label(
                "avg_revenue"
            ),
            func.coalesce(func.sum(CascadeTrigger.revenue_generated), 0).label(
                "total_revenue"
            ),
        ).where(CascadeTrigger.triggered_at >= since)
        row = (await self._db.execute(query)).one()
        return {
            "total_triggers": int(row.total_triggers or 0),
            "successful_conversions": int(row.successful_conversions or 0),
            "avg_revenue": float(row.avg_revenue or 0),
            "total_revenue": float(row.total_revenue or 0),
        }
