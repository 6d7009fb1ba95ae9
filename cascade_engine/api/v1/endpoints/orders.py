import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.api.deps import get_db, get_orchestrator, get_outcome_tracker
from cascade_engine.core.exceptions import OrderNotFoundError
from cascade_engine.repositories.service_order_repository import ServiceOrderRepository
from cascade_engine.schemas.cascade import OrderCompletedAccepted, OrderCompletedEvent
from cascade_engine.schemas.common import OrderStatus
from cascade_engine.services.cascade_orchestrator import CascadeOrchestrator
from cascade_engine.services.outcome_tracker import OutcomeTracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "/{order_id}/completed",
    response_model=OrderCompletedAccepted,
    status_code=202,
)
async def order_completed(
    order_id: UUID,
    event: OrderCompletedEvent,
    db: AsyncSession = Depends(get_db),
    orchestrator: CascadeOrchestrator = Depends(get_orchestrator),
    tracker: OutcomeTracker = Depends(get_outcome_tracker),
) -> OrderCompletedAccepted:
    """Inbound "order completed" event from order management.

    Books the order's revenue, then evaluates cascades in the
    background.  Orders that are not ``completed`` are acknowledged but
    not queued.
    """
    order = await ServiceOrderRepository(db).get_by_id(order_id)
    if order is None or order.customer_id != event.customer_id:
        raise OrderNotFoundError(f"Service order {order_id} not found for customer")

    if order.status != OrderStatus.completed.value:
        logger.info("Order %s reported completed but is %s", order_id, order.status)
        return OrderCompletedAccepted(order_id=order_id, queued=False)

    await tracker.record_order_completion(db, order)
    orchestrator.submit_completion(order_id, event.customer_id, event.cascade_depth)
    return OrderCompletedAccepted(order_id=order_id, queued=True)
