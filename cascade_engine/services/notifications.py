import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from cascade_engine.core.cache import CacheService
from cascade_engine.core.constants import NOTIFICATION_KEYS

logger = logging.getLogger(__name__)


class NotificationPublisher:
    """Queue outbound cascade messages for the notification boundary.

    Messages are JSON documents appended to cache lists; a separate
    delivery worker drains them.  Publishing never raises.
    """

    def __init__(self, cache: CacheService) -> None:
        self._cache = cache

    async def _publish(self, key: str, message: Dict[str, Any]) -> bool:
        message.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        queued = await self._cache.push_json(key, message)
        if not queued:
            logger.info("Notification %s not queued (cache unavailable)", message["type"])
        return queued

    async def service_recommended(
        self,
        customer_id: UUID,
        service_id: UUID,
        order_id: UUID,
        final_price: float,
        service_name: Optional[str] = None,
    ) -> bool:
        """Customer-facing recommendation of the newly created order."""
        return await self._publish(
            NOTIFICATION_KEYS["customer"].format(customer_id=customer_id),
            {
                "type": "service_recommended",
                "customer_id": str(customer_id),
                "service_id": str(service_id),
                "service_name": service_name,
                "order_id": str(order_id),
                "final_price": final_price,
            },
        )

    async def cascade_triggered(
        self,
        customer_id: UUID,
        rule_id: UUID,
        entry_order_id: UUID,
        service_id: UUID,
        order_id: UUID,
        final_price: float,
        conversion_rate: Optional[float] = None,
    ) -> bool:
        """Administrator-facing record of a cascade that produced an order."""
        return await self._publish(
            NOTIFICATION_KEYS["admin"],
            {
                "type": "cascade_triggered",
                "customer_id": str(customer_id),
                "rule_id": str(rule_id),
                "entry_order_id": str(entry_order_id),
                "service_id": str(service_id),
                "order_id": str(order_id),
                "final_price": final_price,
                "conversion_rate": conversion_rate,
            },
        )
