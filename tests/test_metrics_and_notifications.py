import json
from datetime import date
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from cascade_engine.core.cache import CacheService
from cascade_engine.services.cascade_metrics import CascadeMetrics
from cascade_engine.services.notifications import NotificationPublisher


class TestCascadeMetrics:

    @pytest.mark.asyncio
    async def test_rule_counters(self, mock_cache, mock_redis):
        rule_id = uuid4()
        metrics = CascadeMetrics(mock_cache)

        await metrics.record_triggered(rule_id)
        await metrics.record_converted(rule_id)

        keys = [c[0][0] for c in mock_redis.incr.await_args_list]
        assert keys == [
            f"metrics:cascade_rule:{rule_id}:triggered",
            f"metrics:cascade_rule:{rule_id}:converted",
        ]

    @pytest.mark.asyncio
    async def test_revenue_rolled_into_every_period(self, mock_cache, mock_redis):
        service_id = uuid4()

        await CascadeMetrics(mock_cache).record_revenue(
            service_id, 1050.0, day=date(2026, 10, 18)
        )

        keys = [c[0][0] for c in mock_redis.incrbyfloat.await_args_list]
        assert keys == [
            f"metrics:service_revenue:{service_id}:2026-10-18",
            "metrics:revenue:daily:2026-10-18",
            "metrics:revenue:monthly:2026-10",
            "metrics:revenue:annual:2026",
        ]
        assert all(c[0][1] == 1050.0 for c in mock_redis.incrbyfloat.await_args_list)

    @pytest.mark.asyncio
    async def test_cascade_metrics_from_triggers(self, mock_cache, mock_session):
        with patch(
            "cascade_engine.services.cascade_metrics.CascadeTriggerRepository"
        ) as MockRepo:
            MockRepo.return_value.get_metrics = AsyncMock(
                return_value={
                    "total_triggers": 40,
                    "successful_conversions": 10,
                    "avg_revenue": 812.5,
                    "total_revenue": 8125.0,
                }
            )

            result = await CascadeMetrics(mock_cache).get_cascade_metrics(
                mock_session, days=7
            )

        assert result.days == 7
        assert result.conversion_rate == 25.0
        assert result.avg_revenue == 812.5

    @pytest.mark.asyncio
    async def test_no_triggers_means_zero_rate(self, mock_cache, mock_session):
        with patch(
            "cascade_engine.services.cascade_metrics.CascadeTriggerRepository"
        ) as MockRepo:
            MockRepo.return_value.get_metrics = AsyncMock(
                return_value={
                    "total_triggers": 0,
                    "successful_conversions": 0,
                    "avg_revenue": 0.0,
                    "total_revenue": 0.0,
                }
            )

            result = await CascadeMetrics(mock_cache).get_cascade_metrics(mock_session)

        assert result.conversion_rate == 0.0


class TestNotificationPublisher:

    @pytest.mark.asyncio
    async def test_service_recommended_goes_to_customer_queue(
        self, mock_cache, mock_redis
    ):
        customer_id, service_id, order_id = uuid4(), uuid4(), uuid4()

        queued = await NotificationPublisher(mock_cache).service_recommended(
            customer_id, service_id, order_id, 1050.0, service_name="Vehicle Finance"
        )

        assert queued is True
        key, payload = mock_redis.rpush.await_args[0]
        message = json.loads(payload)
        assert key == f"notifications:customer:{customer_id}"
        assert message["type"] == "service_recommended"
        assert message["order_id"] == str(order_id)
        assert message["final_price"] == 1050.0
        assert "created_at" in message

    @pytest.mark.asyncio
    async def test_cascade_triggered_goes_to_admin_queue(self, mock_cache, mock_redis):
        rule_id = uuid4()

        await NotificationPublisher(mock_cache).cascade_triggered(
            uuid4(), rule_id, uuid4(), uuid4(), uuid4(), 980.0, conversion_rate=0.84
        )

        key, payload = mock_redis.rpush.await_args[0]
        message = json.loads(payload)
        assert key == "notifications:admin"
        assert message["rule_id"] == str(rule_id)
        assert message["conversion_rate"] == 0.84

    @pytest.mark.asyncio
    async def test_publishing_without_cache_does_not_raise(self):
        publisher = NotificationPublisher(CacheService(redis_client=None))

        queued = await publisher.service_recommended(uuid4(), uuid4(), uuid4(), 10.0)

        assert queued is False
