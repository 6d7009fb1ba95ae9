from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cascade_engine.core.config import PricingConfig
from cascade_engine.core.database import get_db
from cascade_engine.core.exceptions import (
    InvalidTriggerStateError,
    TriggerNotFoundError,
)
from cascade_engine.main import app
from cascade_engine.schemas.cascade import CascadeMetricsOut
from cascade_engine.schemas.customer import CustomerSnapshot
from cascade_engine.services.condition_evaluator import parse_conditions
from cascade_engine.services.pricing import PricingCalculator
from cascade_engine.services.rule_index import IndexedRule

ENTRY_SERVICE = uuid4()


def _make_rule(priority=1, rate=0.84):
    return IndexedRule(
        rule_id=uuid4(),
        entry_service_id=ENTRY_SERVICE,
        triggered_service_id=uuid4(),
        conversion_rate=rate,
        priority=priority,
        conditions=parse_conditions({"min_credit_score": 500}),
        entry_service_name="Credit Analysis",
        triggered_service_name="Vehicle Finance",
    )


def _make_order(customer_id, status="completed"):
    order = MagicMock()
    order.order_id = uuid4()
    order.customer_id = customer_id
    order.status = status
    return order


@pytest.fixture
def mock_engine(mock_cache) -> MagicMock:
    """Engine whose components are mocks, except for the real calculator."""
    engine = MagicMock()
    engine.cache = mock_cache
    engine.rule_index.is_loaded = True
    engine.rule_index.snapshot.rules_loaded = 11
    engine.rule_index.rules_for = MagicMock(return_value=())
    engine.rule_index.reload = AsyncMock()
    engine.calculator = PricingCalculator(PricingConfig())
    engine.profiles.get_snapshot = AsyncMock(return_value=None)
    engine.metrics.get_cascade_metrics = AsyncMock()
    engine.orchestrator.cancel_trigger = AsyncMock()
    engine.orchestrator.submit_completion = MagicMock()
    engine.outcome_tracker.record_order_completion = AsyncMock(return_value=None)
    return engine


@pytest_asyncio.fixture
async def client(mock_engine, mock_session) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx.AsyncClient wired to the app with a mocked engine."""

    async def _override_db():
        yield mock_session

    app.state.engine = mock_engine
    app.dependency_overrides[get_db] = _override_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    app.state.engine = None


class TestHealthAndCors:

    @pytest.mark.asyncio
    async def test_health_reports_loaded_rules(self, client):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "rules_loaded": 11,
            "cache_available": True,
        }

    @pytest.mark.asyncio
    async def test_health_while_starting(self, client):
        app.state.engine = None

        response = await client.get("/api/v1/health")

        assert response.json()["status"] == "starting"

    @pytest.mark.asyncio
    async def test_cors_headers_on_get(self, client):
        response = await client.get(
            "/api/v1/health", headers={"Origin": "http://localhost:3000"}
        )
        assert response.headers.get("access-control-allow-origin") == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_engine_not_ready_returns_503(self, client):
        app.state.engine = None

        response = await client.get(f"/api/v1/cascade/rules/{ENTRY_SERVICE}")

        assert response.status_code == 503
        assert response.json()["type"] == "engine_not_ready"


class TestCascadeEndpoints:

    @pytest.mark.asyncio
    async def test_list_rules_in_evaluation_order(self, client, mock_engine):
        rules = (_make_rule(priority=1, rate=0.84), _make_rule(priority=2, rate=0.76))
        mock_engine.rule_index.rules_for.return_value = rules

        response = await client.get(f"/api/v1/cascade/rules/{ENTRY_SERVICE}")

        assert response.status_code == 200
        body = response.json()
        assert body["service_id"] == str(ENTRY_SERVICE)
        assert [r["rule_id"] for r in body["rules"]] == [str(r.rule_id) for r in rules]
        assert body["rules"][0]["conditions"] == {"min_credit_score": 500}

    @pytest.mark.asyncio
    async def test_invalid_service_id_returns_validation_error(self, client):
        response = await client.get("/api/v1/cascade/rules/not-a-uuid")

        assert response.status_code == 422
        assert response.json()["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_reload_rules(self, client, mock_engine):
        mock_engine.rule_index.reload.return_value = MagicMock(
            rules_loaded=11, services_indexed=6, rules_rejected=1
        )

        response = await client.post("/api/v1/cascade/rules/reload")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "rules_loaded": 11,
            "services_indexed": 6,
            "rules_rejected": 1,
        }

    @pytest.mark.asyncio
    async def test_metrics(self, client, mock_engine, mock_session):
        mock_engine.metrics.get_cascade_metrics.return_value = CascadeMetricsOut(
            days=7, total_triggers=40, successful_conversions=10, conversion_rate=25.0
        )

        response = await client.get("/api/v1/cascade/metrics", params={"days": 7})

        assert response.status_code == 200
        assert response.json()["conversion_rate"] == 25.0
        mock_engine.metrics.get_cascade_metrics.assert_awaited_once_with(mock_session, 7)

    @pytest.mark.asyncio
    async def test_metrics_window_validated(self, client):
        response = await client.get("/api/v1/cascade/metrics", params={"days": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_cancel_trigger(self, client, mock_engine):
        trigger = MagicMock()
        trigger.trigger_id = uuid4()
        trigger.status = "abandoned"
        trigger.converted = False
        trigger.failure_reason = "cancelled"
        trigger.abandoned_at = None
        mock_engine.orchestrator.cancel_trigger.return_value = trigger

        response = await client.post(
            f"/api/v1/cascade/triggers/{trigger.trigger_id}/cancel"
        )

        assert response.status_code == 200
        assert response.json()["status"] == "abandoned"
        assert response.json()["failure_reason"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_converted_trigger_conflicts(self, client, mock_engine):
        mock_engine.orchestrator.cancel_trigger.side_effect = InvalidTriggerStateError(
            "Cascade trigger is already converted"
        )

        response = await client.post(f"/api/v1/cascade/triggers/{uuid4()}/cancel")

        assert response.status_code == 409
        assert response.json()["type"] == "invalid_trigger_state"

    @pytest.mark.asyncio
    async def test_cancel_unknown_trigger(self, client, mock_engine):
        mock_engine.orchestrator.cancel_trigger.side_effect = TriggerNotFoundError()

        response = await client.post(f"/api/v1/cascade/triggers/{uuid4()}/cancel")

        assert response.status_code == 404
        assert response.json()["type"] == "trigger_not_found"


class TestOrderCompletedEndpoint:

    @pytest.mark.asyncio
    async def test_completed_order_is_queued(self, client, mock_engine):
        customer_id = uuid4()
        order = _make_order(customer_id)

        with patch(
            "cascade_engine.api.v1.endpoints.orders.ServiceOrderRepository"
        ) as MockRepo:
            MockRepo.return_value.get_by_id = AsyncMock(return_value=order)
            response = await client.post(
                f"/api/v1/orders/{order.order_id}/completed",
                json={"customer_id": str(customer_id)},
            )

        assert response.status_code == 202
        assert response.json()["queued"] is True
        mock_engine.outcome_tracker.record_order_completion.assert_awaited_once()
        mock_engine.orchestrator.submit_completion.assert_called_once_with(
            order.order_id, customer_id, None
        )

    @pytest.mark.asyncio
    async def test_pending_order_is_not_queued(self, client, mock_engine):
        customer_id = uuid4()
        order = _make_order(customer_id, status="in_progress")

        with patch(
            "cascade_engine.api.v1.endpoints.orders.ServiceOrderRepository"
        ) as MockRepo:
            MockRepo.return_value.get_by_id = AsyncMock(return_value=order)
            response = await client.post(
                f"/api/v1/orders/{order.order_id}/completed",
                json={"customer_id": str(customer_id)},
            )

        assert response.status_code == 202
        assert response.json()["queued"] is False
        mock_engine.orchestrator.submit_completion.assert_not_called()

    @pytest.mark.asyncio
    async def test_order_of_other_customer_not_found(self, client, mock_engine):
        order = _make_order(uuid4())

        with patch(
            "cascade_engine.api.v1.endpoints.orders.ServiceOrderRepository"
        ) as MockRepo:
            MockRepo.return_value.get_by_id = AsyncMock(return_value=order)
            response = await client.post(
                f"/api/v1/orders/{order.order_id}/completed",
                json={"customer_id": str(uuid4())},
            )

        assert response.status_code == 404
        assert response.json()["type"] == "order_not_found"

    @pytest.mark.asyncio
    async def test_negative_depth_rejected(self, client):
        response = await client.post(
            f"/api/v1/orders/{uuid4()}/completed",
            json={"customer_id": str(uuid4()), "cascade_depth": -1},
        )
        assert response.status_code == 422


class TestPricingQuoteEndpoint:

    @pytest.mark.asyncio
    async def test_quote_returns_breakdown(self, client, mock_engine):
        service = MagicMock()
        service.service_id = uuid4()
        service.base_price = Decimal("1000.00")
        service.service_category = "support"
        customer = CustomerSnapshot(
            customer_id=uuid4(), credit_score=720, vehicle_value=30_000.0, order_count=2
        )
        mock_engine.profiles.get_snapshot.return_value = customer

        with patch(
            "cascade_engine.api.v1.endpoints.pricing.ServiceRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_by_id = AsyncMock(return_value=service)
            response = await client.post(
                "/api/v1/pricing/quote",
                json={
                    "service_id": str(service.service_id),
                    "customer_id": str(customer.customer_id),
                    "urgency": "expedited",
                },
            )

        assert response.status_code == 200
        body = response.json()
        assert body["base_price"] == 1000.0
        assert body["min_price"] <= body["final_price"] <= body["max_price"]
        assert "urgency" in [f["type"] for f in body["adjustment_factors"]]
        assert body["complete"] is True

    @pytest.mark.asyncio
    async def test_quote_unknown_service(self, client):
        with patch(
            "cascade_engine.api.v1.endpoints.pricing.ServiceRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_by_id = AsyncMock(return_value=None)
            response = await client.post(
                "/api/v1/pricing/quote",
                json={"service_id": str(uuid4()), "customer_id": str(uuid4())},
            )

        assert response.status_code == 404
        assert response.json()["type"] == "service_not_found"

    @pytest.mark.asyncio
    async def test_quote_unknown_customer(self, client):
        service = MagicMock(service_id=uuid4(), base_price=Decimal("100.00"))
        with patch(
            "cascade_engine.api.v1.endpoints.pricing.ServiceRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_by_id = AsyncMock(return_value=service)
            response = await client.post(
                "/api/v1/pricing/quote",
                json={"service_id": str(uuid4()), "customer_id": str(uuid4())},
            )

        assert response.status_code == 404
        assert response.json()["type"] == "customer_not_found"
