import json
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from cascade_engine.core.config import PricingConfig
from cascade_engine.schemas.common import FactorType, Urgency
from cascade_engine.schemas.customer import CustomerSnapshot
from cascade_engine.schemas.pricing import PricingOptions
from cascade_engine.services.pricing import PricingCalculator, PricingTables

JUNE = date(2026, 6, 15)
DECEMBER = date(2026, 12, 1)

NEUTRAL_LOYALTY = {"new": 1.0, "returning": 1.0, "loyal": 1.0, "premium": 1.0}


def _make_service(base_price="1000.00", category="support"):
    """Return a mock Service row."""
    service = MagicMock()
    service.service_id = uuid4()
    service.name = "Vehicle Inspection"
    service.base_price = Decimal(base_price)
    service.service_category = category
    return service


def _make_customer(**overrides) -> CustomerSnapshot:
    data = {
        "customer_id": uuid4(),
        "credit_score": 720,
        "vehicle_value": 30_000.0,
        "order_count": 2,
    }
    data.update(overrides)
    return CustomerSnapshot(**data)


@pytest.fixture
def calculator() -> PricingCalculator:
    return PricingCalculator(PricingConfig())


def _factor(result, factor_type: FactorType) -> float:
    return next(f.factor for f in result.adjustment_factors if f.type == factor_type)


class TestPricingTables:
    """Tier lookups used by the calculator."""

    @pytest.mark.parametrize(
        "score, expected",
        [(850, 1.0), (750, 1.0), (720, 1.05), (650, 1.05), (600, 1.10),
         (450, 1.15), (449, 1.20), (300, 1.20)],
    )
    def test_credit_tiers(self, score, expected):
        assert PricingTables().credit_factor(score) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [(150_000, 1.15), (100_000, 1.15), (60_000, 1.10), (25_000, 1.0), (8_000, 0.95)],
    )
    def test_vehicle_tiers(self, value, expected):
        assert PricingTables().vehicle_factor(value) == expected

    @pytest.mark.parametrize(
        "orders, expected", [(0, 0.85), (1, 0.95), (3, 0.95), (4, 0.90), (11, 0.85)]
    )
    def test_loyalty_tiers(self, orders, expected):
        assert PricingTables().loyalty_factor(orders) == expected

    @pytest.mark.parametrize("size, expected", [(1, 1.0), (2, 0.92), (3, 0.92), (4, 0.85)])
    def test_volume_tiers(self, size, expected):
        assert PricingTables().volume_factor(size) == expected

    def test_unlisted_category_is_neutral(self):
        tables = PricingTables()
        assert tables.seasonal_factor("support", 6) == 1.0
        assert tables.market_factor("support") == 1.0

    def test_logistics_priced_as_transport(self):
        tables = PricingTables()
        assert tables.seasonal_factor("logistics", 6) == tables.seasonal_factor("transport", 6)
        assert tables.complexity_factor("logistics") == 0.9

    def test_overrides_merge_with_defaults(self):
        tables = PricingTables.from_overrides(
            {
                "urgency": {"emergency": 1.8},
                "seasonal": {"legal": {"3": 1.3}},
                "credit_tiers": [[700, 1.0], [500, 1.1]],
            }
        )
        assert tables.urgency_factor("emergency") == 1.8
        assert tables.urgency_factor("expedited") == 1.25
        assert tables.seasonal_factor("legal", 3) == 1.3
        assert tables.seasonal_factor("financial", 1) == 1.2
        assert tables.credit_factor(710) == 1.0
        assert tables.credit_factor(400) == 1.20

    def test_tables_are_read_only(self):
        tables = PricingTables()
        with pytest.raises(TypeError):
            tables.urgency["emergency"] = 3.0


class TestCalculate:
    """Final price, bounds and factor breakdown."""

    def test_credit_tier_scenario(self):
        """Credit 650-749 applies x1.05 when every other factor is neutral."""
        tables = PricingTables.from_overrides({"loyalty": NEUTRAL_LOYALTY})
        calculator = PricingCalculator(PricingConfig(), tables)

        result = calculator.calculate(
            _make_service("1000.00", "support"), _make_customer(), today=JUNE
        )

        assert _factor(result, FactorType.credit_score) == 1.05
        assert result.final_price == 1050.00
        assert result.premium_amount == 50.00
        assert result.discount_amount == 0.0
        assert result.total_adjustment == pytest.approx(0.05)
        assert result.complete is True

    def test_breakdown_lists_each_factor_once(self, calculator):
        result = calculator.calculate(
            _make_service(category="financial"),
            _make_customer(),
            PricingOptions(urgency=Urgency.expedited, bundle_size=2),
            today=JUNE,
        )
        types = [f.type for f in result.adjustment_factors]

        assert types == [
            FactorType.credit_score,
            FactorType.vehicle_value,
            FactorType.loyalty,
            FactorType.seasonal,
            FactorType.market,
            FactorType.urgency,
            FactorType.volume,
        ]
        assert _factor(result, FactorType.seasonal) == 0.9
        assert _factor(result, FactorType.urgency) == 1.25
        assert _factor(result, FactorType.volume) == 0.92

    def test_optional_factors_omitted_without_options(self, calculator):
        result = calculator.calculate(_make_service(), _make_customer(), today=JUNE)
        types = {f.type for f in result.adjustment_factors}
        assert FactorType.urgency not in types
        assert FactorType.volume not in types

    def test_premium_clamped_to_upper_bound(self, calculator):
        customer = _make_customer(credit_score=400, vehicle_value=150_000.0, order_count=0)
        result = calculator.calculate(
            _make_service("1000.00", "financial"),
            customer,
            PricingOptions(urgency=Urgency.emergency),
            today=DECEMBER,
        )

        assert result.max_price == 1300.00
        assert result.final_price == 1300.00

    def test_discount_clamped_to_lower_bound(self):
        tables = PricingTables.from_overrides({"market": {"support": 0.5}})
        calculator = PricingCalculator(PricingConfig(), tables)
        customer = _make_customer(credit_score=800, vehicle_value=5_000.0, order_count=20)

        result = calculator.calculate(
            _make_service("1000.00", "support"),
            customer,
            PricingOptions(bundle_size=6),
            today=JUNE,
        )

        assert result.min_price == 700.00
        assert result.final_price == 700.00
        assert result.discount_amount == 300.00

    @pytest.mark.parametrize("credit_score", [300, 449, 560, 690, 780, None])
    @pytest.mark.parametrize("vehicle_value", [5_000.0, 40_000.0, 75_000.0, 250_000.0])
    @pytest.mark.parametrize("urgency", [None, Urgency.emergency])
    @pytest.mark.parametrize("today", [JUNE, DECEMBER])
    def test_final_price_always_within_bounds(
        self, calculator, credit_score, vehicle_value, urgency, today
    ):
        result = calculator.calculate(
            _make_service("249.99", "financial"),
            _make_customer(credit_score=credit_score, vehicle_value=vehicle_value),
            PricingOptions(urgency=urgency),
            today=today,
        )

        assert result.min_price <= result.final_price <= result.max_price
        assert result.min_price >= 249.99 * 0.7
        assert result.max_price <= 249.99 * 1.3
        for factor in result.adjustment_factors:
            assert 0.5 <= factor.factor <= 2.0

    def test_missing_data_uses_neutral_factors(self, calculator):
        customer = _make_customer(credit_score=None, vehicle_value=None, order_count=None)

        result = calculator.calculate(
            _make_service("1000.00", "support"), customer, today=JUNE
        )

        assert result.complete is False
        assert _factor(result, FactorType.credit_score) == 1.0
        assert _factor(result, FactorType.vehicle_value) == 1.0
        assert _factor(result, FactorType.loyalty) == 1.0
        assert result.final_price == 1000.00

    def test_unknown_customer_still_priced(self, calculator):
        result = calculator.calculate(_make_service("500.00"), None, today=JUNE)
        assert result.complete is False
        assert result.customer_id is None
        assert result.final_price == 500.00

    def test_missing_category_flags_incomplete(self, calculator):
        result = calculator.calculate(
            _make_service(category=None), _make_customer(), today=JUNE
        )
        types = {f.type for f in result.adjustment_factors}
        assert result.complete is False
        assert FactorType.seasonal not in types

    def test_disabled_dynamic_pricing_returns_base(self):
        calculator = PricingCalculator(PricingConfig(dynamic_pricing_enabled=False))

        result = calculator.calculate(
            _make_service("799.00", "financial"),
            _make_customer(credit_score=400),
            PricingOptions(urgency=Urgency.emergency),
            today=DECEMBER,
        )

        assert result.final_price == 799.00
        assert result.adjustment_factors == []

    def test_zero_base_price(self, calculator):
        result = calculator.calculate(
            _make_service("0.00", "purchase"), _make_customer(), today=JUNE
        )
        assert result.final_price == 0.0
        assert result.profit_margin == 0.0
        assert result.total_adjustment == 0.0

    def test_estimated_cost_applies_risk_factors(self, calculator):
        """1000 x 0.35 x 1.2 (financial) x 1.1 (credit < 600) = 462.00."""
        result = calculator.calculate(
            _make_service("1000.00", "financial"),
            _make_customer(credit_score=580),
            today=JUNE,
        )
        assert result.estimated_cost == 462.00
        expected_margin = (result.final_price - 462.00) / result.final_price
        assert result.profit_margin == pytest.approx(expected_margin, abs=1e-6)

    def test_price_has_two_decimal_places(self, calculator):
        result = calculator.calculate(
            _make_service("333.33", "inspection"), _make_customer(), today=JUNE
        )
        assert Decimal(str(result.final_price)) == Decimal(
            str(result.final_price)
        ).quantize(Decimal("0.01"))


class TestRefreshTables:
    """Table overrides staged in the cache."""

    @pytest.mark.asyncio
    async def test_overrides_replace_snapshot(self, calculator, mock_cache, mock_redis):
        mock_redis.get.return_value = json.dumps({"urgency": {"emergency": 1.75}})
        before = calculator.tables

        tables = await calculator.refresh_tables(mock_cache)

        assert calculator.tables is tables
        assert tables is not before
        assert tables.urgency_factor("emergency") == 1.75
        assert before.urgency_factor("emergency") == 1.5

    @pytest.mark.asyncio
    async def test_malformed_overrides_keep_current(self, calculator, mock_cache, mock_redis):
        mock_redis.get.return_value = json.dumps({"credit_floor": "not-a-number"})
        before = calculator.tables

        await calculator.refresh_tables(mock_cache)

        assert calculator.tables is before

    @pytest.mark.asyncio
    async def test_no_overrides_keep_current(self, calculator, mock_cache):
        before = calculator.tables
        await calculator.refresh_tables(mock_cache)
        assert calculator.tables is before
