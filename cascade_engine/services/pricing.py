import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from cascade_engine.core.cache import CacheService
from cascade_engine.core.config import PricingConfig
from cascade_engine.core.constants import PRICING_TABLES_KEY
from cascade_engine.schemas.customer import CustomerSnapshot
from cascade_engine.schemas.common import FactorType
from cascade_engine.schemas.pricing import AdjustmentFactor, PricingOptions, PricingResult

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
# Every individual factor is kept inside this range
FACTOR_MIN = 0.5
FACTOR_MAX = 2.0
NEUTRAL = 1.0

_BASE_COST_RATIO = Decimal("0.35")
_HIGH_RISK_CREDIT = 600
_HIGH_RISK_COST_FACTOR = Decimal("1.1")
_LUXURY_VEHICLE_VALUE = 100_000
_LUXURY_COST_FACTOR = Decimal("1.15")


def _frozen(data: Mapping) -> Mapping:
    return MappingProxyType(dict(data))


@dataclass(frozen=True)
class PricingTables:
    """Immutable snapshot of every multiplier table used for pricing.

    Replaced wholesale by ``PricingCalculator.refresh_tables``; never
    mutated in place, so a calculation in flight always sees one
    consistent set of tables.
    """

    # (threshold, factor), highest threshold first; below the last -> *_floor
    credit_tiers: Tuple[Tuple[float, float], ...] = (
        (750, 1.0),
        (650, 1.05),
        (550, 1.10),
        (450, 1.15),
    )
    credit_floor: float = 1.20
    vehicle_tiers: Tuple[Tuple[float, float], ...] = (
        (100_000, 1.15),
        (50_000, 1.10),
        (25_000, 1.0),
    )
    vehicle_floor: float = 0.95
    loyalty: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"new": 0.85, "returning": 0.95, "loyal": 0.90, "premium": 0.85}
        )
    )
    urgency: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"standard": 1.0, "expedited": 1.25, "emergency": 1.5}
        )
    )
    volume: Mapping[str, float] = field(
        default_factory=lambda: _frozen({"single": 1.0, "bundle": 0.92, "package": 0.85})
    )
    seasonal: Mapping[str, Mapping[int, float]] = field(
        default_factory=lambda: _frozen(
            {
                "financial": _frozen(
                    {1: 1.2, 2: 1.15, 3: 1.1, 4: 1.0, 5: 0.95, 6: 0.9,
                     7: 0.9, 8: 0.95, 9: 1.05, 10: 1.1, 11: 1.15, 12: 1.25}
                ),
                "inspection": _frozen(
                    {1: 0.9, 2: 0.95, 3: 1.1, 4: 1.2, 5: 1.15, 6: 1.1,
                     7: 1.05, 8: 1.0, 9: 1.1, 10: 1.15, 11: 1.0, 12: 0.9}
                ),
                "transport": _frozen(
                    {1: 0.9, 2: 0.95, 3: 1.1, 4: 1.15, 5: 1.2, 6: 1.25,
                     7: 1.2, 8: 1.15, 9: 1.1, 10: 1.0, 11: 0.95, 12: 0.9}
                ),
            }
        )
    )
    market: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"economy": 1.0, "automotive": 1.05, "credit": 0.98, "financial": 1.0}
        )
    )
    complexity: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {
                "financial": 1.2,
                "legal": 1.3,
                "inspection": 0.8,
                "transport": 0.9,
                "administrative": 0.7,
                "maintenance": 1.1,
                "parts": 0.6,
                "purchase": 0.4,
                "sales": 0.3,
                "business": 1.4,
                "support": 1.0,
            }
        )
    )
    # Service categories priced with another category's tables
    category_aliases: Mapping[str, str] = field(
        default_factory=lambda: _frozen({"logistics": "transport"})
    )

    @classmethod
    def from_overrides(cls, data: Dict[str, Any]) -> "PricingTables":
        """Build a snapshot from the defaults plus a (JSON) override document.

        Unknown top-level keys are ignored.  Month keys may arrive as
        strings and are converted to ``int``.  Raises ``ValueError`` or
        ``TypeError`` on malformed values.
        """
        tables = cls()
        changes: Dict[str, Any] = {}
        for name in ("credit_tiers", "vehicle_tiers"):
            if name in data:
                tiers = sorted(
                    ((float(t), float(f)) for t, f in data[name]),
                    key=lambda tier: tier[0],
                    reverse=True,
                )
                changes[name] = tuple(tiers)
        for name in ("credit_floor", "vehicle_floor"):
            if name in data:
                changes[name] = float(data[name])
        for name in ("loyalty", "urgency", "volume", "market", "complexity"):
            if name in data:
                merged = dict(getattr(tables, name))
                merged.update({str(k): float(v) for k, v in data[name].items()})
                changes[name] = _frozen(merged)
        if "seasonal" in data:
            seasonal = dict(tables.seasonal)
            for category, months in data["seasonal"].items():
                seasonal[category] = _frozen(
                    {int(month): float(factor) for month, factor in months.items()}
                )
            changes["seasonal"] = _frozen(seasonal)
        if "category_aliases" in data:
            aliases = dict(tables.category_aliases)
            aliases.update({str(k): str(v) for k, v in data["category_aliases"].items()})
            changes["category_aliases"] = _frozen(aliases)
        return replace(tables, **changes)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _canonical(self, category: str) -> str:
        return self.category_aliases.get(category, category)

    def credit_factor(self, credit_score: float) -> float:
        for threshold, factor in self.credit_tiers:
            if credit_score >= threshold:
                return factor
        return self.credit_floor

    def vehicle_factor(self, vehicle_value: float) -> float:
        for threshold, factor in self.vehicle_tiers:
            if vehicle_value >= threshold:
                return factor
        return self.vehicle_floor

    def loyalty_factor(self, order_count: int) -> float:
        if order_count <= 0:
            tier = "new"
        elif order_count <= 3:
            tier = "returning"
        elif order_count <= 10:
            tier = "loyal"
        else:
            tier = "premium"
        return self.loyalty.get(tier, NEUTRAL)

    def seasonal_factor(self, category: str, month: int) -> float:
        months = self.seasonal.get(self._canonical(category))
        if not months:
            return NEUTRAL
        return months.get(month, NEUTRAL)

    def market_factor(self, category: str) -> float:
        return self.market.get(self._canonical(category), NEUTRAL)

    def urgency_factor(self, urgency: str) -> float:
        return self.urgency.get(urgency, NEUTRAL)

    def volume_factor(self, bundle_size: int) -> float:
        if bundle_size >= 4:
            return self.volume.get("package", NEUTRAL)
        if bundle_size >= 2:
            return self.volume.get("bundle", NEUTRAL)
        return self.volume.get("single", NEUTRAL)

    def complexity_factor(self, category: Optional[str]) -> float:
        if not category:
            return NEUTRAL
        return self.complexity.get(self._canonical(category), NEUTRAL)


def _clamp_factor(value: float) -> float:
    return min(FACTOR_MAX, max(FACTOR_MIN, value))


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (ArithmeticError, ValueError):
        return None


class PricingCalculator:
    """Dynamic price for a service/customer pair.

    ``calculate`` is synchronous and free of I/O: the customer snapshot
    and pricing tables are fetched by the caller.  It never raises for
    missing data; any factor that cannot be determined falls back to
    ``1.0`` and the result is flagged ``complete=False``.
    """

    def __init__(
        self,
        config: PricingConfig,
        tables: Optional[PricingTables] = None,
    ) -> None:
        self._config = config
        self._tables = tables or PricingTables()

    @property
    def tables(self) -> PricingTables:
        return self._tables

    async def refresh_tables(self, cache: CacheService) -> PricingTables:
        """Swap in tables built from overrides staged under ``pricing:tables``.

        A missing or malformed override keeps the current snapshot.
        """
        data = await cache.get_json(PRICING_TABLES_KEY)
        if not data:
            return self._tables
        try:
            tables = PricingTables.from_overrides(data)
        except (TypeError, ValueError, AttributeError):
            logger.warning("Ignoring malformed pricing table overrides", exc_info=True)
            return self._tables
        self._tables = tables
        logger.info("Pricing tables refreshed from cache overrides")
        return tables

    def calculate(
        self,
        service: Any,
        customer: Optional[CustomerSnapshot],
        options: Optional[PricingOptions] = None,
        today: Optional[date] = None,
    ) -> PricingResult:
        options = options or PricingOptions()
        today = today or date.today()
        tables = self._tables
        missing: List[str] = []

        base_price = _to_decimal(getattr(service, "base_price", None))
        if base_price is None:
            missing.append("base_price")
            base_price = Decimal("0")
        category = getattr(service, "service_category", None)

        factors: List[AdjustmentFactor] = []
        if self._config.dynamic_pricing_enabled:
            factors = self._collect_factors(
                tables, category, customer, options, today, missing
            )

        product = Decimal("1")
        for adjustment in factors:
            product *= Decimal(str(adjustment.factor))

        cap = Decimal(str(self._config.adjustment_cap))
        min_price = (base_price * (1 - cap)).quantize(_CENT, rounding=ROUND_CEILING)
        max_price = (base_price * (1 + cap)).quantize(_CENT, rounding=ROUND_FLOOR)
        final_price = (base_price * product).quantize(_CENT, rounding=ROUND_HALF_UP)
        final_price = min(max(final_price, min_price), max_price)

        estimated_cost = self._estimate_cost(tables, base_price, category, customer)
        profit_margin = (
            float((final_price - estimated_cost) / final_price) if final_price else 0.0
        )
        total_adjustment = (
            float((final_price - base_price) / base_price) if base_price else 0.0
        )

        if missing:
            logger.info(
                "Incomplete pricing for service %s / customer %s; neutral factors used for %s",
                getattr(service, "service_id", None),
                getattr(customer, "customer_id", None),
                ", ".join(missing),
            )

        return PricingResult(
            service_id=getattr(service, "service_id", None),
            customer_id=getattr(customer, "customer_id", None),
            base_price=float(base_price),
            final_price=float(final_price),
            min_price=float(min_price),
            max_price=float(max_price),
            adjustment_factors=factors,
            estimated_cost=float(estimated_cost),
            profit_margin=profit_margin,
            discount_amount=float(max(Decimal("0"), base_price - final_price)),
            premium_amount=float(max(Decimal("0"), final_price - base_price)),
            total_adjustment=total_adjustment,
            complete=not missing,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _collect_factors(
        self,
        tables: PricingTables,
        category: Optional[str],
        customer: Optional[CustomerSnapshot],
        options: PricingOptions,
        today: date,
        missing: List[str],
    ) -> List[AdjustmentFactor]:
        factors: List[AdjustmentFactor] = []

        def add(
            factor_type: FactorType,
            lookup: Callable[[], float],
            description: str,
        ) -> None:
            try:
                value = float(lookup())
            except Exception:
                logger.warning(
                    "Pricing factor %s lookup failed, using 1.0",
                    factor_type.value,
                    exc_info=True,
                )
                missing.append(factor_type.value)
                value = NEUTRAL
            factors.append(
                AdjustmentFactor(
                    type=factor_type,
                    factor=_clamp_factor(value),
                    description=description,
                )
            )

        credit_score = customer.credit_score if customer else None
        if credit_score is None:
            missing.append("credit_score")
            add(FactorType.credit_score, lambda: NEUTRAL, "Credit score: unknown")
        else:
            add(
                FactorType.credit_score,
                lambda: tables.credit_factor(credit_score),
                f"Credit score: {credit_score}",
            )

        vehicle_value = customer.vehicle_value if customer else None
        if vehicle_value is None:
            missing.append("vehicle_value")
            add(FactorType.vehicle_value, lambda: NEUTRAL, "Vehicle value: unknown")
        else:
            add(
                FactorType.vehicle_value,
                lambda: tables.vehicle_factor(vehicle_value),
                f"Vehicle value: ${vehicle_value:,.0f}",
            )

        order_count = customer.order_count if customer else None
        if order_count is None:
            missing.append("order_count")
            add(FactorType.loyalty, lambda: NEUTRAL, "Order history: unknown")
        else:
            add(
                FactorType.loyalty,
                lambda: tables.loyalty_factor(order_count),
                f"{order_count} previous services",
            )

        if category:
            add(
                FactorType.seasonal,
                lambda: tables.seasonal_factor(category, today.month),
                f"{category} seasonal demand",
            )
            add(
                FactorType.market,
                lambda: tables.market_factor(category),
                f"Market conditions for {category}",
            )
        else:
            missing.append("service_category")

        if options.urgency is not None:
            urgency = options.urgency.value
            add(
                FactorType.urgency,
                lambda: tables.urgency_factor(urgency),
                f"{urgency} service",
            )

        if options.bundle_size is not None:
            bundle_size = options.bundle_size
            add(
                FactorType.volume,
                lambda: tables.volume_factor(bundle_size),
                f"Bundle of {bundle_size} services",
            )

        return factors

    @staticmethod
    def _estimate_cost(
        tables: PricingTables,
        base_price: Decimal,
        category: Optional[str],
        customer: Optional[CustomerSnapshot],
    ) -> Decimal:
        cost = base_price * _BASE_COST_RATIO * Decimal(str(tables.complexity_factor(category)))
        if customer is not None:
            if customer.credit_score is not None and customer.credit_score < _HIGH_RISK_CREDIT:
                cost *= _HIGH_RISK_COST_FACTOR
            if (
                customer.vehicle_value is not None
                and customer.vehicle_value > _LUXURY_VEHICLE_VALUE
            ):
                cost *= _LUXURY_COST_FACTOR
        return cost.quantize(_CENT, rounding=ROUND_HALF_UP)
