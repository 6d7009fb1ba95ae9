import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from cascade_engine.core.constants import (
    PURCHASE_INTENT_STAGES,
    VEHICLE_ISSUE_CONDITIONS,
)
from cascade_engine.core.exceptions import InvalidConditionError
from cascade_engine.schemas.customer import CustomerSnapshot

logger = logging.getLogger(__name__)

# Thresholds behind the boolean "need" predicates
_FINANCING_CREDIT_CEILING = 700
_FINANCING_VEHICLE_FLOOR = 50_000
_CREDIT_IMPROVEMENT_CEILING = 650
_COMPLEX_LEGAL_SPEND_FLOOR = 100_000


class ConditionKind(str, Enum):
    """Every predicate a cascade rule may use.

    The enum value is the key used in the rule's JSONB ``conditions``
    column.  Anything not listed here is rejected when the rule is
    parsed, so a typo in a rule never silently passes.
    """

    MIN_CREDIT_SCORE = "min_credit_score"
    MAX_CREDIT_SCORE = "max_credit_score"
    MIN_VEHICLE_VALUE = "min_vehicle_value"
    MIN_ANNUAL_INCOME = "min_annual_income"
    JOURNEY_STAGE = "journey_stage"
    FINANCING_NEEDED = "financing_needed"
    VEHICLE_PURCHASE_INTENT = "vehicle_purchase_intent"
    BUSINESS_FINANCING_NEEDED = "business_financing_needed"
    VEHICLE_CONDITION_FAIR_OR_BELOW = "vehicle_condition_fair_or_below"
    MIN_DAYS_SINCE_LAST_ORDER = "min_days_since_last_order"
    MIN_TOTAL_SPENT = "min_total_spent"
    CREDIT_SCORE_IMPROVEMENT_NEEDED = "credit_score_improvement_needed"
    LEGAL_STRUCTURE_COMPLEX = "legal_structure_complex"


_OPERAND_TYPES: Dict[ConditionKind, type] = {
    ConditionKind.MIN_CREDIT_SCORE: int,
    ConditionKind.MAX_CREDIT_SCORE: int,
    ConditionKind.MIN_VEHICLE_VALUE: float,
    ConditionKind.MIN_ANNUAL_INCOME: float,
    ConditionKind.JOURNEY_STAGE: str,
    ConditionKind.FINANCING_NEEDED: bool,
    ConditionKind.VEHICLE_PURCHASE_INTENT: bool,
    ConditionKind.BUSINESS_FINANCING_NEEDED: bool,
    ConditionKind.VEHICLE_CONDITION_FAIR_OR_BELOW: bool,
    ConditionKind.MIN_DAYS_SINCE_LAST_ORDER: int,
    ConditionKind.MIN_TOTAL_SPENT: float,
    ConditionKind.CREDIT_SCORE_IMPROVEMENT_NEEDED: bool,
    ConditionKind.LEGAL_STRUCTURE_COMPLEX: bool,
}


@dataclass(frozen=True)
class Condition:
    """One parsed predicate with an operand of its declared type."""

    kind: ConditionKind
    operand: Any

    def to_dict(self) -> Dict[str, Any]:
        return {self.kind.value: self.operand}


def _coerce_operand(kind: ConditionKind, value: Any) -> Any:
    expected = _OPERAND_TYPES[kind]
    if expected is bool:
        if isinstance(value, bool):
            return value
    elif expected is str:
        if isinstance(value, str) and value:
            return value
    elif not isinstance(value, bool) and isinstance(value, (int, float)):
        if expected is int:
            if float(value).is_integer():
                return int(value)
        else:
            return float(value)
    raise InvalidConditionError(
        f"Condition '{kind.value}' expects a {expected.__name__} operand, got {value!r}"
    )


def parse_conditions(raw: Optional[Mapping[str, Any]]) -> Tuple[Condition, ...]:
    """Turn a rule's JSON condition mapping into typed ``Condition`` objects.

    ``None`` and ``{}`` both mean "unconditional" and yield an empty
    tuple.  Raises ``InvalidConditionError`` for unknown keys or
    operands of the wrong type.
    """
    if not raw:
        return ()
    if not isinstance(raw, Mapping):
        raise InvalidConditionError(
            f"Conditions must be a mapping, got {type(raw).__name__}"
        )

    parsed = []
    for key, value in raw.items():
        try:
            kind = ConditionKind(key)
        except ValueError:
            raise InvalidConditionError(f"Unsupported condition '{key}'") from None
        parsed.append(Condition(kind=kind, operand=_coerce_operand(kind, value)))
    return tuple(parsed)


# ---------------------------------------------------------------------------
# Predicates – pure functions of (operand, customer)
# ---------------------------------------------------------------------------


def _min_credit_score(operand: int, customer: CustomerSnapshot) -> bool:
    return customer.credit_score is not None and customer.credit_score >= operand


def _max_credit_score(operand: int, customer: CustomerSnapshot) -> bool:
    return customer.credit_score is not None and customer.credit_score <= operand


def _min_vehicle_value(operand: float, customer: CustomerSnapshot) -> bool:
    return customer.vehicle_value is not None and customer.vehicle_value >= operand


def _min_annual_income(operand: float, customer: CustomerSnapshot) -> bool:
    return customer.annual_income is not None and customer.annual_income >= operand


def _journey_stage(operand: str, customer: CustomerSnapshot) -> bool:
    return customer.journey_stage == operand


def _financing_needed(operand: bool, customer: CustomerSnapshot) -> bool:
    if not operand:
        return True
    low_credit = (
        customer.credit_score is not None
        and customer.credit_score < _FINANCING_CREDIT_CEILING
    )
    expensive_vehicle = (
        customer.vehicle_value is not None
        and customer.vehicle_value > _FINANCING_VEHICLE_FLOOR
    )
    return low_credit or expensive_vehicle


def _vehicle_purchase_intent(operand: bool, customer: CustomerSnapshot) -> bool:
    if not operand:
        return True
    return customer.journey_stage in PURCHASE_INTENT_STAGES


def _business_financing_needed(operand: bool, customer: CustomerSnapshot) -> bool:
    if not operand:
        return True
    return customer.is_business


def _vehicle_condition_fair_or_below(operand: bool, customer: CustomerSnapshot) -> bool:
    if not operand:
        return True
    return any(
        condition in VEHICLE_ISSUE_CONDITIONS
        for condition in customer.recent_vehicle_conditions
    )


def _min_days_since_last_order(operand: int, customer: CustomerSnapshot) -> bool:
    return customer.days_since_last_order >= operand


def _min_total_spent(operand: float, customer: CustomerSnapshot) -> bool:
    return customer.lifetime_spend >= operand


def _credit_score_improvement_needed(operand: bool, customer: CustomerSnapshot) -> bool:
    if not operand:
        return True
    return (
        customer.credit_score is not None
        and customer.credit_score < _CREDIT_IMPROVEMENT_CEILING
    )


def _legal_structure_complex(operand: bool, customer: CustomerSnapshot) -> bool:
    if not operand:
        return True
    return customer.is_business or customer.lifetime_spend > _COMPLEX_LEGAL_SPEND_FLOOR


_PREDICATES: Dict[ConditionKind, Callable[[Any, CustomerSnapshot], bool]] = {
    ConditionKind.MIN_CREDIT_SCORE: _min_credit_score,
    ConditionKind.MAX_CREDIT_SCORE: _max_credit_score,
    ConditionKind.MIN_VEHICLE_VALUE: _min_vehicle_value,
    ConditionKind.MIN_ANNUAL_INCOME: _min_annual_income,
    ConditionKind.JOURNEY_STAGE: _journey_stage,
    ConditionKind.FINANCING_NEEDED: _financing_needed,
    ConditionKind.VEHICLE_PURCHASE_INTENT: _vehicle_purchase_intent,
    ConditionKind.BUSINESS_FINANCING_NEEDED: _business_financing_needed,
    ConditionKind.VEHICLE_CONDITION_FAIR_OR_BELOW: _vehicle_condition_fair_or_below,
    ConditionKind.MIN_DAYS_SINCE_LAST_ORDER: _min_days_since_last_order,
    ConditionKind.MIN_TOTAL_SPENT: _min_total_spent,
    ConditionKind.CREDIT_SCORE_IMPROVEMENT_NEEDED: _credit_score_improvement_needed,
    ConditionKind.LEGAL_STRUCTURE_COMPLEX: _legal_structure_complex,
}


class ConditionEvaluator:
    """Decide whether a customer satisfies a rule's condition set.

    Conditions are conjunctive: the first failing predicate short-circuits
    the whole set to ``False``.  An empty set is unconditional.

    Predicates read only the ``CustomerSnapshot`` and perform no I/O, so
    evaluation is deterministic for a given snapshot.  The completed
    entry order is accepted so order-scoped predicates can be added
    without changing callers; none of the current predicates need it.
    """

    def evaluate(
        self,
        conditions: Iterable[Condition],
        customer: CustomerSnapshot,
        order: Any = None,
    ) -> bool:
        for condition in conditions:
            predicate = _PREDICATES[condition.kind]
            if not predicate(condition.operand, customer):
                logger.debug(
                    "Condition %s=%r failed for customer %s",
                    condition.kind.value,
                    condition.operand,
                    customer.customer_id,
                )
                return False
        return True
