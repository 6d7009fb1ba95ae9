import pytest
from uuid import uuid4

from cascade_engine.core.exceptions import InvalidConditionError
from cascade_engine.schemas.customer import CustomerSnapshot
from cascade_engine.services.condition_evaluator import (
    Condition,
    ConditionEvaluator,
    ConditionKind,
    parse_conditions,
)


def _make_customer(**overrides) -> CustomerSnapshot:
    """Snapshot of an average individual customer."""
    data = {
        "customer_id": uuid4(),
        "customer_type": "individual",
        "credit_score": 720,
        "vehicle_value": 30_000.0,
        "annual_income": 85_000.0,
        "journey_stage": "purchase",
        "lifetime_spend": 2_500.0,
        "order_count": 2,
        "recent_vehicle_conditions": ("good",),
        "days_since_last_order": 45,
    }
    data.update(overrides)
    return CustomerSnapshot(**data)


@pytest.fixture
def evaluator() -> ConditionEvaluator:
    return ConditionEvaluator()


class TestParseConditions:
    """Rule condition documents become typed predicates or are rejected."""

    @pytest.mark.parametrize("raw", [None, {}])
    def test_empty_is_unconditional(self, raw):
        assert parse_conditions(raw) == ()

    def test_known_predicates_are_typed(self):
        parsed = parse_conditions(
            {"min_credit_score": 500, "financing_needed": True, "min_total_spent": 100}
        )

        assert parsed == (
            Condition(ConditionKind.MIN_CREDIT_SCORE, 500),
            Condition(ConditionKind.FINANCING_NEEDED, True),
            Condition(ConditionKind.MIN_TOTAL_SPENT, 100.0),
        )
        assert isinstance(parsed[2].operand, float)

    def test_integral_float_accepted_for_int_operand(self):
        (condition,) = parse_conditions({"min_credit_score": 600.0})
        assert condition.operand == 600
        assert isinstance(condition.operand, int)

    def test_unknown_predicate_rejected(self):
        with pytest.raises(InvalidConditionError, match="minCreditScore"):
            parse_conditions({"minCreditScore": 500})

    @pytest.mark.parametrize(
        "raw",
        [
            {"min_credit_score": "700"},
            {"min_credit_score": True},
            {"min_credit_score": 650.5},
            {"financing_needed": 1},
            {"journey_stage": ""},
            {"min_vehicle_value": None},
        ],
    )
    def test_wrong_operand_type_rejected(self, raw):
        with pytest.raises(InvalidConditionError):
            parse_conditions(raw)

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidConditionError):
            parse_conditions(["min_credit_score"])

    def test_to_dict_round_trips_key(self):
        (condition,) = parse_conditions({"journey_stage": "purchase"})
        assert condition.to_dict() == {"journey_stage": "purchase"}


class TestEvaluate:
    """Conjunctive evaluation against a customer snapshot."""

    def test_empty_condition_set_passes(self, evaluator):
        assert evaluator.evaluate((), _make_customer()) is True

    def test_min_credit_score(self, evaluator):
        conditions = parse_conditions({"min_credit_score": 500})
        assert evaluator.evaluate(conditions, _make_customer(credit_score=720))
        assert not evaluator.evaluate(conditions, _make_customer(credit_score=480))

    def test_missing_credit_score_fails_threshold(self, evaluator):
        conditions = parse_conditions({"min_credit_score": 500})
        assert not evaluator.evaluate(conditions, _make_customer(credit_score=None))

    def test_all_conditions_must_pass(self, evaluator):
        conditions = parse_conditions(
            {"min_credit_score": 500, "max_credit_score": 700}
        )
        assert not evaluator.evaluate(conditions, _make_customer(credit_score=720))
        assert evaluator.evaluate(conditions, _make_customer(credit_score=680))

    @pytest.mark.parametrize(
        "credit_score, vehicle_value, expected",
        [
            (650, 20_000.0, True),  # low credit
            (760, 60_000.0, True),  # expensive vehicle
            (760, 30_000.0, False),
            (None, None, False),
        ],
    )
    def test_financing_needed(self, evaluator, credit_score, vehicle_value, expected):
        conditions = parse_conditions({"financing_needed": True})
        customer = _make_customer(credit_score=credit_score, vehicle_value=vehicle_value)
        assert evaluator.evaluate(conditions, customer) is expected

    def test_false_flag_is_satisfied_by_anyone(self, evaluator):
        conditions = parse_conditions({"financing_needed": False})
        assert evaluator.evaluate(conditions, _make_customer(credit_score=800))

    @pytest.mark.parametrize(
        "stage, expected",
        [("consideration", True), ("purchase", True), ("discovery", False)],
    )
    def test_vehicle_purchase_intent(self, evaluator, stage, expected):
        conditions = parse_conditions({"vehicle_purchase_intent": True})
        assert evaluator.evaluate(conditions, _make_customer(journey_stage=stage)) is expected

    def test_vehicle_condition_fair_or_below(self, evaluator):
        conditions = parse_conditions({"vehicle_condition_fair_or_below": True})
        assert evaluator.evaluate(
            conditions, _make_customer(recent_vehicle_conditions=("good", "poor"))
        )
        assert not evaluator.evaluate(
            conditions, _make_customer(recent_vehicle_conditions=("excellent",))
        )

    def test_business_financing_needed(self, evaluator):
        conditions = parse_conditions({"business_financing_needed": True})
        assert evaluator.evaluate(conditions, _make_customer(customer_type="business"))
        assert evaluator.evaluate(conditions, _make_customer(business_name="Acme LLC"))
        assert not evaluator.evaluate(conditions, _make_customer())

    def test_credit_score_improvement_needed(self, evaluator):
        conditions = parse_conditions({"credit_score_improvement_needed": True})
        assert evaluator.evaluate(conditions, _make_customer(credit_score=610))
        assert not evaluator.evaluate(conditions, _make_customer(credit_score=700))

    def test_legal_structure_complex(self, evaluator):
        conditions = parse_conditions({"legal_structure_complex": True})
        assert evaluator.evaluate(conditions, _make_customer(customer_type="business"))
        assert evaluator.evaluate(conditions, _make_customer(lifetime_spend=150_000.0))
        assert not evaluator.evaluate(conditions, _make_customer())

    def test_journey_and_history_thresholds(self, evaluator):
        conditions = parse_conditions(
            {
                "journey_stage": "purchase",
                "min_days_since_last_order": 30,
                "min_total_spent": 1_000,
                "min_annual_income": 50_000,
                "min_vehicle_value": 25_000,
            }
        )
        assert evaluator.evaluate(conditions, _make_customer())
        assert not evaluator.evaluate(
            conditions, _make_customer(days_since_last_order=5)
        )

    def test_no_order_history_counts_as_long_ago(self, evaluator):
        conditions = parse_conditions({"min_days_since_last_order": 90})
        customer = _make_customer(days_since_last_order=999, order_count=0)
        assert evaluator.evaluate(conditions, customer)

    def test_evaluation_is_deterministic(self, evaluator):
        conditions = parse_conditions(
            {"min_credit_score": 500, "vehicle_purchase_intent": True}
        )
        customer = _make_customer()
        results = {evaluator.evaluate(conditions, customer) for _ in range(5)}
        assert results == {True}
