from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from cascade_engine.core.exceptions import EngineNotReadyError, RuleIndexLoadError
from cascade_engine.services.rule_index import CascadeRuleIndex, build_snapshot

ENTRY_SERVICE = uuid4()
OTHER_SERVICE = uuid4()


def _make_row(priority=1, rate=0.8, entry=ENTRY_SERVICE, conditions=None, **extra):
    """Return a rule row as produced by ``get_active_rules_with_services``."""
    row = {
        "rule_id": uuid4(),
        "entry_service_id": entry,
        "triggered_service_id": uuid4(),
        "conversion_rate": rate,
        "priority": priority,
        "conditions": conditions,
        "entry_service_name": "Credit Analysis",
        "triggered_service_name": "Vehicle Finance",
    }
    row.update(extra)
    return row


class TestBuildSnapshot:
    """Grouping and ordering of rule rows."""

    def test_rules_ordered_by_priority_then_rate(self):
        low_priority = _make_row(priority=2, rate=0.95)
        first = _make_row(priority=1, rate=0.84)
        second = _make_row(priority=1, rate=0.76)

        snapshot = build_snapshot([second, low_priority, first])
        ordered = [r.rule_id for r in snapshot.by_entry_service[ENTRY_SERVICE]]

        assert ordered == [first["rule_id"], second["rule_id"], low_priority["rule_id"]]

    def test_rules_grouped_by_entry_service(self):
        rows = [_make_row(), _make_row(), _make_row(entry=OTHER_SERVICE)]

        snapshot = build_snapshot(rows)

        assert snapshot.rules_loaded == 3
        assert snapshot.services_indexed == 2
        assert len(snapshot.by_entry_service[OTHER_SERVICE]) == 1

    def test_unknown_condition_rejects_rule(self):
        good = _make_row(conditions={"min_credit_score": 500})
        bad = _make_row(conditions={"has_pets": True})

        snapshot = build_snapshot([good, bad])

        assert snapshot.rules_rejected == 1
        assert bad["rule_id"] not in snapshot.by_rule_id
        assert snapshot.by_rule_id[good["rule_id"]].conditions_dict() == {
            "min_credit_score": 500
        }

    def test_numeric_columns_normalised(self):
        from decimal import Decimal

        row = _make_row(rate=Decimal("0.8400"))
        rule = build_snapshot([row]).by_rule_id[row["rule_id"]]
        assert rule.conversion_rate == 0.84
        assert isinstance(rule.conversion_rate, float)

    def test_snapshot_maps_are_read_only(self):
        snapshot = build_snapshot([_make_row()])
        with pytest.raises(TypeError):
            snapshot.by_entry_service[OTHER_SERVICE] = ()


class TestCascadeRuleIndex:
    """Load, reload and lookups against a mocked rule repository."""

    def test_lookup_before_load_raises(self, session_factory):
        index = CascadeRuleIndex(session_factory)
        assert index.is_loaded is False
        with pytest.raises(EngineNotReadyError):
            index.rules_for(ENTRY_SERVICE)

    @pytest.mark.asyncio
    async def test_load_and_lookup(self, session_factory):
        rows = [_make_row(priority=2), _make_row(priority=1)]
        with patch(
            "cascade_engine.services.rule_index.CascadeRuleRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                return_value=rows
            )
            index = CascadeRuleIndex(session_factory)
            await index.load()

        rules = index.rules_for(ENTRY_SERVICE)
        assert [r.priority for r in rules] == [1, 2]
        assert index.rules_for(uuid4()) == ()
        assert index.get_rule(rows[0]["rule_id"]).priority == 2

    @pytest.mark.asyncio
    async def test_load_is_idempotent(self, session_factory):
        rows = [_make_row(rate=0.7), _make_row(rate=0.9), _make_row(priority=3)]
        with patch(
            "cascade_engine.services.rule_index.CascadeRuleRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                return_value=rows
            )
            index = CascadeRuleIndex(session_factory)
            await index.load()
            first = [r.rule_id for r in index.rules_for(ENTRY_SERVICE)]
            await index.load()
            second = [r.rule_id for r in index.rules_for(ENTRY_SERVICE)]

        assert first == second

    @pytest.mark.asyncio
    async def test_load_failure_is_fatal(self, session_factory):
        with patch(
            "cascade_engine.services.rule_index.CascadeRuleRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                side_effect=ConnectionError("database unavailable")
            )
            index = CascadeRuleIndex(session_factory)
            with pytest.raises(RuleIndexLoadError):
                await index.load()

        assert index.is_loaded is False

    @pytest.mark.asyncio
    async def test_reload_swaps_whole_snapshot(self, session_factory):
        old_row = _make_row()
        new_row = _make_row(entry=OTHER_SERVICE)
        with patch(
            "cascade_engine.services.rule_index.CascadeRuleRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                return_value=[old_row]
            )
            index = CascadeRuleIndex(session_factory)
            old_snapshot = await index.load()

            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                return_value=[new_row]
            )
            new_snapshot = await index.reload()

        assert index.snapshot is new_snapshot
        assert index.rules_for(ENTRY_SERVICE) == ()
        assert len(index.rules_for(OTHER_SERVICE)) == 1
        # Readers holding the old snapshot keep a complete view
        assert len(old_snapshot.by_entry_service[ENTRY_SERVICE]) == 1

    @pytest.mark.asyncio
    async def test_failed_reload_keeps_previous_index(self, session_factory):
        row = _make_row()
        with patch(
            "cascade_engine.services.rule_index.CascadeRuleRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                return_value=[row]
            )
            index = CascadeRuleIndex(session_factory)
            loaded = await index.load()

            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                side_effect=ConnectionError("database unavailable")
            )
            result = await index.reload()

        assert result is loaded
        assert index.get_rule(row["rule_id"]) is not None

    @pytest.mark.asyncio
    async def test_reload_before_load_behaves_like_load(self, session_factory):
        with patch(
            "cascade_engine.services.rule_index.CascadeRuleRepository"
        ) as MockRepo:
            MockRepo.return_value.get_active_rules_with_services = AsyncMock(
                side_effect=ConnectionError("database unavailable")
            )
            index = CascadeRuleIndex(session_factory)
            with pytest.raises(RuleIndexLoadError):
                await index.reload()
