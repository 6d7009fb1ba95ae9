import logging
from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.core.exceptions import (
    EngineNotReadyError,
    InvalidConditionError,
    RuleIndexLoadError,
)
from cascade_engine.repositories.cascade_rule_repository import CascadeRuleRepository
from cascade_engine.services.condition_evaluator import Condition, parse_conditions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexedRule:
    """Read-only view of an active cascade rule with parsed conditions."""

    rule_id: UUID
    entry_service_id: UUID
    triggered_service_id: UUID
    conversion_rate: float
    priority: int
    conditions: Tuple[Condition, ...] = ()
    entry_service_name: Optional[str] = None
    triggered_service_name: Optional[str] = None

    @property
    def sort_key(self) -> Tuple[int, float]:
        return (self.priority, -self.conversion_rate)

    def conditions_dict(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for condition in self.conditions:
            merged.update(condition.to_dict())
        return merged


@dataclass(frozen=True)
class RuleIndexSnapshot:
    """One immutable build of the index."""

    by_entry_service: Mapping[UUID, Tuple[IndexedRule, ...]]
    by_rule_id: Mapping[UUID, IndexedRule]
    rules_rejected: int = 0

    @property
    def rules_loaded(self) -> int:
        return len(self.by_rule_id)

    @property
    def services_indexed(self) -> int:
        return len(self.by_entry_service)


def build_snapshot(rows: List[Dict[str, Any]]) -> RuleIndexSnapshot:
    """Group rule rows by entry service, ordered by (priority, -rate).

    Rules whose conditions do not parse are logged and left out.
    """
    grouped: Dict[UUID, List[IndexedRule]] = defaultdict(list)
    by_rule_id: Dict[UUID, IndexedRule] = {}
    rejected = 0

    for row in rows:
        try:
            conditions = parse_conditions(row.get("conditions"))
        except InvalidConditionError as exc:
            rejected += 1
            logger.error(
                "Cascade rule %s rejected: %s", row.get("rule_id"), exc.detail
            )
            continue
        rule = IndexedRule(
            rule_id=row["rule_id"],
            entry_service_id=row["entry_service_id"],
            triggered_service_id=row["triggered_service_id"],
            conversion_rate=float(row["conversion_rate"]),
            priority=int(row["priority"]),
            conditions=conditions,
            entry_service_name=row.get("entry_service_name"),
            triggered_service_name=row.get("triggered_service_name"),
        )
        grouped[rule.entry_service_id].append(rule)
        by_rule_id[rule.rule_id] = rule

    by_entry = {
        service_id: tuple(sorted(rules, key=lambda r: r.sort_key))
        for service_id, rules in grouped.items()
    }
    return RuleIndexSnapshot(
        by_entry_service=MappingProxyType(by_entry),
        by_rule_id=MappingProxyType(by_rule_id),
        rules_rejected=rejected,
    )


class CascadeRuleIndex:
    """In-memory index of active cascade rules keyed by entry service.

    Each ``load``/``reload`` builds a complete new snapshot and only then
    swaps the reference, so concurrent readers see either the old or
    the new index, never a partial one.
    """

    def __init__(self, session_factory: Callable[..., AsyncSession]) -> None:
        self._session_factory = session_factory
        self._snapshot: Optional[RuleIndexSnapshot] = None

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> RuleIndexSnapshot:
        if self._snapshot is None:
            raise EngineNotReadyError("Cascade rule index has not been loaded")
        return self._snapshot

    async def _build(self) -> RuleIndexSnapshot:
        async with self._session_factory() as session:
            rows = await CascadeRuleRepository(session).get_active_rules_with_services()
        return build_snapshot(rows)

    async def load(self) -> RuleIndexSnapshot:
        """Initial load.  Any store failure raises ``RuleIndexLoadError``."""
        try:
            snapshot = await self._build()
        except Exception as exc:
            logger.critical("Failed to load cascade rule index", exc_info=True)
            raise RuleIndexLoadError(f"Failed to load cascade rules: {exc}") from exc
        self._snapshot = snapshot
        logger.info(
            "Cascade rule index loaded: %d rules across %d services (%d rejected)",
            snapshot.rules_loaded,
            snapshot.services_indexed,
            snapshot.rules_rejected,
        )
        return snapshot

    async def reload(self) -> RuleIndexSnapshot:
        """Rebuild the index.

        Before the first successful load this behaves like ``load``.
        Afterwards a failed rebuild is logged and the previous index
        stays in service.
        """
        if self._snapshot is None:
            return await self.load()
        try:
            snapshot = await self._build()
        except Exception:
            logger.error(
                "Cascade rule index reload failed; keeping previous index",
                exc_info=True,
            )
            return self._snapshot
        self._snapshot = snapshot
        logger.info(
            "Cascade rule index reloaded: %d rules across %d services",
            snapshot.rules_loaded,
            snapshot.services_indexed,
        )
        return snapshot

    def rules_for(self, service_id: UUID) -> Tuple[IndexedRule, ...]:
        """Rules triggered by *service_id*, in evaluation order (may be empty)."""
        return self.snapshot.by_entry_service.get(service_id, ())

    def get_rule(self, rule_id: UUID) -> Optional[IndexedRule]:
        return self.snapshot.by_rule_id.get(rule_id)
