import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import aliased

from cascade_engine.models.cascade_rule import CascadeRule
from cascade_engine.models.cascade_trigger import CascadeTrigger
from cascade_engine.models.service import Service
from cascade_engine.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class CascadeRuleRepository(BaseRepository):
    """Encapsulates queries against the ``service_cascades`` table."""

    @staticmethod
    def _with_service_names():
        entry = aliased(Service)
        triggered = aliased(Service)
        return (
            select(
                CascadeRule,
                entry.name.label("entry_service_name"),
                triggered.name.label("triggered_service_name"),
            )
            .join(entry, entry.service_id == CascadeRule.entry_service_id)
            .join(triggered, triggered.service_id == CascadeRule.triggered_service_id)
        )

    @staticmethod
    def _as_dict(rule: CascadeRule, entry_name, triggered_name) -> Dict[str, Any]:
        return {
            "rule_id": rule.rule_id,
            "entry_service_id": rule.entry_service_id,
            "triggered_service_id": rule.triggered_service_id,
            "conversion_rate": float(rule.conversion_rate),
            "priority": rule.priority,
            "conditions": rule.conditions or {},
            "entry_service_name": entry_name,
            "triggered_service_name": triggered_name,
        }

    async def get_active_rules_with_services(self) -> List[Dict[str, Any]]:
        """Return every active rule joined with its entry/triggered service names.

        Rows come back already ordered by ``priority ASC, conversion_rate
        DESC``; the index re-sorts per group anyway.
        """
        query = (
            self._with_service_names()
            .where(CascadeRule.is_active.is_(True))
            .order_by(CascadeRule.priority.asc(), CascadeRule.conversion_rate.desc())
        )
        result = await self._db.execute(query)
        return [self._as_dict(*row) for row in result.all()]

    async def get_rule_with_services(self, rule_id: UUID) -> Optional[Dict[str, Any]]:
        """Return one rule, active or not, in the same shape as above."""
        result = await self._db.execute(
            self._with_service_names().where(CascadeRule.rule_id == rule_id)
        )
        row = result.first()
        return self._as_dict(*row) if row is not None else None

    async def get_rule_performance(
        self, since: datetime, min_samples: int
    ) -> List[Dict[str, Any]]:
        """Configured vs realised conversion for rules with enough triggers."""
        total = func.count(CascadeTrigger.trigger_id)
        converted = func.count(CascadeTrigger.trigger_id).filter(
            CascadeTrigger.converted.is_(True)
        )
        query = (
            select(
                CascadeRule.rule_id,
                CascadeRule.conversion_rate,
                total.label("total_triggers"),
                converted.label("successful_conversions"),
            )
            .join(CascadeTrigger, CascadeTrigger.cascade_rule_id == CascadeRule.rule_id)
            .where(CascadeTrigger.triggered_at >= since)
            .group_by(CascadeRule.rule_id, CascadeRule.conversion_rate)
            .having(total >= min_samples)
        )
        rows = await self._db.execute(query)
        return [
            {
                "rule_id": row.rule_id,
                "expected_rate": float(row.conversion_rate),
                "total_triggers": int(row.total_triggers),
                "successful_conversions": int(row.successful_conversions),
            }
            for row in rows
        ]

    async def update_conversion_rate(self, rule_id: UUID, rate: float) -> None:
        """Overwrite the stored conversion probability of a rule."""
        await self._db.execute(
            update(CascadeRule)
            .where(CascadeRule.rule_id == rule_id)
            .values(conversion_rate=rate)
        )

    async def seed_if_empty(self) -> None:
        """Insert the default service catalogue and cascade rules when empty.

        Uses a row-count check so this is idempotent: calling it on a
        database that already has rules is a cheap no-op.

        The canonical definitions live in
        ``cascade_engine.core.default_cascade_rules``.
        """
        from cascade_engine.core.default_cascade_rules import (
            DEFAULT_CASCADE_RULES,
            DEFAULT_SERVICES,
        )

        count_result = await self._db.execute(
            select(func.count()).select_from(CascadeRule)
        )
        if count_result.scalar():
            return  # rules already present

        existing = await self._db.execute(select(Service.slug, Service.service_id))
        service_ids = {slug: service_id for slug, service_id in existing.all()}

        logger.info("service_cascades table is empty, seeding defaults")
        for service_data in DEFAULT_SERVICES:
            if service_data["slug"] in service_ids:
                continue
            service = Service(**service_data)
            self._db.add(service)
            await self._db.flush()
            service_ids[service.slug] = service.service_id

        seeded = 0
        for rule_data in DEFAULT_CASCADE_RULES:
            entry_id = service_ids.get(rule_data["entry_service"])
            triggered_id = service_ids.get(rule_data["triggered_service"])
            if entry_id is None or triggered_id is None:
                logger.warning(
                    "Skipping default rule %s -> %s: unknown service",
                    rule_data["entry_service"],
                    rule_data["triggered_service"],
                )
                continue
            self._db.add(
                CascadeRule(
                    entry_service_id=entry_id,
                    triggered_service_id=triggered_id,
                    conversion_rate=rule_data["conversion_rate"],
                    priority=rule_data["priority"],
                    conditions=rule_data["conditions"],
                )
            )
            seeded += 1
        await self._db.flush()
        logger.info("Seeded %d default cascade rules", seeded)
