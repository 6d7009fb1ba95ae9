from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.api.deps import (
    get_db,
    get_metrics,
    get_orchestrator,
    get_rule_index,
)
from cascade_engine.schemas.cascade import (
    CascadeMetricsOut,
    CascadeRuleList,
    CascadeRuleOut,
    RuleReloadResponse,
    TriggerOut,
)
from cascade_engine.services.cascade_metrics import CascadeMetrics
from cascade_engine.services.cascade_orchestrator import CascadeOrchestrator
from cascade_engine.services.rule_index import CascadeRuleIndex

router = APIRouter(prefix="/cascade", tags=["Cascade"])


@router.get("/rules/{service_id}", response_model=CascadeRuleList)
async def list_rules(
    service_id: UUID,
    rule_index: CascadeRuleIndex = Depends(get_rule_index),
) -> CascadeRuleList:
    """Rules triggered by a service, in evaluation order."""
    rules = [
        CascadeRuleOut(
            rule_id=rule.rule_id,
            entry_service_id=rule.entry_service_id,
            triggered_service_id=rule.triggered_service_id,
            entry_service_name=rule.entry_service_name,
            triggered_service_name=rule.triggered_service_name,
            conversion_rate=rule.conversion_rate,
            priority=rule.priority,
            conditions=rule.conditions_dict(),
        )
        for rule in rule_index.rules_for(service_id)
    ]
    return CascadeRuleList(service_id=service_id, rules=rules)


@router.post("/rules/reload", response_model=RuleReloadResponse)
async def reload_rules(
    rule_index: CascadeRuleIndex = Depends(get_rule_index),
) -> RuleReloadResponse:
    """Rebuild the rule index from the database."""
    snapshot = await rule_index.reload()
    return RuleReloadResponse(
        rules_loaded=snapshot.rules_loaded,
        services_indexed=snapshot.services_indexed,
        rules_rejected=snapshot.rules_rejected,
    )


@router.get("/metrics", response_model=CascadeMetricsOut)
async def cascade_metrics(
    days: int = Query(30, ge=1, le=365, description="Trailing window in days"),
    db: AsyncSession = Depends(get_db),
    metrics: CascadeMetrics = Depends(get_metrics),
) -> CascadeMetricsOut:
    return await metrics.get_cascade_metrics(db, days)


@router.post("/triggers/{trigger_id}/cancel", response_model=TriggerOut)
async def cancel_trigger(
    trigger_id: UUID,
    orchestrator: CascadeOrchestrator = Depends(get_orchestrator),
) -> TriggerOut:
    """Abandon a pending trigger before its order is created."""
    trigger = await orchestrator.cancel_trigger(trigger_id)
    return TriggerOut(
        trigger_id=trigger.trigger_id,
        status=trigger.status,
        converted=trigger.converted,
        failure_reason=trigger.failure_reason,
        abandoned_at=trigger.abandoned_at,
    )
