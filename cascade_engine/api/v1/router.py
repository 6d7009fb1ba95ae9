from fastapi import APIRouter

from cascade_engine.api.v1.endpoints import cascade, health, orders, pricing

router = APIRouter(prefix="/api/v1")

router.include_router(orders.router)
router.include_router(pricing.router)
router.include_router(cascade.router)
router.include_router(health.router)
