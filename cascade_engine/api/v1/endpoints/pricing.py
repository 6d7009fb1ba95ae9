from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cascade_engine.api.deps import get_calculator, get_db, get_profile_provider
from cascade_engine.core.exceptions import CustomerNotFoundError, ServiceNotFoundError
from cascade_engine.core.rate_limit import limiter
from cascade_engine.repositories.service_repository import ServiceRepository
from cascade_engine.schemas.pricing import PriceQuoteRequest, PricingResult
from cascade_engine.services.customer_profile import CustomerProfileProvider
from cascade_engine.services.pricing import PricingCalculator

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post("/quote", response_model=PricingResult)
@limiter.limit("30/minute")
async def quote_price(
    request: Request,
    request_body: PriceQuoteRequest,
    db: AsyncSession = Depends(get_db),
    calculator: PricingCalculator = Depends(get_calculator),
    profiles: CustomerProfileProvider = Depends(get_profile_provider),
) -> PricingResult:
    """Dynamic price of a service for a customer, with the factor breakdown.

    Rate-limited to 30 requests/minute per IP.
    """
    service = await ServiceRepository(db).get_active_by_id(request_body.service_id)
    if service is None:
        raise ServiceNotFoundError(f"Service {request_body.service_id} not found")

    customer = await profiles.get_snapshot(db, request_body.customer_id)
    if customer is None:
        raise CustomerNotFoundError(f"Customer {request_body.customer_id} not found")

    return calculator.calculate(service, customer, request_body.to_options())
