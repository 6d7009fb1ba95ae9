import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from cascade_engine.api.v1.router import router as api_v1_router
from cascade_engine.core.cache import CacheService, create_redis_client
from cascade_engine.core.config import settings as app_settings
from cascade_engine.core.database import AsyncSessionLocal
from cascade_engine.core.exceptions import (
    CustomerNotFoundError,
    DuplicateTriggerError,
    EngineNotReadyError,
    InvalidConditionError,
    InvalidTriggerStateError,
    OrderNotFoundError,
    RuleIndexLoadError,
    ServiceNotFoundError,
    TriggerNotFoundError,
)
from cascade_engine.core.rate_limit import limiter
from cascade_engine.services.engine import build_engine
from cascade_engine.services.outcome_tracker import start_outcome_tracking_loop

# Configure logging
logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine, load rules and run the outcome-tracking loop."""
    redis_client = await create_redis_client(app_settings.REDIS_URL)
    cache = CacheService(redis_client=redis_client)
    engine = build_engine(AsyncSessionLocal, cache, app_settings)

    # Fatal: the app must not serve cascades without a rule index
    await engine.start()
    app.state.engine = engine

    tracking_task = asyncio.create_task(
        start_outcome_tracking_loop(
            engine.outcome_tracker, engine.outcome_config.interval_seconds
        )
    )
    logger.info("Background outcome-tracking task scheduled")
    yield
    # Shutdown: stop the loop, then the scheduled cascades
    tracking_task.cancel()
    try:
        await tracking_task
    except asyncio.CancelledError:
        logger.info("Background outcome-tracking task stopped")
    await engine.stop()
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(
    title="Service Cascade & Dynamic Pricing Engine",
    description="Follow-on service recommendations and bounded dynamic pricing",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware – restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(ServiceNotFoundError)
async def service_not_found_handler(request: Request, exc: ServiceNotFoundError):
    logger.warning("Service not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "service_not_found"},
    )


@app.exception_handler(CustomerNotFoundError)
async def customer_not_found_handler(request: Request, exc: CustomerNotFoundError):
    logger.warning("Customer not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "customer_not_found"},
    )


@app.exception_handler(OrderNotFoundError)
async def order_not_found_handler(request: Request, exc: OrderNotFoundError):
    logger.warning("Order not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "order_not_found"},
    )


@app.exception_handler(TriggerNotFoundError)
async def trigger_not_found_handler(request: Request, exc: TriggerNotFoundError):
    logger.warning("Cascade trigger not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "trigger_not_found"},
    )


@app.exception_handler(InvalidTriggerStateError)
async def invalid_trigger_state_handler(
    request: Request, exc: InvalidTriggerStateError
):
    logger.warning("Invalid trigger state: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "invalid_trigger_state"},
    )


@app.exception_handler(DuplicateTriggerError)
async def duplicate_trigger_handler(request: Request, exc: DuplicateTriggerError):
    logger.warning("Duplicate cascade trigger: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "duplicate_trigger"},
    )


@app.exception_handler(InvalidConditionError)
async def invalid_condition_handler(request: Request, exc: InvalidConditionError):
    logger.warning("Invalid cascade condition: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_condition"},
    )


@app.exception_handler(EngineNotReadyError)
async def engine_not_ready_handler(request: Request, exc: EngineNotReadyError):
    logger.error("Engine not ready: %s", exc.detail)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail, "type": "engine_not_ready"},
    )


@app.exception_handler(RuleIndexLoadError)
async def rule_index_load_handler(request: Request, exc: RuleIndexLoadError):
    logger.error("Rule index unavailable: %s", exc.detail)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail, "type": "rule_index_unavailable"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": exc.errors(),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
