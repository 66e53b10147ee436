import os
from app.config.config import settings
from app.utils import limiter

# Process timezone for naive datetime handling in dependencies
os.environ["TZ"] = settings.TZ

from contextlib import asynccontextmanager
import logfire
import sentry_sdk

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.routes import (
    invoice_routes,
    refund_routes,
    shopper_routes,
)

from app.config.config import redis_client
from app.database.gateway import GraphQLGateway, gateway, get_gateway
from app.utils.logger_config import configure_production_logging, setup_logger


if settings.ENVIRONMENT == "production":
    configure_production_logging()

logger = setup_logger()


@asynccontextmanager
async def lifespan(application: FastAPI):
    try:
        logger.info("Initializing application...")

        # Check Redis connection
        redis_client.ping()
        logger.info("Redis connection successful")

        yield

    finally:
        logger.info("Cleaning up resources...")
        await gateway.aclose()
        logger.info("Cleanup complete")


if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        send_default_pii=False,
        traces_sample_rate=1.0,
    )


app = FastAPI(
    title=settings.APP_NAME,
    lifespan=lifespan,
    debug=settings.DEBUG,
    summary="Shopper batches, payment settlement, refunds and earnings for the Plas delivery marketplace.",
)

app.state.limiter = limiter.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.get("/")
def read_root():
    return {"message": f"Welcome to {settings.APP_NAME}"}


logfire.configure(
    service_name="plas-shopper-api",
    token=settings.LOGFIRE_TOKEN,
    send_to_logfire="if-token-present",
    environment=settings.ENVIRONMENT,
)
logfire.instrument_fastapi(app=app)
logfire.instrument_httpx()


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/api/health", tags=["Health Status"])
def api_health_check() -> dict:
    """Check the status of the API"""
    return {"status": "OK", "message": "API up and running"}


@app.get("/api/gateway", tags=["Health Status"])
async def check_gateway_health(gateway: GraphQLGateway = Depends(get_gateway)):
    """Check GraphQL gateway connectivity"""
    try:
        await gateway.query("query GatewayHealth { __typename }")
        return {"status": "healthy", "gateway": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "gateway": "disconnected", "error": str(e)}


app.include_router(shopper_routes.router)
app.include_router(refund_routes.router)
app.include_router(invoice_routes.router)
