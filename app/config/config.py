import os
from decimal import Decimal
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import redis

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "Plas Shopper API"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    TEST: bool = os.getenv("TEST", "false").lower() == "true"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    TZ: str = os.getenv("TZ", "Africa/Kigali")

    # Hasura GraphQL gateway
    HASURA_GRAPHQL_URL: str = os.getenv(
        "HASURA_GRAPHQL_URL", "http://localhost:8080/v1/graphql"
    )
    HASURA_GRAPHQL_ADMIN_SECRET: str = os.getenv("HASURA_GRAPHQL_ADMIN_SECRET", "")
    HASURA_TIMEOUT_SECONDS: float = 30.0
    GATEWAY_MAX_RETRIES: int = 3
    GATEWAY_RETRY_DELAY: float = 0.5

    # Session tokens (issued by the auth provider)
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "change-me")
    SESSION_ALGORITHM: str = "HS256"

    # LOGFIRE / SENTRY
    LOGFIRE_TOKEN: str | None = os.getenv("LOGFIRE_TOKEN")
    SENTRY_DSN: str | None = os.getenv("SENTRY_DSN")

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    STATS_CACHE_SECONDS: int = 300

    # Earnings goals
    WEEKLY_EARNINGS_TARGET: Decimal = Decimal("50000")
    MONTHLY_EARNINGS_TARGET: Decimal = Decimal("200000")
    QUARTERLY_EARNINGS_TARGET: Decimal = Decimal("600000")

    # Wallet_Transactions has a related_reel_orderId column only on newer schemas
    REEL_LEDGER_ENABLED: bool = False

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "https://plas.rw"]

    # API URL
    API_URL: str = "http://localhost:8000"
    TEST_BASE_URL: str = "http://test"


settings = Settings()


redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
