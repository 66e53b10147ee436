from slowapi import Limiter
from slowapi.util import get_remote_address
from app.config.config import settings


# Counters live in Redis outside development so every worker shares them
limiter = Limiter(
    key_func=get_remote_address,
    enabled=not settings.TEST,
    storage_uri="memory://" if settings.ENVIRONMENT == "development" else settings.REDIS_URL,
)
