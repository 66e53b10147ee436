from functools import wraps
from typing import Awaitable, Callable, TypeVar
import asyncio

import httpx

from app.config.config import settings
from app.database.errors import GatewayUnavailableError
from app.utils.logger_config import setup_logger

logger = setup_logger()

T = TypeVar("T")


def with_gateway_retry(
    max_retries: int = settings.GATEWAY_MAX_RETRIES,
    delay: float = settings.GATEWAY_RETRY_DELAY,
):
    """
    Decorator for read-only gateway calls with retry on transport failures.
    GraphQL errors are returned by the server and are never retried.
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_error = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except httpx.TransportError as e:
                    last_error = e
                    logger.warning(
                        f"GraphQL gateway transport error (attempt {attempt + 1}/{max_retries}): {str(e)}"
                    )
                    if attempt < max_retries - 1:
                        await asyncio.sleep(delay * (2 ** attempt))
                    continue

            raise GatewayUnavailableError(
                f"GraphQL gateway unreachable after {max_retries} attempts"
            ) from last_error
        return wrapper
    return decorator
