"""Exponential-backoff retry for idempotent async calls."""
import asyncio
import functools
from typing import Tuple, Type

import structlog

logger = structlog.get_logger(__name__)


def with_retry(
    retryable: Tuple[Type[BaseException], ...],
    attempts: int = 4,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
):
    """Retry on ``retryable`` errors, doubling the delay up to ``max_delay``.

    Only for reads. Anything that places an order must not be wrapped: a
    timed-out submission may still have reached the book.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable as e:
                    if attempt == attempts:
                        logger.error("retry.exhausted", call=func.__qualname__, attempts=attempts, error=str(e))
                        raise
                    delay = min(base_delay * 2 ** (attempt - 1), max_delay)
                    logger.warning(
                        "retry.backoff", call=func.__qualname__, attempt=attempt, delay=delay, error=str(e)
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
