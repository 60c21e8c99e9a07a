"""Bounded retry with exponential backoff."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from pydantic import BaseModel

from .errors import RetryExhaustedError

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 2.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0


def backoff_delay(config: RetryConfig, attempt: int) -> float:
    """Delay before the retry that follows failed attempt ``attempt`` (0-based)."""
    return min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    logger=None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Execute an async function with exponential backoff retry.

    The function is attempted ``max_retries + 1`` times at most.

    Args:
        func: Async function to execute
        config: Retry configuration
        logger: Optional logger for retry messages
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Function result

    Raises:
        RetryExhaustedError: If all attempts fail
    """
    if config is None:
        config = RetryConfig()

    last_exception: BaseException | None = None
    total_attempts = config.max_retries + 1

    for attempt in range(total_attempts):
        try:
            return await func()
        except Exception as e:
            last_exception = e

        if attempt < config.max_retries:
            delay = backoff_delay(config, attempt)
            if logger:
                logger.warning(
                    f"Attempt {attempt + 1} failed: {last_exception!r}. "
                    f"Retrying in {delay:.1f}s"
                )
            await sleep(delay)

    if logger:
        logger.error(f"All {total_attempts} attempts failed")

    raise RetryExhaustedError(total_attempts, last_exception)
