"""
Retry mechanism for resilient outbound operations.

A failure is retried only when it looks transient: no response was received
(connection errors, timeouts) or the upstream answered 5xx, 408 or 429. Every
other failure is raised immediately. The delay before attempt ``n`` (n >= 2)
is ``base_delay * exponential_base ** (n - 2)``.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

import httpx

from shared.errors import RetryExhaustedError
from shared.logging import get_logger


RETRYABLE_STATUS_CODES = frozenset({408, 429})


class RetryConfig:
    """Configuration for retry behavior.

    ``max_retries`` counts retries after the first attempt, so a call makes
    at most ``max_retries + 1`` attempts.
    """

    def __init__(self,
                 max_retries: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = False,
                 attempt_timeout: Optional[float] = None):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.attempt_timeout = attempt_timeout

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def is_retryable(error: BaseException) -> bool:
    """Classify a failed attempt as transient or final."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status in RETRYABLE_STATUS_CODES
    # No response received at all
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    return False


def _calculate_delay(failed_attempt: int, config: RetryConfig) -> float:
    """Delay to wait after ``failed_attempt`` before the next one."""
    delay = config.base_delay * (config.exponential_base ** (failed_attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


def _describe(error: BaseException) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        return f"HTTP {error.response.status_code}"
    return str(error) or error.__class__.__name__


async def retry_call(request_fn: Callable[[], Awaitable[Any]],
                     config: Optional[RetryConfig] = None,
                     *,
                     operation: str = "outbound_call",
                     sleep: Optional[Callable[[float], Awaitable[Any]]] = None) -> Any:
    """Run ``request_fn`` with retries and exponential backoff.

    Raises the original error for non-retryable failures and
    ``RetryExhaustedError`` (chained to the last failure) once every attempt
    has failed.
    """
    if config is None:
        config = RetryConfig()
    if sleep is None:
        sleep = asyncio.sleep

    logger = get_logger(f"gateway.retry.{operation}")
    last_error: Optional[BaseException] = None

    for attempt in range(1, config.max_attempts + 1):
        try:
            if config.attempt_timeout is not None:
                result = await asyncio.wait_for(request_fn(), timeout=config.attempt_timeout)
            else:
                result = await request_fn()

            if attempt > 1:
                logger.info("Retry succeeded", attempt=attempt, operation=operation)
            return result

        except Exception as e:
            last_error = e

            if not is_retryable(e):
                logger.warning(
                    "Request failed with non-retryable error",
                    attempt=attempt,
                    operation=operation,
                    error=_describe(e)
                )
                raise

            if attempt == config.max_attempts:
                logger.error(
                    "Max retry attempts exceeded",
                    attempts=attempt,
                    max_retries=config.max_retries,
                    operation=operation,
                    error=_describe(e)
                )
                raise RetryExhaustedError(attempts=attempt, last_error=e) from e

            delay = _calculate_delay(attempt, config)
            logger.warning(
                "Request failed, retrying",
                attempt=attempt,
                max_retries=config.max_retries,
                delay=delay,
                operation=operation,
                error=_describe(e)
            )
            await sleep(delay)

    # max_attempts is always >= 1, so the loop either returns or raises
    raise RetryExhaustedError(attempts=config.max_attempts,
                              last_error=last_error or RuntimeError("no attempt made"))
