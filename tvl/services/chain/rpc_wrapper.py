"""
RPC Wrapper with Timeout and Retry Logic.

Provides centralized timeout and retry functionality for all provider calls.
Only transient failures are retried; protocol errors propagate at once.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp
from loguru import logger

from tvl.config.constants import (
    BLOCKCHAIN_MAX_RETRIES,
    BLOCKCHAIN_RETRY_DELAY_BASE,
    BLOCKCHAIN_RETRY_DELAY_MAX,
    BLOCKCHAIN_TIMEOUT,
)
from tvl.utils.exceptions import ProviderUnavailable

from .rate_limiter import RateLimiter

T = TypeVar("T")


class ProviderTimeoutError(Exception):
    """Raised when a provider call times out."""
    pass


class TransientProviderError(Exception):
    """Raised for provider responses worth retrying (HTTP 5xx, rate limits)."""
    pass


RETRYABLE_ERRORS = (
    ProviderTimeoutError,
    TransientProviderError,
    aiohttp.ClientError,
    ConnectionError,
)


async def with_timeout(
    coro: Awaitable[T],
    timeout: float = BLOCKCHAIN_TIMEOUT,
    operation_name: str = "RPC call",
) -> T:
    """
    Execute async coroutine with timeout.

    Args:
        coro: Coroutine to execute
        timeout: Timeout in seconds (default: BLOCKCHAIN_TIMEOUT)
        operation_name: Operation name for logging

    Returns:
        Result of the coroutine

    Raises:
        ProviderTimeoutError: If operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        raise ProviderTimeoutError(
            f"{operation_name} timed out after {timeout}s"
        ) from e


def backoff_delay(
    attempt: int,
    base_delay: float = BLOCKCHAIN_RETRY_DELAY_BASE,
    max_delay: float = BLOCKCHAIN_RETRY_DELAY_MAX,
) -> float:
    """Exponential backoff delay for a zero-based attempt: 1s, 2s, 4s, 8s..."""
    return min(base_delay * (2 ** attempt), max_delay)


async def call_with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    max_attempts: int = BLOCKCHAIN_MAX_RETRIES,
    timeout: float = BLOCKCHAIN_TIMEOUT,
    operation_name: str = "RPC call",
    base_delay: float = BLOCKCHAIN_RETRY_DELAY_BASE,
    max_delay: float = BLOCKCHAIN_RETRY_DELAY_MAX,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rate_limiter: RateLimiter | None = None,
) -> T:
    """
    Execute provider call with retry logic and timeout.

    Args:
        coro_factory: Factory function that returns a fresh coroutine
        max_attempts: Maximum number of attempts
        timeout: Timeout per attempt in seconds
        operation_name: Operation name for logging
        base_delay: Backoff base delay in seconds
        max_delay: Backoff ceiling in seconds
        sleep: Sleep coroutine (injectable for tests)
        rate_limiter: Provider budget; each attempt takes one slot before
            its timeout starts, so queueing never counts as a timeout

    Returns:
        Result of the call

    Raises:
        ProviderUnavailable: If all attempts fail with transient errors
        Exception: Any non-retryable error raised by the call, unchanged
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Exception | None = None

    for attempt in range(max_attempts):
        if rate_limiter is not None:
            await rate_limiter.acquire()
        try:
            result = await with_timeout(
                coro_factory(),
                timeout=timeout,
                operation_name=operation_name,
            )
            if attempt > 0:
                logger.info(
                    f"{operation_name} succeeded on attempt {attempt + 1}"
                )
            return result

        except RETRYABLE_ERRORS as e:
            last_error = e

            if attempt < max_attempts - 1:
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    f"{operation_name} failed on attempt {attempt + 1}/{max_attempts}: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await sleep(delay)
            else:
                logger.error(
                    f"{operation_name} failed after {max_attempts} attempts: {e}"
                )

    raise ProviderUnavailable(
        f"{operation_name} failed after {max_attempts} attempts: {last_error}"
    ) from last_error
