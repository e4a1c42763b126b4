"""
RPC Rate Limiter.

Leaky-bucket limiter enforcing a calls-per-minute budget for one provider.
Callers over budget wait for their slot instead of failing.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from loguru import logger


class RateLimiter:
    """
    Calls-per-minute limiter shared by every client of one provider.

    Slots are spaced ``60 / calls_per_minute`` seconds apart. Each caller
    reserves the next free slot under a lock and sleeps outside of it, so
    many concurrent loops are served in arrival order.

    Usage:
        limiter = RateLimiter(calls_per_minute=600)
        async with limiter:
            await do_rpc_call()
    """

    def __init__(
        self,
        calls_per_minute: int,
        name: str = "provider",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            calls_per_minute: Maximum calls per minute
            name: Provider name for logging
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep coroutine (injectable for tests)
        """
        if calls_per_minute <= 0:
            raise ValueError("calls_per_minute must be positive")

        self.calls_per_minute = calls_per_minute
        self.name = name
        self.interval = 60.0 / calls_per_minute
        self._clock = clock
        self._sleep = sleep
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """
        Wait until a call slot is available.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
            delay = slot - now

        if delay > 0:
            if delay > 5:
                logger.debug(
                    f"[RateLimiter:{self.name}] Waiting {delay:.1f}s for capacity"
                )
            await self._sleep(delay)
        return delay

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

