"""
Indexer base classes.

Indexer is the in-memory node of the dependency graph: it owns a cursor,
runs one asyncio loop and exposes a status snapshot. ManagedIndexer adds a
persisted cursor and the per-hour processing contract used by every
record-producing indexer.
"""

import asyncio
import hashlib
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from loguru import logger

from tvl.config.constants import (
    INDEXER_ERROR_BACKOFF,
    INDEXER_PROGRESS_LOG_EVERY,
    INDEXER_TICK_INTERVAL,
)
from tvl.services.chain.rate_limiter import RateLimiter
from tvl.utils.datetime_utils import format_timestamp, hours_after, hours_between
from tvl.utils.exceptions import NotYetAvailable, ProviderUnavailable, is_fault

from .indexer_service import IndexerService
from .sync_optimizer import SyncOptimizer

IDLE = "idle"
CATCHING_UP = "catching_up"
STOPPED = "stopped"


@dataclass(frozen=True)
class IndexerStatus:
    """Snapshot of one indexer for health reporting."""

    indexer_id: str
    safe_height: int | None
    target_height: int | None
    state: str
    last_error: str | None
    error_count: int

    def to_dict(self) -> dict:
        return {
            "indexer_id": self.indexer_id,
            "safe_height": self.safe_height,
            "safe_time": format_timestamp(self.safe_height),
            "target_height": self.target_height,
            "state": self.state,
            "last_error": self.last_error,
            "error_count": self.error_count,
        }


class Indexer(ABC):
    """
    Node of the indexer graph.

    Subclasses implement initialize() and tick(). The loop calls tick()
    until the stop event is set, waiting between cycles with a wait that
    ends as soon as stop is requested. Errors are classified by type and
    never leave the loop, so one failing indexer does not stop its siblings.
    """

    def __init__(
        self,
        indexer_id: str,
        parents: list["Indexer"] | None = None,
        tick_interval: float = INDEXER_TICK_INTERVAL,
        error_backoff: float = INDEXER_ERROR_BACKOFF,
    ) -> None:
        self.indexer_id = indexer_id
        self.parents: list[Indexer] = list(parents or [])
        self.tick_interval = tick_interval
        self.error_backoff = error_backoff

        self.safe_height: int | None = None
        self.target_height: int | None = None
        self.state = STOPPED
        self.last_error: str | None = None
        self.error_count = 0

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.indexer_id!r}, safe_height={self.safe_height})>"

    @property
    def parent_ids(self) -> list[str]:
        return [p.indexer_id for p in self.parents]

    @abstractmethod
    async def initialize(self) -> None:
        """Load or compute the starting cursor."""

    @abstractmethod
    async def tick(self) -> bool:
        """
        Run one cycle.

        Returns:
            True if more work is immediately available
        """

    async def on_error(self, error: Exception) -> None:
        """Record a failed cycle."""
        self.last_error = f"{type(error).__name__}: {error}"
        self.error_count += 1

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Indexer loop.

        Args:
            stop_event: Graph-wide stop signal
        """
        logger.info(f"[Indexer:{self.indexer_id}] Loop started")
        self.state = CATCHING_UP

        try:
            while not stop_event.is_set():
                delay = self.tick_interval
                try:
                    if await self.tick():
                        delay = 0
                except asyncio.CancelledError:
                    raise
                except NotYetAvailable as e:
                    logger.debug(f"[Indexer:{self.indexer_id}] Waiting for data: {e}")
                except ProviderUnavailable as e:
                    logger.warning(f"[Indexer:{self.indexer_id}] Provider unavailable: {e}")
                    await self.on_error(e)
                    delay = self.error_backoff
                except Exception as e:
                    if is_fault(e):
                        logger.error(f"[Indexer:{self.indexer_id}] Cycle failed: {e}")
                    else:
                        logger.exception(f"[Indexer:{self.indexer_id}] Unexpected error: {e}")
                    await self.on_error(e)
                    delay = self.error_backoff

                await self._wait(stop_event, delay)
        finally:
            self.state = STOPPED
            logger.info(
                f"[Indexer:{self.indexer_id}] Loop stopped at "
                f"{format_timestamp(self.safe_height)}"
            )

    async def _wait(self, stop_event: asyncio.Event, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except TimeoutError:
            pass

    def status(self) -> IndexerStatus:
        return IndexerStatus(
            indexer_id=self.indexer_id,
            safe_height=self.safe_height,
            target_height=self.target_height,
            state=self.state,
            last_error=self.last_error,
            error_count=self.error_count,
        )


class ManagedIndexer(Indexer):
    """
    Indexer with a persisted cursor that produces one record per hour.

    Each cycle:
    1. bound = min(parent cursors, max_height)
    2. width = SyncOptimizer.batch_width(hours to bound, latency, budget)
    3. for each hour strictly after the cursor, in increasing order:
       process(hour), then persist the cursor

    The cursor never moves past an hour whose record is not persisted.
    Stop is checked between hours, so the in-flight hour always finishes.
    """

    # Provider calls spent per processed hour; 0 means no per-hour calls
    calls_per_timestamp = 1

    def __init__(
        self,
        indexer_id: str,
        parents: list[Indexer],
        indexer_service: IndexerService,
        min_height: int,
        max_height: int | None = None,
        optimizer: SyncOptimizer | None = None,
        rate_limiter: RateLimiter | None = None,
        max_batch_width: int | None = None,
        tick_interval: float = INDEXER_TICK_INTERVAL,
        error_backoff: float = INDEXER_ERROR_BACKOFF,
    ) -> None:
        super().__init__(indexer_id, parents, tick_interval, error_backoff)
        self.indexer_service = indexer_service
        self.min_height = min_height
        self.max_height = max_height
        self.optimizer = optimizer or SyncOptimizer()
        self.rate_limiter = rate_limiter
        self.max_batch_width = max_batch_width
        self.latency: float | None = None
        self._stop_event: asyncio.Event | None = None
        self._processed_since_log = 0

    def config_payload(self) -> dict:
        """Configuration that shapes this indexer's records."""
        return {}

    def config_hash(self) -> str:
        payload = json.dumps(
            {"min_height": self.min_height, **self.config_payload()},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode()).hexdigest()[:16]

    async def initialize(self) -> None:
        self.safe_height = await self.indexer_service.initialize_state(
            self.indexer_id,
            min_height=self.min_height,
            max_height=self.max_height,
            config_hash=self.config_hash(),
        )
        await self._clamp_to_parents()

    async def _clamp_to_parents(self) -> None:
        """
        Move the cursor back to the slowest parent.

        A parent whose cursor was reset or rewound no longer vouches for
        the hours after it, so records past it are recomputed. Parents are
        initialized first, so the clamp carries down the whole graph.
        """
        heights = [p.safe_height for p in self.parents if p.safe_height is not None]
        if not heights or self.safe_height is None:
            return

        clamped = max(min(heights), self.min_height)
        if clamped >= self.safe_height:
            return

        logger.warning(
            f"[Indexer:{self.indexer_id}] Cursor {format_timestamp(self.safe_height)} "
            f"is ahead of its parents, moving back to {format_timestamp(clamped)}"
        )
        await self.indexer_service.set_safe_height(self.indexer_id, clamped)
        self.safe_height = clamped

    def get_safe_bound(self) -> int | None:
        """Highest hour this indexer may process now, or None if unknown."""
        heights = [p.safe_height for p in self.parents]
        if any(h is None for h in heights):
            return None

        candidates = list(heights)
        if self.max_height is not None:
            candidates.append(self.max_height)
        return min(candidates) if candidates else self.max_height

    def _budget(self) -> float | None:
        if self.rate_limiter is None or self.calls_per_timestamp <= 0:
            return None
        return self.rate_limiter.calls_per_minute / self.calls_per_timestamp

    async def prepare_batch(self, timestamps: list[int]) -> None:
        """Hook run once per cycle before the hours are processed."""

    @abstractmethod
    async def process(self, timestamp: int) -> None:
        """Compute and persist the record of one hour."""

    async def run(self, stop_event: asyncio.Event) -> None:
        self._stop_event = stop_event
        await super().run(stop_event)

    async def tick(self) -> bool:
        bound = self.get_safe_bound()
        self.target_height = bound
        if bound is None or self.safe_height is None:
            return False

        distance = hours_between(self.safe_height, bound)
        if distance == 0:
            self._mark_idle()
            return False

        self.state = CATCHING_UP
        width = self.optimizer.batch_width(distance, self.latency, self._budget())
        if self.max_batch_width is not None:
            width = min(width, self.max_batch_width)

        timestamps = hours_after(self.safe_height, bound, width)
        await self.prepare_batch(timestamps)

        for timestamp in timestamps:
            if self._stop_event is not None and self._stop_event.is_set():
                return False
            await self._process_one(timestamp)

        if self.safe_height >= bound:
            self._mark_idle()
            return False
        return True

    async def _process_one(self, timestamp: int) -> None:
        started = time.monotonic()
        await self.process(timestamp)
        await self.indexer_service.set_safe_height(self.indexer_id, timestamp)
        self.safe_height = timestamp

        elapsed = time.monotonic() - started
        self.latency = elapsed if self.latency is None else 0.8 * self.latency + 0.2 * elapsed

        self._processed_since_log += 1
        if self._processed_since_log >= INDEXER_PROGRESS_LOG_EVERY:
            self._processed_since_log = 0
            logger.info(
                f"[Indexer:{self.indexer_id}] Progress: {format_timestamp(timestamp)} "
                f"(target {format_timestamp(self.target_height)})"
            )

    def _mark_idle(self) -> None:
        if self.state != IDLE:
            logger.success(
                f"[Indexer:{self.indexer_id}] Caught up at "
                f"{format_timestamp(self.safe_height)}"
            )
        self.state = IDLE
        self.last_error = None

    async def on_error(self, error: Exception) -> None:
        await super().on_error(error)
        try:
            await self.indexer_service.record_error(self.indexer_id, self.last_error)
        except Exception as e:
            logger.warning(f"[Indexer:{self.indexer_id}] Cannot persist error: {e}")
