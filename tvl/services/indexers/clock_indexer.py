"""
Clock indexer.

Root of the graph. Its cursor is the latest full hour older than the
safety margin, so no child ever indexes an hour that may still change.
"""

from collections.abc import Callable

from loguru import logger

from tvl.config.constants import DEFAULT_SAFETY_MARGIN_SECONDS, INDEXER_TICK_INTERVAL
from tvl.utils.datetime_utils import floor_hour, format_timestamp, unix_now

from .base import IDLE, Indexer

CLOCK_INDEXER_ID = "clock"


class ClockIndexer(Indexer):
    """Wall-clock cursor, never persisted."""

    def __init__(
        self,
        safety_margin_seconds: int = DEFAULT_SAFETY_MARGIN_SECONDS,
        tick_interval: float = INDEXER_TICK_INTERVAL,
        now: Callable[[], int] = unix_now,
    ) -> None:
        super().__init__(CLOCK_INDEXER_ID, parents=[], tick_interval=tick_interval)
        self.safety_margin_seconds = safety_margin_seconds
        self._now = now

    def current_height(self) -> int:
        return floor_hour(self._now() - self.safety_margin_seconds)

    async def initialize(self) -> None:
        self.safe_height = self.current_height()
        self.target_height = self.safe_height
        logger.info(f"[Indexer:clock] Starting at {format_timestamp(self.safe_height)}")

    async def tick(self) -> bool:
        height = self.current_height()
        # Never move backwards, even if the wall clock does
        if self.safe_height is None or height > self.safe_height:
            self.safe_height = height
            self.target_height = height
            logger.debug(f"[Indexer:clock] Advanced to {format_timestamp(height)}")
        self.state = IDLE
        return False
