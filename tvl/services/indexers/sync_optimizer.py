"""
Sync optimizer.

Chooses how many hours an indexer processes in one cycle.
"""

from tvl.config.constants import (
    SYNC_MAX_BATCH_WIDTH,
    SYNC_MAX_CYCLE_BUDGET_SHARE,
    SYNC_MIN_BATCH_WIDTH,
    SYNC_REALTIME_THRESHOLD,
    SYNC_TARGET_CYCLE_SECONDS,
)
from tvl.config.settings import Settings


class SyncOptimizer:
    """
    Batch width policy.

    Near real-time indexers take small steps so fresh hours land quickly.
    Indexers far behind take wide steps, limited by how long one hour takes
    to process and by the provider budget, so a single catching-up indexer
    cannot starve its siblings on the same provider.
    """

    def __init__(
        self,
        min_batch_width: int = SYNC_MIN_BATCH_WIDTH,
        max_batch_width: int = SYNC_MAX_BATCH_WIDTH,
        realtime_threshold: int = SYNC_REALTIME_THRESHOLD,
        target_cycle_seconds: float = SYNC_TARGET_CYCLE_SECONDS,
        max_cycle_budget_share: float = SYNC_MAX_CYCLE_BUDGET_SHARE,
    ) -> None:
        if min_batch_width < 1 or max_batch_width < min_batch_width:
            raise ValueError(
                f"Invalid batch widths: min={min_batch_width}, max={max_batch_width}"
            )
        self.min_batch_width = min_batch_width
        self.max_batch_width = max_batch_width
        self.realtime_threshold = realtime_threshold
        self.target_cycle_seconds = target_cycle_seconds
        self.max_cycle_budget_share = max_cycle_budget_share

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncOptimizer":
        return cls(
            min_batch_width=settings.sync_min_batch_width,
            max_batch_width=settings.sync_max_batch_width,
            realtime_threshold=settings.sync_realtime_threshold,
            target_cycle_seconds=settings.sync_target_cycle_seconds,
            max_cycle_budget_share=settings.sync_max_cycle_budget_share,
        )

    def batch_width(
        self,
        distance: int,
        latency_seconds: float | None = None,
        calls_per_minute: float | None = None,
    ) -> int:
        """
        Number of hours to process in the next cycle.

        Args:
            distance: Hours between the cursor and the safe bound
            latency_seconds: Observed processing time of one hour
            calls_per_minute: Provider budget available to this indexer,
                in hours per minute

        Returns:
            0 when there is nothing to do, otherwise a width in 1..distance
        """
        if distance <= 0:
            return 0

        if distance <= self.realtime_threshold:
            return min(distance, self.min_batch_width)

        width = min(distance, self.max_batch_width)

        if latency_seconds is not None and latency_seconds > 0:
            width = min(width, int(self.target_cycle_seconds / latency_seconds))

        if calls_per_minute is not None and calls_per_minute > 0:
            width = min(width, int(calls_per_minute * self.max_cycle_budget_share))

        return max(1, min(width, distance))
