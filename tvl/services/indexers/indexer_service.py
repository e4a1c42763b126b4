"""
Indexer service.

Loads and persists indexer cursors, invalidating them when the
configuration that shaped their records changes.
"""

from loguru import logger

from tvl.models.indexer_state import IndexerState
from tvl.repositories.record_store import RecordStore
from tvl.utils.datetime_utils import format_timestamp


class IndexerService:
    """Cursor persistence for managed indexers."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def get_state(self, indexer_id: str) -> IndexerState | None:
        """Get persisted cursor row of an indexer."""
        return await self.store.get_cursor(indexer_id)

    async def initialize_state(
        self,
        indexer_id: str,
        min_height: int,
        max_height: int | None,
        config_hash: str,
    ) -> int:
        """
        Load the cursor an indexer resumes from.

        A missing row starts at min_height. A stored row whose config hash
        differs is reset to min_height; its records are rewritten in place
        as the indexer catches up again.

        Args:
            indexer_id: Indexer identity
            min_height: Configured start (exclusive)
            max_height: Configured end (inclusive), or None
            config_hash: Hash of the current configuration

        Returns:
            Safe height to resume from
        """
        state = await self.store.get_cursor(indexer_id)

        if state is None:
            safe_height = min_height
            logger.info(
                f"[IndexerService] {indexer_id}: no stored cursor, "
                f"starting after {format_timestamp(min_height)}"
            )
        elif state.config_hash != config_hash:
            safe_height = min_height
            logger.warning(
                f"[IndexerService] {indexer_id}: configuration changed "
                f"({state.config_hash} -> {config_hash}), "
                f"resetting cursor to {format_timestamp(min_height)}"
            )
        else:
            safe_height = max(state.safe_height, min_height)
            logger.info(
                f"[IndexerService] {indexer_id}: resuming after "
                f"{format_timestamp(safe_height)}"
            )

        if max_height is not None:
            safe_height = min(safe_height, max_height)

        await self.store.put_cursor(
            indexer_id,
            safe_height=safe_height,
            min_height=min_height,
            max_height=max_height,
            config_hash=config_hash,
        )
        return safe_height

    async def set_safe_height(self, indexer_id: str, safe_height: int) -> None:
        """Persist a new cursor value."""
        await self.store.set_safe_height(indexer_id, safe_height)

    async def record_error(self, indexer_id: str, error: str) -> None:
        """Persist the last failure of an indexer."""
        await self.store.record_error(indexer_id, error)
