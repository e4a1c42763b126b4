"""
Indexer State repository.

Data access layer for persisted indexer cursors.
"""

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from tvl.models.indexer_state import IndexerState
from tvl.repositories.base import BaseRepository


class IndexerStateRepository(BaseRepository[IndexerState]):
    """Repository for indexer cursors."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(IndexerState, session)

    async def get_state(self, indexer_id: str) -> IndexerState | None:
        """Get cursor row of an indexer."""
        return await self.get(indexer_id)

    async def set_safe_height(self, indexer_id: str, safe_height: int) -> None:
        """
        Move the cursor and clear the last error.

        Args:
            indexer_id: Indexer identity
            safe_height: New cursor value
        """
        stmt = (
            update(IndexerState)
            .where(IndexerState.indexer_id == indexer_id)
            .values(safe_height=safe_height, last_error=None)
        )
        await self.session.execute(stmt)

    async def record_error(self, indexer_id: str, error: str) -> None:
        """Store the last error and bump the error counter."""
        stmt = (
            update(IndexerState)
            .where(IndexerState.indexer_id == indexer_id)
            .values(
                last_error=error[:2000],
                error_count=IndexerState.error_count + 1,
            )
        )
        await self.session.execute(stmt)
