"""
Amount repository.

Data access layer for raw amount records.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from tvl.models.amount import Amount
from tvl.repositories.base import BaseRepository


class AmountRepository(BaseRepository[Amount]):
    """Repository for raw amounts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Amount, session)

    async def get_range(
        self, indexer_id: str, from_timestamp: int, to_timestamp: int
    ) -> list[Amount]:
        """Amounts of one position inside an inclusive window."""
        return await self.find_range(from_timestamp, to_timestamp, indexer_id=indexer_id)
