"""
Block Timestamp repository.

Data access layer for hour to block mappings.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tvl.models.block_timestamp import BlockTimestamp
from tvl.repositories.base import BaseRepository


class BlockTimestampRepository(BaseRepository[BlockTimestamp]):
    """Repository for block timestamps."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(BlockTimestamp, session)

    async def get_block_number(self, chain: str, timestamp: int) -> int | None:
        """Block number mapped to the hour, or None."""
        record = await self.get(chain, timestamp)
        return record.block_number if record else None

    async def get_latest_before(
        self, chain: str, timestamp: int
    ) -> BlockTimestamp | None:
        """Most recent mapping strictly before timestamp."""
        stmt = (
            select(BlockTimestamp)
            .where(
                BlockTimestamp.chain == chain,
                BlockTimestamp.timestamp < timestamp,
            )
            .order_by(BlockTimestamp.timestamp.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
