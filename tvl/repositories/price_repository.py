"""
Price repository.

Data access layer for hourly price points.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tvl.models.price import Price
from tvl.repositories.base import BaseRepository


class PriceRepository(BaseRepository[Price]):
    """Repository for price points."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Price, session)

    async def get_range(
        self, price_id: str, from_timestamp: int, to_timestamp: int
    ) -> list[Price]:
        """Price points of one reference inside an inclusive window."""
        return await self.find_range(from_timestamp, to_timestamp, price_id=price_id)

    async def find_present(
        self, price_ids: list[str], timestamp: int
    ) -> set[str]:
        """Which of price_ids have a point at timestamp."""
        if not price_ids:
            return set()
        stmt = select(Price.price_id).where(
            Price.price_id.in_(price_ids),
            Price.timestamp == timestamp,
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())
