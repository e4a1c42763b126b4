"""
Value repository.

Data access layer for priced value records.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tvl.models.value import Value
from tvl.repositories.base import BaseRepository


class ValueRepository(BaseRepository[Value]):
    """Repository for priced values."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Value, session)

    async def get_range(
        self, data_source: str, from_timestamp: int, to_timestamp: int
    ) -> list[Value]:
        """Values of one position inside an inclusive window."""
        return await self.find_range(from_timestamp, to_timestamp, data_source=data_source)

    async def get_project_totals(
        self, project: str, from_timestamp: int, to_timestamp: int
    ) -> dict[int, Decimal]:
        """
        Sum of values counted in the project total, per hour.

        Args:
            project: Project name
            from_timestamp: Inclusive start
            to_timestamp: Inclusive end

        Returns:
            Mapping from hour to summed USD value
        """
        stmt = (
            select(Value.timestamp, func.sum(Value.value_usd))
            .where(
                Value.project == project,
                Value.include_in_total.is_(True),
                Value.timestamp >= from_timestamp,
                Value.timestamp <= to_timestamp,
            )
            .group_by(Value.timestamp)
            .order_by(Value.timestamp)
        )
        result = await self.session.execute(stmt)
        return {timestamp: Decimal(str(total)) for timestamp, total in result.all()}
