"""
Base repository.

Keyed reads, hour-window queries and upserts shared by all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tvl.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository for hourly record tables.

    Every table is keyed by natural primary keys (identity, timestamp), so
    writes are upserts: writing the same key twice leaves one row holding
    the latest values.

    Type Parameters:
        ModelType: SQLAlchemy model class with a ``timestamp`` column

    Example:
        class PriceRepository(BaseRepository[Price]):
            def __init__(self, session: AsyncSession):
                super().__init__(Price, session)
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def get(self, *primary_key: Any) -> ModelType | None:
        """
        Get record by primary key.

        Args:
            *primary_key: Primary key column values in declaration order

        Returns:
            Record or None if not found
        """
        key = primary_key[0] if len(primary_key) == 1 else primary_key
        return await self.session.get(self.model, key)

    async def find_range(
        self,
        from_timestamp: int,
        to_timestamp: int,
        **keys: Any,
    ) -> list[ModelType]:
        """
        Records inside an inclusive hour window.

        Args:
            from_timestamp: Inclusive start
            to_timestamp: Inclusive end
            **keys: Identity column filters, e.g. price_id="eth"

        Returns:
            Records ordered by timestamp
        """
        timestamp = self.model.timestamp
        stmt = (
            select(self.model)
            .filter_by(**keys)
            .where(timestamp >= from_timestamp, timestamp <= to_timestamp)
            .order_by(timestamp)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert(self, **data: Any) -> ModelType:
        """
        Insert or overwrite record by primary key.

        Args:
            **data: Record data including every primary key column

        Returns:
            Persistent record
        """
        record = await self.session.merge(self.model(**data))
        await self.session.flush()
        return record
