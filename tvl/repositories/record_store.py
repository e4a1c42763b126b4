"""
Record store.

Session-per-operation facade over the repositories. Every write commits on
its own, so a record is durable before the cursor that covers it moves.
"""

from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tvl.models.indexer_state import IndexerState
from tvl.models.value import Value
from tvl.repositories.amount_repository import AmountRepository
from tvl.repositories.block_timestamp_repository import BlockTimestampRepository
from tvl.repositories.indexer_state_repository import IndexerStateRepository
from tvl.repositories.price_repository import PriceRepository
from tvl.repositories.value_repository import ValueRepository


class RecordStore:
    """
    Persistent storage of cursors and hourly records.

    Usage:
        store = RecordStore(async_session_maker)
        await store.put_raw_amount("ethereum_native_native_0x...", ts, 10**18)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # Cursors

    async def get_cursor(self, indexer_id: str) -> IndexerState | None:
        """Get persisted cursor row, or None if the indexer never ran."""
        async with self.session_factory() as session:
            return await IndexerStateRepository(session).get_state(indexer_id)

    async def put_cursor(
        self,
        indexer_id: str,
        safe_height: int,
        min_height: int,
        max_height: int | None,
        config_hash: str | None,
    ) -> None:
        """Create or overwrite the full cursor row."""
        async with self.session_factory() as session:
            await IndexerStateRepository(session).upsert(
                indexer_id=indexer_id,
                safe_height=safe_height,
                min_height=min_height,
                max_height=max_height,
                config_hash=config_hash,
                last_error=None,
            )
            await session.commit()

    async def set_safe_height(self, indexer_id: str, safe_height: int) -> None:
        """Advance the cursor of an initialized indexer."""
        async with self.session_factory() as session:
            await IndexerStateRepository(session).set_safe_height(indexer_id, safe_height)
            await session.commit()

    async def record_error(self, indexer_id: str, error: str) -> None:
        async with self.session_factory() as session:
            await IndexerStateRepository(session).record_error(indexer_id, error)
            await session.commit()

    # Block timestamps

    async def put_block_timestamp(self, chain: str, timestamp: int, block_number: int) -> None:
        async with self.session_factory() as session:
            await BlockTimestampRepository(session).upsert(
                chain=chain, timestamp=timestamp, block_number=block_number
            )
            await session.commit()

    async def get_block_number(self, chain: str, timestamp: int) -> int | None:
        async with self.session_factory() as session:
            return await BlockTimestampRepository(session).get_block_number(chain, timestamp)

    async def get_latest_block_before(self, chain: str, timestamp: int) -> int | None:
        """Block of the closest earlier hour, used as a search lower bound."""
        async with self.session_factory() as session:
            record = await BlockTimestampRepository(session).get_latest_before(
                chain, timestamp
            )
            return record.block_number if record else None

    # Raw amounts

    async def put_raw_amount(self, indexer_id: str, timestamp: int, amount: int) -> None:
        """
        Persist raw amount of a position at an hour.

        Args:
            indexer_id: Data indexer identity
            timestamp: Hour timestamp
            amount: Non-negative base-unit integer
        """
        if amount < 0:
            raise ValueError(f"Raw amount must be non-negative, got {amount}")
        async with self.session_factory() as session:
            await AmountRepository(session).upsert(
                indexer_id=indexer_id, timestamp=timestamp, amount=str(amount)
            )
            await session.commit()

    async def get_raw_amounts(
        self, indexer_id: str, from_timestamp: int, to_timestamp: int
    ) -> dict[int, int]:
        """Raw amounts of one position in an inclusive window, by hour."""
        async with self.session_factory() as session:
            records = await AmountRepository(session).get_range(
                indexer_id, from_timestamp, to_timestamp
            )
            return {r.timestamp: r.amount_raw for r in records}

    # Prices

    async def put_price_point(self, price_id: str, timestamp: int, price_usd: Decimal) -> None:
        async with self.session_factory() as session:
            await PriceRepository(session).upsert(
                price_id=price_id, timestamp=timestamp, price_usd=price_usd
            )
            await session.commit()

    async def get_price_point(self, price_id: str, timestamp: int) -> Decimal | None:
        async with self.session_factory() as session:
            record = await PriceRepository(session).get(price_id, timestamp)
            return Decimal(record.price_usd) if record else None

    async def get_price_points(
        self, price_id: str, from_timestamp: int, to_timestamp: int
    ) -> dict[int, Decimal]:
        async with self.session_factory() as session:
            records = await PriceRepository(session).get_range(
                price_id, from_timestamp, to_timestamp
            )
            return {r.timestamp: Decimal(r.price_usd) for r in records}

    async def find_present_prices(self, price_ids: list[str], timestamp: int) -> set[str]:
        """Subset of price_ids with a point at timestamp."""
        async with self.session_factory() as session:
            return await PriceRepository(session).find_present(price_ids, timestamp)

    # Priced values

    async def put_priced_value(
        self,
        project: str,
        data_source: str,
        timestamp: int,
        value_usd: Decimal,
        source: str,
        include_in_total: bool,
    ) -> None:
        """Persist priced value of a position at an hour."""
        async with self.session_factory() as session:
            await ValueRepository(session).upsert(
                project=project,
                data_source=data_source,
                timestamp=timestamp,
                value_usd=value_usd,
                source=source,
                include_in_total=include_in_total,
            )
            await session.commit()

    async def get_priced_values(
        self, data_source: str, from_timestamp: int, to_timestamp: int
    ) -> list[Value]:
        async with self.session_factory() as session:
            return await ValueRepository(session).get_range(
                data_source, from_timestamp, to_timestamp
            )

    async def get_project_totals(
        self, project: str, from_timestamp: int, to_timestamp: int
    ) -> dict[int, Decimal]:
        """Hourly sum of a project's values that count toward its total."""
        async with self.session_factory() as session:
            return await ValueRepository(session).get_project_totals(
                project, from_timestamp, to_timestamp
            )
