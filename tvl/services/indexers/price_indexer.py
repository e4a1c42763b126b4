"""
Price indexer.

Persists an hourly USD price for one price reference. Provider samples are
aligned to hours by taking the latest sample at or before each hour.
"""

import bisect
from decimal import Decimal

from loguru import logger

from tvl.config.constants import COINGECKO_MAX_RANGE_SECONDS, HOUR
from tvl.config.projects import PriceConfig
from tvl.repositories.record_store import RecordStore
from tvl.services.prices.coingecko_client import CoinGeckoClient
from tvl.utils.datetime_utils import format_timestamp
from tvl.utils.exceptions import NotYetAvailable

from .base import Indexer, ManagedIndexer
from .indexer_service import IndexerService

# Samples older than this before the first hour of a batch are fetched too,
# so the first hour has something to carry forward
SAMPLE_LOOKBACK_SECONDS = 6 * HOUR


def price_indexer_id(price_id: str) -> str:
    return f"price_{price_id}"


class PriceIndexer(ManagedIndexer):
    """One per price reference; parent is the clock."""

    # One provider request per batch, not per hour
    calls_per_timestamp = 0

    def __init__(
        self,
        config: PriceConfig,
        client: CoinGeckoClient,
        store: RecordStore,
        clock: Indexer,
        indexer_service: IndexerService,
        **kwargs,
    ) -> None:
        kwargs.setdefault("max_batch_width", COINGECKO_MAX_RANGE_SECONDS // HOUR)
        super().__init__(
            price_indexer_id(config.id),
            parents=[clock],
            indexer_service=indexer_service,
            min_height=config.since_timestamp,
            **kwargs,
        )
        self.config = config
        self.client = client
        self.store = store
        self._sample_times: list[int] = []
        self._sample_prices: list[Decimal] = []
        self._carry: Decimal | None = None

    @property
    def price_id(self) -> str:
        return self.config.id

    def config_payload(self) -> dict:
        return {"coingecko_id": self.config.coingecko_id}

    async def prepare_batch(self, timestamps: list[int]) -> None:
        if not timestamps:
            return

        samples = await self.client.get_price_range(
            self.config.coingecko_id,
            timestamps[0] - SAMPLE_LOOKBACK_SECONDS,
            timestamps[-1],
        )
        self._sample_times = [t for t, _ in samples]
        self._sample_prices = [p for _, p in samples]

        # Last persisted point continues the series across batches
        self._carry = None
        if self.safe_height is not None and self.safe_height > self.min_height:
            self._carry = await self.store.get_price_point(self.price_id, self.safe_height)

    def price_at(self, timestamp: int) -> Decimal:
        """
        Latest sample at or before timestamp, else the carried price.

        Raises:
            NotYetAvailable: If nothing precedes the hour
        """
        index = bisect.bisect_right(self._sample_times, timestamp)
        if index > 0:
            return self._sample_prices[index - 1]
        if self._carry is not None:
            return self._carry
        raise NotYetAvailable(
            f"No {self.config.coingecko_id} price at or before {format_timestamp(timestamp)}"
        )

    async def process(self, timestamp: int) -> None:
        price = self.price_at(timestamp)
        await self.store.put_price_point(self.price_id, timestamp, price)
        self._carry = price
        logger.debug(f"[Indexer:{self.indexer_id}] {format_timestamp(timestamp)}: ${price}")
