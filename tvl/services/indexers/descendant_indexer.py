"""
Descendant price indexer.

Single gate between the price indexers and the value indexers: its cursor
is the lowest price cursor, and every hour it passes is checked to have a
point for each price reference that has started.
"""

from tvl.repositories.record_store import RecordStore
from tvl.utils.datetime_utils import format_timestamp
from tvl.utils.exceptions import MissingUpstreamRecord

from .base import ManagedIndexer
from .indexer_service import IndexerService
from .price_indexer import PriceIndexer

DESCENDANT_PRICE_INDEXER_ID = "price_descendant"


class DescendantPriceIndexer(ManagedIndexer):
    """Parents are all price indexers."""

    calls_per_timestamp = 0

    def __init__(
        self,
        price_indexers: list[PriceIndexer],
        store: RecordStore,
        indexer_service: IndexerService,
        **kwargs,
    ) -> None:
        if not price_indexers:
            raise ValueError("Descendant price indexer needs at least one price indexer")
        super().__init__(
            DESCENDANT_PRICE_INDEXER_ID,
            parents=list(price_indexers),
            indexer_service=indexer_service,
            min_height=min(p.min_height for p in price_indexers),
            **kwargs,
        )
        self.price_indexers = list(price_indexers)
        self.store = store

    def config_payload(self) -> dict:
        return {"prices": sorted(p.price_id for p in self.price_indexers)}

    async def process(self, timestamp: int) -> None:
        required = [p.price_id for p in self.price_indexers if p.min_height < timestamp]
        present = await self.store.find_present_prices(required, timestamp)
        missing = sorted(set(required) - present)
        if missing:
            raise MissingUpstreamRecord(
                f"Price points missing at {format_timestamp(timestamp)}: {', '.join(missing)}"
            )
