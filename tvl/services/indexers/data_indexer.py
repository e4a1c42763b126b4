"""
Data indexer.

Persists the raw amount of one asset position for every hour.
"""

from tvl.config.projects import AmountConfig
from tvl.repositories.record_store import RecordStore
from tvl.services.amounts.amount_service import AmountService

from .base import Indexer, ManagedIndexer
from .indexer_service import IndexerService


class DataIndexer(ManagedIndexer):
    """
    One per asset position; parent is the chain's block timestamp indexer.

    The position's validity window maps to the cursor range: hours after
    since_timestamp up to until_timestamp.
    """

    def __init__(
        self,
        config: AmountConfig,
        amount_service: AmountService,
        store: RecordStore,
        block_timestamp_indexer: Indexer,
        indexer_service: IndexerService,
        **kwargs,
    ) -> None:
        super().__init__(
            config.identity,
            parents=[block_timestamp_indexer],
            indexer_service=indexer_service,
            min_height=config.since_timestamp,
            max_height=config.until_timestamp,
            **kwargs,
        )
        self.config = config
        self.amount_service = amount_service
        self.store = store

    def config_payload(self) -> dict:
        return {"amount": self.config.config_hash()}

    async def process(self, timestamp: int) -> None:
        amount = await self.amount_service.resolve_amount(self.config, timestamp)
        await self.store.put_raw_amount(self.indexer_id, timestamp, amount)
