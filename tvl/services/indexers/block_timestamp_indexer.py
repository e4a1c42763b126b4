"""
Block timestamp indexer.

Maps every full hour of a chain to the last block at or before it.
"""

from loguru import logger

from tvl.config.constants import HOUR
from tvl.config.projects import ChainConfig
from tvl.repositories.record_store import RecordStore
from tvl.services.chain.rpc_client import RpcClient
from tvl.utils.datetime_utils import format_timestamp
from tvl.utils.exceptions import ConfigurationError

from .base import Indexer, ManagedIndexer
from .indexer_service import IndexerService

# Binary search over a long history takes a few dozen block reads
BLOCK_SEARCH_CALLS_ESTIMATE = 30


def block_timestamp_indexer_id(chain: str) -> str:
    return f"block_timestamp_{chain}"


class BlockTimestampIndexer(ManagedIndexer):
    """One per chain; parent is the clock."""

    calls_per_timestamp = BLOCK_SEARCH_CALLS_ESTIMATE

    def __init__(
        self,
        chain: ChainConfig,
        rpc_client: RpcClient,
        store: RecordStore,
        clock: Indexer,
        indexer_service: IndexerService,
        min_height: int,
        **kwargs,
    ) -> None:
        super().__init__(
            block_timestamp_indexer_id(chain.name),
            parents=[clock],
            indexer_service=indexer_service,
            min_height=min_height,
            rate_limiter=kwargs.pop("rate_limiter", rpc_client.rate_limiter),
            **kwargs,
        )
        self.chain = chain
        self.rpc_client = rpc_client
        self.store = store
        self._last_block: int | None = None

    async def initialize(self) -> None:
        """
        Load the cursor and check min_block precedes the first hour.

        Raises:
            ConfigurationError: If min_block was mined after the first hour
        """
        await super().initialize()

        if self.safe_height != self.min_height:
            return
        first_hour = self.safe_height + HOUR
        if self.max_height is not None and first_hour > self.max_height:
            return

        block = await self.rpc_client.get_block(self.chain.min_block)
        if block.timestamp > first_hour:
            raise ConfigurationError(
                f"{self.chain.name} min_block {self.chain.min_block} was mined at "
                f"{format_timestamp(block.timestamp)}, after the first hour to index "
                f"({format_timestamp(first_hour)})"
            )

    def config_payload(self) -> dict:
        return {"chain": self.chain.name, "min_block": self.chain.min_block}

    async def process(self, timestamp: int) -> None:
        lower = self._last_block
        if lower is None:
            lower = await self.store.get_latest_block_before(self.chain.name, timestamp)
        if lower is None:
            lower = self.chain.min_block

        block = await self.rpc_client.get_block_number_at_or_before(
            timestamp, lower_hint=lower
        )
        await self.store.put_block_timestamp(self.chain.name, timestamp, block)
        self._last_block = block

        logger.debug(f"[Indexer:{self.indexer_id}] {timestamp} -> block {block}")
