"""
Value indexer.

Prices the raw amount of one asset position and persists the USD value
attributed to its project.
"""

from decimal import Decimal, localcontext

from tvl.config.constants import VALUE_DECIMAL_PLACES
from tvl.config.projects import AmountConfig
from tvl.repositories.record_store import RecordStore
from tvl.utils.datetime_utils import format_timestamp
from tvl.utils.exceptions import MissingUpstreamRecord

from .base import Indexer, ManagedIndexer
from .indexer_service import IndexerService

VALUE_QUANTUM = Decimal(1).scaleb(-VALUE_DECIMAL_PLACES)


def value_indexer_id(data_identity: str) -> str:
    return f"value_{data_identity}"


def compute_value(amount: int, decimals: int, price_usd: Decimal) -> Decimal:
    """
    USD value of a raw amount.

    Args:
        amount: Base-unit integer
        decimals: Asset decimals
        price_usd: USD price of one whole unit

    Returns:
        amount / 10**decimals * price, quantized to 18 decimal places
    """
    with localcontext() as ctx:
        # uint256 has 78 digits; keep every one of them before quantizing
        ctx.prec = 120
        value = Decimal(amount) / (Decimal(10) ** decimals) * price_usd
        return value.quantize(VALUE_QUANTUM)


class ValueIndexer(ManagedIndexer):
    """One per asset position; parents are its data indexer and the price gate."""

    calls_per_timestamp = 0

    def __init__(
        self,
        config: AmountConfig,
        data_indexer: Indexer,
        descendant_price_indexer: Indexer,
        store: RecordStore,
        indexer_service: IndexerService,
        **kwargs,
    ) -> None:
        super().__init__(
            value_indexer_id(config.identity),
            parents=[data_indexer, descendant_price_indexer],
            indexer_service=indexer_service,
            min_height=config.since_timestamp,
            max_height=config.until_timestamp,
            **kwargs,
        )
        self.config = config
        self.data_source = data_indexer.indexer_id
        self.store = store
        self._amounts: dict[int, int] = {}
        self._prices: dict[int, Decimal] = {}

    def config_payload(self) -> dict:
        return {"amount": self.config.config_hash()}

    async def prepare_batch(self, timestamps: list[int]) -> None:
        """Load the batch's amounts and prices in one query each."""
        if not timestamps:
            return
        self._amounts = await self.store.get_raw_amounts(
            self.data_source, timestamps[0], timestamps[-1]
        )
        self._prices = await self.store.get_price_points(
            self.config.price_id, timestamps[0], timestamps[-1]
        )

    async def process(self, timestamp: int) -> None:
        amount = self._amounts.get(timestamp)
        if amount is None:
            raise MissingUpstreamRecord(
                f"No amount for {self.data_source} at {format_timestamp(timestamp)}"
            )

        price = self._prices.get(timestamp)
        if price is None:
            raise MissingUpstreamRecord(
                f"No {self.config.price_id} price at {format_timestamp(timestamp)}"
            )

        await self.store.put_priced_value(
            project=self.config.project,
            data_source=self.data_source,
            timestamp=timestamp,
            value_usd=compute_value(amount, self.config.decimals, price),
            source=self.config.source,
            include_in_total=self.config.include_in_total,
        )
