"""
TVL module.

Builds the indexer graph for a project configuration:

    clock
    ├── block_timestamp_{chain} ── {position} ───────────┐
    └── price_{id} ── price_descendant ── value_{position}
"""

from dataclasses import dataclass, field

from loguru import logger

from tvl.config.projects import TvlConfig
from tvl.config.settings import Settings
from tvl.repositories.record_store import RecordStore
from tvl.services.amounts.amount_service import AmountService
from tvl.services.chain.client_registry import ChainClientRegistry
from tvl.services.chain.rate_limiter import RateLimiter
from tvl.services.indexers.block_timestamp_indexer import BlockTimestampIndexer
from tvl.services.indexers.clock_indexer import ClockIndexer
from tvl.services.indexers.data_indexer import DataIndexer
from tvl.services.indexers.descendant_indexer import DescendantPriceIndexer
from tvl.services.indexers.indexer_service import IndexerService
from tvl.services.indexers.orchestrator import IndexerOrchestrator
from tvl.services.indexers.price_indexer import PriceIndexer
from tvl.services.indexers.sync_optimizer import SyncOptimizer
from tvl.services.indexers.value_indexer import ValueIndexer
from tvl.services.prices.circulating_supply_service import CirculatingSupplyService
from tvl.services.prices.coingecko_client import CoinGeckoClient
from tvl.utils.exceptions import ConfigurationError


@dataclass
class TvlGraph:
    """Built graph with the clients it owns."""

    orchestrator: IndexerOrchestrator
    registry: ChainClientRegistry
    price_client: CoinGeckoClient
    data_indexers: dict[str, DataIndexer] = field(default_factory=dict)
    value_indexers: dict[str, ValueIndexer] = field(default_factory=dict)

    async def close(self) -> None:
        """Close every HTTP session."""
        await self.registry.close()
        await self.price_client.close()


def build_tvl_graph(
    config: TvlConfig,
    settings: Settings,
    store: RecordStore,
    registry: ChainClientRegistry | None = None,
    price_client: CoinGeckoClient | None = None,
) -> TvlGraph:
    """
    Create every indexer and register it with a new orchestrator.

    Args:
        config: Validated project configuration
        settings: Application settings
        store: Record store
        registry: Shared chain clients (created from settings if omitted)
        price_client: Price provider client (created from settings if omitted)

    Returns:
        Graph ready to start

    Raises:
        ConfigurationError: On invalid cross references or duplicate identities
    """
    config.validate_references()

    registry = registry or ChainClientRegistry(settings)
    price_client = price_client or CoinGeckoClient(
        rate_limiter=RateLimiter(settings.coingecko_calls_per_minute, name="coingecko"),
        base_url=settings.coingecko_api_url,
        api_key=settings.coingecko_api_key,
        timeout=settings.rpc_timeout,
        max_attempts=settings.rpc_max_attempts,
        retry_delay_base=settings.rpc_retry_delay_base,
        retry_delay_max=settings.rpc_retry_delay_max,
    )

    indexer_service = IndexerService(store)
    optimizer = SyncOptimizer.from_settings(settings)
    loop_options = {
        "optimizer": optimizer,
        "tick_interval": settings.indexer_tick_interval,
        "error_backoff": settings.indexer_error_backoff,
    }

    orchestrator = IndexerOrchestrator()
    graph = TvlGraph(orchestrator=orchestrator, registry=registry, price_client=price_client)

    clock = ClockIndexer(
        safety_margin_seconds=settings.safety_margin_seconds,
        tick_interval=settings.indexer_tick_interval,
    )
    orchestrator.register(clock)

    # Chains
    block_indexers: dict[str, BlockTimestampIndexer] = {}
    multicall_clients = {}
    for chain in config.chains:
        amounts = config.amounts_for_chain(chain.name)
        if not amounts:
            logger.info(f"[TvlModule] Chain {chain.name} has no amounts, skipping")
            continue

        rpc_client = registry.get_rpc_client(chain)
        multicall_clients[chain.name] = registry.get_multicall_client(chain)
        block_indexers[chain.name] = BlockTimestampIndexer(
            chain=chain,
            rpc_client=rpc_client,
            store=store,
            clock=clock,
            indexer_service=indexer_service,
            min_height=min(a.since_timestamp for a in amounts),
            **loop_options,
        )
        orchestrator.register(block_indexers[chain.name])

    # Prices
    price_indexers = [
        PriceIndexer(
            config=price,
            client=price_client,
            store=store,
            clock=clock,
            indexer_service=indexer_service,
            **loop_options,
        )
        for price in config.prices
    ]
    orchestrator.register_all(price_indexers)

    if not config.amounts:
        return graph
    if not price_indexers:
        raise ConfigurationError("Amounts are configured but no prices")

    descendant = DescendantPriceIndexer(
        price_indexers=price_indexers,
        store=store,
        indexer_service=indexer_service,
        **loop_options,
    )
    orchestrator.register(descendant)

    # Positions
    amount_service = AmountService(
        store,
        multicall_clients,
        circulating_supply=CirculatingSupplyService(price_client),
    )
    for amount in config.amounts:
        data_indexer = DataIndexer(
            config=amount,
            amount_service=amount_service,
            store=store,
            block_timestamp_indexer=block_indexers[amount.chain],
            indexer_service=indexer_service,
            rate_limiter=registry.get_rpc_client(config.get_chain(amount.chain)).rate_limiter,
            **loop_options,
        )
        value_indexer = ValueIndexer(
            config=amount,
            data_indexer=data_indexer,
            descendant_price_indexer=descendant,
            store=store,
            indexer_service=indexer_service,
            max_batch_width=settings.max_timestamps_to_process_at_once,
            **loop_options,
        )
        orchestrator.register(data_indexer)
        orchestrator.register(value_indexer)
        graph.data_indexers[data_indexer.indexer_id] = data_indexer
        graph.value_indexers[value_indexer.indexer_id] = value_indexer

    logger.info(
        f"[TvlModule] Built graph: {len(block_indexers)} chains, "
        f"{len(price_indexers)} prices, {len(config.amounts)} positions"
    )
    return graph
