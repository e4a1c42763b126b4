"""
Amount service.

Resolves the raw base-unit amount of asset positions at an hour. The block
comes from the persisted block-timestamp mapping, reads go through the
chain's batched call client.
"""

from decimal import Decimal, localcontext

from loguru import logger

from tvl.config.projects import (
    AmountConfig,
    NativeAmountConfig,
    PremintedAmountConfig,
    TokenAmountConfig,
)
from tvl.repositories.record_store import RecordStore
from tvl.services.chain.abi import (
    decode_uint256,
    encode_balance_of,
    encode_get_eth_balance,
)
from tvl.services.chain.multicall import MulticallClient, MulticallRequest
from tvl.services.prices.circulating_supply_service import CirculatingSupplyService
from tvl.utils.datetime_utils import format_timestamp
from tvl.utils.exceptions import ConfigurationError, NotYetAvailable, ProviderProtocolError

from .preminted import get_formula


class AmountService:
    """
    Reads raw amounts for native, token and preminted positions.

    resolve_amounts() packs the reads of several same-chain positions into
    one batched call. Data indexers resolve one position per hour through
    resolve_amount(), which batches that position's own reads.
    """

    def __init__(
        self,
        store: RecordStore,
        multicall_clients: dict[str, MulticallClient],
        circulating_supply: CirculatingSupplyService | None = None,
    ) -> None:
        """
        Initialize amount service.

        Args:
            store: Record store holding block-timestamp mappings
            multicall_clients: Batched call client per chain name
            circulating_supply: Supply source for capped preminted formulas
        """
        self.store = store
        self.multicall_clients = multicall_clients
        self.circulating_supply = circulating_supply

    def _client(self, chain: str) -> MulticallClient:
        try:
            return self.multicall_clients[chain]
        except KeyError as e:
            raise ProviderProtocolError(f"No chain client for {chain}") from e

    async def _get_block(self, chain: str, timestamp: int) -> int:
        block = await self.store.get_block_number(chain, timestamp)
        if block is None:
            raise NotYetAvailable(
                f"No block mapped for {chain} at {format_timestamp(timestamp)}"
            )
        return block

    async def _circulating_supply_raw(
        self, config: PremintedAmountConfig, timestamp: int
    ) -> int:
        """Circulating supply at the hour in token base units."""
        if self.circulating_supply is None or not config.coingecko_id:
            raise ConfigurationError(
                f"Formula {config.formula} of {config.identity} needs a circulating supply source"
            )
        supply = await self.circulating_supply.get_circulating_supply(
            config.coingecko_id, timestamp
        )
        with localcontext() as ctx:
            ctx.prec = 120
            return int(supply * Decimal(10) ** config.decimals)

    async def resolve_amount(self, config: AmountConfig, timestamp: int) -> int:
        """
        Resolve raw amount of one position.

        Args:
            config: Asset position
            timestamp: Hour timestamp

        Returns:
            Non-negative base-unit integer

        Raises:
            NotYetAvailable: If the hour has no block mapping yet
            ProviderUnavailable: If the provider keeps failing
            ProviderProtocolError: If a read fails or cannot be decoded
        """
        amounts = await self.resolve_amounts([config], timestamp)
        return amounts[config.identity]

    async def resolve_amounts(
        self, configs: list[AmountConfig], timestamp: int
    ) -> dict[str, int]:
        """
        Resolve raw amounts of several same-chain positions at one hour.

        Args:
            configs: Asset positions on a single chain
            timestamp: Hour timestamp

        Returns:
            Mapping from position identity to raw amount
        """
        if not configs:
            return {}

        chains = {c.chain for c in configs}
        if len(chains) != 1:
            raise ValueError(f"Positions span several chains: {sorted(chains)}")
        chain = chains.pop()

        block = await self._get_block(chain, timestamp)
        client = self._client(chain)

        amounts: dict[str, int] = {}
        plans: dict[str, dict[str, MulticallRequest]] = {}

        for config in configs:
            if isinstance(config, NativeAmountConfig):
                if client.is_available(block):
                    plans[config.identity] = {
                        "balance": MulticallRequest(
                            client.config.address, encode_get_eth_balance(config.holder)
                        )
                    }
                else:
                    amounts[config.identity] = await client.rpc_client.get_balance(
                        config.holder, block
                    )
            elif isinstance(config, TokenAmountConfig):
                plans[config.identity] = {
                    "balance": MulticallRequest(config.token, encode_balance_of(config.holder))
                }
            elif isinstance(config, PremintedAmountConfig):
                reads = get_formula(config.formula).reads(config.token, config.holder)
                plans[config.identity] = {
                    name: MulticallRequest(address, data)
                    for name, (address, data) in reads.items()
                }
            else:
                raise ProviderProtocolError(f"Unsupported position type: {config!r}")

        requests = [r for plan in plans.values() for r in plan.values()]
        responses = await client.multicall(requests, block)

        for config in configs:
            plan = plans.get(config.identity)
            if plan is None:
                continue

            values: dict[str, int] = {}
            for name, request in plan.items():
                response = responses.get(request)
                if response is None or not response.success:
                    raise ProviderProtocolError(
                        f"Read '{name}' failed for {config.identity} at block {block}"
                    )
                values[name] = decode_uint256(response.data)

            if isinstance(config, PremintedAmountConfig):
                formula = get_formula(config.formula)
                if formula.uses_circulating_supply:
                    values["circulating_supply"] = await self._circulating_supply_raw(
                        config, timestamp
                    )
                amounts[config.identity] = formula.combine(values)
            else:
                amounts[config.identity] = values["balance"]

        logger.debug(
            f"[AmountService:{chain}] Resolved {len(amounts)} amounts "
            f"at block {block} ({format_timestamp(timestamp)})"
        )
        return amounts
