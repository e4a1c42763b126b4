"""
Shared chain clients.

One RateLimiter per provider URL and one RpcClient / MulticallClient per
chain, so every indexer on a chain draws from the same budget.
"""

from loguru import logger

from tvl.config.projects import ChainConfig
from tvl.config.settings import Settings
from tvl.utils.security import mask_url

from .multicall import MulticallClient
from .rate_limiter import RateLimiter
from .rpc_client import RpcClient


class ChainClientRegistry:
    """Creates chain clients on first use and hands out the shared instance."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._limiters: dict[str, RateLimiter] = {}
        self._rpc_clients: dict[str, RpcClient] = {}
        self._multicall_clients: dict[str, MulticallClient] = {}

    def get_rate_limiter(self, url: str, calls_per_minute: int) -> RateLimiter:
        """Limiter for a provider URL; the first registered budget wins."""
        limiter = self._limiters.get(url)
        if limiter is None:
            limiter = RateLimiter(calls_per_minute, name=mask_url(url))
            self._limiters[url] = limiter
        elif limiter.calls_per_minute != calls_per_minute:
            logger.warning(
                f"Provider {mask_url(url)} configured with different budgets, "
                f"keeping {limiter.calls_per_minute}/min"
            )
        return limiter

    def get_rpc_client(self, chain: ChainConfig) -> RpcClient:
        """Shared RPC client for a chain."""
        client = self._rpc_clients.get(chain.name)
        if client is None:
            client = RpcClient(
                url=chain.provider_url,
                rate_limiter=self.get_rate_limiter(
                    chain.provider_url, chain.provider_calls_per_minute
                ),
                chain=chain.name,
                timeout=self.settings.rpc_timeout,
                max_attempts=self.settings.rpc_max_attempts,
                retry_delay_base=self.settings.rpc_retry_delay_base,
                retry_delay_max=self.settings.rpc_retry_delay_max,
            )
            self._rpc_clients[chain.name] = client
            logger.info(
                f"RPC client for {chain.name} created "
                f"({mask_url(chain.provider_url)}, {chain.provider_calls_per_minute}/min)"
            )
        return client

    def get_multicall_client(self, chain: ChainConfig) -> MulticallClient:
        """Shared batched call client for a chain."""
        client = self._multicall_clients.get(chain.name)
        if client is None:
            client = MulticallClient(self.get_rpc_client(chain), chain.multicall)
            self._multicall_clients[chain.name] = client
        return client

    async def close(self) -> None:
        """Close every HTTP session."""
        for client in self._rpc_clients.values():
            await client.close()
