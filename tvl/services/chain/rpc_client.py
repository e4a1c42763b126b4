"""
Rate-limited chain client.

Reads one chain endpoint through web3's AsyncHTTPProvider. Every request
takes a slot from the provider's shared RateLimiter and runs under the
retry wrapper; web3 errors are mapped onto the pipeline's exceptions.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import aiohttp
from eth_utils import to_checksum_address
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import (
    BlockNotFound,
    ContractLogicError,
    Web3Exception,
    Web3RPCError,
)

from tvl.config.constants import (
    BLOCK_SEARCH_MAX_PROBES,
    BLOCKCHAIN_MAX_RETRIES,
    BLOCKCHAIN_RETRY_DELAY_BASE,
    BLOCKCHAIN_RETRY_DELAY_MAX,
    BLOCKCHAIN_RPC_TIMEOUT,
    BLOCKCHAIN_TIMEOUT,
    RPC_EXECUTION_REVERTED_CODE,
    TRANSIENT_HTTP_STATUSES,
    TRANSIENT_RPC_ERROR_CODES,
)
from tvl.utils.exceptions import (
    ConfigurationError,
    NotYetAvailable,
    ProviderProtocolError,
    RpcCallError,
)

from .rate_limiter import RateLimiter
from .rpc_wrapper import TransientProviderError, call_with_retry

T = TypeVar("T")


@dataclass(frozen=True)
class BlockHeader:
    """Block number with its timestamp."""

    number: int
    timestamp: int


def _rpc_error(error: Web3RPCError) -> tuple[int | None, str]:
    """Code and message of the JSON-RPC error object behind a web3 error."""
    response = getattr(error, "rpc_response", None) or {}
    body = response.get("error") if isinstance(response, dict) else None
    if isinstance(body, dict):
        return body.get("code"), body.get("message", str(error))
    return None, str(error)


class RpcClient:
    """
    Chain client for one endpoint.

    Features:
    - Calls-per-minute budget shared with other clients of the same URL
    - Exponential backoff on transient failures, ProviderUnavailable after
      the attempt bound
    - Immediate ProviderProtocolError on malformed responses
    - Binary search for the block at or before a timestamp

    Usage:
        async with RpcClient(url, limiter, chain="ethereum") as client:
            block = await client.get_block_number()
    """

    def __init__(
        self,
        url: str,
        rate_limiter: RateLimiter,
        chain: str = "unknown",
        timeout: float = BLOCKCHAIN_TIMEOUT,
        max_attempts: int = BLOCKCHAIN_MAX_RETRIES,
        retry_delay_base: float = BLOCKCHAIN_RETRY_DELAY_BASE,
        retry_delay_max: float = BLOCKCHAIN_RETRY_DELAY_MAX,
    ) -> None:
        """
        Initialize chain client.

        Args:
            url: Provider HTTP endpoint
            rate_limiter: Limiter shared by all clients of this provider
            chain: Chain name for logging
            timeout: Per-attempt timeout in seconds
            max_attempts: Attempts before ProviderUnavailable
            retry_delay_base: Backoff base delay in seconds
            retry_delay_max: Backoff ceiling in seconds
        """
        self.url = url
        self.rate_limiter = rate_limiter
        self.chain = chain
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay_base = retry_delay_base
        self.retry_delay_max = retry_delay_max
        self._web3: AsyncWeb3 | None = None
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _get_web3(self) -> AsyncWeb3:
        if self._web3 is None:
            # Retries are ours; web3's own retry would bypass the rate limiter
            provider = AsyncHTTPProvider(self.url, exception_retry_configuration=None)
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=BLOCKCHAIN_RPC_TIMEOUT)
            )
            await provider.cache_async_session(self._session)
            self._web3 = AsyncWeb3(provider)
        return self._web3

    async def close(self) -> None:
        """Close the HTTP session this client created."""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _attempt(self, request: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        """
        Run one request and classify its failure.

        Raises:
            TransientProviderError: On HTTP statuses or RPC codes worth retrying
            RpcCallError: On other JSON-RPC errors (e.g. execution reverted)
            ProviderProtocolError: On malformed or missing data
        """
        web3 = await self._get_web3()
        try:
            return await request(web3)
        except ContractLogicError as e:
            raise RpcCallError(RPC_EXECUTION_REVERTED_CODE, str(e)) from e
        except Web3RPCError as e:
            code, message = _rpc_error(e)
            if code in TRANSIENT_RPC_ERROR_CODES:
                raise TransientProviderError(f"RPC error {code}: {message}") from e
            raise RpcCallError(code, message) from e
        except aiohttp.ClientResponseError as e:
            if e.status in TRANSIENT_HTTP_STATUSES:
                raise TransientProviderError(f"HTTP {e.status} from provider") from e
            raise ProviderProtocolError(f"HTTP {e.status} from provider") from e
        except BlockNotFound as e:
            raise ProviderProtocolError(f"Block not returned by provider: {e}") from e
        except (Web3Exception, ValueError, KeyError, TypeError) as e:
            raise ProviderProtocolError(f"Malformed provider response: {e}") from e

    async def request(
        self, operation: str, request: Callable[[AsyncWeb3], Awaitable[T]]
    ) -> T:
        """
        Execute a web3 request within the rate limit, with retries.

        Args:
            operation: Name for logging, e.g. "eth_call"
            request: Receives the AsyncWeb3 instance and performs one call

        Returns:
            Result of the request

        Raises:
            ProviderUnavailable: If transient failures exhaust the attempts
            ProviderProtocolError: On malformed responses (never retried)
        """
        return await call_with_retry(
            lambda: self._attempt(request),
            max_attempts=self.max_attempts,
            timeout=self.timeout,
            operation_name=f"[RpcClient:{self.chain}] {operation}",
            base_delay=self.retry_delay_base,
            max_delay=self.retry_delay_max,
            rate_limiter=self.rate_limiter,
        )

    async def get_block_number(self) -> int:
        """Get latest block number."""
        async def block_number(web3: AsyncWeb3) -> int:
            return await web3.eth.block_number

        return await self.request("eth_blockNumber", block_number)

    async def get_block(self, number: int | str = "latest") -> BlockHeader:
        """
        Get block header.

        Args:
            number: Block number or tag

        Returns:
            Block number and timestamp
        """
        async def header(web3: AsyncWeb3) -> BlockHeader:
            block = await web3.eth.get_block(number, full_transactions=False)
            return BlockHeader(number=int(block["number"]), timestamp=int(block["timestamp"]))

        return await self.request("eth_getBlockByNumber", header)

    async def get_balance(self, address: str, block: int) -> int:
        """Get native balance of address at block."""
        balance = await self.request(
            "eth_getBalance",
            lambda web3: web3.eth.get_balance(
                to_checksum_address(address), block_identifier=block
            ),
        )
        return int(balance)

    async def eth_call(self, to: str, data: bytes, block: int) -> bytes:
        """Execute a read-only contract call at block."""
        transaction: dict[str, Any] = {"to": to_checksum_address(to), "data": data}
        result = await self.request(
            "eth_call",
            lambda web3: web3.eth.call(transaction, block_identifier=block),
        )
        return bytes(result)

    async def get_block_number_at_or_before(
        self,
        timestamp: int,
        lower_hint: int = 0,
        max_probes: int = BLOCK_SEARCH_MAX_PROBES,
    ) -> int:
        """
        Find the highest block whose timestamp is not after ``timestamp``.

        Args:
            timestamp: Target unix timestamp
            lower_hint: Block known to be at or before the target
            max_probes: Maximum number of block reads

        Returns:
            Block number

        Raises:
            NotYetAvailable: If the chain head is older than the target
            ConfigurationError: If the target precedes the lowest block
            ProviderProtocolError: If the probe bound is exceeded
        """
        probes = 0

        async def probe(number: int | str) -> BlockHeader:
            nonlocal probes
            probes += 1
            if probes > max_probes:
                raise ProviderProtocolError(
                    f"Block search for {timestamp} on {self.chain} "
                    f"exceeded {max_probes} probes"
                )
            return await self.get_block(number)

        head = await probe("latest")
        if head.timestamp < timestamp:
            raise NotYetAvailable(
                f"{self.chain} head {head.number} is older than {timestamp}"
            )
        if head.timestamp == timestamp:
            return head.number

        low_block = await probe(min(lower_hint, head.number))
        if low_block.timestamp > timestamp:
            raise ConfigurationError(
                f"Timestamp {timestamp} precedes block {low_block.number} on {self.chain}"
            )

        low, high = low_block.number, head.number
        while low + 1 < high:
            mid = (low + high) // 2
            mid_block = await probe(mid)
            if mid_block.timestamp <= timestamp:
                low = mid
            else:
                high = mid

        logger.debug(
            f"[RpcClient:{self.chain}] Block {low} at or before {timestamp} "
            f"found in {probes} probes"
        )
        return low
