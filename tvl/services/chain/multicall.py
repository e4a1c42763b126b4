"""
Batched call client.

Groups independent contract reads for one chain and one block into the
fewest Multicall3 calls, preserving per-request success or failure.
"""

from dataclasses import dataclass

from loguru import logger

from tvl.config.projects import MulticallConfig
from tvl.utils.exceptions import ProviderProtocolError, RpcCallError

from .abi import decode_try_aggregate, encode_try_aggregate
from .rpc_client import RpcClient


@dataclass(frozen=True)
class MulticallRequest:
    """A read-only call: target contract and calldata."""

    address: str
    data: bytes


@dataclass(frozen=True)
class MulticallResponse:
    """Result of one request inside a batch."""

    success: bool
    data: bytes


class MulticallClient:
    """
    Batched call client for one chain.

    Before the multicall deploy block, or when no multicall is configured,
    requests are sent one by one and individual reverts become failed
    responses. ProviderUnavailable always propagates because it means the
    batching mechanism itself could not be reached.
    """

    def __init__(self, rpc_client: RpcClient, config: MulticallConfig | None) -> None:
        """
        Initialize multicall client.

        Args:
            rpc_client: Shared rate-limited client for the chain
            config: Multicall3 deployment, or None when unavailable
        """
        self.rpc_client = rpc_client
        self.config = config

    def is_available(self, block: int) -> bool:
        """Whether Multicall3 can be used at block."""
        return self.config is not None and block >= self.config.since_block

    async def multicall(
        self,
        requests: list[MulticallRequest],
        block: int,
    ) -> dict[MulticallRequest, MulticallResponse]:
        """
        Execute reads at block using as few calls as possible.

        Args:
            requests: Independent read requests (duplicates are collapsed)
            block: Block number to read at

        Returns:
            Mapping from each request to its response

        Raises:
            ProviderUnavailable: If the provider cannot be reached
            ProviderProtocolError: If a batch result cannot be decoded
        """
        unique = list(dict.fromkeys(requests))
        if not unique:
            return {}

        if not self.is_available(block):
            return await self._execute_individually(unique, block)

        results: dict[MulticallRequest, MulticallResponse] = {}
        batch_size = self.config.batch_size
        for start in range(0, len(unique), batch_size):
            batch = unique[start:start + batch_size]
            results.update(await self._execute_batch(batch, block))
        return results

    async def _execute_batch(
        self,
        batch: list[MulticallRequest],
        block: int,
    ) -> dict[MulticallRequest, MulticallResponse]:
        data = encode_try_aggregate([(r.address, r.data) for r in batch])
        raw = await self.rpc_client.eth_call(self.config.address, data, block)
        decoded = decode_try_aggregate(raw)

        if len(decoded) != len(batch):
            raise ProviderProtocolError(
                f"Multicall returned {len(decoded)} results for {len(batch)} calls"
            )

        return {
            request: MulticallResponse(success=success, data=ret)
            for request, (success, ret) in zip(batch, decoded)
        }

    async def _execute_individually(
        self,
        requests: list[MulticallRequest],
        block: int,
    ) -> dict[MulticallRequest, MulticallResponse]:
        results: dict[MulticallRequest, MulticallResponse] = {}
        for request in requests:
            try:
                data = await self.rpc_client.eth_call(request.address, request.data, block)
                results[request] = MulticallResponse(success=True, data=data)
            except RpcCallError as e:
                logger.debug(
                    f"[Multicall:{self.rpc_client.chain}] Call to {request.address} "
                    f"failed at block {block}: {e}"
                )
                results[request] = MulticallResponse(success=False, data=b"")
        return results
