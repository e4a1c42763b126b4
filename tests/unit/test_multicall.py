"""
Tests for the batched call client.

Tests cover:
- tryAggregate batching with per-request success flags
- Chunking by batch size and duplicate collapsing
- Individual calls before the multicall deploy block
- Decoding failures
"""

import pytest
from eth_abi import encode

from tvl.config.constants import MULTICALL3_ADDRESS
from tvl.config.projects import MulticallConfig
from tvl.services.chain.abi import encode_balance_of
from tvl.services.chain.multicall import MulticallClient, MulticallRequest
from tvl.utils.exceptions import ProviderProtocolError, ProviderUnavailable, RpcCallError

TOKEN_A = "0x" + "aa" * 20
TOKEN_B = "0x" + "bb" * 20
HOLDER = "0x" + "cc" * 20


def uint(value: int) -> bytes:
    return encode(["uint256"], [value])


def aggregate_result(results: list[tuple[bool, bytes]]) -> bytes:
    return encode(["(bool,bytes)[]"], [results])


class TestMulticallBatching:
    """Test Multicall3 path."""

    @pytest.mark.asyncio
    async def test_batch_preserves_success_flags(self, mock_rpc_client):
        client = MulticallClient(mock_rpc_client, MulticallConfig(since_block=100))
        mock_rpc_client.eth_call.return_value = aggregate_result([(True, uint(7)), (False, b"")])

        a = MulticallRequest(TOKEN_A, encode_balance_of(HOLDER))
        b = MulticallRequest(TOKEN_B, encode_balance_of(HOLDER))
        responses = await client.multicall([a, b], block=150)

        assert responses[a].success is True
        assert responses[a].data == uint(7)
        assert responses[b].success is False

        to, _, block = mock_rpc_client.eth_call.call_args.args
        assert to == MULTICALL3_ADDRESS
        assert block == 150

    @pytest.mark.asyncio
    async def test_chunks_by_batch_size_and_collapses_duplicates(self, mock_rpc_client):
        client = MulticallClient(mock_rpc_client, MulticallConfig(batch_size=1))
        mock_rpc_client.eth_call.return_value = aggregate_result([(True, uint(1))])

        a = MulticallRequest(TOKEN_A, encode_balance_of(HOLDER))
        b = MulticallRequest(TOKEN_B, encode_balance_of(HOLDER))
        responses = await client.multicall([a, b, a], block=10)

        assert len(responses) == 2
        assert mock_rpc_client.eth_call.await_count == 2

    @pytest.mark.asyncio
    async def test_result_count_mismatch(self, mock_rpc_client):
        client = MulticallClient(mock_rpc_client, MulticallConfig())
        mock_rpc_client.eth_call.return_value = aggregate_result([(True, uint(1))])

        requests = [
            MulticallRequest(TOKEN_A, encode_balance_of(HOLDER)),
            MulticallRequest(TOKEN_B, encode_balance_of(HOLDER)),
        ]
        with pytest.raises(ProviderProtocolError):
            await client.multicall(requests, block=10)

    @pytest.mark.asyncio
    async def test_undecodable_result(self, mock_rpc_client):
        client = MulticallClient(mock_rpc_client, MulticallConfig())
        mock_rpc_client.eth_call.return_value = b"\x01\x02"

        with pytest.raises(ProviderProtocolError):
            await client.multicall([MulticallRequest(TOKEN_A, b"")], block=10)

    @pytest.mark.asyncio
    async def test_empty_requests(self, mock_rpc_client):
        client = MulticallClient(mock_rpc_client, MulticallConfig())

        assert await client.multicall([], block=10) == {}
        mock_rpc_client.eth_call.assert_not_awaited()


class TestIndividualCalls:
    """Test fallback before deployment."""

    @pytest.mark.asyncio
    async def test_before_deploy_block_calls_individually(self, mock_rpc_client):
        client = MulticallClient(mock_rpc_client, MulticallConfig(since_block=100))

        async def eth_call(to, data, block):
            if to == TOKEN_B:
                raise RpcCallError(3, "execution reverted")
            return uint(5)

        mock_rpc_client.eth_call.side_effect = eth_call

        a = MulticallRequest(TOKEN_A, encode_balance_of(HOLDER))
        b = MulticallRequest(TOKEN_B, encode_balance_of(HOLDER))
        responses = await client.multicall([a, b], block=99)

        assert responses[a].success is True
        assert responses[b].success is False
        assert mock_rpc_client.eth_call.await_count == 2

    @pytest.mark.asyncio
    async def test_provider_unavailable_propagates(self, mock_rpc_client):
        client = MulticallClient(mock_rpc_client, None)
        mock_rpc_client.eth_call.side_effect = ProviderUnavailable("down")

        with pytest.raises(ProviderUnavailable):
            await client.multicall([MulticallRequest(TOKEN_A, b"")], block=1)

