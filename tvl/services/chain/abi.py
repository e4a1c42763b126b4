"""
Contract call encoding.

Function selectors and eth_abi helpers for the reads the amount service
needs: ERC20 balances and supply, and Multicall3 batching.
"""

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from tvl.utils.exceptions import ProviderProtocolError

BALANCE_OF_SELECTOR = function_signature_to_4byte_selector("balanceOf(address)")
TOTAL_SUPPLY_SELECTOR = function_signature_to_4byte_selector("totalSupply()")
GET_ETH_BALANCE_SELECTOR = function_signature_to_4byte_selector("getEthBalance(address)")
TRY_AGGREGATE_SELECTOR = function_signature_to_4byte_selector(
    "tryAggregate(bool,(address,bytes)[])"
)


def encode_balance_of(holder: str) -> bytes:
    """Calldata for ERC20 balanceOf(holder)."""
    return BALANCE_OF_SELECTOR + encode(["address"], [to_checksum_address(holder)])


def encode_total_supply() -> bytes:
    """Calldata for ERC20 totalSupply()."""
    return TOTAL_SUPPLY_SELECTOR


def encode_get_eth_balance(holder: str) -> bytes:
    """Calldata for Multicall3 getEthBalance(holder)."""
    return GET_ETH_BALANCE_SELECTOR + encode(["address"], [to_checksum_address(holder)])


def decode_uint256(data: bytes) -> int:
    """
    Decode a single uint256 return value.

    Raises:
        ProviderProtocolError: If data is not a valid uint256
    """
    if len(data) < 32:
        raise ProviderProtocolError(f"Expected uint256, got {len(data)} bytes")
    try:
        (value,) = decode(["uint256"], data[:32])
    except DecodingError as e:
        raise ProviderProtocolError(f"Cannot decode uint256: {e}") from e
    return value


def encode_try_aggregate(calls: list[tuple[str, bytes]]) -> bytes:
    """Calldata for Multicall3 tryAggregate(false, calls)."""
    payload = [(to_checksum_address(target), data) for target, data in calls]
    return TRY_AGGREGATE_SELECTOR + encode(["bool", "(address,bytes)[]"], [False, payload])


def decode_try_aggregate(data: bytes) -> list[tuple[bool, bytes]]:
    """
    Decode Multicall3 tryAggregate result.

    Raises:
        ProviderProtocolError: If data cannot be decoded
    """
    try:
        (results,) = decode(["(bool,bytes)[]"], data)
    except DecodingError as e:
        raise ProviderProtocolError(f"Cannot decode multicall result: {e}") from e
    return [(bool(success), bytes(ret)) for success, ret in results]
