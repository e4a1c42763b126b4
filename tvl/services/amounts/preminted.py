"""
Preminted supply formulas.

A preminted token is minted up front and parked in an escrow; only what has
left the escrow counts as locked value. The exact formula differs between
projects, so formulas are registered by name and selected in configuration.
Tokens whose unlocked supply still sits outside the escrow (team or treasury
wallets) can be capped by the circulating supply CoinGecko reports.
"""

from collections.abc import Callable
from dataclasses import dataclass

from tvl.services.chain.abi import encode_balance_of, encode_total_supply

# name -> (contract address, calldata)
Reads = dict[str, tuple[str, bytes]]


@dataclass(frozen=True)
class PremintedFormula:
    """Reads to perform and how to combine their uint256 results."""

    name: str
    description: str
    reads: Callable[[str, str], Reads]
    combine: Callable[[dict[str, int]], int]
    # combine() also receives "circulating_supply" in base units
    uses_circulating_supply: bool = False


def _supply_minus_escrow_reads(token: str, holder: str) -> Reads:
    return {
        "total_supply": (token, encode_total_supply()),
        "escrow_balance": (token, encode_balance_of(holder)),
    }


def _supply_minus_escrow(values: dict[str, int]) -> int:
    # Escrow can exceed supply on rebasing tokens mid-update
    return max(0, values["total_supply"] - values["escrow_balance"])


def _supply_minus_escrow_capped(values: dict[str, int]) -> int:
    return min(_supply_minus_escrow(values), values["circulating_supply"])


def _total_supply_reads(token: str, holder: str) -> Reads:
    return {"total_supply": (token, encode_total_supply())}


PREMINTED_FORMULAS: dict[str, PremintedFormula] = {
    "total_supply_minus_escrow": PremintedFormula(
        name="total_supply_minus_escrow",
        description="totalSupply() - balanceOf(escrow)",
        reads=_supply_minus_escrow_reads,
        combine=_supply_minus_escrow,
    ),
    "total_supply_minus_escrow_capped": PremintedFormula(
        name="total_supply_minus_escrow_capped",
        description="min(totalSupply() - balanceOf(escrow), circulating supply)",
        reads=_supply_minus_escrow_reads,
        combine=_supply_minus_escrow_capped,
        uses_circulating_supply=True,
    ),
    "total_supply": PremintedFormula(
        name="total_supply",
        description="totalSupply()",
        reads=_total_supply_reads,
        combine=lambda values: values["total_supply"],
    ),
}


def get_formula(name: str) -> PremintedFormula:
    """
    Look up a registered formula.

    Raises:
        KeyError: If no formula with that name is registered
    """
    return PREMINTED_FORMULAS[name]
