"""
Project configuration.

Pydantic models describing chains, price references and asset positions,
loaded once at process start from a JSON file and treated as read-only.
"""

import hashlib
import json
from pathlib import Path
from typing import Annotated, Literal, Union

from eth_utils import is_address, to_checksum_address
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tvl.config.constants import (
    DEFAULT_CALLS_PER_MINUTE,
    HOUR,
    MULTICALL3_ADDRESS,
    MULTICALL_DEFAULT_BATCH_SIZE,
)
from tvl.services.amounts.preminted import PREMINTED_FORMULAS
from tvl.utils.exceptions import ConfigurationError


def _checksum(value: str) -> str:
    if not is_address(value):
        raise ValueError(f"Invalid address: {value}")
    return to_checksum_address(value)


def _hour_aligned(value: int | None) -> int | None:
    if value is not None and value % HOUR != 0:
        raise ValueError(f"Timestamp {value} is not aligned to a full hour")
    return value


class MulticallConfig(BaseModel):
    """Multicall3 deployment on a chain."""

    model_config = ConfigDict(frozen=True)

    address: str = MULTICALL3_ADDRESS
    since_block: int = Field(default=0, ge=0)
    batch_size: int = Field(default=MULTICALL_DEFAULT_BATCH_SIZE, ge=1)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return _checksum(v)


class ChainConfig(BaseModel):
    """A chain with its provider endpoint and budget."""

    model_config = ConfigDict(frozen=True)

    name: str
    provider_url: str
    provider_calls_per_minute: int = Field(default=DEFAULT_CALLS_PER_MINUTE, ge=1)
    min_block: int = Field(default=0, ge=0, description="Lowest block for timestamp search")
    multicall: MulticallConfig | None = None


class PriceConfig(BaseModel):
    """A USD price reference fetched from CoinGecko."""

    model_config = ConfigDict(frozen=True)

    id: str
    coingecko_id: str
    since_timestamp: int

    @field_validator("since_timestamp")
    @classmethod
    def validate_since(cls, v: int) -> int:
        return _hour_aligned(v)


class _AmountConfigBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    project: str
    chain: str
    since_timestamp: int
    until_timestamp: int | None = None
    price_id: str
    decimals: int = Field(ge=0, le=77)
    source: Literal["canonical", "external", "native"] = "canonical"
    include_in_total: bool = True

    @field_validator("since_timestamp", "until_timestamp")
    @classmethod
    def validate_window(cls, v: int | None) -> int | None:
        return _hour_aligned(v)

    @property
    def asset(self) -> str:
        """Asset part of the identity (token address or 'native')."""
        return getattr(self, "token", "native")

    @property
    def identity(self) -> str:
        """Stable indexer identity: chain + position kind + address."""
        return f"{self.chain}_{self.type}_{self.asset}_{self.holder}".lower()

    def config_hash(self) -> str:
        """Hash of every field that shapes the records of this position."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode()).hexdigest()[:16]


class NativeAmountConfig(_AmountConfigBase):
    """Native asset balance of a holder."""

    type: Literal["native"] = "native"
    holder: str
    source: Literal["canonical", "external", "native"] = "native"

    @field_validator("holder")
    @classmethod
    def validate_holder(cls, v: str) -> str:
        return _checksum(v)


class TokenAmountConfig(_AmountConfigBase):
    """Token balance of a holder (canonically bridged tokens in an escrow)."""

    type: Literal["token"] = "token"
    token: str
    holder: str

    @field_validator("token", "holder")
    @classmethod
    def validate_addresses(cls, v: str) -> str:
        return _checksum(v)


class PremintedAmountConfig(_AmountConfigBase):
    """Preminted supply computed by a pluggable formula."""

    type: Literal["preminted"] = "preminted"
    token: str
    holder: str
    formula: str = "total_supply_minus_escrow"
    coingecko_id: str | None = Field(
        default=None, description="CoinGecko coin id for formulas capped by circulating supply"
    )

    @field_validator("token", "holder")
    @classmethod
    def validate_addresses(cls, v: str) -> str:
        return _checksum(v)


AmountConfig = Annotated[
    Union[NativeAmountConfig, TokenAmountConfig, PremintedAmountConfig],
    Field(discriminator="type"),
]


class TvlConfig(BaseModel):
    """Full static configuration of the indexer graph."""

    model_config = ConfigDict(frozen=True)

    chains: list[ChainConfig]
    prices: list[PriceConfig]
    amounts: list[AmountConfig]

    def get_chain(self, name: str) -> ChainConfig:
        for chain in self.chains:
            if chain.name == name:
                return chain
        raise ConfigurationError(f"Unknown chain: {name}")

    def get_price(self, price_id: str) -> PriceConfig:
        for price in self.prices:
            if price.id == price_id:
                return price
        raise ConfigurationError(f"Unknown price id: {price_id}")

    def amounts_for_chain(self, name: str) -> list[AmountConfig]:
        return [a for a in self.amounts if a.chain == name]

    def validate_references(self) -> None:
        """
        Check cross references between sections.

        Raises:
            ConfigurationError: On unknown chain, price or formula, on
                duplicate names, on an empty validity window, or on a
                position starting before its price
        """
        chain_names = [c.name for c in self.chains]
        if len(chain_names) != len(set(chain_names)):
            raise ConfigurationError("Duplicate chain names in configuration")

        price_ids = [p.id for p in self.prices]
        if len(price_ids) != len(set(price_ids)):
            raise ConfigurationError("Duplicate price ids in configuration")

        for amount in self.amounts:
            if amount.chain not in chain_names:
                raise ConfigurationError(
                    f"Amount {amount.identity} references unknown chain {amount.chain}"
                )
            if amount.price_id not in price_ids:
                raise ConfigurationError(
                    f"Amount {amount.identity} references unknown price {amount.price_id}"
                )
            price = self.get_price(amount.price_id)
            if amount.since_timestamp < price.since_timestamp:
                raise ConfigurationError(
                    f"Amount {amount.identity} starts before price {price.id} "
                    f"({amount.since_timestamp} < {price.since_timestamp})"
                )
            if (
                amount.until_timestamp is not None
                and amount.until_timestamp < amount.since_timestamp
            ):
                raise ConfigurationError(
                    f"Amount {amount.identity} ends before it starts"
                )
            if (
                isinstance(amount, PremintedAmountConfig)
                and amount.formula not in PREMINTED_FORMULAS
            ):
                raise ConfigurationError(
                    f"Amount {amount.identity} uses unknown formula {amount.formula}"
                )
            if (
                isinstance(amount, PremintedAmountConfig)
                and PREMINTED_FORMULAS[amount.formula].uses_circulating_supply
                and not amount.coingecko_id
            ):
                raise ConfigurationError(
                    f"Amount {amount.identity} formula {amount.formula} needs a coingecko_id"
                )


def load_tvl_config(path: str | Path) -> TvlConfig:
    """
    Load and validate the project configuration file.

    Args:
        path: Path to JSON configuration

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e

    try:
        config = TvlConfig.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration {path}: {e}") from e

    config.validate_references()

    logger.info(
        f"Loaded configuration: {len(config.chains)} chains, "
        f"{len(config.prices)} prices, {len(config.amounts)} amounts"
    )
    return config
