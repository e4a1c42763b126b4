"""
Tests for project configuration loading.

Tests cover:
- Tagged position variants and identities
- Cross-reference validation and price windows
- Hour alignment and address checks
"""

import json

import pytest

from tvl.config.constants import HOUR
from tvl.config.projects import (
    NativeAmountConfig,
    PremintedAmountConfig,
    TokenAmountConfig,
    load_tvl_config,
)
from tvl.utils.exceptions import ConfigurationError

TOKEN = "0x" + "11" * 20
ESCROW = "0x" + "33" * 20


def base_config() -> dict:
    return {
        "chains": [{"name": "ethereum", "provider_url": "https://rpc.example"}],
        "prices": [{"id": "eth", "coingecko_id": "ethereum", "since_timestamp": 100 * HOUR}],
        "amounts": [
            {
                "type": "token",
                "project": "bridge",
                "chain": "ethereum",
                "token": TOKEN,
                "holder": ESCROW,
                "since_timestamp": 100 * HOUR,
                "price_id": "eth",
                "decimals": 18,
            },
            {
                "type": "native",
                "project": "bridge",
                "chain": "ethereum",
                "holder": ESCROW,
                "since_timestamp": 100 * HOUR,
                "price_id": "eth",
                "decimals": 18,
            },
            {
                "type": "preminted",
                "project": "rollup",
                "chain": "ethereum",
                "token": TOKEN,
                "holder": ESCROW,
                "since_timestamp": 100 * HOUR,
                "until_timestamp": 200 * HOUR,
                "price_id": "eth",
                "decimals": 18,
            },
        ],
    }


def write(tmp_path, data) -> str:
    path = tmp_path / "tvl.json"
    path.write_text(json.dumps(data))
    return str(path)


class TestLoadConfig:
    """Test configuration file parsing."""

    def test_loads_tagged_variants(self, tmp_path):
        config = load_tvl_config(write(tmp_path, base_config()))

        token, native, preminted = config.amounts
        assert isinstance(token, TokenAmountConfig)
        assert isinstance(native, NativeAmountConfig)
        assert isinstance(preminted, PremintedAmountConfig)
        assert preminted.formula == "total_supply_minus_escrow"
        assert native.source == "native"
        assert token.source == "canonical"

    def test_identity_format(self, tmp_path):
        token, native, _ = load_tvl_config(write(tmp_path, base_config())).amounts

        assert token.identity == f"ethereum_token_{TOKEN}_{ESCROW}"
        assert native.identity == f"ethereum_native_native_{ESCROW}"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_tvl_config(tmp_path / "missing.json")

    def test_unknown_chain(self, tmp_path):
        data = base_config()
        data["amounts"][0]["chain"] = "solana"

        with pytest.raises(ConfigurationError, match="unknown chain"):
            load_tvl_config(write(tmp_path, data))

    def test_unknown_price(self, tmp_path):
        data = base_config()
        data["amounts"][1]["price_id"] = "doge"

        with pytest.raises(ConfigurationError, match="unknown price"):
            load_tvl_config(write(tmp_path, data))

    def test_unknown_formula(self, tmp_path):
        data = base_config()
        data["amounts"][2]["formula"] = "magic"

        with pytest.raises(ConfigurationError, match="formula"):
            load_tvl_config(write(tmp_path, data))

    def test_unaligned_timestamp(self, tmp_path):
        data = base_config()
        data["amounts"][0]["since_timestamp"] = 100 * HOUR + 1

        with pytest.raises(ConfigurationError):
            load_tvl_config(write(tmp_path, data))

    def test_invalid_address(self, tmp_path):
        data = base_config()
        data["amounts"][0]["holder"] = "0x1234"

        with pytest.raises(ConfigurationError):
            load_tvl_config(write(tmp_path, data))

    def test_window_ends_before_start(self, tmp_path):
        data = base_config()
        data["amounts"][2]["until_timestamp"] = 50 * HOUR

        with pytest.raises(ConfigurationError, match="ends before"):
            load_tvl_config(write(tmp_path, data))

    def test_position_starting_before_its_price(self, tmp_path):
        data = base_config()
        data["amounts"][1]["since_timestamp"] = 99 * HOUR

        with pytest.raises(ConfigurationError, match="starts before price eth"):
            load_tvl_config(write(tmp_path, data))

    def test_capped_formula_needs_coingecko_id(self, tmp_path):
        data = base_config()
        data["amounts"][2]["formula"] = "total_supply_minus_escrow_capped"

        with pytest.raises(ConfigurationError, match="coingecko_id"):
            load_tvl_config(write(tmp_path, data))

        data["amounts"][2]["coingecko_id"] = "rollup-token"
        preminted = load_tvl_config(write(tmp_path, data)).amounts[2]

        assert preminted.coingecko_id == "rollup-token"


class TestConfigHash:
    """Test change detection hash."""

    def test_stable_for_equal_config(self, tmp_path):
        first = load_tvl_config(write(tmp_path, base_config())).amounts[0]
        second = load_tvl_config(write(tmp_path, base_config())).amounts[0]

        assert first.config_hash() == second.config_hash()

    def test_changes_with_decimals(self, tmp_path):
        token = load_tvl_config(write(tmp_path, base_config())).amounts[0]

        assert token.config_hash() != token.model_copy(update={"decimals": 6}).config_hash()
