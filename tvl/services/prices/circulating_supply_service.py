"""
Circulating supply service.

Hourly circulating supply of a coin from CoinGecko samples, used to cap
preminted amounts. Samples are fetched in windows and cached per coin, so
consecutive hours of one position cost one request per window.
"""

import bisect
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger

from tvl.config.constants import COINGECKO_MAX_RANGE_SECONDS, HOUR
from tvl.utils.datetime_utils import format_timestamp
from tvl.utils.exceptions import NotYetAvailable

from .coingecko_client import CoinGeckoClient

SUPPLY_LOOKBACK_SECONDS = 6 * HOUR


@dataclass
class _SupplyWindow:
    from_timestamp: int
    times: list[int] = field(default_factory=list)
    supplies: list[Decimal] = field(default_factory=list)

    def covers(self, timestamp: int) -> bool:
        return bool(self.times) and self.from_timestamp <= timestamp <= self.times[-1]


class CirculatingSupplyService:
    """Latest circulating supply sample at or before an hour."""

    def __init__(self, client: CoinGeckoClient) -> None:
        self.client = client
        self._windows: dict[str, _SupplyWindow] = {}

    async def _fetch(self, coingecko_id: str, timestamp: int) -> _SupplyWindow:
        from_timestamp = timestamp - SUPPLY_LOOKBACK_SECONDS
        samples = await self.client.get_circulating_supply_range(
            coingecko_id, from_timestamp, from_timestamp + COINGECKO_MAX_RANGE_SECONDS
        )
        window = _SupplyWindow(
            from_timestamp=from_timestamp,
            times=[t for t, _ in samples],
            supplies=[s for _, s in samples],
        )
        self._windows[coingecko_id] = window
        logger.debug(
            f"[CirculatingSupply] {coingecko_id}: cached {len(samples)} samples "
            f"from {format_timestamp(from_timestamp)}"
        )
        return window

    async def get_circulating_supply(self, coingecko_id: str, timestamp: int) -> Decimal:
        """
        Circulating supply in whole tokens at an hour.

        Args:
            coingecko_id: CoinGecko coin id
            timestamp: Hour timestamp

        Returns:
            Latest sample at or before the hour

        Raises:
            NotYetAvailable: If no sample precedes the hour yet
            ProviderUnavailable: If CoinGecko keeps failing
        """
        window = self._windows.get(coingecko_id)
        if window is None or not window.covers(timestamp):
            window = await self._fetch(coingecko_id, timestamp)

        index = bisect.bisect_right(window.times, timestamp)
        if index == 0:
            raise NotYetAvailable(
                f"No {coingecko_id} circulating supply at or before "
                f"{format_timestamp(timestamp)}"
            )
        return window.supplies[index - 1]
