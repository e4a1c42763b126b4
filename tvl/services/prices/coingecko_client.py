"""
CoinGecko price client.

Fetches USD price samples for a coin over a time range through the
``/coins/{id}/market_chart/range`` endpoint.
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp
from loguru import logger

from tvl.config.constants import (
    BLOCKCHAIN_MAX_RETRIES,
    BLOCKCHAIN_RETRY_DELAY_BASE,
    BLOCKCHAIN_RETRY_DELAY_MAX,
    BLOCKCHAIN_TIMEOUT,
    COINGECKO_API_URL,
    TRANSIENT_HTTP_STATUSES,
)
from tvl.services.chain.rate_limiter import RateLimiter
from tvl.services.chain.rpc_wrapper import TransientProviderError, call_with_retry
from tvl.utils.exceptions import ProviderProtocolError


class CoinGeckoClient:
    """
    Rate-limited CoinGecko client.

    Samples are returned as (unix seconds, USD price) pairs in the order
    the provider sends them; aligning to hours is the caller's job.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        base_url: str = COINGECKO_API_URL,
        api_key: str | None = None,
        timeout: float = BLOCKCHAIN_TIMEOUT,
        max_attempts: int = BLOCKCHAIN_MAX_RETRIES,
        retry_delay_base: float = BLOCKCHAIN_RETRY_DELAY_BASE,
        retry_delay_max: float = BLOCKCHAIN_RETRY_DELAY_MAX,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay_base = retry_delay_base
        self.retry_delay_max = retry_delay_max
        self._session = session
        self._owns_session = session is None

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            if "pro-api" in self.base_url:
                headers["x-cg-pro-api-key"] = self.api_key
            else:
                headers["x-cg-demo-api-key"] = self.api_key
        return headers

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self._headers(),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        """
        Send one GET request and return the decoded body.

        Raises:
            TransientProviderError: On rate limiting and server errors
            ProviderProtocolError: On other HTTP errors or non-JSON bodies
        """
        session = self._get_session()
        async with session.get(f"{self.base_url}{path}", params=params) as resp:
            if resp.status in TRANSIENT_HTTP_STATUSES:
                raise TransientProviderError(f"HTTP {resp.status} from CoinGecko")
            if resp.status >= 400:
                raise ProviderProtocolError(f"HTTP {resp.status} from CoinGecko {path}")
            text = await resp.text()

        try:
            return json.loads(text)
        except ValueError as e:
            raise ProviderProtocolError(f"Non-JSON response: {text[:200]!r}") from e

    async def _market_chart(
        self, coingecko_id: str, from_timestamp: int, to_timestamp: int
    ) -> dict[str, Any]:
        path = f"/coins/{coingecko_id}/market_chart/range"
        params = {"vs_currency": "usd", "from": from_timestamp, "to": to_timestamp}

        body = await call_with_retry(
            lambda: self._get(path, params),
            max_attempts=self.max_attempts,
            timeout=self.timeout,
            operation_name=f"[CoinGecko] {coingecko_id} range",
            base_delay=self.retry_delay_base,
            max_delay=self.retry_delay_max,
            rate_limiter=self.rate_limiter,
        )
        if not isinstance(body, dict) or not isinstance(body.get("prices"), list):
            raise ProviderProtocolError(f"Unexpected CoinGecko response for {coingecko_id}")
        return body

    @staticmethod
    def _parse_series(entries: list[Any]) -> list[tuple[int, Decimal]]:
        """[[ms, value], ...] as (unix seconds, Decimal) sorted by time."""
        samples: list[tuple[int, Decimal]] = []
        for entry in entries:
            if not isinstance(entry, list) or len(entry) < 2:
                raise ProviderProtocolError(f"Malformed sample: {entry!r}")
            try:
                timestamp = int(entry[0]) // 1000
                value = Decimal(str(entry[1]))
            except (TypeError, ValueError, InvalidOperation) as e:
                raise ProviderProtocolError(f"Malformed sample: {entry!r}") from e
            samples.append((timestamp, value))

        samples.sort(key=lambda s: s[0])
        return samples

    async def get_price_range(
        self, coingecko_id: str, from_timestamp: int, to_timestamp: int
    ) -> list[tuple[int, Decimal]]:
        """
        Get USD price samples of a coin between two timestamps.

        Args:
            coingecko_id: CoinGecko coin id, e.g. "ethereum"
            from_timestamp: Inclusive start in unix seconds
            to_timestamp: Inclusive end in unix seconds

        Returns:
            Samples sorted by timestamp

        Raises:
            ProviderUnavailable: If CoinGecko keeps failing
            ProviderProtocolError: If the response is malformed
        """
        body = await self._market_chart(coingecko_id, from_timestamp, to_timestamp)
        samples = self._parse_series(body["prices"])
        logger.debug(
            f"[CoinGecko] {coingecko_id}: {len(samples)} price samples "
            f"for {from_timestamp}..{to_timestamp}"
        )
        return samples

    async def get_circulating_supply_range(
        self, coingecko_id: str, from_timestamp: int, to_timestamp: int
    ) -> list[tuple[int, Decimal]]:
        """
        Get circulating supply samples (whole tokens) between two timestamps.

        CoinGecko has no historical supply series; each sample is the market
        cap divided by the price reported at the same instant. Samples with
        a zero price are dropped.

        Raises:
            ProviderUnavailable: If CoinGecko keeps failing
            ProviderProtocolError: If the response is malformed
        """
        body = await self._market_chart(coingecko_id, from_timestamp, to_timestamp)
        if not isinstance(body.get("market_caps"), list):
            raise ProviderProtocolError(f"No market caps in CoinGecko response for {coingecko_id}")

        prices = dict(self._parse_series(body["prices"]))
        samples = [
            (timestamp, market_cap / prices[timestamp])
            for timestamp, market_cap in self._parse_series(body["market_caps"])
            if prices.get(timestamp)
        ]
        logger.debug(
            f"[CoinGecko] {coingecko_id}: {len(samples)} supply samples "
            f"for {from_timestamp}..{to_timestamp}"
        )
        return samples
