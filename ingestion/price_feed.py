"""
CoinGecko client for USD token prices.
One request per basket per cycle, covering the whole token set.
"""
import asyncio
import json
import logging
import ssl
from decimal import Decimal
from functools import partial
from typing import Dict, Iterable, Optional

import aiohttp
import certifi

import config
from errors import PriceFeedError

logger = logging.getLogger(__name__)

_ssl_context = ssl.create_default_context(cafile=certifi.where())

_decode_json = partial(json.loads, parse_float=Decimal)


def get_ssl_context() -> ssl.SSLContext:
    """Get SSL context for API requests."""
    return _ssl_context


def parse_price_response(tokens: Iterable[str], payload: dict) -> Dict[str, Decimal]:
    """
    Map the requested addresses to USD prices.

    CoinGecko keys its response by lowercased contract address:
        {"0xabc...": {"usd": 1.23}, ...}
    Tokens without a usd entry are left out; callers must treat a missing
    key as missing data, never as a zero price.
    """
    by_lower = {str(k).lower(): v for k, v in payload.items()}
    prices: Dict[str, Decimal] = {}
    for token in tokens:
        entry = by_lower.get(token.lower())
        if not isinstance(entry, dict) or entry.get("usd") is None:
            continue
        prices[token] = Decimal(str(entry["usd"]))
    return prices


class PriceFeedClient:
    """Batched USD price lookup by token contract address."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: Optional[str] = None,
        base_url: str = config.COINGECKO_API_BASE,
        platform: str = config.COINGECKO_PLATFORM,
        timeout: float = config.PRICE_REQUEST_TIMEOUT_SECONDS
    ):
        self.session = session
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.platform = platform
        self.timeout = timeout

    async def get_usd_prices(self, tokens: Iterable[str]) -> Dict[str, Decimal]:
        """
        Fetch USD prices for a set of tokens in a single request.

        Args:
            tokens: Token contract addresses

        Returns:
            {address: price}; addresses with no quote are absent

        Raises:
            PriceFeedError: on transport, HTTP or JSON failure
        """
        tokens = sorted(set(tokens))
        if not tokens:
            return {}

        url = f"{self.base_url}/simple/token_price/{self.platform}"
        params = {
            "contract_addresses": ",".join(t.lower() for t in tokens),
            "vs_currencies": "usd",
        }
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        try:
            async with self.session.get(
                url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as r:
                r.raise_for_status()
                payload = await r.json(loads=_decode_json)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PriceFeedError(f"Price request for {len(tokens)} tokens failed: {e}") from e

        if not isinstance(payload, dict):
            raise PriceFeedError(f"Unexpected price response: {payload!r}")

        prices = parse_price_response(tokens, payload)
        logger.debug(f"[PRICES] {len(prices)}/{len(tokens)} tokens priced")
        return prices
