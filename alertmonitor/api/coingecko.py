"""
CoinGecko API Adapter

Secondary crypto source. Only symbols with a known coin id can be priced;
anything else fails permanently so the router moves on to DexScreener.
"""

import logging
from typing import Dict

from ..config import config
from ..exceptions import PermanentFetchError
from ..models import MarketType, NormalizedPrice
from ..utils.market_type import CRYPTO_QUOTE_SUFFIXES, clean_symbol
from .base import PriceSourceAdapter, parse_decimal

logger = logging.getLogger(__name__)


def base_asset(symbol: str) -> str:
    """BTCUSDT -> BTC; bare assets are returned unchanged."""
    s = clean_symbol(symbol)
    for quote in CRYPTO_QUOTE_SUFFIXES:
        if len(s) > len(quote) and s.endswith(quote):
            return s[: -len(quote)]
    return s


class CoinGeckoAdapter(PriceSourceAdapter):
    """Crypto prices from the CoinGecko simple/price endpoint."""

    name = "CoinGecko"
    default_market_type = MarketType.CRYPTO

    def __init__(self, base_url: str = None, coin_ids: Dict[str, str] = None,
                 api_key: str = None, **kwargs):
        super().__init__(base_url=base_url or config.coingecko_url, **kwargs)
        self.coin_ids = coin_ids if coin_ids is not None else config.coingecko_ids
        self.api_key = api_key if api_key is not None else config.coingecko_api_key

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        asset = base_asset(symbol)
        coin_id = self.coin_ids.get(asset)
        if not coin_id:
            raise PermanentFetchError("no CoinGecko id for symbol", self.name, asset)

        headers = {"x-cg-demo-api-key": self.api_key} if self.api_key else None
        data = self._get_json(
            f"{self.base_url}/simple/price",
            asset,
            params={"ids": coin_id, "vs_currencies": "usd", "include_24hr_change": "true"},
            headers=headers,
        )

        # Response: {"bitcoin": {"usd": 95000.1, "usd_24h_change": 1.25}}
        entry = data.get(coin_id) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            raise PermanentFetchError("coin missing from response", self.name, asset)

        price = self._require_price(entry.get("usd"), asset, "usd")
        change = parse_decimal(entry.get("usd_24h_change"))
        return self._build_price(asset, price, change, MarketType.CRYPTO)
