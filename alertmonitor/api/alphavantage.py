"""
Alpha Vantage API Adapter

Forex via CURRENCY_EXCHANGE_RATE, stocks via GLOBAL_QUOTE.
Requires ALPHA_VANTAGE_API_KEY. The free tier signals throttling with a
"Note" or "Information" field on an HTTP 200.
"""

import logging

from ..config import config
from ..exceptions import PermanentFetchError, TransientFetchError
from ..models import MarketType, NormalizedPrice
from ..utils.market_type import clean_symbol, split_forex_pair
from .base import PriceSourceAdapter, parse_decimal

logger = logging.getLogger(__name__)


class AlphaVantageAdapter(PriceSourceAdapter):
    """Forex and stock quotes from Alpha Vantage."""

    name = "AlphaVantage"
    default_market_type = MarketType.STOCK

    def __init__(self, base_url: str = None, api_key: str = None, **kwargs):
        super().__init__(base_url=base_url or config.alpha_vantage_url, **kwargs)
        self.api_key = api_key if api_key is not None else config.alpha_vantage_api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        market_type = market_type or self.default_market_type
        s = clean_symbol(symbol)
        if not self.api_key:
            raise PermanentFetchError("API key not configured", self.name, s)

        if market_type == MarketType.FOREX:
            return self._forex_rate(s)
        return self._global_quote(s)

    def _query(self, symbol: str, params: dict) -> dict:
        params = dict(params, apikey=self.api_key)
        data = self._get_json(self.base_url, symbol, params=params)
        if not isinstance(data, dict):
            raise PermanentFetchError("unexpected payload", self.name, symbol)
        if "Note" in data or "Information" in data:
            raise TransientFetchError("API call frequency exceeded", self.name, symbol)
        if "Error Message" in data:
            raise PermanentFetchError(str(data["Error Message"])[:200], self.name, symbol)
        return data

    def _forex_rate(self, symbol: str) -> NormalizedPrice:
        pair = split_forex_pair(symbol)
        if pair is None:
            raise PermanentFetchError("not a currency pair", self.name, symbol)

        data = self._query(symbol, {
            "function": "CURRENCY_EXCHANGE_RATE",
            "from_currency": pair[0],
            "to_currency": pair[1],
        })
        rate = data.get("Realtime Currency Exchange Rate")
        if not isinstance(rate, dict) or not rate:
            raise PermanentFetchError("empty exchange rate", self.name, symbol)

        price = self._require_price(rate.get("5. Exchange Rate"), symbol, "exchange rate")
        # No 24h change on this endpoint
        return self._build_price(symbol, price, None, MarketType.FOREX)

    def _global_quote(self, symbol: str) -> NormalizedPrice:
        data = self._query(symbol, {"function": "GLOBAL_QUOTE", "symbol": symbol})
        quote = data.get("Global Quote")
        if not isinstance(quote, dict) or not quote:
            raise PermanentFetchError("empty quote", self.name, symbol)

        price = self._require_price(quote.get("05. price"), symbol, "price")
        change = parse_decimal(quote.get("10. change percent"))
        return self._build_price(symbol, price, change, MarketType.STOCK)
