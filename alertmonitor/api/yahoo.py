"""
Yahoo Finance Chart Adapter

Keyless fallback for forex and stocks. Metals are priced from their
front-month futures since Yahoo has no spot XAUUSD ticker.
"""

import logging
from decimal import Decimal
from urllib.parse import quote

from ..config import config
from ..exceptions import PermanentFetchError
from ..models import MarketType, NormalizedPrice
from ..utils.market_type import clean_symbol, split_forex_pair
from .base import PriceSourceAdapter, parse_decimal

logger = logging.getLogger(__name__)

METAL_FUTURES = {
    "XAU": "GC=F",
    "XAG": "SI=F",
    "XPT": "PL=F",
    "XPD": "PA=F",
}


def to_yahoo_symbol(symbol: str, market_type: MarketType) -> str:
    """EURUSD -> EURUSD=X, XAUUSD -> GC=F, AAPL -> AAPL, BRK.B -> BRK-B."""
    s = clean_symbol(symbol)
    if market_type == MarketType.FOREX:
        pair = split_forex_pair(s)
        if pair and pair[0] in METAL_FUTURES and pair[1] == "USD":
            return METAL_FUTURES[pair[0]]
        return f"{s}=X"
    return s.replace(".", "-")


class YahooFinanceAdapter(PriceSourceAdapter):
    """Forex and stock quotes from the Yahoo Finance chart endpoint."""

    name = "Yahoo"
    default_market_type = MarketType.STOCK

    def __init__(self, base_url: str = None, **kwargs):
        super().__init__(base_url=base_url or config.yahoo_chart_url, **kwargs)

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        market_type = market_type or self.default_market_type
        s = clean_symbol(symbol)
        ticker = to_yahoo_symbol(s, market_type)

        data = self._get_json(
            f"{self.base_url}/{quote(ticker)}", s, params={"interval": "1d", "range": "1d"}
        )

        # Response: {"chart": {"result": [{"meta": {"regularMarketPrice": ..., ...}}], "error": null}}
        chart = data.get("chart") if isinstance(data, dict) else None
        results = chart.get("result") if isinstance(chart, dict) else None
        if not results or not isinstance(results[0], dict):
            raise PermanentFetchError("no chart result", self.name, s)

        meta = results[0].get("meta") or {}
        price = self._require_price(meta.get("regularMarketPrice"), s, "regularMarketPrice")

        change = None
        previous = parse_decimal(meta.get("previousClose") or meta.get("chartPreviousClose"))
        if previous is not None and previous > 0:
            change = ((price - previous) / previous * 100).quantize(Decimal("0.0001"))

        return self._build_price(s, price, change, market_type)
