"""
Twelve Data API Adapter

Primary source for forex and stocks. Requires TWELVE_DATA_API_KEY.
Errors come back as HTTP 200 with {"status": "error", "code": ...}.
"""

import logging

from ..config import config
from ..exceptions import PermanentFetchError, TransientFetchError
from ..models import MarketType, NormalizedPrice
from ..utils.market_type import clean_symbol, split_forex_pair
from .base import RATE_LIMIT_STATUSES, PriceSourceAdapter, parse_decimal

logger = logging.getLogger(__name__)


def to_twelve_data_symbol(symbol: str, market_type: MarketType) -> str:
    """EURUSD -> EUR/USD for forex; stocks are passed through."""
    s = clean_symbol(symbol)
    if market_type == MarketType.FOREX:
        pair = split_forex_pair(s)
        if pair:
            return f"{pair[0]}/{pair[1]}"
    return s


class TwelveDataAdapter(PriceSourceAdapter):
    """Forex and stock quotes from Twelve Data."""

    name = "TwelveData"
    default_market_type = MarketType.FOREX

    def __init__(self, base_url: str = None, api_key: str = None, **kwargs):
        super().__init__(base_url=base_url or config.twelve_data_url, **kwargs)
        self.api_key = api_key if api_key is not None else config.twelve_data_api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        market_type = market_type or self.default_market_type
        s = clean_symbol(symbol)
        if not self.api_key:
            raise PermanentFetchError("API key not configured", self.name, s)

        data = self._get_json(
            f"{self.base_url}/quote",
            s,
            params={"symbol": to_twelve_data_symbol(s, market_type), "apikey": self.api_key},
        )
        if not isinstance(data, dict):
            raise PermanentFetchError("unexpected quote payload", self.name, s)

        if data.get("status") == "error":
            code = data.get("code")
            message = str(data.get("message", "error response"))[:200]
            if code in RATE_LIMIT_STATUSES or (isinstance(code, int) and code >= 500):
                raise TransientFetchError(message, self.name, s, code)
            raise PermanentFetchError(message, self.name, s, code)

        # Response: {"symbol": "EUR/USD", "close": "1.0850", "percent_change": "0.12", ...}
        price = self._require_price(data.get("close"), s, "close")
        change = parse_decimal(data.get("percent_change"))
        return self._build_price(s, price, change, market_type)
