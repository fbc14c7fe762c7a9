"""
Binance API Adapters

- BinanceSpotAdapter: 24h ticker for spot pairs (primary crypto source)
- BinanceFuturesAdapter: perpetual mark price, open interest and funding
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..config import config
from ..exceptions import FetchFailed, PermanentFetchError
from ..models import DerivativesSnapshot, MarketType, NormalizedPrice
from ..utils.market_type import clean_symbol, has_quote_suffix
from .base import PriceSourceAdapter, parse_decimal

logger = logging.getLogger(__name__)

DEFAULT_QUOTE = "USDT"


def to_binance_pair(symbol: str) -> str:
    """BTC -> BTCUSDT; pairs that already carry a quote asset are kept."""
    s = clean_symbol(symbol)
    if has_quote_suffix(s):
        return s
    return f"{s}{DEFAULT_QUOTE}"


class BinanceSpotAdapter(PriceSourceAdapter):
    """Crypto spot prices from the Binance public REST API."""

    name = "Binance"
    default_market_type = MarketType.CRYPTO

    def __init__(self, base_url: str = None, **kwargs):
        super().__init__(base_url=base_url or config.binance_url, **kwargs)

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        pair = to_binance_pair(symbol)
        data = self._get_json(
            f"{self.base_url}/api/v3/ticker/24hr", pair, params={"symbol": pair}
        )
        if not isinstance(data, dict):
            raise PermanentFetchError("unexpected ticker payload", self.name, pair)

        # Response: {"symbol": "BTCUSDT", "lastPrice": "95000.10", "priceChangePercent": "1.25", ...}
        price = self._require_price(data.get("lastPrice"), pair, "lastPrice")
        change = parse_decimal(data.get("priceChangePercent"))
        return self._build_price(pair, price, change, MarketType.CRYPTO)


class BinanceFuturesAdapter(PriceSourceAdapter):
    """
    USD-M perpetual futures data.

    Open interest and funding come from separate endpoints; either may be
    unavailable independently and is then reported as None.
    """

    name = "Binance Futures"
    default_market_type = MarketType.CRYPTO

    def __init__(self, base_url: str = None, **kwargs):
        super().__init__(base_url=base_url or config.binance_futures_url, **kwargs)

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        """Perpetual mark price (no 24h change on this endpoint)."""
        pair = to_binance_pair(symbol)
        data = self._premium_index(pair)
        price = self._require_price(data.get("markPrice"), pair, "markPrice")
        return self._build_price(pair, price, None, MarketType.CRYPTO)

    def get_derivatives(self, symbol: str) -> DerivativesSnapshot:
        """
        Get open interest and funding rate for a perpetual.

        Args:
            symbol: Asset or pair (BTC, BTCUSDT)

        Returns:
            DerivativesSnapshot with None for any unavailable field

        Raises:
            FetchFailed: neither open interest nor funding could be obtained
        """
        pair = to_binance_pair(symbol)
        errors = []

        premium: dict = {}
        try:
            premium = self._premium_index(pair)
        except FetchFailed as e:
            logger.warning(f"Funding data unavailable for {pair}: {e}")
            errors.append(e)

        open_interest: Optional = None
        try:
            oi_data = self._get_json(
                f"{self.base_url}/fapi/v1/openInterest", pair, params={"symbol": pair}
            )
            if isinstance(oi_data, dict):
                open_interest = parse_decimal(oi_data.get("openInterest"))
        except FetchFailed as e:
            logger.warning(f"Open interest unavailable for {pair}: {e}")
            errors.append(e)

        funding_rate = parse_decimal(premium.get("lastFundingRate"))
        if open_interest is None and funding_rate is None:
            if errors:
                raise errors[0]
            raise PermanentFetchError("no derivatives data in response", self.name, pair)

        mark_price = parse_decimal(premium.get("markPrice"))
        if mark_price is not None and mark_price <= 0:
            mark_price = None

        next_funding_time = None
        next_ms = parse_decimal(premium.get("nextFundingTime"))
        if next_ms is not None and next_ms > 0:
            next_funding_time = datetime.fromtimestamp(int(next_ms) / 1000, tz=timezone.utc)

        return DerivativesSnapshot(
            symbol=pair,
            open_interest=open_interest,
            funding_rate=funding_rate,
            mark_price=mark_price,
            next_funding_time=next_funding_time,
            source=self.name,
        )

    def _premium_index(self, pair: str) -> dict:
        data = self._get_json(
            f"{self.base_url}/fapi/v1/premiumIndex", pair, params={"symbol": pair}
        )
        if not isinstance(data, dict):
            raise PermanentFetchError("unexpected premiumIndex payload", self.name, pair)
        return data
