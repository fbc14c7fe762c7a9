"""
DexScreener API Adapter

Last-resort crypto source for long-tail tokens that no centralized
exchange lists. Quotes the most liquid pool whose base token matches and
rejects the lookup when that pool has no usable price.
"""

import logging
from decimal import Decimal

from ..config import config
from ..exceptions import PermanentFetchError
from ..models import MarketType, NormalizedPrice
from .base import PriceSourceAdapter, parse_decimal
from .coingecko import base_asset

logger = logging.getLogger(__name__)


def _liquidity_usd(pair: dict) -> Decimal:
    liquidity = pair.get("liquidity")
    if not isinstance(liquidity, dict):
        return Decimal(0)
    return parse_decimal(liquidity.get("usd")) or Decimal(0)


class DexScreenerAdapter(PriceSourceAdapter):
    """DEX pool prices from the DexScreener search endpoint."""

    name = "DexScreener"
    default_market_type = MarketType.CRYPTO

    def __init__(self, base_url: str = None, **kwargs):
        super().__init__(base_url=base_url or config.dexscreener_url, **kwargs)

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        asset = base_asset(symbol)
        data = self._get_json(
            f"{self.base_url}/latest/dex/search", asset, params={"q": asset}
        )

        pairs = data.get("pairs") if isinstance(data, dict) else None
        if not pairs:
            raise PermanentFetchError("no pools found", self.name, asset)

        candidates = [
            pair for pair in pairs
            if isinstance(pair, dict)
            and str((pair.get("baseToken") or {}).get("symbol", "")).upper() == asset
        ]
        if not candidates:
            raise PermanentFetchError("no pool for this symbol", self.name, asset)

        best = max(candidates, key=_liquidity_usd)
        logger.debug(
            f"{asset}: using {best.get('dexId', '?')} pool on {best.get('chainId', '?')} "
            f"(liquidity ${_liquidity_usd(best):,.0f})"
        )

        # Deepest pool only; a bad quote there fails the lookup
        price = self._require_price(best.get("priceUsd"), asset, "priceUsd")
        change = None
        price_change = best.get("priceChange")
        if isinstance(price_change, dict):
            change = parse_decimal(price_change.get("h24"))
        return self._build_price(asset, price, change, MarketType.CRYPTO)
