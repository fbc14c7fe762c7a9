"""
Price Routing
=============

Picks the adapter chain for a symbol's market type and walks it until one
source returns a usable quote. Results go through MarketDataCache so alerts
sharing a symbol cost one upstream call per TTL window.

Chains:
- crypto: Binance -> CoinGecko -> DexScreener
- forex:  Twelve Data -> Yahoo -> Alpha Vantage
- stock:  Twelve Data -> Alpha Vantage -> Yahoo, then the crypto chain
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from ..api import (
    AlphaVantageAdapter,
    BinanceFuturesAdapter,
    BinanceSpotAdapter,
    CoinGeckoAdapter,
    DexScreenerAdapter,
    PriceSourceAdapter,
    TwelveDataAdapter,
    YahooFinanceAdapter,
)
from ..config import config
from ..exceptions import FetchFailed, SymbolUnavailable
from ..models import DerivativesSnapshot, MarketType, NormalizedPrice
from ..utils.market_type import detect_market_type, is_stablecoin, normalize_symbol
from .cache import MarketDataCache

logger = logging.getLogger(__name__)

PRICE_DATA_TYPE = "price"
STABLECOIN_PRICE = Decimal("1.00")


def price_cache_key(symbol: str, market_type: MarketType) -> str:
    return f"{PRICE_DATA_TYPE}:{market_type.value}:{symbol}"


class PriceRouter:
    """Market-type dispatch with per-market fallback chains."""

    def __init__(
        self,
        cache: MarketDataCache,
        chains: Optional[Dict[MarketType, Sequence[PriceSourceAdapter]]] = None,
        futures: Optional[BinanceFuturesAdapter] = None,
        ttl: int = None,
    ):
        """
        Args:
            cache: Market data cache
            chains: Adapter chain per market type (default: the public sources)
            futures: Derivatives source (default: Binance USD-M)
            ttl: Price cache TTL in seconds (default: config.price_cache_ttl_sec)
        """
        self.cache = cache
        self.chains = chains if chains is not None else self.default_chains()
        self.futures = futures
        self.ttl = ttl if ttl is not None else config.price_cache_ttl_sec

    @staticmethod
    def default_chains() -> Dict[MarketType, List[PriceSourceAdapter]]:
        """Build the standard chains, sharing adapters that serve several markets."""
        binance = BinanceSpotAdapter()
        twelve = TwelveDataAdapter()
        alpha = AlphaVantageAdapter()
        yahoo = YahooFinanceAdapter()
        return {
            MarketType.CRYPTO: [binance, CoinGeckoAdapter(), DexScreenerAdapter()],
            MarketType.FOREX: [twelve, yahoo, alpha],
            MarketType.STOCK: [twelve, alpha, yahoo],
        }

    def get_price(self, symbol: str) -> NormalizedPrice:
        """
        Current price for a symbol, served from cache when fresh.

        Args:
            symbol: Free-form symbol (normalized here)

        Returns:
            NormalizedPrice

        Raises:
            SymbolUnavailable: every source in the chain failed
        """
        normalized = normalize_symbol(symbol)
        market_type = detect_market_type(normalized)

        if market_type == MarketType.CRYPTO and is_stablecoin(normalized):
            return NormalizedPrice(
                symbol=normalized,
                price=STABLECOIN_PRICE,
                change_24h_percent=Decimal(0),
                market_type=MarketType.CRYPTO,
                source="fixed",
            )

        data = self.cache.get_or_compute(
            price_cache_key(normalized, market_type),
            PRICE_DATA_TYPE,
            self.ttl,
            lambda: self.fetch_price(normalized, market_type).to_dict(),
        )
        return NormalizedPrice.from_dict(data)

    def fetch_price(self, symbol: str, market_type: MarketType) -> NormalizedPrice:
        """
        Walk the chain for market_type without touching the cache.

        Stocks fall back to the crypto chain: new short-ticker tokens are
        often misclassified as equities.
        """
        errors: List[FetchFailed] = []

        price = self._try_chain(symbol, market_type, errors)
        if price is None and market_type == MarketType.STOCK:
            logger.debug(f"{symbol}: stock sources failed, trying crypto sources")
            price = self._try_chain(symbol, MarketType.CRYPTO, errors)

        if price is None:
            raise SymbolUnavailable(symbol, errors)
        return price

    def _try_chain(
        self,
        symbol: str,
        market_type: MarketType,
        errors: List[FetchFailed],
    ) -> Optional[NormalizedPrice]:
        for adapter in self.chains.get(market_type, []):
            if not adapter.is_configured():
                continue
            try:
                price = adapter.get_current_price(symbol, market_type)
            except FetchFailed as e:
                logger.debug(f"{symbol}: {e}")
                errors.append(e)
                continue
            logger.debug(f"{symbol}: {price.price} from {price.source}")
            return price
        return None

    def get_derivatives(self, symbol: str) -> DerivativesSnapshot:
        """
        Open interest and funding for a crypto perpetual.

        Raises:
            FetchFailed: neither field is available
        """
        if self.futures is None:
            self.futures = BinanceFuturesAdapter()
        return self.futures.get_derivatives(normalize_symbol(symbol))

    def close(self):
        """Close every adapter session once."""
        adapters = {id(a): a for chain in self.chains.values() for a in chain}
        if self.futures is not None:
            adapters[id(self.futures)] = self.futures
        for adapter in adapters.values():
            adapter.close()
