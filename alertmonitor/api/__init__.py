"""
Upstream market data adapters.

- binance.py: Binance spot ticker and USD-M futures
- coingecko.py: CoinGecko simple price
- dexscreener.py: DexScreener pool search
- twelvedata.py: Twelve Data quotes (forex, stocks)
- alphavantage.py: Alpha Vantage (forex, stocks)
- yahoo.py: Yahoo Finance chart (forex, stocks, metals)
"""

from .base import PriceSourceAdapter, parse_decimal
from .binance import BinanceSpotAdapter, BinanceFuturesAdapter
from .coingecko import CoinGeckoAdapter
from .dexscreener import DexScreenerAdapter
from .twelvedata import TwelveDataAdapter
from .alphavantage import AlphaVantageAdapter
from .yahoo import YahooFinanceAdapter

__all__ = [
    "PriceSourceAdapter",
    "parse_decimal",
    "BinanceSpotAdapter",
    "BinanceFuturesAdapter",
    "CoinGeckoAdapter",
    "DexScreenerAdapter",
    "TwelveDataAdapter",
    "AlphaVantageAdapter",
    "YahooFinanceAdapter",
]
