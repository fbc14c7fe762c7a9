"""
Market Type Detection
=====================

Pure, offline classification of ticker-like symbols into crypto, forex or stock,
plus the symbol normalization that runs before it.

Rules (first match wins):
1. Six letters made of two known currency codes (EURUSD, GBPJPY, XAUUSD),
   or a bare fiat code (EUR) -> forex
2. A known equity ticker (1-5 letters, no quote-currency suffix) -> stock
3. Everything else -> crypto (BTCUSDT, BTC, new tokens)
"""

import re
from typing import Optional

from ..models import MarketType

# ISO 4217 codes the forex adapters can price, plus precious metals
CURRENCY_CODES = frozenset({
    # Majors
    "USD", "EUR", "GBP", "JPY", "AUD", "CAD", "CHF", "NZD",
    # Asia
    "CNY", "HKD", "SGD", "INR", "KRW", "TWD", "THB", "MYR", "IDR", "PHP",
    "VND", "PKR", "BDT", "LKR", "NPR",
    # Middle East & Africa
    "SAR", "AED", "QAR", "KWD", "BHD", "OMR", "ILS", "EGP", "ZAR", "NGN",
    "KES", "GHS", "TZS", "UGX", "MAD", "TND",
    # Latin America
    "BRL", "MXN", "ARS", "CLP", "COP", "PEN", "UYU", "DOP",
    # Europe (non-EUR)
    "NOK", "SEK", "DKK", "PLN", "CZK", "HUF", "RON", "BGN", "RSD", "ISK",
    "TRY", "RUB", "UAH",
    # Other
    "KZT", "GEL", "AZN", "UZS",
})

METAL_CODES = frozenset({"XAU", "XAG", "XPT", "XPD"})

# Fiat codes users type on their own; normalized to XXXUSD
BARE_FIAT = frozenset({
    "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD", "CNY", "HKD", "SGD",
    "SEK", "NOK", "DKK", "INR", "KRW", "MXN", "ZAR", "TRY", "BRL", "RUB",
    "PLN", "THB", "IDR", "MYR", "PHP", "TWD", "CZK", "HUF", "ILS", "CLP",
    "ARS", "COP", "PEN", "NGN", "KES", "EGP", "PKR", "BDT", "VND", "UAH",
    "RON", "BGN", "SAR", "AED", "QAR", "KWD", "BHD", "OMR",
})

SYMBOL_ALIASES = {
    "GOLD": "XAUUSD",
    "SILVER": "XAGUSD",
    "PLATINUM": "XPTUSD",
    "PALLADIUM": "XPDUSD",
}

# Exchange quote assets; a symbol ending in one of these is a trading pair
CRYPTO_QUOTE_SUFFIXES = (
    "USDT", "USDC", "BUSD", "FDUSD", "TUSD", "DAI",
    "BTC", "ETH", "BNB",
)

STABLECOINS = frozenset({"USDT", "USDC", "BUSD", "DAI", "TUSD", "FDUSD", "USDP"})

# Bare crypto symbols that must never be read as equities
KNOWN_CRYPTO = frozenset({
    "BTC", "ETH", "SOL", "BNB", "XRP", "ADA", "DOGE", "DOT", "AVAX", "MATIC",
    "LINK", "UNI", "SHIB", "LTC", "ATOM", "NEAR", "APT", "ARB", "OP", "SUI",
    "SEI", "TIA", "JTO", "FIL", "INJ", "TRX", "TON", "PEPE", "WIF", "BONK",
    "FLOKI", "FET", "RNDR", "GRT", "AAVE", "MKR", "CRV", "SNX", "COMP",
    "SAND", "MANA", "AXS", "ICP", "VET", "ALGO", "FTM", "HBAR", "EOS",
    "THETA", "XLM", "XMR", "EGLD", "RUNE", "STX", "IMX", "CFX", "KAVA",
    "NEO", "POL", "WLD", "JUP", "PYTH", "STRK", "DYM", "PENDLE", "ENS",
    "LDO", "CAKE", "SUSHI", "CRO", "ZIL", "GALA", "ENJ", "CHZ", "BAT",
    "ZEC", "DASH", "IOTA", "BCH", "SERPO",
})

# Equity tickers the stock adapters are expected to price
KNOWN_STOCKS = frozenset({
    # Mega caps
    "AAPL", "MSFT", "GOOGL", "GOOG", "AMZN", "META", "NVDA", "TSLA", "BRK.B",
    "AVGO", "ORCL", "NFLX", "AMD", "INTC", "CRM", "ADBE", "CSCO", "QCOM",
    "IBM", "TXN", "MU", "PLTR", "UBER", "SHOP", "SNOW", "PYPL", "SQ", "ABNB",
    # Crypto-adjacent equities
    "COIN", "MSTR", "HOOD", "RIOT", "MARA",
    # Financials
    "JPM", "BAC", "WFC", "GS", "MS", "C", "V", "MA", "AXP", "BLK",
    # Consumer & industrial
    "WMT", "COST", "KO", "PEP", "MCD", "NKE", "DIS", "SBUX", "HD", "LOW",
    "BA", "CAT", "GE", "F", "GM", "T", "VZ", "XOM", "CVX",
    # Healthcare
    "JNJ", "PFE", "MRK", "LLY", "UNH", "ABBV",
    # ADRs
    "BABA", "TSM", "NIO", "SONY",
    # ETFs
    "SPY", "QQQ", "DIA", "IWM", "VOO", "VTI", "ARKK", "GLD", "SLV",
})

_FOREX_PAIR_RE = re.compile(r"^[A-Z]{6}$")
_STOCK_TICKER_RE = re.compile(r"^[A-Z][A-Z.]{0,4}$")
_STRIP_RE = re.compile(r"[\s/\-_]")


def clean_symbol(symbol: str) -> str:
    """Upper-case and strip separators (EUR/USD -> EURUSD)."""
    return _STRIP_RE.sub("", symbol or "").upper()


def normalize_symbol(symbol: str) -> str:
    """
    Normalize a free-form symbol before classification and pricing.

    Applies aliases (GOLD -> XAUUSD) and turns bare fiat codes into USD
    pairs (EUR -> EURUSD).

    Args:
        symbol: Symbol as typed by the alert owner

    Returns:
        Canonical symbol string
    """
    s = clean_symbol(symbol)
    if s in SYMBOL_ALIASES:
        return SYMBOL_ALIASES[s]
    if s in BARE_FIAT:
        return f"{s}USD"
    return s


def split_forex_pair(symbol: str) -> Optional[tuple]:
    """
    Split a six-letter pair into (base, quote) if both halves are known codes.

    Returns:
        (base, quote) tuple, or None if the symbol is not a currency pair
    """
    s = clean_symbol(symbol)
    if not _FOREX_PAIR_RE.match(s):
        return None
    base, quote = s[:3], s[3:]
    known = CURRENCY_CODES | METAL_CODES
    if base in known and quote in CURRENCY_CODES:
        return base, quote
    return None


def has_quote_suffix(symbol: str) -> bool:
    """Whether the symbol is an exchange pair like BTCUSDT or ETHBTC."""
    s = clean_symbol(symbol)
    return any(len(s) > len(q) and s.endswith(q) for q in CRYPTO_QUOTE_SUFFIXES)


def detect_market_type(symbol: str) -> MarketType:
    """
    Classify a symbol as crypto, forex or stock.

    Pure function: no I/O, never fails, defaults to crypto.

    Args:
        symbol: Ticker-like symbol (BTC, BTCUSDT, EURUSD, AAPL, ...)

    Returns:
        MarketType
    """
    s = clean_symbol(symbol)

    if split_forex_pair(s) is not None or s in BARE_FIAT:
        return MarketType.FOREX

    if (
        s not in KNOWN_CRYPTO
        and _STOCK_TICKER_RE.match(s)
        and not has_quote_suffix(s)
        and s in KNOWN_STOCKS
    ):
        return MarketType.STOCK

    return MarketType.CRYPTO


def is_stablecoin(symbol: str) -> bool:
    return clean_symbol(symbol) in STABLECOINS
