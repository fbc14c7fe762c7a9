"""
Utilities
=========

- market_type.py: symbol normalization and market type detection
- logging_setup.py: root logger configuration (file, console, SQLite)
"""

from .market_type import (
    detect_market_type,
    normalize_symbol,
    clean_symbol,
    split_forex_pair,
    has_quote_suffix,
    is_stablecoin,
)
from .logging_setup import setup_logging

__all__ = [
    "setup_logging",
    "detect_market_type",
    "normalize_symbol",
    "clean_symbol",
    "split_forex_pair",
    "has_quote_suffix",
    "is_stablecoin",
]
