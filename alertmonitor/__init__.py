"""
Universal Alert Monitor
=======================

Price alert monitoring across crypto, forex and stocks with a SQLite-backed
market data cache and Telegram notifications.
"""

__version__ = "1.0.0"
