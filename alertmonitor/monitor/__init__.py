"""
Alert Monitor Service
=====================

Polling monitor that evaluates price alerts and sends Telegram notifications.

Components:
- database.py: SQLite persistence (alerts, market cache, service logs)
- cache.py: single-flight TTL cache and cooldowns
- prices.py: market-type dispatch and source fallback chains
- evaluator.py: alert conditions and message rendering
- orchestrator.py: pass loop, cleanup and shutdown
"""

from .database import MonitorDatabase, SQLiteLoggingHandler
from .cache import MarketDataCache
from .prices import PriceRouter
from .evaluator import AlertEvaluator, condition_met
from .orchestrator import AlertMonitor, PassResult, CleanupResult

__all__ = [
    "MonitorDatabase",
    "SQLiteLoggingHandler",
    "MarketDataCache",
    "PriceRouter",
    "AlertEvaluator",
    "condition_met",
    "AlertMonitor",
    "PassResult",
    "CleanupResult",
]
