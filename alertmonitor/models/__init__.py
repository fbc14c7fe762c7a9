"""
Shared Data Models
==================

This package contains dataclasses used across the project.
"""

from .alert import Alert, AlertCondition, TriggerDecision, PRICE_ALERT_TYPE
from .cache_entry import CacheEntry
from .market import MarketType, NormalizedPrice, DerivativesSnapshot

__all__ = [
    "Alert",
    "AlertCondition",
    "TriggerDecision",
    "PRICE_ALERT_TYPE",
    "CacheEntry",
    "MarketType",
    "NormalizedPrice",
    "DerivativesSnapshot",
]
