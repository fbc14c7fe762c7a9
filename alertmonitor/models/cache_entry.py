"""
Cache Entry Model
=================

A memoized fetch result stored in the market_cache table.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any


@dataclass
class CacheEntry:
    """One live or expired market_cache row."""
    cache_key: str
    data_type: str
    data: Any
    ttl: int
    expires_at: datetime

    @classmethod
    def create(cls, cache_key: str, data_type: str, data: Any, ttl: int, now: datetime) -> "CacheEntry":
        return cls(
            cache_key=cache_key,
            data_type=data_type,
            data=data,
            ttl=ttl,
            expires_at=now + timedelta(seconds=ttl),
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def to_row(self) -> dict:
        """Convert to dict for database storage."""
        return {
            'cache_key': self.cache_key,
            'data_type': self.data_type,
            'data': json.dumps(self.data),
            'ttl': self.ttl,
            'expires_at': self.expires_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row) -> "CacheEntry":
        """Create from database row."""
        return cls(
            cache_key=row['cache_key'],
            data_type=row['data_type'],
            data=json.loads(row['data']),
            ttl=row['ttl'],
            expires_at=datetime.fromisoformat(row['expires_at']),
        )
