"""
Market Data Cache
=================

TTL-based memoized fetch on top of the market_cache table.

Components:
- MarketDataCache.get_or_compute: return a live entry or run the fetch once,
  even when several threads ask for the same key at the same time
- Cooldowns: short-lived marker entries ("cooldown:<name>") used to rate-limit
  repeated log lines and similar per-symbol side effects
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from ..models import CacheEntry

if TYPE_CHECKING:
    from .database import MonitorDatabase

logger = logging.getLogger(__name__)

COOLDOWN_DATA_TYPE = "cooldown"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MarketDataCache:
    """
    Single-flight TTL cache.

    A read for a live key never calls compute. A read for a missing or
    expired key calls compute exactly once among concurrent callers; the
    others block on the key's lock and reuse the stored result. A failing
    compute writes nothing and its exception reaches every caller that ran it.
    """

    def __init__(self, db: "MonitorDatabase", clock: Callable[[], datetime] = None):
        """
        Args:
            db: Persistence for cache entries
            clock: Returns the current UTC time (injectable for tests)
        """
        self.db = db
        self.clock = clock or utc_now

        # key -> [lock, waiter count]; entries are dropped when nobody holds them
        self._key_locks: Dict[str, List] = {}
        self._key_locks_guard = threading.Lock()

    @contextmanager
    def _key_lock(self, key: str):
        with self._key_locks_guard:
            slot = self._key_locks.get(key)
            if slot is None:
                slot = [threading.Lock(), 0]
                self._key_locks[key] = slot
            slot[1] += 1

        try:
            with slot[0]:
                yield
        finally:
            with self._key_locks_guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._key_locks[key]

    def get_or_compute(
        self,
        key: str,
        data_type: str,
        ttl: int,
        compute: Callable[[], Any],
    ) -> Any:
        """
        Return cached data for key, computing and storing it if needed.

        Args:
            key: Cache key
            data_type: Free-form tag stored with the entry ("price", ...)
            ttl: Lifetime of a freshly computed entry, in seconds
            compute: Zero-argument fetch; must return JSON-serializable data

        Returns:
            Cached or freshly computed data

        Raises:
            Whatever compute raises (nothing is written in that case)
        """
        entry = self.db.get_cache_entry(key, self.clock())
        if entry is not None:
            logger.debug(f"Cache hit: {key}")
            return entry.data

        with self._key_lock(key):
            # Another caller may have filled it while we waited
            entry = self.db.get_cache_entry(key, self.clock())
            if entry is not None:
                logger.debug(f"Cache hit after wait: {key}")
                return entry.data

            logger.debug(f"Cache miss: {key}")
            data = compute()
            self.db.upsert_cache_entry(
                CacheEntry.create(key, data_type, data, ttl, self.clock())
            )
            return data

    def get(self, key: str) -> Optional[Any]:
        """Live data for key, or None."""
        entry = self.db.get_cache_entry(key, self.clock())
        return entry.data if entry else None

    def forget(self, key: str):
        """Delete the entry for key; missing keys are ignored."""
        with self._key_lock(key):
            self.db.delete_cache_entry(key)

    def clear_expired(self) -> int:
        """
        Delete every expired entry.

        Returns:
            Number of entries removed
        """
        count = self.db.delete_expired_cache_entries(self.clock())
        if count:
            logger.info(f"Cleared {count} expired cache entries")
        return count

    # -------------------------------------------------------------------------
    # Cooldowns
    # -------------------------------------------------------------------------

    def claim_cooldown(self, name: str, window_sec: int) -> bool:
        """
        Start a cooldown unless one is already running.

        Args:
            name: Cooldown identity, e.g. "fetch_failed:BTCUSDT"
            window_sec: Cooldown length

        Returns:
            True if the caller claimed a new window (act now), False if a
            window is still running (stay quiet)
        """
        key = f"{COOLDOWN_DATA_TYPE}:{name}"
        with self._key_lock(key):
            now = self.clock()
            if self.db.get_cache_entry(key, now) is not None:
                return False
            self.db.upsert_cache_entry(CacheEntry.create(
                key, COOLDOWN_DATA_TYPE, {'started_at': now.isoformat()}, window_sec, now
            ))
            return True

    def in_cooldown(self, name: str) -> bool:
        return self.get(f"{COOLDOWN_DATA_TYPE}:{name}") is not None
