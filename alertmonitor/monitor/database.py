"""
SQLite Persistence for the Alert Monitor
========================================

Lightweight persistence layer for:
- Alerts (created externally, transitioned by the monitor)
- Market data cache entries (memoized fetch results with TTL)
- Service logs (persistent logging)

Storage: data/monitor.db (override with ALERT_MONITOR_DB_PATH)

Every sqlite3.Error is re-raised as PersistenceError so callers can abort
a pass cleanly without knowing about the storage engine.
"""

import logging
import sqlite3
import sys
import threading
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from pathlib import Path
from queue import Queue, Empty
from typing import Dict, List, Optional

from ..config import config
from ..exceptions import PersistenceError
from ..models import Alert, AlertCondition, CacheEntry, PRICE_ALERT_TYPE

logger = logging.getLogger(__name__)

# Default retention periods
ALERT_RETENTION_DAYS = 7
SERVICE_LOG_RETENTION_DAYS = 7

SERVICE_LOGS_SCHEMA = """
    CREATE TABLE IF NOT EXISTS service_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        level TEXT NOT NULL,
        logger_name TEXT NOT NULL,
        message TEXT NOT NULL,
        exc_info TEXT
    )
"""


def _ts(dt: datetime) -> str:
    """Fixed-width UTC ISO timestamp so string comparison matches time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MonitorDatabase:
    """
    SQLite persistence for the alert monitor.

    Designed for minimal overhead:
    - WAL mode for concurrent reads
    - One short-lived connection per operation
    - Conditional updates for race-free alert transitions
    """

    def __init__(self, db_path: Path = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file (default: config.db_path)
        """
        self.db_path = Path(db_path) if db_path else config.db_path
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create database directory: {e}") from e

        self._init_schema()
        logger.info(f"Database initialized: {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            # Enable WAL mode for better concurrent access
            conn.execute("PRAGMA journal_mode=WAL")

            # Alerts: target_value kept as TEXT to preserve Decimal precision
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    alert_type TEXT NOT NULL DEFAULT 'price',
                    symbol TEXT NOT NULL,
                    condition TEXT NOT NULL,
                    target_value TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    is_triggered INTEGER NOT NULL DEFAULT 0,
                    triggered_at TEXT,
                    message TEXT,
                    repeat INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_alerts_active_symbol
                ON alerts(is_active, is_triggered, symbol)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_alerts_triggered_at
                ON alerts(triggered_at)
            """)

            # Market data cache
            conn.execute("""
                CREATE TABLE IF NOT EXISTS market_cache (
                    cache_key TEXT PRIMARY KEY,
                    data_type TEXT NOT NULL,
                    data TEXT NOT NULL,
                    ttl INTEGER NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_market_cache_expires
                ON market_cache(expires_at)
            """)

            # Service logs (persists logs to database)
            conn.execute(SERVICE_LOGS_SCHEMA)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_service_logs_time
                ON service_logs(timestamp)
            """)

    # =========================================================================
    # Alert Operations
    # =========================================================================

    def create_alert(
        self,
        symbol: str,
        condition: str,
        target_value,
        user_id: Optional[str] = None,
        repeat: bool = False,
        alert_type: str = PRICE_ALERT_TYPE,
        created_at: Optional[datetime] = None,
    ) -> Alert:
        """
        Insert a new armed alert.

        Args:
            symbol: Ticker as typed by the owner (stored upper-cased)
            condition: One of AlertCondition values
            target_value: Threshold price (anything Decimal() accepts)
            user_id: Owner chat id, None for a system alert
            repeat: Keep the alert active after it fires
            alert_type: Alert family (only "price" is evaluated)
            created_at: Creation time (default: now)

        Returns:
            The stored Alert with its id

        Raises:
            ValueError: unknown condition or non-numeric target
        """
        condition = AlertCondition(condition).value
        target = Decimal(str(target_value))
        if not target.is_finite():
            raise ValueError(f"Invalid target value: {target_value}")

        alert = Alert(
            symbol=symbol.strip().upper(),
            condition=condition,
            target_value=target,
            user_id=str(user_id) if user_id is not None else None,
            alert_type=alert_type,
            repeat=repeat,
            created_at=created_at or _utcnow(),
        )

        with self._get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO alerts (
                    user_id, alert_type, symbol, condition, target_value,
                    is_active, is_triggered, repeat, created_at
                ) VALUES (?, ?, ?, ?, ?, 1, 0, ?, ?)
            """, (
                alert.user_id, alert.alert_type, alert.symbol, alert.condition,
                str(alert.target_value), int(alert.repeat), _ts(alert.created_at),
            ))
            alert.id = cursor.lastrowid

        return alert

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM alerts WHERE id = ?", (alert_id,)
            ).fetchone()
            return Alert.from_row(row) if row else None

    def list_distinct_active_alert_symbols(self, alert_type: str = PRICE_ALERT_TYPE) -> List[str]:
        """
        Symbols referenced by alerts that can still fire.

        Returns:
            Sorted list of distinct symbols
        """
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT DISTINCT symbol FROM alerts
                WHERE is_active = 1 AND is_triggered = 0 AND alert_type = ?
                ORDER BY symbol
            """, (alert_type,))
            return [row['symbol'] for row in cursor.fetchall()]

    def list_active_alerts_for_symbol(
        self,
        symbol: str,
        alert_type: str = PRICE_ALERT_TYPE,
    ) -> List[Alert]:
        """Load every active alert on a symbol, oldest first."""
        with self._get_connection() as conn:
            cursor = conn.execute("""
                SELECT * FROM alerts
                WHERE symbol = ? AND is_active = 1 AND alert_type = ?
                ORDER BY id
            """, (symbol, alert_type))
            return [Alert.from_row(row) for row in cursor.fetchall()]

    def mark_alert_triggered(
        self,
        alert_id: int,
        message: str,
        deactivate: bool,
        triggered_at: Optional[datetime] = None,
    ) -> bool:
        """
        Atomically move an armed alert into the triggered state.

        The UPDATE only matches rows that are still active and untriggered,
        so two overlapping passes cannot both fire the same alert.

        Args:
            alert_id: Alert to transition
            message: Rendered notification text
            deactivate: Also set is_active = 0 (one-shot alerts)
            triggered_at: Trigger time (default: now)

        Returns:
            True if this call performed the transition
        """
        triggered_at = triggered_at or _utcnow()
        with self._get_connection() as conn:
            cursor = conn.execute("""
                UPDATE alerts
                SET is_triggered = 1,
                    triggered_at = ?,
                    message = ?,
                    is_active = CASE WHEN ? THEN 0 ELSE is_active END
                WHERE id = ? AND is_active = 1 AND is_triggered = 0
            """, (_ts(triggered_at), message, int(deactivate), alert_id))
            return cursor.rowcount == 1

    def reset_alert(self, alert_id: int) -> bool:
        """
        Re-arm an alert so it can fire again.

        Returns:
            True if the alert exists
        """
        with self._get_connection() as conn:
            cursor = conn.execute("""
                UPDATE alerts
                SET is_triggered = 0, triggered_at = NULL, message = NULL, is_active = 1
                WHERE id = ?
            """, (alert_id,))
            return cursor.rowcount == 1

    def deactivate_alert(self, alert_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE alerts SET is_active = 0 WHERE id = ?", (alert_id,)
            )
            return cursor.rowcount == 1

    def delete_alert(self, alert_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))
            return cursor.rowcount == 1

    def delete_stale_triggered_alerts(
        self,
        older_than: timedelta = timedelta(days=ALERT_RETENTION_DAYS),
        now: Optional[datetime] = None,
    ) -> int:
        """
        Remove fired one-shot alerts past the retention window.

        Args:
            older_than: Retention window measured from triggered_at
            now: Reference time (default: now)

        Returns:
            Number of rows deleted
        """
        cutoff = _ts((now or _utcnow()) - older_than)
        with self._get_connection() as conn:
            cursor = conn.execute("""
                DELETE FROM alerts
                WHERE is_triggered = 1 AND repeat = 0
                  AND triggered_at IS NOT NULL AND triggered_at < ?
            """, (cutoff,))
            return cursor.rowcount

    def get_alert_stats(self, now: Optional[datetime] = None) -> dict:
        """
        Summary counts for operators.

        Returns:
            Dict with total_active, triggered_today and by_symbol
            (active alert count per symbol)
        """
        now = now or _utcnow()
        day_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

        with self._get_connection() as conn:
            total_active = conn.execute(
                "SELECT COUNT(*) AS count FROM alerts WHERE is_active = 1"
            ).fetchone()['count']

            triggered_today = conn.execute("""
                SELECT COUNT(*) AS count FROM alerts
                WHERE is_triggered = 1 AND triggered_at >= ?
            """, (_ts(day_start),)).fetchone()['count']

            cursor = conn.execute("""
                SELECT symbol, COUNT(*) AS count FROM alerts
                WHERE is_active = 1
                GROUP BY symbol
                ORDER BY count DESC, symbol
            """)
            by_symbol: Dict[str, int] = {row['symbol']: row['count'] for row in cursor.fetchall()}

        return {
            'total_active': total_active,
            'triggered_today': triggered_today,
            'by_symbol': by_symbol,
        }

    # =========================================================================
    # Market Cache Operations
    # =========================================================================

    def get_cache_entry(self, cache_key: str, now: Optional[datetime] = None) -> Optional[CacheEntry]:
        """
        Get the live entry for a key.

        Returns:
            CacheEntry, or None if missing or expired
        """
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT * FROM market_cache
                WHERE cache_key = ? AND expires_at > ?
            """, (cache_key, _ts(now or _utcnow()))).fetchone()
            return CacheEntry.from_row(row) if row else None

    def upsert_cache_entry(self, entry: CacheEntry):
        """Insert or fully replace the entry for entry.cache_key."""
        row = entry.to_row()
        row['expires_at'] = _ts(entry.expires_at)
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO market_cache (cache_key, data_type, data, ttl, expires_at)
                VALUES (:cache_key, :data_type, :data, :ttl, :expires_at)
            """, row)

    def delete_cache_entry(self, cache_key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM market_cache WHERE cache_key = ?", (cache_key,)
            )
            return cursor.rowcount > 0

    def delete_expired_cache_entries(self, now: Optional[datetime] = None) -> int:
        """
        Remove every entry whose expires_at has passed.

        Returns:
            Number of rows deleted
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM market_cache WHERE expires_at <= ?", (_ts(now or _utcnow()),)
            )
            return cursor.rowcount

    # =========================================================================
    # Service Log Operations
    # =========================================================================

    def write_logs_batch(self, logs: List[dict]):
        """
        Write multiple log entries efficiently.

        Args:
            logs: List of dicts with timestamp, level, logger_name, message, exc_info
        """
        with self._get_connection() as conn:
            conn.executemany("""
                INSERT INTO service_logs (timestamp, level, logger_name, message, exc_info)
                VALUES (?, ?, ?, ?, ?)
            """, [
                (log['timestamp'], log['level'], log['logger_name'],
                 log['message'], log.get('exc_info'))
                for log in logs
            ])

    def get_logs(self, hours: int = 24, level: Optional[str] = None, limit: int = 1000) -> List[dict]:
        """Recent logs, newest first, optionally filtered by level."""
        cutoff = _ts(_utcnow() - timedelta(hours=hours))
        query = "SELECT * FROM service_logs WHERE timestamp > ?"
        params: list = [cutoff]
        if level:
            query += " AND level = ?"
            params.append(level)
        query += " ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

    def prune_logs(self, days: int = SERVICE_LOG_RETENTION_DAYS, now: Optional[datetime] = None) -> int:
        """
        Remove old log entries.

        Args:
            days: Days of logs to keep

        Returns:
            Number of rows deleted
        """
        cutoff = _ts((now or _utcnow()) - timedelta(days=days))
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM service_logs WHERE timestamp < ?", (cutoff,)
            )
            return cursor.rowcount

    # =========================================================================
    # Maintenance Operations
    # =========================================================================

    def vacuum(self):
        """Reclaim disk space after deletions."""
        with self._get_connection() as conn:
            conn.execute("VACUUM")
        logger.info("Database vacuumed")

    def ping(self):
        """Cheap round trip used at startup to fail fast on an unusable store."""
        with self._get_connection() as conn:
            conn.execute("SELECT 1").fetchone()


# =============================================================================
# SQLite Logging Handler
# =============================================================================


class SQLiteLoggingHandler(logging.Handler):
    """
    A logging handler that writes log records to the service_logs table.

    Uses a background thread to batch writes and avoid blocking the
    monitor loop.
    """

    def __init__(
        self,
        db_path: Path = None,
        batch_size: int = 50,
        flush_interval: float = 5.0,
        level: int = logging.INFO
    ):
        """
        Initialize the SQLite logging handler.

        Args:
            db_path: Path to SQLite database file (created on first write if missing)
            batch_size: Number of logs to batch before writing
            flush_interval: Max seconds between flushes
            level: Minimum log level to capture
        """
        super().__init__(level)
        self.db_path = Path(db_path) if db_path else config.db_path
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self._table_ready = False
        self._queue: Queue = Queue()
        self._shutdown = threading.Event()

        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            daemon=True,
            name="SQLiteLogWriter"
        )
        self._writer_thread.start()

    def emit(self, record: logging.LogRecord):
        try:
            exc_info = None
            if record.exc_info:
                exc_info = ''.join(traceback.format_exception(*record.exc_info))

            self._queue.put({
                'timestamp': _ts(datetime.fromtimestamp(record.created, tz=timezone.utc)),
                'level': record.levelname,
                'logger_name': record.name,
                'message': self.format(record),
                'exc_info': exc_info,
            })
        except Exception:
            # Don't let logging errors crash the app
            self.handleError(record)

    def _writer_loop(self):
        """Background loop that batches and writes logs to SQLite."""
        batch = []

        while not self._shutdown.is_set():
            while len(batch) < self.batch_size:
                try:
                    batch.append(self._queue.get(timeout=self.flush_interval))
                except Empty:
                    break
                if self._shutdown.is_set():
                    break

            if batch:
                self._write_batch(batch)
                batch = []

        # Drain remaining queue on shutdown
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break

        if batch:
            self._write_batch(batch)

    def _write_batch(self, batch: List[dict]):
        """Write a batch of logs; failures go to stderr, never back into logging."""
        try:
            if not self._table_ready:
                # Logging may start before MonitorDatabase has built the file
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), timeout=30)
            try:
                if not self._table_ready:
                    conn.execute(SERVICE_LOGS_SCHEMA)
                    self._table_ready = True
                conn.executemany("""
                    INSERT INTO service_logs (timestamp, level, logger_name, message, exc_info)
                    VALUES (?, ?, ?, ?, ?)
                """, [
                    (log['timestamp'], log['level'], log['logger_name'],
                     log['message'], log.get('exc_info'))
                    for log in batch
                ])
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, OSError):
            traceback.print_exc(file=sys.stderr)

    def close(self):
        """Stop the writer thread and flush remaining logs."""
        self._shutdown.set()
        if self._writer_thread.is_alive():
            self._writer_thread.join(timeout=10)
        super().close()
