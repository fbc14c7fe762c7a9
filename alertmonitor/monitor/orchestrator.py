"""
Alert Monitor Orchestrator
==========================

Main monitoring loop for price alerts across crypto, forex and stocks.

One pass:
1. Load the distinct symbols of alerts that can still fire
2. Fetch each symbol's price (bounded worker pool, cached per TTL)
3. Skip symbols no source could price; they are retried next pass
4. Evaluate every active alert on each priced symbol, one symbol at a time
5. Persist each trigger with a conditional update, then notify

A failed notification never re-arms an alert: an alert fires at most once
per arming even if its message is lost.
"""

import logging
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from ..alerts.telegram import TelegramNotifier
from ..config import config
from ..exceptions import DispatchError, PersistenceError, SymbolUnavailable
from ..models import Alert, NormalizedPrice
from .database import MonitorDatabase
from .evaluator import AlertEvaluator
from .prices import PriceRouter

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    """Outcome of one monitor pass."""
    symbols_checked: int = 0
    unavailable: List[str] = field(default_factory=list)
    triggered: List[int] = field(default_factory=list)
    dispatch_failures: List[int] = field(default_factory=list)
    skipped: bool = False
    aborted: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.aborted


@dataclass
class CleanupResult:
    """Counts removed by one cleanup run."""
    alerts_deleted: int = 0
    cache_entries_cleared: int = 0
    logs_pruned: int = 0
    errors: List[str] = field(default_factory=list)


class AlertMonitor:
    """
    Polling alert monitor.

    Supports a single pass (run_pass / run(once=True)) and continuous mode
    (run) with graceful shutdown via stop() or SIGINT/SIGTERM.
    """

    def __init__(
        self,
        db: MonitorDatabase,
        router: PriceRouter,
        notifier: TelegramNotifier,
        evaluator: AlertEvaluator = None,
        poll_interval: int = None,
        max_workers: int = None,
        alert_retention_days: int = None,
        log_retention_days: int = None,
        cleanup_interval: int = None,
        failure_log_cooldown: int = None,
        clock: Callable[[], datetime] = None,
    ):
        """
        Initialize the monitor.

        Args:
            db: Alert and cache persistence
            router: Price lookup with per-market fallback chains
            notifier: Notification dispatcher
            evaluator: Alert evaluator (default: one sharing this clock)
            poll_interval: Seconds between passes in continuous mode
            max_workers: Concurrent price fetches per pass
            alert_retention_days: Age at which fired one-shot alerts are deleted
            log_retention_days: Age at which service logs are pruned
            cleanup_interval: Seconds between cleanups in continuous mode
            failure_log_cooldown: Seconds a permanent fetch failure stays quiet
            clock: Returns the current UTC time (injectable for tests)
        """
        self.db = db
        self.router = router
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.evaluator = evaluator or AlertEvaluator(clock=self.clock)

        self.poll_interval = poll_interval or config.poll_interval_sec
        self.max_workers = max_workers or config.max_concurrent_fetches
        self.cleanup_interval = cleanup_interval or config.cleanup_interval_sec

        # Zero is a valid retention or cooldown
        self.alert_retention_days = (
            alert_retention_days if alert_retention_days is not None else config.alert_retention_days
        )
        self.log_retention_days = (
            log_retention_days if log_retention_days is not None else config.log_retention_days
        )
        self.failure_log_cooldown = (
            failure_log_cooldown if failure_log_cooldown is not None
            else config.failure_log_cooldown_sec
        )

        # Passes never overlap within one instance
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._next_cleanup: float = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def install_signal_handlers(self):
        """Route SIGINT/SIGTERM to stop(). Call from the main thread."""
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

    def _handle_shutdown(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received, stopping monitor...")
        self.stop()

    def stop(self):
        """Stop after the current pass; interrupts the inter-pass wait. Stopping is final."""
        self._stop_event.set()

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    def run(self, interval: int = None, once: bool = False) -> Optional[PassResult]:
        """
        Run the monitor.

        Args:
            interval: Seconds between pass starts (default: poll_interval)
            once: Run a single pass and return

        Returns:
            Result of the last completed pass
        """
        interval = interval or self.poll_interval

        if once:
            return self.run_pass()

        logger.info("=" * 60)
        logger.info("ALERT MONITOR STARTING")
        logger.info("=" * 60)
        logger.info(f"Poll interval: {interval}s | Cleanup every {self.cleanup_interval}s")

        last_result = None
        self._next_cleanup = time.monotonic()

        while not self._stop_event.is_set():
            started = time.monotonic()

            try:
                last_result = self.run_pass()
            except Exception:
                # Keep the loop alive; the next pass starts from persisted state
                logger.exception("Unexpected error during monitor pass")

            if time.monotonic() >= self._next_cleanup and not self._stop_event.is_set():
                self.cleanup()
                self._next_cleanup = time.monotonic() + self.cleanup_interval

            elapsed = time.monotonic() - started
            self._stop_event.wait(max(0.0, interval - elapsed))

        logger.info("ALERT MONITOR STOPPED")
        return last_result

    # -------------------------------------------------------------------------
    # Monitor pass
    # -------------------------------------------------------------------------

    def run_pass(self) -> PassResult:
        """
        Run one full pass over every alerted symbol.

        Returns:
            PassResult (skipped=True if another pass was already running)
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.warning("Previous pass still running, skipping this one")
            return PassResult(skipped=True)

        try:
            return self._run_pass()
        finally:
            self._pass_lock.release()

    def _run_pass(self) -> PassResult:
        result = PassResult()
        started = time.monotonic()

        try:
            symbols = self.db.list_distinct_active_alert_symbols()
            result.symbols_checked = len(symbols)
            if not symbols:
                logger.info("No active alerts to check")
                return result

            logger.info(f"Checking {len(symbols)} symbols")
            prices = self._fetch_prices(symbols, result)

            for symbol in symbols:
                price = prices.get(symbol)
                if price is not None:
                    self._process_symbol(symbol, price, result)

        except PersistenceError as e:
            logger.error(f"Pass aborted, persistence failure: {e}")
            result.aborted = True
            result.error = str(e)
            return result

        logger.info(
            f"Pass complete in {time.monotonic() - started:.1f}s: "
            f"{result.symbols_checked} symbols, {len(result.unavailable)} unavailable, "
            f"{len(result.triggered)} triggered"
        )
        return result

    def _fetch_prices(self, symbols: List[str], result: PassResult) -> Dict[str, NormalizedPrice]:
        """Fetch prices concurrently; unavailable symbols are recorded and left out."""
        prices: Dict[str, NormalizedPrice] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="price") as pool:
            futures = {symbol: pool.submit(self.router.get_price, symbol) for symbol in symbols}

            for symbol, future in futures.items():
                try:
                    prices[symbol] = future.result()
                except SymbolUnavailable as e:
                    self._record_unavailable(symbol, e, result)
                except PersistenceError:
                    raise
                except Exception as e:
                    logger.warning(f"{symbol}: unexpected error fetching price: {type(e).__name__}: {e}")
                    result.unavailable.append(symbol)

        return prices

    def _record_unavailable(self, symbol: str, error: SymbolUnavailable, result: PassResult):
        result.unavailable.append(symbol)

        if error.transient:
            logger.warning(f"{symbol} unavailable this pass: {error}")
            return

        # Permanent failures repeat every pass; log them once per cooldown window
        if self.router.cache.claim_cooldown(f"fetch_failed:{symbol}", self.failure_log_cooldown):
            logger.warning(f"{symbol} unavailable: {error}")
        else:
            logger.debug(f"{symbol} still unavailable: {error}")

    def _process_symbol(self, symbol: str, price: NormalizedPrice, result: PassResult):
        """Evaluate and dispatch every active alert on one symbol."""
        alerts = self.db.list_active_alerts_for_symbol(symbol)

        for alert in alerts:
            decision = self.evaluator.evaluate(alert, price.price, price.market_type)
            if not decision.triggered:
                continue

            if not self.db.mark_alert_triggered(
                alert.id, decision.message, decision.deactivate, decision.triggered_at
            ):
                logger.info(f"Alert {alert.id} no longer armed, not notifying")
                continue

            result.triggered.append(alert.id)
            logger.info(
                f"Alert {alert.id} triggered: {alert.symbol} {alert.condition} "
                f"{alert.target_value} (price {price.price} from {price.source})"
            )
            self._dispatch(alert, decision.message, result)

    def _dispatch(self, alert: Alert, message: str, result: PassResult):
        destination = alert.user_id or self.notifier.default_destination
        if not destination:
            logger.warning(f"Alert {alert.id} has no destination, notification skipped")
            result.dispatch_failures.append(alert.id)
            return

        try:
            self.notifier.send(destination, message)
        except DispatchError as e:
            logger.warning(f"Alert {alert.id} notification failed: {e}")
            result.dispatch_failures.append(alert.id)

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def cleanup(self, retention_days: int = None) -> CleanupResult:
        """
        Remove stale data. Each step runs independently.

        Args:
            retention_days: Age of fired one-shot alerts to delete
                (default: alert_retention_days)

        Returns:
            CleanupResult
        """
        retention_days = retention_days if retention_days is not None else self.alert_retention_days
        result = CleanupResult()
        now = self.clock()

        try:
            result.alerts_deleted = self.db.delete_stale_triggered_alerts(
                timedelta(days=retention_days), now
            )
        except PersistenceError as e:
            logger.error(f"Alert cleanup failed: {e}")
            result.errors.append(str(e))

        try:
            result.cache_entries_cleared = self.router.cache.clear_expired()
        except PersistenceError as e:
            logger.error(f"Cache cleanup failed: {e}")
            result.errors.append(str(e))

        try:
            result.logs_pruned = self.db.prune_logs(self.log_retention_days, now)
        except PersistenceError as e:
            logger.error(f"Log pruning failed: {e}")
            result.errors.append(str(e))

        logger.info(
            f"Cleanup: {result.alerts_deleted} old alerts, "
            f"{result.cache_entries_cleared} cache entries, {result.logs_pruned} log rows"
        )
        return result
