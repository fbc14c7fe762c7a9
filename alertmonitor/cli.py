"""
Universal Alert Monitor - CLI Entry Point
=========================================

Polls prices for every symbol with an armed alert and sends Telegram
notifications when conditions are met.

Usage:
    # Start continuous monitor (pass every 60s)
    alert-monitor

    # One pass, then exit
    alert-monitor --once

    # Dry run (log alerts instead of sending to Telegram)
    alert-monitor --dry-run

    # Cleanup only
    alert-monitor --cleanup --retention-days 14

    # Test Telegram configuration
    alert-monitor --test-telegram
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .alerts.telegram import AlertConfig, TelegramNotifier, send_test_alert
from .config import config
from .exceptions import PersistenceError
from .monitor import AlertMonitor, MarketDataCache, MonitorDatabase, PriceRouter
from .utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='alert-monitor',
        description='Universal Alert Monitor (crypto, forex, stocks)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  alert-monitor                         # Continuous monitor
  alert-monitor --once                  # Single pass
  alert-monitor --dry-run               # Log alerts only
  alert-monitor --cleanup               # Remove stale alerts, cache and logs
  alert-monitor --stats                 # Print alert statistics
  alert-monitor --test-telegram         # Test Telegram setup
        """
    )

    parser.add_argument(
        '--interval',
        type=int,
        default=config.poll_interval_sec,
        help=f'Seconds between passes (default: {config.poll_interval_sec})'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single pass and exit'
    )
    parser.add_argument(
        '--cleanup',
        action='store_true',
        help='Run cleanup only (stale triggered alerts, expired cache, old logs) and exit'
    )
    parser.add_argument(
        '--retention-days',
        type=int,
        default=config.alert_retention_days,
        help=f'Keep triggered one-shot alerts this many days (default: {config.alert_retention_days})'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Log alerts instead of sending to Telegram'
    )
    parser.add_argument(
        '--test-telegram',
        action='store_true',
        help='Send a test alert to verify Telegram configuration'
    )
    parser.add_argument(
        '--stats',
        action='store_true',
        help='Print alert statistics and exit'
    )
    parser.add_argument(
        '--db-path',
        type=Path,
        default=None,
        help=f'SQLite database path (default: {config.db_path})'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=config.log_level,
        help=f'Log level (default: {config.log_level})'
    )
    return parser


def print_stats(stats: dict):
    print("\n" + "=" * 60)
    print("ALERT STATISTICS")
    print("=" * 60)
    print(f"Active alerts:     {stats['total_active']}")
    print(f"Triggered today:   {stats['triggered_today']}")
    if stats['by_symbol']:
        print("By symbol:")
        for symbol, count in stats['by_symbol'].items():
            print(f"  {symbol:<12} {count}")
    print("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    db_path = args.db_path or config.db_path

    setup_logging(args.log_level, config.log_file, db_path=db_path)

    # Test Telegram mode
    if args.test_telegram:
        print("Testing Telegram configuration...")
        try:
            success = send_test_alert(dry_run=args.dry_run)
        except ValueError as e:
            print(f"Telegram not configured: {e}")
            return 1
        if success:
            print("Test alert sent successfully!")
            return 0
        print("Failed to send test alert. Check your TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID.")
        return 1

    try:
        db = MonitorDatabase(db_path)
        db.ping()
    except PersistenceError as e:
        logger.error(f"Cannot open database: {e}")
        return 1

    if args.stats:
        try:
            print_stats(db.get_alert_stats())
        except PersistenceError as e:
            logger.error(f"Cannot read alert statistics: {e}")
            return 1
        return 0

    if args.cleanup:
        # Cleanup never sends anything
        monitor = AlertMonitor(db, PriceRouter(MarketDataCache(db), chains={}), notifier=None)
        result = monitor.cleanup(args.retention_days)
        if result.errors:
            return 1
        try:
            db.vacuum()
        except PersistenceError as e:
            logger.error(f"Vacuum failed: {e}")
            return 1
        return 0

    try:
        notifier = TelegramNotifier(AlertConfig.from_env(dry_run=args.dry_run))
    except ValueError as e:
        print(f"\nWARNING: {e}")
        print("Set environment variable or use --dry-run for console output.")
        return 1

    if not args.dry_run and not notifier.default_destination:
        logger.warning("TELEGRAM_CHAT_ID not set: system alerts will not be delivered")

    router = PriceRouter(MarketDataCache(db))
    monitor = AlertMonitor(db, router, notifier, alert_retention_days=args.retention_days)

    try:
        try:
            print_stats(db.get_alert_stats())
        except PersistenceError as e:
            logger.warning(f"Could not load alert statistics: {e}")

        if args.once:
            result = monitor.run(once=True)
            return 0 if result.ok else 1

        print(f"\nPoll interval: {args.interval}s | Dry run: {args.dry_run}")
        print("Press Ctrl+C to stop\n")

        monitor.install_signal_handlers()
        monitor.run(interval=args.interval)
        return 0

    except Exception as e:
        logger.exception(f"Monitor error: {e}")
        return 1
    finally:
        router.close()


if __name__ == "__main__":
    sys.exit(main())
