"""
Logging Setup
=============

Root logger configuration shared by the CLI entry points:
- date-stamped file log (logs/monitor_YYYY-MM-DD.log)
- console output
- SQLite service_logs table (optional)
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..config import config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Handlers owned by setup_logging, closed when it runs again
_installed_handlers: List[logging.Handler] = []


def dated_log_path(log_file: str, when: Optional[datetime] = None) -> Path:
    """logs/monitor.log -> logs/monitor_2026-01-18.log"""
    log_path = Path(log_file)
    date_str = (when or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return log_path.parent / f"{log_path.stem}_{date_str}{log_path.suffix}"


def setup_logging(
    log_level: str = None,
    log_file: str = None,
    db_path: Optional[Path] = None,
) -> Path:
    """
    Configure logging for the monitor.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR (default: config.log_level)
        log_file: Base log file path (default: config.log_file)
        db_path: Also persist records to this database's service_logs table

    Returns:
        Path of the dated log file
    """
    # Imported here so utils stays importable without the monitor package
    from ..monitor.database import SQLiteLoggingHandler

    level = getattr(logging, (log_level or config.log_level).upper())
    dated_log_file = dated_log_path(log_file or config.log_file)
    dated_log_file.parent.mkdir(parents=True, exist_ok=True)

    # Start from a clean root logger; handlers from an earlier call are closed
    root_logger = logging.getLogger()
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(dated_log_file)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
    _installed_handlers.append(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    if db_path is not None:
        sqlite_handler = SQLiteLoggingHandler(db_path=db_path, level=level)
        sqlite_handler.setFormatter(formatter)
        root_logger.addHandler(sqlite_handler)
        _installed_handlers.append(sqlite_handler)

    # Reduce noise from requests library
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    root_logger.info(f"Logging to: {dated_log_file}")
    return dated_log_file
