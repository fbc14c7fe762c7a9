"""
Telegram Alerts
===============

Telegram notification dispatch for the alert monitor.

send() delivers one HTML message to a chat and raises DispatchError on any
failure, so the caller decides what a lost notification means.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import requests

from ..config import config as app_config
from ..exceptions import DispatchError

logger = logging.getLogger(__name__)


@dataclass
class AlertConfig:
    """Configuration for alert sending."""
    bot_token: str
    chat_id: str
    dry_run: bool = False
    max_message_length: int = field(default_factory=lambda: app_config.max_message_length)
    min_message_interval: float = field(default_factory=lambda: app_config.min_message_interval_sec)
    max_messages_per_minute: int = field(default_factory=lambda: app_config.max_messages_per_minute)
    timeout: float = field(default_factory=lambda: app_config.request_timeout_sec)
    api_url: str = field(default_factory=lambda: app_config.telegram_api_url)

    @classmethod
    def from_env(cls, dry_run: bool = False) -> "AlertConfig":
        return cls(
            bot_token=app_config.telegram_bot_token or "",
            chat_id=app_config.telegram_chat_id or "",
            dry_run=dry_run,
        )


class TelegramNotifier:
    """
    Telegram Bot API sender.

    Includes rate limiting to prevent Telegram API abuse:
    - minimum interval between any two messages
    - cap on messages per rolling minute
    """

    def __init__(self, config: AlertConfig, session: requests.Session = None):
        """
        Initialize the notifier.

        Args:
            config: AlertConfig with bot token, default chat ID and limits
            session: HTTP session (injectable for tests)
        """
        self.config = config
        self.session = session or requests.Session()
        self._validate()

        # Rate limiting state
        self._lock = threading.Lock()
        self._last_message_time: float = 0
        self._sent_this_minute: List[float] = []

    def _validate(self):
        """Validate configuration."""
        if not self.config.dry_run and not self.config.bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required (or use --dry-run)")

    @property
    def default_destination(self) -> Optional[str]:
        """System channel for alerts that have no owner."""
        return self.config.chat_id or None

    def _wait_for_minute_window(self):
        """Block until the per-minute cap has room for one more message."""
        now = time.monotonic()
        self._sent_this_minute = [t for t in self._sent_this_minute if now - t < 60]
        if len(self._sent_this_minute) < self.config.max_messages_per_minute:
            return

        wait = 60 - (now - self._sent_this_minute[0])
        logger.warning(
            f"Rate limited: {len(self._sent_this_minute)} messages in last minute, "
            f"waiting {wait:.1f}s"
        )
        time.sleep(wait)
        # The oldest send has now left the window
        self._sent_this_minute.pop(0)

    def _enforce_message_interval(self):
        elapsed = time.monotonic() - self._last_message_time
        if elapsed < self.config.min_message_interval:
            time.sleep(self.config.min_message_interval - elapsed)

    def _truncate_message(self, text: str) -> str:
        """Truncate message to Telegram's character limit."""
        if len(text) > self.config.max_message_length:
            return text[:self.config.max_message_length - 20] + "\n... (truncated)"
        return text

    def send(self, destination: str, message: str) -> Optional[int]:
        """
        Send a message via the Telegram Bot API.

        Args:
            destination: Chat id
            message: HTML formatted text

        Returns:
            Telegram message_id (None in dry-run mode)

        Raises:
            DispatchError: the API call failed (local rate limits wait instead)
        """
        if not destination:
            raise DispatchError("No destination chat id")

        text = self._truncate_message(message)

        if self.config.dry_run:
            logger.info(f"[DRY RUN] Would send Telegram message to {destination}:\n{text}")
            return None

        with self._lock:
            self._wait_for_minute_window()
            self._enforce_message_interval()

            url = f"{self.config.api_url}/bot{self.config.bot_token}/sendMessage"
            payload = {
                "chat_id": destination,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            }

            try:
                response = self.session.post(url, json=payload, timeout=self.config.timeout)
                response.raise_for_status()
            except requests.exceptions.Timeout:
                raise DispatchError("Telegram request timed out") from None
            except requests.exceptions.HTTPError as e:
                # Status code only, the URL contains the bot token
                status_code = e.response.status_code if e.response is not None else "unknown"
                if status_code == 429:
                    logger.warning("Telegram rate limit hit (429)")
                raise DispatchError(f"Telegram HTTP error: {status_code}") from None
            except requests.exceptions.ConnectionError:
                raise DispatchError("Telegram connection error") from None
            except requests.exceptions.RequestException:
                raise DispatchError("Telegram request failed") from None

            now = time.monotonic()
            self._last_message_time = now
            self._sent_this_minute.append(now)

        try:
            message_id = response.json().get("result", {}).get("message_id")
        except ValueError:
            message_id = None

        logger.info(f"Telegram message sent to {destination} (message_id: {message_id})")
        return message_id

    def send_service_status(self, status: str, details: str = "") -> bool:
        """
        Send a service status line to the default channel.

        Returns:
            True if sent (or logged in dry-run mode)
        """
        now = datetime.now(timezone.utc)
        lines = [f"<b>ALERT MONITOR {status.upper()}</b>"]
        if details:
            lines.extend(["", details])
        lines.extend(["", f"Time: {now.strftime('%Y-%m-%d %H:%M:%S')} UTC"])

        try:
            self.send(self.default_destination, "\n".join(lines))
        except DispatchError as e:
            logger.error(f"Status message failed: {e}")
            return False
        return True


def send_test_alert(
    bot_token: str = None,
    chat_id: str = None,
    dry_run: bool = False
) -> bool:
    """
    Send a test alert to verify Telegram configuration.

    Args:
        bot_token: Telegram bot token (default: from env)
        chat_id: Telegram chat ID (default: from env)
        dry_run: If True, log message instead of sending

    Returns:
        True if successful
    """
    alert_config = AlertConfig.from_env(dry_run=dry_run)
    if bot_token is not None:
        alert_config.bot_token = bot_token
    if chat_id is not None:
        alert_config.chat_id = chat_id

    notifier = TelegramNotifier(alert_config)
    return notifier.send_service_status(
        "test",
        "Test alert - alert monitor configuration verified."
    )
