"""
Configuration for the Universal Alert Monitor

All settings in one place for easy tuning.
Secrets (API keys, Telegram credentials) are read from the environment,
with a project-root .env file loaded on import.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

_project_root = Path(__file__).parent.parent
_env_path = _project_root / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


@dataclass
class Config:
    """All configuration settings."""

    # -------------------------------------------------------------------------
    # Monitor Timing (seconds)
    # -------------------------------------------------------------------------
    # Time between alert passes in continuous mode
    poll_interval_sec: int = 60

    # Price cache TTL: absorbs bursts of alerts sharing a symbol within a pass,
    # short enough that the next pass sees a fresh quote
    price_cache_ttl_sec: int = 30

    # How often continuous mode runs the cleanup job
    cleanup_interval_sec: int = 3600

    # Triggered one-shot alerts older than this are deleted by cleanup
    alert_retention_days: int = 7

    # Service log rows older than this are pruned by cleanup
    log_retention_days: int = 7

    # A symbol that failed permanently is logged at WARNING once per window
    failure_log_cooldown_sec: int = 3600

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------
    request_timeout_sec: float = 10.0

    # Retries for transient errors only (timeouts, 5xx, 429)
    max_retries: int = 2
    retry_backoff_sec: float = 0.5
    rate_limit_backoff_sec: float = 2.0

    # Worker pool for per-symbol price fetches within one pass
    max_concurrent_fetches: int = 4

    # Upstream providers rate-limit aggressively - keep this low
    max_concurrent_per_provider: int = 2

    # -------------------------------------------------------------------------
    # Upstream API URLs
    # -------------------------------------------------------------------------
    binance_url: str = "https://api.binance.com"
    binance_futures_url: str = "https://fapi.binance.com"
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    dexscreener_url: str = "https://api.dexscreener.com"
    twelve_data_url: str = "https://api.twelvedata.com"
    alpha_vantage_url: str = "https://www.alphavantage.co/query"
    yahoo_chart_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    user_agent: str = "UniversalAlertMonitor/1.0"

    # Crypto assets resolvable on CoinGecko (symbol -> coin id)
    coingecko_ids: Dict[str, str] = field(default_factory=lambda: {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "BNB": "binancecoin",
        "SOL": "solana",
        "XRP": "ripple",
        "ADA": "cardano",
        "DOGE": "dogecoin",
        "DOT": "polkadot",
        "MATIC": "matic-network",
        "AVAX": "avalanche-2",
        "LINK": "chainlink",
        "UNI": "uniswap",
        "ATOM": "cosmos",
        "LTC": "litecoin",
        "BCH": "bitcoin-cash",
        "NEAR": "near",
        "APT": "aptos",
        "ARB": "arbitrum",
        "OP": "optimism",
        "TON": "the-open-network",
        "SERPO": "serpo-coin",
    })

    # -------------------------------------------------------------------------
    # Telegram
    # -------------------------------------------------------------------------
    telegram_api_url: str = "https://api.telegram.org"
    max_message_length: int = 4000  # Telegram limit is 4096
    min_message_interval_sec: float = 1.0
    max_messages_per_minute: int = 20

    # -------------------------------------------------------------------------
    # Paths & Logging
    # -------------------------------------------------------------------------
    data_dir: Path = field(default_factory=lambda: _project_root / "data")
    log_file: str = "logs/monitor.log"
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        override = os.environ.get("ALERT_MONITOR_DB_PATH")
        if override:
            return Path(override)
        return self.data_dir / "monitor.db"

    # -------------------------------------------------------------------------
    # Secrets (from environment)
    # -------------------------------------------------------------------------
    @property
    def telegram_bot_token(self) -> Optional[str]:
        return os.environ.get("TELEGRAM_BOT_TOKEN")

    @property
    def telegram_chat_id(self) -> Optional[str]:
        return os.environ.get("TELEGRAM_CHAT_ID")

    @property
    def twelve_data_api_key(self) -> Optional[str]:
        return os.environ.get("TWELVE_DATA_API_KEY")

    @property
    def alpha_vantage_api_key(self) -> Optional[str]:
        return os.environ.get("ALPHA_VANTAGE_API_KEY")

    @property
    def coingecko_api_key(self) -> Optional[str]:
        return os.environ.get("COINGECKO_API_KEY")


# Global config instance
config = Config()
