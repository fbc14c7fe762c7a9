"""
Price Source Adapter Base

Shared HTTP plumbing for every upstream market data provider:
- bounded request timeout
- bounded retry for transient failures only (timeouts, 5xx, rate limits)
- per-provider concurrency cap
- strict numeric parsing (a missing or zero price is an error, never a quote)
"""

import logging
import math
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests

from ..config import config
from ..exceptions import FetchFailed, PermanentFetchError, TransientFetchError
from ..models import MarketType, NormalizedPrice

logger = logging.getLogger(__name__)

# 418 is Binance's "banned for ignoring 429s"; both mean slow down
RATE_LIMIT_STATUSES = {418, 429}


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse an upstream numeric field.

    Returns:
        Decimal, or None if the value is absent, boolean, non-numeric or not finite
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%")
        if not value:
            return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


class PriceSourceAdapter:
    """
    Base class for upstream price sources.

    Subclasses implement get_current_price() on top of _get_json(), which
    turns every failure mode into a typed FetchFailed.
    """

    name = "base"
    default_market_type = MarketType.CRYPTO

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        retry_backoff: float = None,
        rate_limit_backoff: float = None,
        max_concurrent: int = None,
        session: requests.Session = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout if timeout is not None else config.request_timeout_sec
        self.max_retries = max_retries if max_retries is not None else config.max_retries
        self.retry_backoff = retry_backoff if retry_backoff is not None else config.retry_backoff_sec
        self.rate_limit_backoff = (
            rate_limit_backoff if rate_limit_backoff is not None else config.rate_limit_backoff_sec
        )
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": config.user_agent})
        self._semaphore = threading.BoundedSemaphore(
            max_concurrent or config.max_concurrent_per_provider
        )

    def is_configured(self) -> bool:
        """Whether this source has the credentials it needs."""
        return True

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        """
        Get the current price and 24h change for a symbol.

        Args:
            symbol: Normalized symbol
            market_type: Market the symbol belongs to (default: the adapter's own)

        Returns:
            NormalizedPrice

        Raises:
            FetchFailed: the source could not produce a usable quote
        """
        raise NotImplementedError

    def close(self):
        """Close the HTTP session."""
        self.session.close()

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    def _get_json(
        self,
        url: str,
        symbol: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        GET a JSON document with retry logic.

        Args:
            url: Full request URL
            symbol: Symbol being fetched (for error context)
            params: Query parameters (may contain API keys - never logged)
            headers: Extra request headers

        Returns:
            Decoded JSON body

        Raises:
            TransientFetchError: retries exhausted on timeouts, 5xx or rate limits
            PermanentFetchError: 4xx or a body that is not JSON
        """
        error: Optional[FetchFailed] = None

        for attempt in range(self.max_retries + 1):
            backoff = self.retry_backoff * (attempt + 1)
            try:
                with self._semaphore:
                    response = self.session.get(
                        url, params=params, headers=headers, timeout=self.timeout
                    )
            except requests.exceptions.Timeout:
                error = TransientFetchError("request timed out", self.name, symbol)
            except requests.exceptions.ConnectionError:
                error = TransientFetchError("connection error", self.name, symbol)
            except requests.exceptions.RequestException as e:
                # Don't log exception details, the URL may carry an API key
                raise PermanentFetchError(
                    f"request failed ({type(e).__name__})", self.name, symbol
                ) from None
            else:
                status = response.status_code
                if status in RATE_LIMIT_STATUSES:
                    error = TransientFetchError("rate limited", self.name, symbol, status)
                    backoff = self.rate_limit_backoff * (2 ** attempt)
                elif status >= 500:
                    error = TransientFetchError("upstream server error", self.name, symbol, status)
                elif status >= 400:
                    raise PermanentFetchError("request rejected", self.name, symbol, status)
                else:
                    try:
                        return response.json()
                    except ValueError:
                        raise PermanentFetchError(
                            "response is not valid JSON", self.name, symbol, status
                        ) from None

            if attempt < self.max_retries:
                logger.warning(
                    f"{self.name}: {error} for {symbol} "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}), retrying in {backoff:.1f}s"
                )
                time.sleep(backoff)

        raise error

    def _require_price(self, value: Any, symbol: str, field_name: str = "price") -> Decimal:
        """Parse a price field, rejecting absent, non-numeric, zero and negative values."""
        price = parse_decimal(value)
        if price is None:
            raise PermanentFetchError(
                f"missing or non-numeric {field_name}", self.name, symbol
            )
        if price <= 0:
            raise PermanentFetchError(f"non-positive {field_name}: {price}", self.name, symbol)
        return price

    def _build_price(
        self,
        symbol: str,
        price: Decimal,
        change_24h: Optional[Decimal],
        market_type: Optional[MarketType],
        source: Optional[str] = None,
    ) -> NormalizedPrice:
        return NormalizedPrice(
            symbol=symbol,
            price=price,
            change_24h_percent=change_24h,
            market_type=market_type or self.default_market_type,
            source=source or self.name,
        )
