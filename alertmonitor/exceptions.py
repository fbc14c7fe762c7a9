"""
Exceptions
==========

Error taxonomy for the alert monitor.

- FetchFailed: an upstream price source could not produce a usable quote
  - TransientFetchError: timeout, 5xx, rate limit (retried inside the adapter)
  - PermanentFetchError: 4xx, unknown symbol, malformed payload (never retried)
- SymbolUnavailable: every source for a symbol failed this pass
- PersistenceError: the SQLite store could not be read or written
- DispatchError: the notification channel rejected or never received a message
"""

from typing import List, Optional


class AlertMonitorError(Exception):
    """Base class for all alert monitor errors."""


class FetchFailed(AlertMonitorError):
    """An upstream source failed to return a usable quote."""

    transient = False

    def __init__(
        self,
        message: str,
        source: str = "",
        symbol: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.source = source
        self.symbol = symbol
        self.status_code = status_code

    def __str__(self) -> str:
        prefix = f"[{self.source}] " if self.source else ""
        status = f" (HTTP {self.status_code})" if self.status_code else ""
        return f"{prefix}{self.args[0]}{status}"


class TransientFetchError(FetchFailed):
    """Network timeout, 5xx or rate-limit response. Safe to retry later."""

    transient = True


class PermanentFetchError(FetchFailed):
    """Client error, unknown symbol or unusable payload. Retrying won't help."""


class SymbolUnavailable(AlertMonitorError):
    """No source could price a symbol during this pass."""

    def __init__(self, symbol: str, errors: List[FetchFailed]):
        self.symbol = symbol
        self.errors = list(errors)
        detail = "; ".join(str(e) for e in self.errors) or "no configured source"
        super().__init__(f"{symbol} unavailable: {detail}")

    @property
    def transient(self) -> bool:
        """True if at least one source failed for a reason that may clear up."""
        return any(e.transient for e in self.errors)


class PersistenceError(AlertMonitorError):
    """Failure reading or writing alert/cache records."""


class DispatchError(AlertMonitorError):
    """Notification could not be delivered."""
