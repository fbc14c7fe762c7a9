"""
Market Models
=============

Value objects produced by price source adapters.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


class MarketType(Enum):
    """Asset class that decides which adapter family prices a symbol."""
    CRYPTO = "crypto"
    FOREX = "forex"
    STOCK = "stock"


def _decimal_or_none(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


@dataclass(frozen=True)
class NormalizedPrice:
    """
    A current quote in the shape every adapter agrees on.

    Never persisted verbatim; the dict form is what the market data cache stores.
    """
    symbol: str
    price: Decimal
    change_24h_percent: Optional[Decimal]
    market_type: MarketType
    source: str = ""
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert to a JSON-safe dict (decimals as strings)."""
        return {
            'symbol': self.symbol,
            'price': str(self.price),
            'change_24h_percent': (
                str(self.change_24h_percent) if self.change_24h_percent is not None else None
            ),
            'market_type': self.market_type.value,
            'source': self.source,
            'fetched_at': self.fetched_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "NormalizedPrice":
        """Create from a cached dict."""
        return cls(
            symbol=d['symbol'],
            price=Decimal(str(d['price'])),
            change_24h_percent=_decimal_or_none(d.get('change_24h_percent')),
            market_type=MarketType(d['market_type']),
            source=d.get('source', ''),
            fetched_at=datetime.fromisoformat(d['fetched_at']),
        )


@dataclass(frozen=True)
class DerivativesSnapshot:
    """
    Perpetual futures data for a symbol.

    Any field the upstream did not provide (or provided as junk) is None,
    meaning "unavailable" - it is never coerced to zero.
    """
    symbol: str
    open_interest: Optional[Decimal]
    funding_rate: Optional[Decimal]
    mark_price: Optional[Decimal] = None
    next_funding_time: Optional[datetime] = None
    source: str = ""

    @property
    def open_interest_usd(self) -> Optional[Decimal]:
        """Open interest notional, if both contracts and mark price are known."""
        if self.open_interest is None or self.mark_price is None:
            return None
        return self.open_interest * self.mark_price

    @property
    def funding_rate_percent(self) -> Optional[Decimal]:
        if self.funding_rate is None:
            return None
        return self.funding_rate * 100
