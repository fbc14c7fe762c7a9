"""
Alert Models
============

Dataclasses for price alerts and the evaluator's trigger decisions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


class AlertCondition(Enum):
    """Price conditions an alert can watch for."""
    ABOVE = "above"
    BELOW = "below"
    EQUALS = "equals"
    CROSSES_ABOVE = "crosses_above"
    CROSSES_BELOW = "crosses_below"


# Only price thresholds are evaluated by the monitor
PRICE_ALERT_TYPE = "price"


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Alert:
    """
    A user- or system-owned watch condition on a symbol's price.

    user_id doubles as the owner's chat id; None means a system-wide alert
    routed to the default channel.
    """
    symbol: str
    condition: str
    target_value: Decimal
    id: Optional[int] = None
    user_id: Optional[str] = None
    alert_type: str = PRICE_ALERT_TYPE
    is_active: bool = True
    is_triggered: bool = False
    triggered_at: Optional[datetime] = None
    message: Optional[str] = None
    repeat: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_system(self) -> bool:
        return self.user_id is None

    def reset(self):
        """Re-arm the alert so it can fire again."""
        self.is_triggered = False
        self.triggered_at = None
        self.message = None
        self.is_active = True

    @classmethod
    def from_row(cls, row) -> "Alert":
        """Create from an alerts table row."""
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            alert_type=row['alert_type'],
            symbol=row['symbol'],
            condition=row['condition'],
            target_value=Decimal(row['target_value']),
            is_active=bool(row['is_active']),
            is_triggered=bool(row['is_triggered']),
            triggered_at=_parse_datetime(row['triggered_at']),
            message=row['message'],
            repeat=bool(row['repeat']),
            created_at=_parse_datetime(row['created_at']),
        )


@dataclass(frozen=True)
class TriggerDecision:
    """
    Outcome of evaluating one alert against a price.

    Either NoChange (triggered=False) or NewlyTriggered carrying the rendered
    message and whether the alert should be deactivated.
    """
    triggered: bool
    message: Optional[str] = None
    deactivate: bool = False
    triggered_at: Optional[datetime] = None

    @classmethod
    def no_change(cls) -> "TriggerDecision":
        return cls(triggered=False)

    @classmethod
    def newly_triggered(
        cls,
        message: str,
        deactivate: bool,
        triggered_at: datetime,
    ) -> "TriggerDecision":
        return cls(
            triggered=True,
            message=message,
            deactivate=deactivate,
            triggered_at=triggered_at,
        )
