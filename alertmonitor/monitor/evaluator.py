"""
Alert Evaluation
================

Decides whether an alert fires for a price and renders the notification.

Conditions:
- above:         current >  target
- below:         current <  target
- equals:        |current - target| < 0.01 (absolute)
- crosses_above: current >= target
- crosses_below: current <= target

crosses_* are stateless: no previous price is kept per alert.
"""

import html
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from ..models import Alert, AlertCondition, MarketType, TriggerDecision, PRICE_ALERT_TYPE
from ..utils.market_type import detect_market_type, normalize_symbol

logger = logging.getLogger(__name__)

EQUALS_TOLERANCE = Decimal("0.01")

MARKET_ICONS = {
    MarketType.CRYPTO: "💎",
    MarketType.FOREX: "💱",
    MarketType.STOCK: "📈",
}

CONDITION_PHRASES = {
    AlertCondition.ABOVE: "went above",
    AlertCondition.BELOW: "went below",
    AlertCondition.EQUALS: "is at",
    AlertCondition.CROSSES_ABOVE: "crossed above",
    AlertCondition.CROSSES_BELOW: "crossed below",
}


def condition_met(condition: AlertCondition, current: Decimal, target: Decimal) -> bool:
    """Check a single condition. Pure function."""
    if condition == AlertCondition.ABOVE:
        return current > target
    if condition == AlertCondition.BELOW:
        return current < target
    if condition == AlertCondition.EQUALS:
        return abs(current - target) < EQUALS_TOLERANCE
    if condition == AlertCondition.CROSSES_ABOVE:
        return current >= target
    if condition == AlertCondition.CROSSES_BELOW:
        return current <= target
    return False


def format_price(value: Decimal, market_type: MarketType, reference: Decimal = None) -> str:
    """
    Format a price for display.

    Sub-dollar crypto prices get 8 decimals, everything else 2.
    reference decides the precision when given (so target and current line up).
    """
    basis = reference if reference is not None else value
    if market_type == MarketType.CRYPTO and abs(basis) < 1:
        return f"{value:,.8f}"
    return f"{value:,.2f}"


class AlertEvaluator:
    """
    Evaluates alerts against current prices.

    evaluate() mutates the alert it is given (is_triggered, triggered_at,
    message and, for one-shot alerts, is_active) so the caller can persist
    the new state.
    """

    def __init__(self, clock: Callable[[], datetime] = None):
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def evaluate(
        self,
        alert: Alert,
        current_price: Decimal,
        market_type: Optional[MarketType] = None,
    ) -> TriggerDecision:
        """
        Evaluate one alert.

        Args:
            alert: Alert to check (mutated on trigger)
            current_price: Latest price for alert.symbol
            market_type: Market of the symbol (detected if omitted)

        Returns:
            TriggerDecision.no_change() or a newly triggered decision
        """
        if not alert.is_active or alert.alert_type != PRICE_ALERT_TYPE:
            return TriggerDecision.no_change()

        # Repeat alerts stay quiet until re-armed with reset()
        if alert.is_triggered:
            return TriggerDecision.no_change()

        try:
            condition = AlertCondition(alert.condition)
        except ValueError:
            logger.warning(f"Alert {alert.id}: unknown condition '{alert.condition}', skipping")
            return TriggerDecision.no_change()

        if not condition_met(condition, current_price, alert.target_value):
            logger.debug(
                f"Alert {alert.id}: {alert.symbol} {current_price} not {condition.value} "
                f"{alert.target_value}"
            )
            return TriggerDecision.no_change()

        if market_type is None:
            market_type = detect_market_type(normalize_symbol(alert.symbol))

        now = self.clock()
        message = render_trigger_message(alert, condition, current_price, market_type, now)
        deactivate = not alert.repeat

        alert.is_triggered = True
        alert.triggered_at = now
        alert.message = message
        if deactivate:
            alert.is_active = False

        return TriggerDecision.newly_triggered(message, deactivate, now)


def render_trigger_message(
    alert: Alert,
    condition: AlertCondition,
    current_price: Decimal,
    market_type: MarketType,
    triggered_at: datetime,
) -> str:
    """Build the HTML notification for a triggered alert."""
    target = alert.target_value
    icon = MARKET_ICONS.get(market_type, "📊")
    phrase = CONDITION_PHRASES.get(condition, "reached")

    diff = current_price - target
    diff_icon = "📈" if diff > 0 else "📉"
    diff_line = f"{diff_icon} Difference: ${format_price(abs(diff), market_type, current_price)}"
    if target != 0:
        diff_pct = diff / target * 100
        diff_line += f" ({diff_pct:+.2f}%)"

    when = triggered_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    lines = [
        "🔔 <b>PRICE ALERT TRIGGERED</b>",
        "",
        f"{icon} <b>{html.escape(alert.symbol)}</b> {phrase} your target!",
        "",
        f"🎯 Target: <code>${format_price(target, market_type, current_price)}</code>",
        f"💰 Current: <code>${format_price(current_price, market_type)}</code>",
        diff_line,
        "",
        f"<i>Alert ID: {alert.id}</i>",
        f"<i>Triggered at: {when} UTC</i>",
    ]
    return "\n".join(lines)
