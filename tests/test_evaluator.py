"""Tests for alert condition evaluation and message rendering."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from alertmonitor.models import Alert, AlertCondition, MarketType
from alertmonitor.monitor.evaluator import AlertEvaluator, condition_met, format_price

from conftest import FakeClock


def make_alert(condition="above", target="50000", repeat=False, symbol="BTC", **kwargs) -> Alert:
    return Alert(
        id=kwargs.pop("id", 1),
        symbol=symbol,
        condition=condition,
        target_value=Decimal(target),
        repeat=repeat,
        **kwargs,
    )


@pytest.fixture
def evaluator(clock):
    return AlertEvaluator(clock=clock)


class TestConditionTable:

    @pytest.mark.parametrize("current,expected", [
        ("50001", True),
        ("50000", False),
        ("49999", False),
    ])
    def test_above(self, current, expected):
        assert condition_met(AlertCondition.ABOVE, Decimal(current), Decimal("50000")) is expected

    @pytest.mark.parametrize("current,expected", [
        ("49999", True),
        ("50000", False),
        ("50001", False),
    ])
    def test_below(self, current, expected):
        assert condition_met(AlertCondition.BELOW, Decimal(current), Decimal("50000")) is expected

    @pytest.mark.parametrize("current,expected", [
        ("100.005", True),
        ("99.995", True),
        ("100.00", True),
        ("100.01", False),
        ("100.02", False),
    ])
    def test_equals_uses_absolute_tolerance(self, current, expected):
        assert condition_met(AlertCondition.EQUALS, Decimal(current), Decimal("100.00")) is expected

    @pytest.mark.parametrize("current,expected", [
        ("50000", True),
        ("50001", True),
        ("49999", False),
    ])
    def test_crosses_above_is_inclusive(self, current, expected):
        assert condition_met(AlertCondition.CROSSES_ABOVE, Decimal(current), Decimal("50000")) is expected

    @pytest.mark.parametrize("current,expected", [
        ("50000", True),
        ("49999", True),
        ("50001", False),
    ])
    def test_crosses_below_is_inclusive(self, current, expected):
        assert condition_met(AlertCondition.CROSSES_BELOW, Decimal(current), Decimal("50000")) is expected


class TestStateTransitions:

    def test_trigger_sets_state_and_deactivates_one_shot(self, evaluator, clock):
        alert = make_alert()
        decision = evaluator.evaluate(alert, Decimal("50001"), MarketType.CRYPTO)

        assert decision.triggered
        assert decision.deactivate
        assert decision.triggered_at == clock.now
        assert alert.is_triggered
        assert alert.triggered_at == clock.now
        assert alert.message == decision.message
        assert alert.is_active is False

    def test_no_change_leaves_alert_untouched(self, evaluator):
        alert = make_alert()
        decision = evaluator.evaluate(alert, Decimal("49000"), MarketType.CRYPTO)

        assert not decision.triggered
        assert decision.message is None
        assert alert.is_active and not alert.is_triggered

    def test_inactive_alert_is_never_evaluated(self, evaluator):
        alert = make_alert(is_active=False)
        assert not evaluator.evaluate(alert, Decimal("99999"), MarketType.CRYPTO).triggered

    def test_repeat_alert_stays_active_and_quiet_until_reset(self, evaluator):
        alert = make_alert(repeat=True)

        first = evaluator.evaluate(alert, Decimal("50001"), MarketType.CRYPTO)
        assert first.triggered and not first.deactivate
        assert alert.is_active

        second = evaluator.evaluate(alert, Decimal("50002"), MarketType.CRYPTO)
        assert not second.triggered

        alert.reset()
        assert not alert.is_triggered and alert.message is None
        third = evaluator.evaluate(alert, Decimal("50003"), MarketType.CRYPTO)
        assert third.triggered

    def test_unknown_condition_is_no_change(self, evaluator):
        alert = make_alert(condition="sideways")
        assert not evaluator.evaluate(alert, Decimal("1"), MarketType.CRYPTO).triggered

    def test_non_price_alert_is_ignored(self, evaluator):
        alert = make_alert(alert_type="whale")
        assert not evaluator.evaluate(alert, Decimal("99999"), MarketType.CRYPTO).triggered

    @settings(max_examples=100)
    @given(prices=st.lists(
        st.decimals(min_value=50001, max_value=10**7, allow_nan=False, allow_infinity=False, places=2),
        min_size=1,
        max_size=20,
    ))
    def test_one_shot_fires_exactly_once(self, prices):
        evaluator = AlertEvaluator(clock=FakeClock())
        alert = make_alert(condition="above", target="50000")

        decisions = [evaluator.evaluate(alert, p, MarketType.CRYPTO) for p in prices]
        assert sum(1 for d in decisions if d.triggered) == 1
        assert decisions[0].triggered


class TestMessageRendering:

    def test_message_contents(self, clock):
        clock.now = datetime(2026, 3, 1, 9, 30, 0, tzinfo=timezone.utc)
        evaluator = AlertEvaluator(clock=clock)
        alert = make_alert(id=42, condition="above", target="50000")

        message = evaluator.evaluate(alert, Decimal("51000"), MarketType.CRYPTO).message

        assert "PRICE ALERT TRIGGERED" in message
        assert "💎" in message
        assert "<b>BTC</b> went above" in message
        assert "$50,000.00" in message
        assert "$51,000.00" in message
        assert "$1,000.00" in message
        assert "+2.00%" in message
        assert "Alert ID: 42" in message
        assert "2026-03-01 09:30:00 UTC" in message

    def test_sub_dollar_crypto_uses_eight_decimals(self, evaluator):
        alert = make_alert(symbol="SERPO", condition="below", target="0.00012")
        message = evaluator.evaluate(alert, Decimal("0.0001"), MarketType.CRYPTO).message

        assert "0.00012000" in message
        assert "0.00010000" in message
        assert "crossed" not in message

    def test_forex_uses_two_decimals_and_icon(self, evaluator):
        alert = make_alert(symbol="EURUSD", condition="crosses_below", target="1.10")
        message = evaluator.evaluate(alert, Decimal("1.05"), MarketType.FOREX).message

        assert "💱" in message
        assert "crossed below" in message
        assert "$1.05" in message

    def test_zero_target_omits_percentage(self, evaluator):
        alert = make_alert(condition="above", target="0")
        message = evaluator.evaluate(alert, Decimal("5"), MarketType.STOCK).message
        assert "%" not in message

    def test_format_price(self):
        assert format_price(Decimal("0.5"), MarketType.CRYPTO) == "0.50000000"
        assert format_price(Decimal("0.5"), MarketType.FOREX) == "0.50"
        assert format_price(Decimal("1234.5"), MarketType.STOCK) == "1,234.50"
