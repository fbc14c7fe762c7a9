"""Shared fixtures for the alert monitor test suite."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests

from alertmonitor.api.base import PriceSourceAdapter
from alertmonitor.exceptions import FetchFailed, TransientFetchError
from alertmonitor.models import MarketType, NormalizedPrice
from alertmonitor.monitor.cache import MarketDataCache
from alertmonitor.monitor.database import MonitorDatabase


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class FakeAdapter(PriceSourceAdapter):
    """
    In-memory price source.

    prices maps symbol -> Decimal; failures maps symbol -> exception raised
    on every call. calls records each requested symbol.
    """

    name = "Fake"

    def __init__(
        self,
        prices: Optional[Dict[str, Decimal]] = None,
        failures: Optional[Dict[str, FetchFailed]] = None,
        market_type: MarketType = MarketType.CRYPTO,
    ):
        super().__init__(base_url="http://fake", max_retries=0, session=MagicMock())
        self.prices = dict(prices or {})
        self.failures = dict(failures or {})
        self.market_type = market_type
        self.calls: List[str] = []

    def get_current_price(self, symbol: str, market_type: MarketType = None) -> NormalizedPrice:
        self.calls.append(symbol)
        if symbol in self.failures:
            raise self.failures[symbol]
        if symbol not in self.prices:
            raise TransientFetchError("unknown symbol", self.name, symbol)
        return self._build_price(
            symbol, self.prices[symbol], Decimal("1.5"), market_type or self.market_type
        )


def make_response(status_code: int = 200, json_data=None, json_error: bool = False):
    """Build a mock requests.Response."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db(tmp_path):
    return MonitorDatabase(tmp_path / "monitor.db")


@pytest.fixture
def cache(db, clock):
    return MarketDataCache(db, clock=clock)


@pytest.fixture
def session():
    """Mock requests.Session for adapters."""
    return MagicMock()
