"""Tests for upstream price source adapters (HTTP mocked)."""

from decimal import Decimal
from unittest.mock import patch

import pytest
import requests

from alertmonitor.api import (
    AlphaVantageAdapter,
    BinanceFuturesAdapter,
    BinanceSpotAdapter,
    CoinGeckoAdapter,
    DexScreenerAdapter,
    TwelveDataAdapter,
    YahooFinanceAdapter,
    parse_decimal,
)
from alertmonitor.api.binance import to_binance_pair
from alertmonitor.api.twelvedata import to_twelve_data_symbol
from alertmonitor.api.yahoo import to_yahoo_symbol
from alertmonitor.exceptions import FetchFailed, PermanentFetchError, TransientFetchError
from alertmonitor.models import MarketType

from conftest import make_response


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("alertmonitor.api.base.time.sleep") as sleep:
        yield sleep


def adapter(cls, session, **kwargs):
    return cls(session=session, max_retries=2, **kwargs)


# ============================================================================
# Shared request behaviour
# ============================================================================

class TestRetryPolicy:

    def test_timeout_is_retried_then_raised_as_transient(self, session, no_sleep):
        session.get.side_effect = requests.exceptions.Timeout()
        spot = adapter(BinanceSpotAdapter, session)

        with pytest.raises(TransientFetchError):
            spot.get_current_price("BTC")
        assert session.get.call_count == 3
        assert no_sleep.call_count == 2

    def test_server_error_recovers_on_retry(self, session):
        session.get.side_effect = [
            make_response(503),
            make_response(200, {"lastPrice": "95000.5", "priceChangePercent": "1.2"}),
        ]
        price = adapter(BinanceSpotAdapter, session).get_current_price("BTC")
        assert price.price == Decimal("95000.5")
        assert session.get.call_count == 2

    def test_client_error_is_not_retried(self, session):
        session.get.return_value = make_response(400)

        with pytest.raises(PermanentFetchError) as exc_info:
            adapter(BinanceSpotAdapter, session).get_current_price("NOPE")
        assert exc_info.value.status_code == 400
        assert session.get.call_count == 1

    def test_rate_limit_uses_longer_backoff(self, session, no_sleep):
        session.get.return_value = make_response(429)
        spot = adapter(BinanceSpotAdapter, session, retry_backoff=0.5, rate_limit_backoff=2.0)

        with pytest.raises(TransientFetchError) as exc_info:
            spot.get_current_price("BTC")
        assert exc_info.value.status_code == 429
        assert [c.args[0] for c in no_sleep.call_args_list] == [2.0, 4.0]

    def test_invalid_json_is_permanent(self, session):
        session.get.return_value = make_response(200, json_error=True)
        with pytest.raises(PermanentFetchError):
            adapter(BinanceSpotAdapter, session).get_current_price("BTC")

    def test_timeout_is_passed_to_every_request(self, session):
        session.get.return_value = make_response(200, {"lastPrice": "1", "priceChangePercent": "0"})
        adapter(BinanceSpotAdapter, session, timeout=3.5).get_current_price("BTC")
        assert session.get.call_args.kwargs["timeout"] == 3.5


class TestParseDecimal:

    @pytest.mark.parametrize("raw,expected", [
        ("1.5", Decimal("1.5")),
        (2, Decimal("2")),
        (0.25, Decimal("0.25")),
        ("-3.1%", Decimal("-3.1")),
    ])
    def test_valid(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", True, float("nan"), "Infinity", [], {}])
    def test_invalid(self, raw):
        assert parse_decimal(raw) is None


# ============================================================================
# Never a silent zero
# ============================================================================

BAD_PAYLOADS = [{}, {"price": None}, {"price": "abc"}, {"price": "0"}, {"price": 0}]


def _spot_payload(value):
    return {} if "price" not in value else {"lastPrice": value["price"], "priceChangePercent": "1"}


def _coingecko_payload(value):
    return {"bitcoin": {} if "price" not in value else {"usd": value["price"]}}


def _dex_payload(value):
    pair = {"baseToken": {"symbol": "SERPO"}, "liquidity": {"usd": 1000}}
    if "price" in value:
        pair["priceUsd"] = value["price"]
    return {"pairs": [pair]}


def _twelve_payload(value):
    return {} if "price" not in value else {"close": value["price"], "percent_change": "0.1"}


def _alpha_payload(value):
    return {"Global Quote": {"01. symbol": "AAPL"} if "price" not in value else {"05. price": value["price"]}}


def _yahoo_payload(value):
    meta = {"previousClose": 100}
    if "price" in value:
        meta["regularMarketPrice"] = value["price"]
    return {"chart": {"result": [{"meta": meta}], "error": None}}


NEVER_ZERO_CASES = [
    (BinanceSpotAdapter, {}, "BTC", None, _spot_payload),
    (CoinGeckoAdapter, {"api_key": ""}, "BTC", None, _coingecko_payload),
    (DexScreenerAdapter, {}, "SERPO", None, _dex_payload),
    (TwelveDataAdapter, {"api_key": "k"}, "EURUSD", MarketType.FOREX, _twelve_payload),
    (AlphaVantageAdapter, {"api_key": "k"}, "AAPL", MarketType.STOCK, _alpha_payload),
    (YahooFinanceAdapter, {}, "AAPL", MarketType.STOCK, _yahoo_payload),
]


class TestNeverSilentZero:

    @pytest.mark.parametrize("cls,kwargs,symbol,market_type,build", NEVER_ZERO_CASES)
    @pytest.mark.parametrize("value", BAD_PAYLOADS)
    def test_missing_or_unusable_price_is_an_error(self, session, cls, kwargs, symbol, market_type, build, value):
        session.get.return_value = make_response(200, build(value))
        source = adapter(cls, session, **kwargs)

        with pytest.raises(FetchFailed):
            source.get_current_price(symbol, market_type)


# ============================================================================
# Per-adapter parsing
# ============================================================================

class TestBinance:

    def test_symbol_mapping(self):
        assert to_binance_pair("btc") == "BTCUSDT"
        assert to_binance_pair("ETHBTC") == "ETHBTC"

    def test_spot_price(self, session):
        session.get.return_value = make_response(
            200, {"symbol": "BTCUSDT", "lastPrice": "95000.10", "priceChangePercent": "-1.25"}
        )
        price = adapter(BinanceSpotAdapter, session).get_current_price("BTC")

        assert price.symbol == "BTCUSDT"
        assert price.price == Decimal("95000.10")
        assert price.change_24h_percent == Decimal("-1.25")
        assert price.market_type == MarketType.CRYPTO
        assert price.source == "Binance"
        assert session.get.call_args.kwargs["params"] == {"symbol": "BTCUSDT"}

    def test_derivatives_snapshot(self, session):
        def fake_get(url, **kwargs):
            if url.endswith("/fapi/v1/premiumIndex"):
                return make_response(200, {
                    "markPrice": "95000", "lastFundingRate": "0.0001", "nextFundingTime": 1767225600000,
                })
            return make_response(200, {"openInterest": "1000.5"})

        session.get.side_effect = fake_get
        snapshot = adapter(BinanceFuturesAdapter, session).get_derivatives("BTC")

        assert snapshot.open_interest == Decimal("1000.5")
        assert snapshot.funding_rate == Decimal("0.0001")
        assert snapshot.funding_rate_percent == Decimal("0.0100")
        assert snapshot.open_interest_usd == Decimal("1000.5") * 95000
        assert snapshot.next_funding_time.year == 2026

    def test_derivatives_missing_fields_are_none_not_zero(self, session):
        def fake_get(url, **kwargs):
            if url.endswith("/fapi/v1/premiumIndex"):
                return make_response(200, {"markPrice": "95000", "lastFundingRate": ""})
            return make_response(200, {"openInterest": "12"})

        session.get.side_effect = fake_get
        snapshot = adapter(BinanceFuturesAdapter, session).get_derivatives("BTC")

        assert snapshot.funding_rate is None
        assert snapshot.funding_rate_percent is None
        assert snapshot.open_interest == Decimal("12")

    def test_derivatives_all_unavailable_raises(self, session):
        session.get.return_value = make_response(200, {"foo": "bar"})
        with pytest.raises(PermanentFetchError):
            adapter(BinanceFuturesAdapter, session).get_derivatives("BTC")

    def test_futures_mark_price(self, session):
        session.get.return_value = make_response(200, {"markPrice": "94990.5"})
        price = adapter(BinanceFuturesAdapter, session).get_current_price("ETH")

        assert price.symbol == "ETHUSDT"
        assert price.price == Decimal("94990.5")
        assert price.change_24h_percent is None


class TestCoinGecko:

    def test_price_and_change(self, session):
        session.get.return_value = make_response(200, {"bitcoin": {"usd": 95000.5, "usd_24h_change": 2.5}})
        price = adapter(CoinGeckoAdapter, session, api_key="").get_current_price("BTCUSDT")

        assert price.symbol == "BTC"
        assert price.price == Decimal("95000.5")
        assert price.change_24h_percent == Decimal("2.5")

    def test_unmapped_symbol_fails_without_request(self, session):
        with pytest.raises(PermanentFetchError):
            adapter(CoinGeckoAdapter, session, api_key="").get_current_price("NEWTOKEN")
        session.get.assert_not_called()

    def test_api_key_sent_as_header(self, session):
        session.get.return_value = make_response(200, {"bitcoin": {"usd": 1}})
        adapter(CoinGeckoAdapter, session, api_key="demo-key").get_current_price("BTC")
        assert session.get.call_args.kwargs["headers"] == {"x-cg-demo-api-key": "demo-key"}


class TestDexScreener:

    def test_picks_highest_liquidity_pool(self, session):
        session.get.return_value = make_response(200, {"pairs": [
            {"baseToken": {"symbol": "SERPO"}, "priceUsd": "0.0011", "liquidity": {"usd": 5000}},
            {"baseToken": {"symbol": "SERPO"}, "priceUsd": "0.0012", "liquidity": {"usd": 90000},
             "priceChange": {"h24": "-4.2"}},
            {"baseToken": {"symbol": "OTHER"}, "priceUsd": "9", "liquidity": {"usd": 10**9}},
        ]})
        price = adapter(DexScreenerAdapter, session).get_current_price("SERPO")

        assert price.price == Decimal("0.0012")
        assert price.change_24h_percent == Decimal("-4.2")

    def test_zero_price_on_deepest_pool_is_rejected(self, session):
        session.get.return_value = make_response(200, {"pairs": [
            {"baseToken": {"symbol": "SERPO"}, "priceUsd": "0", "liquidity": {"usd": 10**6}},
            {"baseToken": {"symbol": "SERPO"}, "priceUsd": "5.0", "liquidity": {"usd": 100}},
        ]})
        with pytest.raises(PermanentFetchError):
            adapter(DexScreenerAdapter, session).get_current_price("SERPO")

    def test_non_numeric_price_on_deepest_pool_is_rejected(self, session):
        session.get.return_value = make_response(200, {"pairs": [
            {"baseToken": {"symbol": "SERPO"}, "priceUsd": "n/a", "liquidity": {"usd": 10**6}},
            {"baseToken": {"symbol": "SERPO"}, "priceUsd": "0.002", "liquidity": {"usd": 10}},
        ]})
        with pytest.raises(PermanentFetchError):
            adapter(DexScreenerAdapter, session).get_current_price("SERPO")

    def test_no_matching_symbol_is_permanent(self, session):
        session.get.return_value = make_response(200, {"pairs": [
            {"baseToken": {"symbol": "OTHER"}, "priceUsd": "9", "liquidity": {"usd": 10**9}},
        ]})
        with pytest.raises(PermanentFetchError):
            adapter(DexScreenerAdapter, session).get_current_price("SERPO")

    def test_no_pairs_is_permanent(self, session):
        session.get.return_value = make_response(200, {"pairs": None})
        with pytest.raises(PermanentFetchError):
            adapter(DexScreenerAdapter, session).get_current_price("SERPO")


class TestTwelveData:

    def test_symbol_formatting(self):
        assert to_twelve_data_symbol("EURUSD", MarketType.FOREX) == "EUR/USD"
        assert to_twelve_data_symbol("AAPL", MarketType.STOCK) == "AAPL"

    def test_quote(self, session):
        session.get.return_value = make_response(200, {"close": "1.0850", "percent_change": "0.12"})
        price = adapter(TwelveDataAdapter, session, api_key="k").get_current_price("EURUSD", MarketType.FOREX)

        assert price.price == Decimal("1.0850")
        assert price.market_type == MarketType.FOREX
        assert session.get.call_args.kwargs["params"]["symbol"] == "EUR/USD"

    def test_not_configured_without_key(self, session):
        source = adapter(TwelveDataAdapter, session, api_key="")
        assert not source.is_configured()
        with pytest.raises(PermanentFetchError):
            source.get_current_price("AAPL", MarketType.STOCK)

    def test_error_envelopes(self, session):
        source = adapter(TwelveDataAdapter, session, api_key="k")

        session.get.return_value = make_response(200, {"status": "error", "code": 429, "message": "credits"})
        with pytest.raises(TransientFetchError):
            source.get_current_price("AAPL", MarketType.STOCK)

        session.get.return_value = make_response(200, {"status": "error", "code": 404, "message": "not found"})
        with pytest.raises(PermanentFetchError):
            source.get_current_price("AAPL", MarketType.STOCK)


class TestAlphaVantage:

    def test_forex_rate(self, session):
        session.get.return_value = make_response(200, {
            "Realtime Currency Exchange Rate": {"5. Exchange Rate": "1.08500000"}
        })
        price = adapter(AlphaVantageAdapter, session, api_key="k").get_current_price("EURUSD", MarketType.FOREX)

        assert price.price == Decimal("1.08500000")
        assert price.change_24h_percent is None
        params = session.get.call_args.kwargs["params"]
        assert params["from_currency"] == "EUR" and params["to_currency"] == "USD"

    def test_global_quote(self, session):
        session.get.return_value = make_response(200, {
            "Global Quote": {"05. price": "189.50", "10. change percent": "1.2345%"}
        })
        price = adapter(AlphaVantageAdapter, session, api_key="k").get_current_price("AAPL", MarketType.STOCK)

        assert price.price == Decimal("189.50")
        assert price.change_24h_percent == Decimal("1.2345")

    def test_throttle_note_is_transient(self, session):
        session.get.return_value = make_response(200, {"Note": "call frequency"})
        with pytest.raises(TransientFetchError):
            adapter(AlphaVantageAdapter, session, api_key="k").get_current_price("AAPL", MarketType.STOCK)

    def test_error_message_is_permanent(self, session):
        session.get.return_value = make_response(200, {"Error Message": "Invalid API call"})
        with pytest.raises(PermanentFetchError):
            adapter(AlphaVantageAdapter, session, api_key="k").get_current_price("AAPL", MarketType.STOCK)


class TestYahoo:

    def test_symbol_mapping(self):
        assert to_yahoo_symbol("EURUSD", MarketType.FOREX) == "EURUSD=X"
        assert to_yahoo_symbol("XAUUSD", MarketType.FOREX) == "GC=F"
        assert to_yahoo_symbol("BRK.B", MarketType.STOCK) == "BRK-B"

    def test_change_from_previous_close(self, session):
        session.get.return_value = make_response(200, {"chart": {"result": [
            {"meta": {"regularMarketPrice": 110, "previousClose": 100}}
        ], "error": None}})
        price = adapter(YahooFinanceAdapter, session).get_current_price("AAPL", MarketType.STOCK)

        assert price.price == Decimal("110")
        assert price.change_24h_percent == Decimal("10.0000")
        assert session.get.call_args.args[0].endswith("/AAPL")
