from datetime import date

import pandas as pd
import pytest
import requests

from signalcheck.core.cache import ResponseCache
from signalcheck.providers.alphavantage import AlphaVantageDailyProvider, AlphaVantageIntradayProvider
from signalcheck.providers.base import CredentialRotation
from signalcheck.providers.twelvedata import TwelveDataProvider
from signalcheck.providers.yahoo import YahooFinanceProvider
from tests.helpers import utc


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


@pytest.fixture
def http(monkeypatch):
    """Queue of canned responses; records the params of every request."""
    state = {"responses": [], "params": []}

    def fake_get(url, params=None, timeout=None):
        state["params"].append(params)
        response = state["responses"].pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(requests, "get", fake_get)
    return state


def _candle(day, close):
    return {"datetime": day, "open": str(close - 1), "high": str(close + 1),
            "low": str(close - 2), "close": str(close), "volume": "1000"}


TWELVEDATA_SERIES = {
    "status": "ok",
    "values": [_candle("2024-03-12", 255.0), _candle("2024-03-11", 250.0), _candle("2024-03-08", 245.0)],
}


# ── credential rotation ──────────────────────────────────────────────────────

def test_rotation_cycles_keys():
    rotation = CredentialRotation("TwelveData", ["primary", "", "secondary"])
    assert rotation.current == "primary"
    assert rotation.rotate() is True
    assert rotation.current == "secondary"
    assert rotation.using_secondary
    rotation.rotate()
    assert rotation.current == "primary"


def test_rotation_without_secondary_keeps_primary():
    rotation = CredentialRotation("TwelveData", ["primary"])
    assert rotation.rotate() is False
    assert rotation.current == "primary"


# ── TwelveData ───────────────────────────────────────────────────────────────

def test_twelvedata_exact_trading_day(http):
    http["responses"].append(FakeResponse(TWELVEDATA_SERIES))
    point = TwelveDataProvider(["key"]).get_price_at("TSLA", utc(2024, 3, 11, 20, 0))

    assert point.close == 250.0
    assert point.provider == "TwelveData"
    assert http["params"][0]["end_date"] == "2024-03-12"
    assert http["params"][0]["apikey"] == "key"


def test_twelvedata_weekend_resolves_backwards_never_forward(http):
    http["responses"].append(FakeResponse(TWELVEDATA_SERIES))
    point = TwelveDataProvider(["key"]).get_price_at("TSLA", utc(2024, 3, 9, 20, 0))
    assert point.close == 245.0
    assert pd.Timestamp(point.timestamp).tz_convert("America/New_York").date() == date(2024, 3, 8)


def test_twelvedata_rate_limit_rotates_key(http):
    http["responses"].append(FakeResponse({"code": 429, "message": "You have run out of API credits"}))
    http["responses"].append(FakeResponse(TWELVEDATA_SERIES))
    provider = TwelveDataProvider(["primary", "secondary"])

    assert provider.get_price_at("TSLA", utc(2024, 3, 11, 20, 0)) is None
    assert provider.get_price_at("TSLA", utc(2024, 3, 11, 20, 0)).close == 250.0
    assert [p["apikey"] for p in http["params"]] == ["primary", "secondary"]


def test_twelvedata_failures_return_none(http):
    provider = TwelveDataProvider(["key"])
    http["responses"].extend([
        requests.Timeout("slow"),
        FakeResponse({}, status_code=500),
        FakeResponse(ValueError("not json")),
        FakeResponse({"status": "error", "code": 400, "message": "symbol not found"}),
        FakeResponse({"status": "ok", "values": []}),
    ])
    for _ in range(5):
        assert provider.get_price_at("NOPE", utc(2024, 3, 11, 20, 0)) is None


def test_twelvedata_without_key_makes_no_request(http):
    assert TwelveDataProvider([]).get_price_at("TSLA", utc(2024, 3, 11, 20, 0)) is None
    assert http["params"] == []


def test_twelvedata_response_is_cached(http, tmp_path):
    cache = ResponseCache(str(tmp_path / "cache.db"))
    provider = TwelveDataProvider(["key"], cache=cache)
    http["responses"].append(FakeResponse(TWELVEDATA_SERIES))

    provider.get_price_at("TSLA", utc(2024, 3, 11, 20, 0))
    provider.get_price_at("TSLA", utc(2024, 3, 11, 20, 0))

    assert len(http["params"]) == 1


def test_twelvedata_ticker_check(http):
    http["responses"].extend([FakeResponse({"symbol": "AAPL", "close": "170.1"}),
                              FakeResponse({"code": 404, "status": "error", "message": "not found"})])
    provider = TwelveDataProvider(["key"])
    assert provider.is_valid_ticker("AAPL") is True
    assert provider.is_valid_ticker("ZZZZ") is False


# ── Alpha Vantage ────────────────────────────────────────────────────────────

def _av_fields(close):
    return {"1. open": str(close), "2. high": str(close), "3. low": str(close),
            "4. close": str(close), "5. volume": "500"}


def test_alphavantage_daily_selects_prior_day(http):
    http["responses"].append(FakeResponse({"Time Series (Daily)": {
        "2024-03-11": _av_fields(250.0), "2024-03-08": _av_fields(245.0),
    }}))
    point = AlphaVantageDailyProvider(["key"]).get_price_at("TSLA", utc(2024, 3, 10, 20, 0))
    assert point.close == 245.0
    assert point.provider == "AlphaVantage"


def test_alphavantage_note_rotates_to_secondary(http):
    http["responses"].append(FakeResponse({"Note": "Thank you for using Alpha Vantage! Our standard API call frequency is 5 calls per minute"}))
    provider = AlphaVantageDailyProvider(["primary", "secondary"])

    assert provider.get_price_at("TSLA", utc(2024, 3, 11, 20, 0)) is None
    assert provider.credentials.using_secondary


def test_alphavantage_error_message_does_not_rotate(http):
    http["responses"].append(FakeResponse({"Error Message": "Invalid API call"}))
    provider = AlphaVantageDailyProvider(["primary", "secondary"])

    assert provider.get_price_at("NOPE", utc(2024, 3, 11, 20, 0)) is None
    assert not provider.credentials.using_secondary


def test_alphavantage_intraday_nearest_candle_within_tolerance(http):
    series = {
        "2024-03-11 10:00:00": _av_fields(250.0),
        "2024-03-11 10:05:00": _av_fields(251.0),
        "2024-03-11 10:10:00": _av_fields(252.0),
        "2024-03-12 10:05:00": _av_fields(260.0),
    }
    http["responses"].append(FakeResponse({"Time Series (5min)": series}))
    provider = AlphaVantageIntradayProvider(["key"])

    point = provider.get_price_at("TSLA", utc(2024, 3, 11, 14, 7))  # 10:07 EDT
    assert point.close == 251.0
    assert point.provider == "AlphaVantage-Intraday"
    assert http["params"][0]["month"] == "2024-03"


def test_alphavantage_intraday_outside_tolerance(http):
    http["responses"].append(FakeResponse({"Time Series (5min)": {"2024-03-11 10:00:00": _av_fields(250.0)}}))
    assert AlphaVantageIntradayProvider(["key"]).get_price_at("TSLA", utc(2024, 3, 11, 15, 0)) is None


# ── Yahoo ────────────────────────────────────────────────────────────────────

class FakeTicker:
    frame = pd.DataFrame()

    def __init__(self, symbol):
        self.symbol = symbol

    def history(self, **kwargs):
        return self.frame


def _yahoo_frame(stamps, closes):
    index = pd.DatetimeIndex(stamps).tz_localize("America/New_York")
    return pd.DataFrame(
        {"Open": closes, "High": closes, "Low": closes, "Close": closes, "Volume": [100] * len(closes)},
        index=index,
    )


def test_yahoo_daily_selects_prior_day(monkeypatch):
    FakeTicker.frame = _yahoo_frame(["2024-03-07", "2024-03-08"], [240.0, 245.0])
    monkeypatch.setattr("signalcheck.providers.yahoo.yf.Ticker", FakeTicker)

    point = YahooFinanceProvider("1d").get_price_at("TSLA", utc(2024, 3, 9, 20, 0))
    assert point.close == 245.0
    assert point.provider == "Yahoo"


def test_yahoo_intraday_tolerance(monkeypatch):
    FakeTicker.frame = _yahoo_frame(["2024-03-11 10:00", "2024-03-11 10:05"], [250.0, 251.0])
    monkeypatch.setattr("signalcheck.providers.yahoo.yf.Ticker", FakeTicker)
    provider = YahooFinanceProvider("5m")

    assert provider.get_price_at("TSLA", utc(2024, 3, 11, 14, 6)).close == 251.0
    assert provider.get_price_at("TSLA", utc(2024, 3, 11, 16, 0)) is None


def test_yahoo_failure_returns_none(monkeypatch):
    class Broken(FakeTicker):
        def history(self, **kwargs):
            raise RuntimeError("yahoo down")

    monkeypatch.setattr("signalcheck.providers.yahoo.yf.Ticker", Broken)
    provider = YahooFinanceProvider("1d")
    assert provider.get_price_at("TSLA", utc(2024, 3, 11, 20, 0)) is None
    assert provider.is_valid_ticker("TSLA") is False
