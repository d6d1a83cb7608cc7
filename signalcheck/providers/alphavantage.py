"""Alpha Vantage daily and intraday candles.

Free tier: 25 requests/day and 5/minute, which is why responses are cached and
the validation engine paces itself. Alpha Vantage reports errors with HTTP 200
and one of three top-level keys:

    "Error Message"  invalid symbol or parameters
    "Note"           per-minute call frequency exceeded
    "Information"    daily quota exceeded, or a premium-only endpoint
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pandas as pd

from signalcheck.core.logger import logger
from signalcheck.models.datatypes import PricePoint
from signalcheck.providers.base import (
    HttpQuoteProvider, numeric_candles, select_daily_candle, select_intraday_candle, to_price_point,
)

_BASE_URL = "https://www.alphavantage.co/query"

_FIELD_NAMES = {
    "1. open": "open",
    "2. high": "high",
    "3. low": "low",
    "4. close": "close",
    "5. volume": "volume",
}

_QUOTA_MARKERS = ("rate limit", "call frequency", "requests per day", "api key")


def _series_frame(series: Dict[str, Dict[str, str]]) -> pd.DataFrame:
    """Turn an Alpha Vantage ``{stamp: {"1. open": ...}}`` mapping into a frame."""
    records = []
    for stamp, fields in series.items():
        if not isinstance(fields, dict):
            continue
        record = {"stamp": stamp}
        for raw_name, name in _FIELD_NAMES.items():
            record[name] = fields.get(raw_name)
        records.append(record)
    if not records:
        return pd.DataFrame(columns=["stamp", *_FIELD_NAMES.values()])
    return numeric_candles(records)


class _AlphaVantageProvider(HttpQuoteProvider):
    """Error classification and ticker check shared by both granularities."""

    name = "AlphaVantage"

    def _rate_limit_message(self, payload: Dict[str, Any]) -> Optional[str]:
        if "Note" in payload:
            return str(payload["Note"])
        info = str(payload.get("Information", ""))
        if info and any(marker in info.lower() for marker in _QUOTA_MARKERS):
            return info
        return None

    def _error_message(self, payload: Dict[str, Any]) -> Optional[str]:
        if "Error Message" in payload:
            return str(payload["Error Message"])
        if "Information" in payload:
            return str(payload["Information"])
        return None

    def is_valid_ticker(self, ticker: str) -> bool:
        payload = self._get_json(
            _BASE_URL, {"function": "GLOBAL_QUOTE", "symbol": ticker}, context=f"quote {ticker}"
        )
        quote = payload.get("Global Quote") if payload else None
        valid = isinstance(quote, dict) and len(quote) > 0
        logger.debug(f"{self.name}: ticker {ticker} valid={valid}")
        return valid


class AlphaVantageDailyProvider(_AlphaVantageProvider):
    """``TIME_SERIES_DAILY`` compact output (last ~100 trading days).

    One payload covers both ends of a daily window, so it is cached per ticker
    per UTC day rather than per target day.
    """

    name = "AlphaVantage"

    def get_price_at(self, ticker: str, instant: datetime) -> Optional[PricePoint]:
        target_day = self.session.local_day(instant)
        as_of = datetime.now(timezone.utc).date()
        payload = self._get_json(
            _BASE_URL,
            {"function": "TIME_SERIES_DAILY", "symbol": ticker, "outputsize": "compact"},
            cache_key=f"alphavantage_daily_{ticker}_{as_of}",
            context=f"{ticker} {target_day}",
        )
        if payload is None:
            return None

        series = payload.get("Time Series (Daily)")
        if not isinstance(series, dict) or not series:
            logger.warning(f"AlphaVantage: no daily data for {ticker} (keys: {list(payload)[:3]})")
            return None

        candles = _series_frame(series)
        candles["day"] = pd.to_datetime(candles["stamp"], errors="coerce").dt.date
        candles = candles.dropna(subset=["day"])

        row = select_daily_candle(candles, target_day)
        if row is None:
            logger.warning(f"AlphaVantage: no data for {ticker} on or before {target_day}")
            return None

        candle_time = pd.Timestamp(row["day"]).tz_localize(self.session.timezone)
        point = to_price_point(row, ticker, candle_time, self.name)
        if point:
            logger.debug(f"AlphaVantage: {ticker} close={point.close} on {row['day']}")
        return point


class AlphaVantageIntradayProvider(_AlphaVantageProvider):
    """``TIME_SERIES_INTRADAY`` 5-minute candles for the month of the target day."""

    name = "AlphaVantage-Intraday"

    def get_price_at(self, ticker: str, instant: datetime) -> Optional[PricePoint]:
        local = self.session.local(instant)
        month = local.strftime("%Y-%m")
        payload = self._get_json(
            _BASE_URL,
            {
                "function": "TIME_SERIES_INTRADAY",
                "symbol": ticker,
                "interval": "5min",
                "month": month,
                "outputsize": "full",
                "extended_hours": "false",
            },
            cache_key=f"alphavantage_intraday_{ticker}_{month}",
            context=f"{ticker} {local:%Y-%m-%d %H:%M}",
        )
        if payload is None:
            return None

        series = payload.get("Time Series (5min)")
        if not isinstance(series, dict) or not series:
            logger.warning(f"AlphaVantage-Intraday: no 5min data for {ticker} in {month}")
            return None

        candles = _series_frame(series)
        stamps = pd.to_datetime(candles["stamp"], errors="coerce")
        candles = candles[stamps.notna()].copy()
        # Stamps are exchange-local wall time
        candles["timestamp"] = stamps[stamps.notna()].dt.tz_localize(self.session.timezone).dt.tz_convert("UTC")
        candles = candles[candles["timestamp"].dt.tz_convert(self.session.timezone).dt.date == local.date()]

        row = select_intraday_candle(candles, instant)
        if row is None:
            logger.warning(
                f"AlphaVantage-Intraday: no candle within 30min of {local:%Y-%m-%d %H:%M} for {ticker}"
            )
            return None
        return to_price_point(row, ticker, row["timestamp"], self.name)
