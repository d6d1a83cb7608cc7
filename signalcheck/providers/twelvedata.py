"""TwelveData daily candles. Free tier: 800 requests/day, 8/minute."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import pandas as pd

from signalcheck.core.logger import logger
from signalcheck.models.datatypes import PricePoint
from signalcheck.providers.base import HttpQuoteProvider, numeric_candles, select_daily_candle, to_price_point

_BASE_URL = "https://api.twelvedata.com"


class TwelveDataProvider(HttpQuoteProvider):
    """Daily close lookups against ``/time_series`` with ``interval=1day``.

    Five candles ending the day after the target are requested, which is enough
    to step back over a weekend or a holiday to the previous trading day.
    """

    name = "TwelveData"

    def _rate_limit_message(self, payload: Dict[str, Any]) -> Optional[str]:
        message = str(payload.get("message", ""))
        if payload.get("code") == 429 or "api credits" in message.lower():
            return message or "code 429"
        return None

    def _error_message(self, payload: Dict[str, Any]) -> Optional[str]:
        code = payload.get("code")
        if payload.get("status") == "error" or (code is not None and code != 200):
            return f"code={code} {payload.get('message', '')}"
        return None

    def get_price_at(self, ticker: str, instant: datetime) -> Optional[PricePoint]:
        target_day = self.session.local_day(instant)
        payload = self._get_json(
            f"{_BASE_URL}/time_series",
            {
                "symbol": ticker,
                "interval": "1day",
                "outputsize": 5,
                "end_date": (target_day + timedelta(days=1)).isoformat(),
            },
            cache_key=f"twelvedata_daily_{ticker}_{target_day}",
            context=f"{ticker} {target_day}",
        )
        if payload is None:
            return None

        values = payload.get("values")
        if not isinstance(values, list) or not values:
            logger.warning(f"TwelveData: no daily data for {ticker} at {target_day}")
            return None

        candles = numeric_candles(values)
        if "datetime" not in candles.columns or "close" not in candles.columns:
            logger.warning(f"TwelveData: candles for {ticker} lack datetime/close columns")
            return None
        candles["day"] = pd.to_datetime(candles["datetime"], errors="coerce").dt.date
        candles = candles.dropna(subset=["day"])

        row = select_daily_candle(candles, target_day)
        if row is None:
            logger.warning(f"TwelveData: no trading day on or before {target_day} for {ticker}")
            return None

        candle_time = pd.Timestamp(row["day"]).tz_localize(self.session.timezone)
        point = to_price_point(row, ticker, candle_time, self.name)
        if point:
            logger.debug(f"TwelveData: {ticker} close={point.close} on {row['day']}")
        return point

    def is_valid_ticker(self, ticker: str) -> bool:
        payload = self._get_json(
            f"{_BASE_URL}/quote", {"symbol": ticker}, context=f"quote {ticker}"
        )
        valid = bool(payload) and payload.get("close") not in (None, "")
        logger.debug(f"TwelveData: ticker {ticker} valid={valid}")
        return valid
