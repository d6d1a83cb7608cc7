"""Yahoo Finance candles via yfinance. Keyless, so there is no key to rotate."""

from datetime import datetime, timedelta
from typing import Optional

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFRateLimitError

from signalcheck.core.logger import logger
from signalcheck.core.market_hours import MarketSession
from signalcheck.models.datatypes import PricePoint
from signalcheck.providers.base import (
    PriceDataProvider, select_daily_candle, select_intraday_candle, to_price_point,
)


class YahooFinanceProvider(PriceDataProvider):
    """Daily (``1d``) or intraday (``5m``) history from Yahoo Finance.

    Yahoo keeps 5-minute bars for roughly 60 days, so intraday lookups of older
    news come back empty and fall through to the next provider.

    Args:
        interval: ``"1d"`` or ``"5m"``.
        session: Exchange session used to resolve the target day.
    """

    def __init__(self, interval: str = "1d", session: Optional[MarketSession] = None) -> None:
        if interval not in ("1d", "5m"):
            raise ValueError(f"unsupported Yahoo interval {interval!r}")
        self.interval = interval
        self.session = session or MarketSession()

    def get_provider_name(self) -> str:
        return "Yahoo" if self.interval == "1d" else "Yahoo-Intraday"

    def _history(self, ticker: str, start: str, end: str) -> pd.DataFrame:
        """Fetch history with lower-cased OHLCV columns; empty frame on any failure."""
        name = self.get_provider_name()
        try:
            hist = yf.Ticker(ticker).history(
                start=start, end=end, interval=self.interval, auto_adjust=False,
            )
        except YFRateLimitError as exc:
            logger.warning(f"{name}: rate limit for {ticker}: {exc}")
            return pd.DataFrame()
        except Exception as exc:
            logger.error(f"{name}: INFRA_FAILURE for {ticker} {start}..{end}: {exc}")
            return pd.DataFrame()

        if hist is None or hist.empty:
            logger.warning(f"{name}: no history returned for {ticker} {start}..{end}")
            return pd.DataFrame()

        hist = hist.rename(columns=str.lower)
        index = hist.index
        if index.tz is None:
            index = index.tz_localize(self.session.timezone)
        hist["timestamp"] = index.tz_convert("UTC")
        hist["day"] = index.tz_convert(self.session.timezone).date
        return hist.reset_index(drop=True)

    def get_price_at(self, ticker: str, instant: datetime) -> Optional[PricePoint]:
        target_day = self.session.local_day(instant)
        name = self.get_provider_name()

        if self.interval == "1d":
            # yfinance `end` is exclusive; the 10-day buffer spans long weekends
            candles = self._history(
                ticker,
                (target_day - timedelta(days=10)).isoformat(),
                (target_day + timedelta(days=1)).isoformat(),
            )
            row = select_daily_candle(candles, target_day)
            if row is None:
                logger.warning(f"{name}: no trading day on or before {target_day} for {ticker}")
                return None
            candle_time = pd.Timestamp(row["day"]).tz_localize(self.session.timezone)
            return to_price_point(row, ticker, candle_time, name)

        candles = self._history(
            ticker, target_day.isoformat(), (target_day + timedelta(days=1)).isoformat(),
        )
        row = select_intraday_candle(candles, instant)
        if row is None:
            logger.warning(f"{name}: no candle within 30min of {instant} for {ticker}")
            return None
        return to_price_point(row, ticker, row["timestamp"], name)

    def is_valid_ticker(self, ticker: str) -> bool:
        try:
            hist = yf.Ticker(ticker).history(period="5d", interval="1d")
        except Exception as exc:
            logger.error(f"{self.get_provider_name()}: ticker check failed for {ticker}: {exc}")
            return False
        return hist is not None and not hist.empty
