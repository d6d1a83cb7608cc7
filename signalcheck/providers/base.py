"""Abstract base classes and shared plumbing for data providers."""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import requests

from signalcheck.core.cache import ResponseCache
from signalcheck.core.logger import logger
from signalcheck.core.market_hours import MarketSession, to_utc
from signalcheck.models.datatypes import PricePoint, RawArticle

INTRADAY_TOLERANCE = pd.Timedelta(minutes=30)

_CANDLE_COLUMNS = ["open", "high", "low", "close", "volume"]


class PriceDataProvider(ABC):
    """Uniform price lookup over one upstream quote source.

    Implementations never raise for upstream trouble: timeouts, malformed
    payloads and exhausted quotas all come back as ``None`` / ``False`` with a
    logged diagnostic, because on free tiers unavailability is the normal case.
    """

    @abstractmethod
    def get_price_at(self, ticker: str, instant: datetime) -> Optional[PricePoint]:
        """
        Return the candle that represents ``ticker`` at ``instant``.

        Args:
            ticker (str): Exchange symbol, e.g. ``"AAPL"``.
            instant (datetime): Target instant; naive values are UTC.

        Returns:
            Optional[PricePoint]: The selected candle, or None if unavailable.
        """

    @abstractmethod
    def is_valid_ticker(self, ticker: str) -> bool:
        """Return True if the source knows ``ticker`` as a tradable symbol."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Name recorded on validation outcomes and in logs."""


class NewsSource(ABC):
    """Abstract interface for polling raw market news."""

    @abstractmethod
    def fetch_articles(self) -> List[RawArticle]:
        """
        Return the articles currently offered by the source.

        Returns:
            List[RawArticle]: Normalised articles; empty on failure.
        """


class CredentialRotation:
    """API keys of one provider and which of them is in use.

    Owned by a single provider instance. On a detected quota error the provider
    calls :meth:`rotate`; keys cycle, so the primary comes back into use once the
    secondary is exhausted too (daily quotas reset).

    Args:
        provider: Provider name, for logs.
        keys: Primary key first. Empty entries are dropped.
    """

    def __init__(self, provider: str, keys: Sequence[str]) -> None:
        self.provider = provider
        self.keys = [key for key in keys if key]
        self.index = 0

    @property
    def current(self) -> Optional[str]:
        if not self.keys:
            return None
        return self.keys[self.index]

    @property
    def using_secondary(self) -> bool:
        return self.index > 0

    def rotate(self) -> bool:
        """
        Switch to the next configured key.

        Returns:
            bool: True if a different key is now active.
        """
        if len(self.keys) < 2:
            logger.warning(f"{self.provider}: rate limited and no secondary key configured")
            return False
        self.index = (self.index + 1) % len(self.keys)
        label = "secondary" if self.using_secondary else "primary"
        logger.warning(f"{self.provider}: rate limited, rotated to {label} key")
        return True


class HttpQuoteProvider(PriceDataProvider):
    """Base for JSON-over-HTTP quote APIs with key rotation and response caching.

    Subclasses implement :meth:`_rate_limit_message` and :meth:`_error_message`
    to classify their error bodies.
    """

    name = "http"

    def __init__(
        self,
        keys: Sequence[str],
        cache: Optional[ResponseCache] = None,
        session: Optional[MarketSession] = None,
        timeout: float = 15,
    ) -> None:
        self.credentials = CredentialRotation(self.name, keys)
        self.cache = cache
        self.session = session or MarketSession()
        self.timeout = timeout

    def get_provider_name(self) -> str:
        return self.name

    def _rate_limit_message(self, payload: Dict[str, Any]) -> Optional[str]:
        """Return the quota error text if ``payload`` signals one."""
        return None

    def _error_message(self, payload: Dict[str, Any]) -> Optional[str]:
        """Return the error text if ``payload`` is any other upstream error."""
        return None

    def _get_json(self, url: str, params: Dict[str, Any], cache_key: Optional[str] = None,
                  context: str = "") -> Optional[Dict[str, Any]]:
        """
        GET ``url`` with the active key and return the decoded JSON object.

        Successful payloads are cached under ``cache_key``. Quota errors rotate
        the key and return None; the caller retries on a later run.
        """
        if cache_key and self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        api_key = self.credentials.current
        if not api_key:
            logger.warning(f"{self.name}: no API key configured, skipping {context}")
            return None

        try:
            resp = requests.get(url, params={**params, "apikey": api_key}, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error(f"{self.name}: INFRA_FAILURE for {context}: {exc}")
            return None

        if resp.status_code == 429:
            logger.warning(f"{self.name}: HTTP 429 for {context}")
            self.credentials.rotate()
            return None
        if resp.status_code != 200:
            logger.error(f"{self.name}: HTTP {resp.status_code} for {context}: {resp.text[:200]}")
            return None

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error(f"{self.name}: malformed JSON for {context}: {exc}")
            return None
        if not isinstance(payload, dict):
            logger.error(f"{self.name}: unexpected payload type {type(payload).__name__} for {context}")
            return None

        quota = self._rate_limit_message(payload)
        if quota:
            logger.warning(f"{self.name}: rate limit for {context}: {quota}")
            self.credentials.rotate()
            return None
        error = self._error_message(payload)
        if error:
            logger.warning(f"{self.name}: upstream error for {context}: {error}")
            return None

        if cache_key and self.cache is not None:
            self.cache.set(cache_key, payload)
        return payload


# ── candle selection ─────────────────────────────────────────────────────────

def select_daily_candle(candles: pd.DataFrame, target_day: date) -> Optional[pd.Series]:
    """
    Pick the candle of ``target_day`` or else of the latest earlier trading day.

    Args:
        candles: Frame with a ``day`` column of ``datetime.date`` plus OHLCV columns.
        target_day: Exchange-local calendar day.

    Returns:
        Optional[pd.Series]: The selected row, never one after ``target_day``.
    """
    if candles.empty:
        return None
    eligible = candles[candles["day"] <= target_day]
    if eligible.empty:
        return None
    return eligible.sort_values("day").iloc[-1]


def select_intraday_candle(candles: pd.DataFrame, target: datetime,
                           tolerance: pd.Timedelta = INTRADAY_TOLERANCE) -> Optional[pd.Series]:
    """
    Pick the candle whose timestamp is closest to ``target`` within ``tolerance``.

    Args:
        candles: Frame with a tz-aware ``timestamp`` column plus OHLCV columns.
        target: Target instant.
        tolerance: Largest accepted distance.

    Returns:
        Optional[pd.Series]: The nearest row, or None if it is too far away.
    """
    if candles.empty:
        return None
    distance = (candles["timestamp"] - to_utc(target)).abs()
    nearest = distance.idxmin()
    if distance.loc[nearest] > tolerance:
        return None
    return candles.loc[nearest]


def to_price_point(row: pd.Series, ticker: str, timestamp: datetime, provider: str) -> Optional[PricePoint]:
    """Build a :class:`PricePoint` from a candle row; None if the close is unusable."""
    close = float(row["close"])
    if pd.isna(close) or close <= 0:
        logger.warning(f"{provider}: unusable close {row['close']!r} for {ticker} at {timestamp}")
        return None
    volume = row.get("volume", 0)
    return PricePoint(
        ticker=ticker,
        timestamp=to_utc(timestamp).to_pydatetime(),
        open=float(row.get("open", 0.0)),
        high=float(row.get("high", 0.0)),
        low=float(row.get("low", 0.0)),
        close=close,
        volume=0 if pd.isna(volume) else int(volume),
        provider=provider,
    )


def numeric_candles(records: List[Dict[str, Any]]) -> pd.DataFrame:
    """Frame of upstream candle dicts with OHLCV coerced to numbers (bad values → NaN)."""
    frame = pd.DataFrame(records)
    for column in _CANDLE_COLUMNS:
        if column in frame.columns:
            frame[column] = pd.to_numeric(frame[column], errors="coerce")
    return frame
