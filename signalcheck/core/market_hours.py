"""Exchange calendar helpers: local time, regular session, validation windows.

All instants handed to this module may be naive (interpreted as UTC) or
timezone-aware. Everything returned is a timezone-aware ``pd.Timestamp``.
Exchange holidays are not modelled; a daily provider resolves a holiday to the
previous trading day on its own.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

import pandas as pd

from signalcheck.core.logger import logger

Instant = Union[datetime, pd.Timestamp, str]

INTRADAY_BEFORE = pd.Timedelta(minutes=5)
INTRADAY_AFTER = pd.Timedelta(minutes=30)


def to_utc(instant: Instant) -> pd.Timestamp:
    """Normalise ``instant`` to a UTC ``pd.Timestamp``; naive values are taken as UTC."""
    ts = pd.Timestamp(instant)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def _parse_clock(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


@dataclass(frozen=True)
class PriceWindow:
    """The pair of instants whose closes are compared for one news item."""
    before: pd.Timestamp
    after: pd.Timestamp
    during_market_hours: bool


class MarketSession:
    """Regular trading session of one exchange, in exchange-local time.

    Args:
        timezone: IANA name of the exchange timezone.
        open_at: Session open ``HH:MM``. The default 09:30 leaves out the 09:00-09:30
            pre-open half-hour whose prints are thin.
        close_at: Session close ``HH:MM``.
    """

    def __init__(self, timezone: str = "America/New_York",
                 open_at: str = "09:30", close_at: str = "16:00") -> None:
        self.timezone = timezone
        self.open_time = _parse_clock(open_at)
        self.close_time = _parse_clock(close_at)

    @classmethod
    def from_config(cls, config: dict) -> "MarketSession":
        market = config.get("market", {})
        return cls(
            timezone=market.get("timezone", "America/New_York"),
            open_at=market.get("open", "09:30"),
            close_at=market.get("close", "16:00"),
        )

    def local(self, instant: Instant) -> pd.Timestamp:
        """Return ``instant`` in exchange-local time."""
        return to_utc(instant).tz_convert(self.timezone)

    def local_day(self, instant: Instant) -> date:
        """Exchange-local calendar day of ``instant``."""
        return self.local(instant).date()

    def session_bounds(self, day: date) -> tuple:
        """Return ``(open, close)`` of ``day`` as timezone-aware timestamps."""
        opens = pd.Timestamp.combine(day, self.open_time).tz_localize(self.timezone)
        closes = pd.Timestamp.combine(day, self.close_time).tz_localize(self.timezone)
        return opens, closes

    def close_instant(self, day: date) -> pd.Timestamp:
        """UTC instant of the session close on ``day``."""
        return self.session_bounds(day)[1].tz_convert("UTC")

    def is_market_hours(self, instant: Instant) -> bool:
        """True on a weekday between the session open (inclusive) and close (exclusive)."""
        local = self.local(instant)
        if local.weekday() >= 5:
            return False
        return self.open_time <= local.time() < self.close_time

    def daily_window(self, news_time: Instant) -> PriceWindow:
        """
        Closes to compare for daily candles.

        News during the session is measured from that day's close, anything else
        from the previous calendar day's close. The comparison is always the close
        of the calendar day after publication.
        """
        local = self.local(news_time)
        during = self.is_market_hours(local)
        publish_day = local.date()
        reference_day = publish_day if during else publish_day - timedelta(days=1)
        comparison_day = publish_day + timedelta(days=1)
        if comparison_day.weekday() >= 5:
            # Resolves backwards to the last trading close, which may predate the news
            logger.debug(
                f"MarketSession: news at {local:%Y-%m-%d %H:%M} compares against non-trading day "
                f"{comparison_day}, both closes may precede publication"
            )
        return PriceWindow(
            before=self.close_instant(reference_day),
            after=self.close_instant(comparison_day),
            during_market_hours=during,
        )

    def intraday_window(self, news_time: Instant) -> Optional[PriceWindow]:
        """
        Instants to compare for intraday candles, or None if not admissible.

        The window is 5 minutes before to 30 minutes after publication, and both
        ends must fall inside the same regular session as the news itself.
        """
        published = to_utc(news_time)
        if not self.is_market_hours(published):
            return None

        before = published - INTRADAY_BEFORE
        after = published + INTRADAY_AFTER
        opens, closes = self.session_bounds(self.local_day(published))
        if before < opens or after > closes:
            return None
        return PriceWindow(before=before, after=after, during_market_hours=True)
