"""Validation engine — sentiment records → price window → scored outcome.

Flow per run:
  1. Up to ``limit`` pending records older than the mode's minimum age
     (daily candles settle after ~48h, intraday after ~2h), strongest |sentiment| first.
  2. Per record, the price window:
       daily    — close of the publish day (in session) or of the previous day,
                  against the close of the next calendar day
       intraday — 5min before vs 30min after publication, both inside the session
  3. Both closes through the provider chain; the pacing gate spaces the lookups.
  4. Outcome row + ``validated`` flag written in one transaction.

Record states after a run:
  validated      — outcome stored
  pending        — prices unavailable this time; attempts counted
  unvalidatable  — window can never be admissible, or attempts exhausted
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from signalcheck.core.logger import logger
from signalcheck.core.market_hours import MarketSession, PriceWindow
from signalcheck.core.pacing import PacingGate
from signalcheck.models.datatypes import SentimentRecord, ValidationRecord, ValidationSummary
from signalcheck.pipeline.scoring import score_prediction, volume_change_pct
from signalcheck.providers.base import PriceDataProvider
from signalcheck.storage.store import STATUS_UNVALIDATABLE, RecordStore

VALIDATED = "validated"
NO_DATA = "no_data"
SKIPPED_WINDOW = "skipped_window"
UNVALIDATABLE = "unvalidatable"
FAILED = "failed"

DEFAULT_MIN_AGE_HOURS = {"daily": 48, "intraday": 2}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationEngine:
    """Scores persisted predictions against realised price moves.

    Args:
        store: Record store.
        prices: Provider chain matching ``mode``.
        mode: ``"daily"`` or ``"intraday"``.
        session: Exchange session for windowing.
        limit: Records per run.
        min_age: Minimum news age; defaults by mode.
        max_attempts: No-data attempts before a record turns unvalidatable (0 = unbounded).
        pacing: Gate spacing the provider lookups.
        clock: Returns "now" (UTC).
    """

    def __init__(
        self,
        store: RecordStore,
        prices: PriceDataProvider,
        mode: str = "daily",
        session: Optional[MarketSession] = None,
        limit: int = 50,
        min_age: Optional[timedelta] = None,
        max_attempts: int = 12,
        pacing: Optional[PacingGate] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if mode not in DEFAULT_MIN_AGE_HOURS:
            raise ValueError(f"unknown validation mode {mode!r}")
        self.store = store
        self.prices = prices
        self.mode = mode
        self.session = session or MarketSession()
        self.limit = limit
        self.min_age = min_age or timedelta(hours=DEFAULT_MIN_AGE_HOURS[mode])
        self.max_attempts = max_attempts
        self.pacing = pacing or PacingGate()
        self.clock = clock

    # ── public ────────────────────────────────────────────────────────────────

    def run(self) -> ValidationSummary:
        summary = ValidationSummary()
        try:
            pending = self.store.fetch_pending_sentiments(self.min_age, self.limit, now=self.clock())
        except sqlite3.Error as exc:
            logger.error(f"ValidationEngine: could not read pending sentiments: {exc}")
            return summary

        summary.selected = len(pending)
        if not pending:
            logger.info(f"ValidationEngine: no pending sentiments older than {self.min_age}")
            return summary

        logger.info(f"ValidationEngine: validating {len(pending)} sentiments ({self.mode} mode)")
        self.pacing.reset()
        for record in pending:
            try:
                status, outcome = self.validate_record(record)
            except sqlite3.Error as exc:
                logger.error(f"ValidationEngine: storage failure for {record.article_id}/{record.ticker}: {exc}")
                summary.failed += 1
                continue
            except Exception as exc:
                logger.error(
                    f"ValidationEngine: validation of {record.article_id}/{record.ticker} failed: {exc}",
                    exc_info=True,
                )
                summary.failed += 1
                continue

            if status == VALIDATED:
                summary.validated += 1
                summary.correct += int(outcome.prediction_correct)
                if outcome.provider not in summary.providers_used:
                    summary.providers_used.append(outcome.provider)
            elif status == NO_DATA:
                summary.no_data += 1
            elif status == SKIPPED_WINDOW:
                summary.skipped_window += 1
            elif status == UNVALIDATABLE:
                summary.unvalidatable += 1

        logger.info(
            f"ValidationEngine: {summary.validated}/{summary.selected} validated "
            f"({summary.correct} correct), {summary.no_data} without data, "
            f"{summary.skipped_window} outside window, {summary.unvalidatable} given up, "
            f"{summary.failed} failed"
        )
        return summary

    def price_window(self, news_time: datetime) -> Optional[PriceWindow]:
        """Window for the configured mode; None when intraday bounds leave the session."""
        if self.mode == "daily":
            return self.session.daily_window(news_time)
        return self.session.intraday_window(news_time)

    def validate_record(self, record: SentimentRecord) -> tuple:
        """
        Validate one record.

        Returns:
            tuple: ``(status, ValidationRecord or None)``; the record is set only
            for ``validated``.

        Raises:
            sqlite3.Error: If the store fails; the run loop logs and moves on.
        """
        label = f"{record.article_id}/{record.ticker}"
        window = self.price_window(record.news_timestamp)
        if window is None:
            logger.info(f"ValidationEngine: {label} window leaves the trading session, not admissible")
            self.store.mark_unvalidatable(record.article_id, record.ticker)
            return SKIPPED_WINDOW, None

        self.pacing.admit()
        before = self.prices.get_price_at(record.ticker, window.before)
        after = self.prices.get_price_at(record.ticker, window.after) if before else None
        if before is None or after is None:
            logger.warning(f"ValidationEngine: could not fetch prices for {label} at {record.news_timestamp}")
            status = self.store.record_failed_attempt(record.article_id, record.ticker, self.max_attempts)
            if status == STATUS_UNVALIDATABLE:
                logger.warning(f"ValidationEngine: {label} reached {self.max_attempts} attempts, giving up")
                return UNVALIDATABLE, None
            return NO_DATA, None

        if self.mode == "daily" and after.timestamp <= before.timestamp:
            logger.info(
                f"ValidationEngine: {label} both closes resolve to the same trading day "
                f"({before.timestamp:%Y-%m-%d}), not admissible"
            )
            self.store.mark_unvalidatable(record.article_id, record.ticker)
            return UNVALIDATABLE, None

        outcome = score_prediction(before.close, after.close, record.sentiment)
        provider = before.provider if before.provider == after.provider else f"{before.provider}/{after.provider}"
        outcome_record = ValidationRecord(
            article_id=record.article_id,
            ticker=record.ticker,
            price_before=outcome.price_before,
            price_after=outcome.price_after,
            price_diff=outcome.price_diff,
            price_change_pct=outcome.price_change_pct,
            sentiment_score=record.sentiment,
            actual_direction=outcome.actual_direction,
            prediction_correct=outcome.prediction_correct,
            news_timestamp=record.news_timestamp,
            validated_at=self.clock(),
            provider=provider,
            volume_before=before.volume,
            volume_after=after.volume,
            volume_change_pct=volume_change_pct(before.volume, after.volume),
        )
        saved = self.store.save_validation(outcome_record)
        logger.info(
            f"ValidationEngine: {'validated' if saved else 'already had outcome for'} {label}: "
            f"sentiment={record.sentiment:+.2f}, price {outcome.price_before:.2f}→{outcome.price_after:.2f} "
            f"({outcome.price_change_pct:+.2f}%), correct={outcome.prediction_correct}, via {provider}"
        )
        return VALIDATED, outcome_record
