"""SQLite record store for raw articles, sentiment records and validation outcomes.

Tables:
    news_raw          write-once raw articles (archiver)
    news_processed    ledger of articles a classification batch has consumed
    news_analyzed     sentiment records, one per (article_id, ticker)
    signals_verified  append-only validation outcomes

Every write is guarded by an existence check so an interrupted or repeated run
never duplicates rows. Methods raise ``sqlite3.Error``; the pipeline decides
whether a failure skips a record or a run.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from signalcheck.core.logger import logger
from signalcheck.core.market_hours import to_utc
from signalcheck.models.datatypes import (
    RawArticle, SentimentRecord, ValidationRecord, Verdict,
)

_TS_FMT = "%Y-%m-%d %H:%M:%S"

STATUS_PENDING = "pending"
STATUS_VALIDATED = "validated"
STATUS_UNVALIDATABLE = "unvalidatable"

OUTCOME_CLASSIFIED = "classified"
OUTCOME_IRRELEVANT = "irrelevant"
OUTCOME_AMBIGUOUS = "ambiguous"

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS news_raw (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        summary TEXT,
        url TEXT,
        source TEXT,
        published_at TEXT NOT NULL,
        archived_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_news_raw_published ON news_raw (published_at)",
    """
    CREATE TABLE IF NOT EXISTS news_processed (
        article_id TEXT PRIMARY KEY,
        outcome TEXT NOT NULL,
        processed_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS news_analyzed (
        article_id TEXT NOT NULL,
        ticker TEXT NOT NULL,
        sentiment REAL NOT NULL CHECK (sentiment BETWEEN -1.0 AND 1.0),
        reasoning TEXT,
        analyzed_at TEXT NOT NULL,
        news_timestamp TEXT NOT NULL,
        validated INTEGER NOT NULL DEFAULT 0,
        validation_attempts INTEGER NOT NULL DEFAULT 0,
        validation_status TEXT NOT NULL DEFAULT 'pending',
        PRIMARY KEY (article_id, ticker)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS signals_verified (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        article_id TEXT NOT NULL,
        ticker TEXT NOT NULL,
        price_before REAL NOT NULL,
        price_after REAL NOT NULL,
        price_diff REAL NOT NULL,
        price_change_pct REAL NOT NULL,
        sentiment_score REAL NOT NULL,
        actual_direction INTEGER NOT NULL,
        prediction_correct INTEGER NOT NULL,
        news_timestamp TEXT NOT NULL,
        validated_at TEXT NOT NULL,
        provider TEXT NOT NULL,
        volume_before INTEGER NOT NULL DEFAULT 0,
        volume_after INTEGER NOT NULL DEFAULT 0,
        volume_change_pct REAL NOT NULL DEFAULT 0,
        UNIQUE (article_id, ticker)
    )
    """,
]


def _fmt(value: datetime) -> str:
    return to_utc(value).strftime(_TS_FMT)


def _parse(value: str) -> datetime:
    return datetime.strptime(value, _TS_FMT).replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RecordStore:
    """Persistence boundary of the pipeline.

    Args:
        db_path: SQLite file; parent directories are created.
    """

    def __init__(self, db_path: str = "output/signalcheck.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, roll back on error, always close."""
        conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    # ── raw articles ─────────────────────────────────────────────────────────

    def article_exists(self, article_id: str) -> bool:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM news_raw WHERE id = ? LIMIT 1", (article_id,)
            ).fetchone()
        return row is not None

    def save_raw_article(self, article: RawArticle) -> bool:
        """
        Insert ``article`` unless its id is already archived.

        Returns:
            bool: True if a row was written, False for a duplicate.
        """
        with self.connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM news_raw WHERE id = ? LIMIT 1", (article.id,)
            ).fetchone()
            if exists:
                logger.debug(f"RecordStore: article {article.id} already archived")
                return False
            conn.execute(
                """
                INSERT INTO news_raw (id, title, summary, url, source, published_at, archived_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    article.id, article.title, article.summary, article.url,
                    article.source, _fmt(article.published_at), _fmt(_now()),
                ),
            )
        return True

    def fetch_pending_articles(self, limit: int) -> List[RawArticle]:
        """Articles without a sentiment record or ledger entry, oldest first."""
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT id, title, summary, url, source, published_at
                FROM news_raw
                WHERE id NOT IN (SELECT article_id FROM news_analyzed)
                  AND id NOT IN (SELECT article_id FROM news_processed)
                ORDER BY published_at ASC, id ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            RawArticle(
                id=row["id"],
                title=row["title"],
                summary=row["summary"] or "",
                published_at=_parse(row["published_at"]),
                source=row["source"] or "",
                url=row["url"] or "",
            )
            for row in rows
        ]

    def mark_processed(self, article_id: str, outcome: str) -> None:
        """Record that a batch consumed ``article_id`` without persisting a prediction."""
        with self.connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO news_processed (article_id, outcome, processed_at)
                VALUES (?, ?, ?)
                """,
                (article_id, outcome, _fmt(_now())),
            )

    # ── sentiment records ────────────────────────────────────────────────────

    def save_sentiment(
        self,
        article_id: str,
        verdict: Verdict,
        news_timestamp: datetime,
        analyzed_at: Optional[datetime] = None,
    ) -> bool:
        """
        Persist the single-ticker ``verdict`` for ``article_id``.

        Returns:
            bool: True if written, False if the (article, ticker) pair already exists.

        Raises:
            ValueError: If the verdict is not acceptable for persistence.
        """
        if not verdict.accepted:
            raise ValueError(
                f"verdict for {article_id} is not persistable "
                f"(relevant={verdict.market_relevant}, tickers={verdict.tickers})"
            )
        if not -1.0 <= verdict.sentiment <= 1.0:
            raise ValueError(f"sentiment {verdict.sentiment} outside [-1, 1] for {article_id}")

        ticker = verdict.tickers[0]
        with self.connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM news_analyzed WHERE article_id = ? AND ticker = ? LIMIT 1",
                (article_id, ticker),
            ).fetchone()
            if exists:
                logger.debug(f"RecordStore: sentiment for {article_id}/{ticker} already stored")
                return False
            conn.execute(
                """
                INSERT INTO news_analyzed (
                    article_id, ticker, sentiment, reasoning, analyzed_at, news_timestamp
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    article_id, ticker, verdict.sentiment, verdict.reasoning,
                    _fmt(analyzed_at or _now()), _fmt(news_timestamp),
                ),
            )
            conn.execute(
                """
                INSERT OR IGNORE INTO news_processed (article_id, outcome, processed_at)
                VALUES (?, ?, ?)
                """,
                (article_id, OUTCOME_CLASSIFIED, _fmt(_now())),
            )
        return True

    def fetch_pending_sentiments(
        self,
        min_age: timedelta,
        limit: int,
        now: Optional[datetime] = None,
    ) -> List[SentimentRecord]:
        """Unvalidated, still-pending records older than ``min_age``, strongest first."""
        cutoff = (now or _now()) - min_age
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM news_analyzed
                WHERE validated = 0
                  AND validation_status = ?
                  AND news_timestamp < ?
                ORDER BY abs(sentiment) DESC, news_timestamp ASC
                LIMIT ?
                """,
                (STATUS_PENDING, _fmt(cutoff), limit),
            ).fetchall()
        return [self._to_sentiment(row) for row in rows]

    def get_sentiment(self, article_id: str, ticker: str) -> Optional[SentimentRecord]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM news_analyzed WHERE article_id = ? AND ticker = ?",
                (article_id, ticker),
            ).fetchone()
        return self._to_sentiment(row) if row else None

    def record_failed_attempt(self, article_id: str, ticker: str, max_attempts: int) -> str:
        """
        Count one lookup that found no price data.

        Returns:
            str: The record's status afterwards; ``unvalidatable`` once
            ``max_attempts`` is reached (``0`` means unbounded).
        """
        with self.connect() as conn:
            conn.execute(
                """
                UPDATE news_analyzed SET validation_attempts = validation_attempts + 1
                WHERE article_id = ? AND ticker = ? AND validated = 0
                """,
                (article_id, ticker),
            )
            if max_attempts > 0:
                conn.execute(
                    """
                    UPDATE news_analyzed SET validation_status = ?
                    WHERE article_id = ? AND ticker = ? AND validated = 0
                      AND validation_attempts >= ?
                    """,
                    (STATUS_UNVALIDATABLE, article_id, ticker, max_attempts),
                )
            row = conn.execute(
                "SELECT validation_status FROM news_analyzed WHERE article_id = ? AND ticker = ?",
                (article_id, ticker),
            ).fetchone()
        return row["validation_status"] if row else STATUS_PENDING

    def mark_unvalidatable(self, article_id: str, ticker: str) -> None:
        """Move a record to the terminal state; it stays ``validated = 0``."""
        with self.connect() as conn:
            conn.execute(
                """
                UPDATE news_analyzed SET validation_status = ?
                WHERE article_id = ? AND ticker = ? AND validated = 0
                """,
                (STATUS_UNVALIDATABLE, article_id, ticker),
            )

    # ── validation outcomes ──────────────────────────────────────────────────

    def save_validation(self, record: ValidationRecord) -> bool:
        """
        Insert the outcome row and flip ``validated`` in one transaction.

        Returns:
            bool: True if written, False if an outcome already existed (the flag is
            still set, repairing a half-visible state).
        """
        with self.connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM signals_verified WHERE article_id = ? AND ticker = ? LIMIT 1",
                (record.article_id, record.ticker),
            ).fetchone()
            if not exists:
                conn.execute(
                    """
                    INSERT INTO signals_verified (
                        article_id, ticker, price_before, price_after, price_diff,
                        price_change_pct, sentiment_score, actual_direction,
                        prediction_correct, news_timestamp, validated_at, provider,
                        volume_before, volume_after, volume_change_pct
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.article_id, record.ticker, record.price_before,
                        record.price_after, record.price_diff, record.price_change_pct,
                        record.sentiment_score, record.actual_direction,
                        int(record.prediction_correct), _fmt(record.news_timestamp),
                        _fmt(record.validated_at), record.provider,
                        record.volume_before, record.volume_after, record.volume_change_pct,
                    ),
                )
            conn.execute(
                """
                UPDATE news_analyzed SET validated = 1, validation_status = ?
                WHERE article_id = ? AND ticker = ?
                """,
                (STATUS_VALIDATED, record.article_id, record.ticker),
            )
        return not exists

    def fetch_validations(self) -> List[ValidationRecord]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM signals_verified ORDER BY news_timestamp ASC"
            ).fetchall()
        return [
            ValidationRecord(
                article_id=row["article_id"],
                ticker=row["ticker"],
                price_before=row["price_before"],
                price_after=row["price_after"],
                price_diff=row["price_diff"],
                price_change_pct=row["price_change_pct"],
                sentiment_score=row["sentiment_score"],
                actual_direction=row["actual_direction"],
                prediction_correct=bool(row["prediction_correct"]),
                news_timestamp=_parse(row["news_timestamp"]),
                validated_at=_parse(row["validated_at"]),
                provider=row["provider"],
                volume_before=row["volume_before"],
                volume_after=row["volume_after"],
                volume_change_pct=row["volume_change_pct"],
            )
            for row in rows
        ]

    @staticmethod
    def _to_sentiment(row: sqlite3.Row) -> SentimentRecord:
        return SentimentRecord(
            article_id=row["article_id"],
            ticker=row["ticker"],
            sentiment=row["sentiment"],
            reasoning=row["reasoning"] or "",
            analyzed_at=_parse(row["analyzed_at"]),
            news_timestamp=_parse(row["news_timestamp"]),
            validated=bool(row["validated"]),
            validation_attempts=row["validation_attempts"],
            validation_status=row["validation_status"],
        )
