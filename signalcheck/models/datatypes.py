"""Data structures shared by the ingestion and validation pipelines.

Timestamps are timezone-aware UTC ``datetime`` values throughout; the store
converts them at its boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List


@dataclass
class RawArticle:
    """
    A news article as archived from a news source. Immutable once stored.
    """
    id: str
    title: str
    summary: str
    published_at: datetime
    source: str
    url: str = ""


@dataclass
class ArticleInput:
    """One entry of a classification batch."""
    id: str
    headline: str
    summary: str = ""


@dataclass
class Verdict:
    """
    Classifier output for one article.

    Attributes:
        market_relevant: Whether the article concerns a company, sector or macro event.
        tickers: Tickers the model attributed; only a single ticker is accepted downstream.
        sentiment: Bearish/bullish conviction in ``[-1.0, 1.0]``.
        reasoning: Short model explanation.
    """
    market_relevant: bool = False
    tickers: List[str] = field(default_factory=list)
    sentiment: float = 0.0
    reasoning: str = ""

    @property
    def accepted(self) -> bool:
        """True when the verdict may become a sentiment record."""
        return self.market_relevant and len(self.tickers) == 1


@dataclass
class SentimentRecord:
    """
    A persisted (article, ticker) sentiment prediction awaiting validation.
    """
    article_id: str
    ticker: str
    sentiment: float
    reasoning: str
    analyzed_at: datetime
    news_timestamp: datetime
    validated: bool = False
    validation_attempts: int = 0
    validation_status: str = "pending"


@dataclass
class PricePoint:
    """
    One OHLCV candle returned by a quote provider.

    ``timestamp`` is the candle start (daily candles: exchange-local midnight).
    ``provider`` names the source that produced it.
    """
    ticker: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int
    provider: str


@dataclass(frozen=True)
class PredictionOutcome:
    """Derived price move and correctness for one prediction."""
    price_before: float
    price_after: float
    price_diff: float
    price_change_pct: float
    actual_direction: int
    sentiment_direction: int
    prediction_correct: bool


@dataclass
class ValidationRecord:
    """
    Append-only outcome row for a validated sentiment record.
    """
    article_id: str
    ticker: str
    price_before: float
    price_after: float
    price_diff: float
    price_change_pct: float
    sentiment_score: float
    actual_direction: int
    prediction_correct: bool
    news_timestamp: datetime
    validated_at: datetime
    provider: str
    volume_before: int = 0
    volume_after: int = 0
    volume_change_pct: float = 0.0


@dataclass
class IngestionResult:
    """Counters for one ingestion run."""
    fetched: int = 0
    classified: int = 0
    saved: int = 0
    irrelevant: int = 0
    ambiguous: int = 0
    missing: int = 0
    failed: int = 0


@dataclass
class ValidationSummary:
    """Counters for one validation run."""
    selected: int = 0
    validated: int = 0
    correct: int = 0
    no_data: int = 0
    skipped_window: int = 0
    unvalidatable: int = 0
    failed: int = 0
    providers_used: List[str] = field(default_factory=list)
