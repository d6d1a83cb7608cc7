"""Pipeline engine — builds every component from config and exposes one method per job.

Jobs:
  fetch     — poll Finnhub/RSS, archive unseen articles
  ingest    — classify the next batch of pending articles
  validate  — score aged predictions against realised prices
  report    — read-only analytics over the stored outcomes
  serve     — run the three mutating jobs on their intervals until stopped

The jobs share nothing but the record store, so each one can be run on its own
from the CLI or by the scheduler.
"""

import os
from datetime import timedelta
from typing import Any, Dict, List, Optional

from signalcheck.core.cache import ResponseCache
from signalcheck.core.logger import logger
from signalcheck.core.market_hours import MarketSession
from signalcheck.core.pacing import PacingGate
from signalcheck.models.datatypes import IngestionResult, ValidationSummary
from signalcheck.pipeline.analytics import build_report
from signalcheck.pipeline.archiver import NewsArchiver
from signalcheck.pipeline.ingestion import IngestionGate
from signalcheck.pipeline.scheduler import PipelineScheduler
from signalcheck.pipeline.validation import ValidationEngine
from signalcheck.providers.base import NewsSource, PriceDataProvider
from signalcheck.providers.chain import PriceProviderChain, build_chain
from signalcheck.providers.news import FinnhubNewsSource, RssNewsSource
from signalcheck.providers.sentiment import SentimentClassifier
from signalcheck.storage.store import RecordStore


class PipelineEngine:
    """Wires store, providers, classifier and jobs from a parsed config.

    Components are built lazily, so ``report`` never needs LLM or quote credentials.

    Args:
        config: Parsed config.yaml dict (passed in; not re-loaded internally).
        store: Pre-built record store (tests pass one on ``tmp_path``).
        classifier: Pre-built classifier.
        prices: Pre-built price provider for the configured mode.
        news_sources: Pre-built news sources.
        sleep: Sleep function for the validation pacing gate.
    """

    def __init__(
        self,
        config: dict,
        store: Optional[RecordStore] = None,
        classifier: Optional[SentimentClassifier] = None,
        prices: Optional[PriceDataProvider] = None,
        news_sources: Optional[List[NewsSource]] = None,
        sleep=None,
    ) -> None:
        self.config = config
        self.store = store or RecordStore(config["database"]["path"])
        self._classifier = classifier
        self._prices = prices
        self._news_sources = news_sources
        self._sleep = sleep
        self._cache: Optional[ResponseCache] = None

    # ── components ────────────────────────────────────────────────────────────

    @property
    def cache(self) -> ResponseCache:
        if self._cache is None:
            db = self.config["database"]
            self._cache = ResponseCache(db["cache_path"], ttl_hours=db.get("cache_ttl_hours", 6))
        return self._cache

    @property
    def classifier(self) -> SentimentClassifier:
        if self._classifier is None:
            self._classifier = SentimentClassifier.from_config(self.config)
        return self._classifier

    @property
    def prices(self) -> PriceDataProvider:
        if self._prices is None:
            self._prices = build_chain(self.config, cache=self.cache)
        return self._prices

    @property
    def news_sources(self) -> List[NewsSource]:
        if self._news_sources is None:
            news = self.config["news"]
            timeout = self.config["providers"].get("timeout_seconds", 15)
            sources: List[NewsSource] = [
                FinnhubNewsSource(os.getenv("FINNHUB_API_KEY", ""), news.get("finnhub_category", "general"), timeout)
            ]
            if news.get("rss_feeds"):
                sources.append(RssNewsSource(news["rss_feeds"]))
            self._news_sources = sources
        return self._news_sources

    def validation_engine(self) -> ValidationEngine:
        validation = self.config["validation"]
        mode = validation["mode"]
        pacing_args = {
            "per_pause": validation.get("records_per_pause", 2),
            "pause_seconds": validation.get("pause_seconds", 65),
        }
        if self._sleep is not None:
            pacing_args["sleep"] = self._sleep
        return ValidationEngine(
            store=self.store,
            prices=self.prices,
            mode=mode,
            session=MarketSession.from_config(self.config),
            limit=validation.get("limit", 50),
            min_age=timedelta(hours=validation["min_age_hours"][mode]),
            max_attempts=validation.get("max_attempts", 12),
            pacing=PacingGate(**pacing_args),
        )

    # ── jobs ──────────────────────────────────────────────────────────────────

    def fetch_news(self) -> Dict[str, int]:
        return NewsArchiver(self.store, self.news_sources).run()

    def ingest(self) -> IngestionResult:
        batch_size = self.config["ingestion"].get("batch_size", 20)
        return IngestionGate(self.store, self.classifier, batch_size).run()

    def validate(self) -> ValidationSummary:
        return self.validation_engine().run()

    def report(self) -> Dict[str, Any]:
        return build_report(self.store)

    def check_ticker(self, ticker: str) -> Dict[str, bool]:
        """
        Ask every configured provider whether ``ticker`` is a known symbol.

        Args:
            ticker (str): Symbol to check; case-insensitive.

        Returns:
            Dict[str, bool]: Provider name → verdict.
        """
        ticker = ticker.strip().upper()
        prices = self.prices
        if isinstance(prices, PriceProviderChain):
            results = prices.check_ticker(ticker)
        else:
            results = {prices.get_provider_name(): prices.is_valid_ticker(ticker)}
        logger.info(f"PipelineEngine: ticker check {ticker}: {results}")
        return results

    def scheduler(self) -> PipelineScheduler:
        """Scheduler with the fetch, ingestion and validation jobs registered."""
        scheduler = PipelineScheduler()
        scheduler.add_job("news", self.fetch_news, self.config["news"]["interval_minutes"])
        scheduler.add_job("ingestion", self.ingest, self.config["ingestion"]["interval_minutes"])
        scheduler.add_job("validation", self.validate, self.config["validation"]["interval_minutes"])
        return scheduler

    def serve(self, run_immediately: bool = True) -> None:
        self.scheduler().start(run_immediately=run_immediately)
