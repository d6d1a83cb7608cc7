"""Ingestion gate — pending raw articles → classifier → sentiment records.

Flow per run:
  1. Up to ``batch_size`` articles with no sentiment record and no ledger entry,
     oldest first, so a steady stream of fresh news cannot starve old articles.
  2. One classifier call for the whole batch.
  3. Per verdict:
       relevant + exactly one ticker → sentiment record (publish time as news_timestamp)
       relevant + 0 or 2+ tickers    → discarded, ledger "ambiguous"
       not relevant                  → ledger "irrelevant"
     Articles without a verdict are left untouched and come back next run.

A storage failure on one article is logged and the run moves on.
"""

import sqlite3

from signalcheck.core.logger import logger
from signalcheck.models.datatypes import ArticleInput, IngestionResult
from signalcheck.providers.sentiment import MAX_BATCH_SIZE, SentimentClassifier
from signalcheck.storage.store import OUTCOME_AMBIGUOUS, OUTCOME_IRRELEVANT, RecordStore


class IngestionGate:
    """Selects the next batch of unclassified news and persists accepted verdicts.

    Args:
        store: Record store.
        classifier: Batch sentiment classifier.
        batch_size: Articles per run, at most the classifier's batch limit.
    """

    def __init__(self, store: RecordStore, classifier: SentimentClassifier, batch_size: int = 20) -> None:
        self.store = store
        self.classifier = classifier
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)

    def run(self) -> IngestionResult:
        result = IngestionResult()
        try:
            pending = self.store.fetch_pending_articles(self.batch_size)
        except sqlite3.Error as exc:
            logger.error(f"IngestionGate: could not read pending articles: {exc}")
            return result

        result.fetched = len(pending)
        if not pending:
            logger.info("IngestionGate: no pending articles, skipping this run")
            return result

        logger.info(f"IngestionGate: classifying {len(pending)} pending articles")
        verdicts = self.classifier.analyze_batch(
            [ArticleInput(id=a.id, headline=a.title, summary=a.summary) for a in pending]
        )

        for article in pending:
            verdict = verdicts.get(article.id)
            if verdict is None:
                result.missing += 1
                continue
            result.classified += 1

            logger.info(
                f"IngestionGate: {article.id} relevant={verdict.market_relevant} "
                f"tickers={verdict.tickers} sentiment={verdict.sentiment:+.2f}"
            )
            try:
                if verdict.accepted:
                    if self.store.save_sentiment(article.id, verdict, article.published_at):
                        result.saved += 1
                elif verdict.market_relevant:
                    logger.info(
                        f"IngestionGate: discarding {article.id}, expected 1 ticker, "
                        f"got {len(verdict.tickers)}"
                    )
                    self.store.mark_processed(article.id, OUTCOME_AMBIGUOUS)
                    result.ambiguous += 1
                else:
                    self.store.mark_processed(article.id, OUTCOME_IRRELEVANT)
                    result.irrelevant += 1
            except sqlite3.Error as exc:
                logger.error(f"IngestionGate: failed to persist verdict for {article.id}: {exc}")
                result.failed += 1

        logger.info(
            f"IngestionGate: {result.saved} saved, {result.irrelevant} irrelevant, "
            f"{result.ambiguous} ambiguous, {result.missing} without verdict, {result.failed} failed"
        )
        return result
