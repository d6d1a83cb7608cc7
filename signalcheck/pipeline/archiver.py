"""News archiver — polls every news source and stores articles not seen before."""

import sqlite3
from typing import Dict, Sequence

from signalcheck.core.logger import logger
from signalcheck.providers.base import NewsSource
from signalcheck.storage.store import RecordStore


class NewsArchiver:
    """Write-once archival of raw articles.

    Args:
        store: Record store.
        sources: News sources, polled in order.
    """

    def __init__(self, store: RecordStore, sources: Sequence[NewsSource]) -> None:
        self.store = store
        self.sources = list(sources)

    def run(self) -> Dict[str, int]:
        """
        Poll all sources once.

        Returns:
            Dict[str, int]: ``received``, ``saved``, ``duplicates`` and ``failed`` counts.
        """
        counts = {"received": 0, "saved": 0, "duplicates": 0, "failed": 0}
        for source in self.sources:
            for article in source.fetch_articles():
                counts["received"] += 1
                try:
                    if self.store.save_raw_article(article):
                        counts["saved"] += 1
                    else:
                        counts["duplicates"] += 1
                except sqlite3.Error as exc:
                    logger.error(f"NewsArchiver: failed to save {article.id}: {exc}")
                    counts["failed"] += 1

        logger.info(
            f"NewsArchiver: {counts['received']} received, {counts['saved']} saved, "
            f"{counts['duplicates']} duplicates skipped, {counts['failed']} failed"
        )
        return counts
