"""Raw market news sources.

    FinnhubNewsSource — ``/api/v1/news`` general market news (source-provided ids)
    RssNewsSource     — any RSS/Atom feed via feedparser (content-derived ids)

Both return normalised :class:`RawArticle` lists and degrade to ``[]`` on
failure; the archiver decides what is new.
"""

import hashlib
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import feedparser
import requests

from signalcheck.core.logger import logger
from signalcheck.core.retry import with_retries
from signalcheck.models.datatypes import RawArticle
from signalcheck.providers.base import NewsSource

_FINNHUB_URL = "https://finnhub.io/api/v1/news"


def content_id(prefix: str, *parts: str) -> str:
    """Stable id from the identifying parts of an article (link, title, date)."""
    digest = hashlib.sha256("|".join(p.strip() for p in parts if p).encode("utf-8")).hexdigest()
    return f"{prefix}_{digest[:24]}"


class FinnhubNewsSource(NewsSource):
    """Finnhub market news. Free tier: 60 calls/minute.

    Args:
        api_key: Finnhub token.
        category: ``general``, ``forex``, ``crypto`` or ``merger``.
        timeout: Request timeout in seconds.
    """

    def __init__(self, api_key: str, category: str = "general", timeout: float = 15) -> None:
        self.api_key = api_key
        self.category = category
        self.timeout = timeout

    @with_retries(max_retries=2, initial_delay=2, exceptions=(requests.ConnectionError, requests.Timeout))
    def _get(self) -> requests.Response:
        return requests.get(
            _FINNHUB_URL,
            params={"category": self.category, "token": self.api_key},
            timeout=self.timeout,
        )

    def fetch_articles(self) -> List[RawArticle]:
        if not self.api_key:
            logger.warning("FinnhubNewsSource: FINNHUB_API_KEY not set, skipping")
            return []

        logger.info(f"FinnhubNewsSource: polling category={self.category}")
        try:
            resp = self._get()
        except requests.RequestException as exc:
            logger.error(f"FinnhubNewsSource: INFRA_FAILURE: {exc}")
            return []

        if resp.status_code != 200:
            logger.error(f"FinnhubNewsSource: HTTP {resp.status_code}: {resp.text[:200]}")
            return []
        try:
            items = resp.json()
        except ValueError as exc:
            logger.error(f"FinnhubNewsSource: malformed JSON: {exc}")
            return []
        if not isinstance(items, list):
            logger.error(f"FinnhubNewsSource: expected a list, got {type(items).__name__}")
            return []

        articles = [a for a in (self._normalise(item) for item in items) if a]
        logger.info(f"FinnhubNewsSource: {len(articles)} articles")
        return articles

    @staticmethod
    def _normalise(item: dict) -> Optional[RawArticle]:
        if not isinstance(item, dict):
            return None
        title = (item.get("headline") or item.get("title") or "").strip()
        if not title:
            return None
        url = item.get("url") or ""
        raw_id = item.get("id")
        article_id = f"finnhub_{raw_id}" if raw_id not in (None, "", 0) else content_id("finnhub", url, title)

        stamp = item.get("datetime")
        try:
            published = datetime.fromtimestamp(int(stamp), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            published = datetime.now(timezone.utc)

        return RawArticle(
            id=article_id,
            title=title,
            summary=(item.get("summary") or "").strip(),
            published_at=published,
            source=item.get("source") or "Finnhub",
            url=url,
        )


class RssNewsSource(NewsSource):
    """RSS/Atom feeds parsed with feedparser.

    Args:
        feeds: Feed URLs, polled in order.
    """

    def __init__(self, feeds: Sequence[str]) -> None:
        self.feeds = list(feeds)

    def fetch_articles(self) -> List[RawArticle]:
        articles: List[RawArticle] = []
        for url in self.feeds:
            articles.extend(self._fetch_feed(url))
        return articles

    def _fetch_feed(self, url: str) -> List[RawArticle]:
        logger.info(f"RssNewsSource: fetching {url}")
        try:
            feed = feedparser.parse(url)
        except Exception as exc:
            logger.error(f"RssNewsSource: INFRA_FAILURE for {url}: {exc}")
            return []

        if feed.bozo and hasattr(feed, "bozo_exception"):
            logger.warning(f"RssNewsSource: parse warning for {url}: {feed.bozo_exception}")

        source_title = feed.feed.get("title", url) if hasattr(feed, "feed") else url
        articles = []
        for entry in feed.entries:
            title = (entry.get("title") or "").strip()
            if not title:
                continue
            link = entry.get("link", "")
            pub_parsed = entry.get("published_parsed") or entry.get("updated_parsed")
            published = (
                datetime(*pub_parsed[:6], tzinfo=timezone.utc)
                if pub_parsed else datetime.now(timezone.utc)
            )
            articles.append(RawArticle(
                id=content_id("rss", link, title),
                title=title,
                summary=(entry.get("summary") or "").strip(),
                published_at=published,
                source=source_title,
                url=link,
            ))
        logger.info(f"RssNewsSource: {len(articles)} entries from {url}")
        return articles
