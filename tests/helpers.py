"""Fakes and builders shared by the test modules."""

import os
import tempfile
from datetime import datetime, timezone
from types import SimpleNamespace

os.environ.setdefault("SIGNALCHECK_LOG_FILE", os.path.join(tempfile.gettempdir(), "signalcheck-tests.log"))

from signalcheck.core.market_hours import MarketSession, to_utc  # noqa: E402
from signalcheck.models.datatypes import PricePoint, RawArticle, Verdict  # noqa: E402
from signalcheck.providers.base import PriceDataProvider  # noqa: E402


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_article(article_id: str, published_at: datetime, title: str = "headline") -> RawArticle:
    return RawArticle(
        id=article_id, title=title, summary=f"summary of {article_id}",
        published_at=published_at, source="test",
    )


class FakeDailyPrices(PriceDataProvider):
    """Daily closes keyed by exchange-local day; resolves backwards like real daily providers."""

    def __init__(self, closes=None, name="Fake", volumes=None):
        self.closes = dict(closes or {})
        self.volumes = dict(volumes or {})
        self.name = name
        self.session = MarketSession()
        self.calls = []

    def get_price_at(self, ticker, instant):
        self.calls.append((ticker, instant))
        target = self.session.local_day(instant)
        days = [day for day in self.closes if day <= target]
        if not days:
            return None
        day = max(days)
        stamp = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        close = self.closes[day]
        return PricePoint(ticker, stamp, close, close, close, close, self.volumes.get(day, 1000), self.name)

    def is_valid_ticker(self, ticker):
        return ticker in ("AAPL", "TSLA")

    def get_provider_name(self):
        return self.name


class FakeClassifier:
    def __init__(self, verdicts=None):
        self.verdicts = dict(verdicts or {})
        self.batches = []

    def analyze_batch(self, articles):
        self.batches.append([a.id for a in articles])
        return {a.id: self.verdicts[a.id] for a in articles if a.id in self.verdicts}


class FakeLLMClient:
    """Stands in for ``openai.OpenAI``: ``client.chat.completions.create(...)``."""

    def __init__(self, content="[]", error=None, no_choices=False):
        self.content = content
        self.no_choices = no_choices
        self.error = error
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        if self.no_choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def relevant(ticker: str, sentiment: float) -> Verdict:
    return Verdict(market_relevant=True, tickers=[ticker], sentiment=sentiment, reasoning="test")




class FakeIntradayPrices(PriceDataProvider):
    """Closes keyed by exact UTC instant; records every instant it is asked for."""

    def __init__(self, closes=None, volumes=None, name="FakeIntraday"):
        self.closes = {to_utc(k): v for k, v in (closes or {}).items()}
        self.volumes = {to_utc(k): v for k, v in (volumes or {}).items()}
        self.name = name
        self.calls = []

    def get_price_at(self, ticker, instant):
        self.calls.append((ticker, to_utc(instant)))
        stamp = to_utc(instant)
        if stamp not in self.closes:
            return None
        close = self.closes[stamp]
        return PricePoint(ticker, stamp.to_pydatetime(), close, close, close, close,
                          self.volumes.get(stamp, 0), self.name)

    def is_valid_ticker(self, ticker):
        return True

    def get_provider_name(self):
        return self.name
