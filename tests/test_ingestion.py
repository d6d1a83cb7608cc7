from signalcheck.models.datatypes import Verdict
from signalcheck.pipeline.ingestion import IngestionGate
from signalcheck.providers.sentiment import SentimentClassifier
from tests.helpers import FakeClassifier, FakeLLMClient, make_article, relevant, utc


def _seed(store, *ids):
    for hour, article_id in enumerate(ids):
        store.save_raw_article(make_article(article_id, utc(2024, 3, 11, 10 + hour, 0)))


def _analyzed(store):
    with store.connect() as conn:
        return conn.execute("SELECT article_id, ticker FROM news_analyzed ORDER BY article_id").fetchall()


def test_only_single_ticker_relevant_verdicts_are_persisted(store):
    _seed(store, "tsla", "pair", "shopping", "empty")
    classifier = FakeClassifier({
        "tsla": relevant("TSLA", 0.8),
        "pair": Verdict(market_relevant=True, tickers=["AAPL", "MSFT"], sentiment=0.6),
        "shopping": Verdict(market_relevant=False),
        "empty": Verdict(market_relevant=True, tickers=[], sentiment=0.3),
    })

    result = IngestionGate(store, classifier).run()

    assert [tuple(row) for row in _analyzed(store)] == [("tsla", "TSLA")]
    assert result.saved == 1
    assert result.ambiguous == 2
    assert result.irrelevant == 1
    assert store.fetch_pending_articles(10) == []


def test_sentiment_carries_the_publish_time(store):
    store.save_raw_article(make_article("tsla", utc(2024, 3, 11, 15, 0)))
    IngestionGate(store, FakeClassifier({"tsla": relevant("TSLA", 0.8)})).run()
    assert store.get_sentiment("tsla", "TSLA").news_timestamp == utc(2024, 3, 11, 15, 0)


def test_articles_without_verdict_stay_pending(store):
    _seed(store, "a", "b")
    classifier = FakeClassifier({"a": relevant("AAPL", 0.4)})

    first = IngestionGate(store, classifier).run()
    assert first.missing == 1
    assert [a.id for a in store.fetch_pending_articles(10)] == ["b"]

    second = IngestionGate(store, classifier).run()
    assert second.fetched == 1
    assert classifier.batches == [["a", "b"], ["b"]]


def test_rerun_is_idempotent(store):
    _seed(store, "a")
    classifier = FakeClassifier({"a": relevant("AAPL", 0.4)})
    gate = IngestionGate(store, classifier)
    gate.run()
    result = gate.run()

    assert result.fetched == 0
    assert len(_analyzed(store)) == 1
    assert len(classifier.batches) == 1


def test_batch_is_oldest_first_and_bounded(store):
    _seed(store, "first", "second", "third")
    classifier = FakeClassifier()
    IngestionGate(store, classifier, batch_size=2).run()
    assert classifier.batches == [["first", "second"]]


def test_batch_size_capped_at_classifier_limit(store):
    assert IngestionGate(store, FakeClassifier(), batch_size=50).batch_size == 20


def test_empty_store_skips_the_classifier(store):
    classifier = FakeClassifier()
    result = IngestionGate(store, classifier).run()
    assert result.fetched == 0
    assert classifier.batches == []


def test_empty_model_response_keeps_articles_pending(store):
    _seed(store, "a")
    classifier = SentimentClassifier(client=FakeLLMClient(no_choices=True))

    result = IngestionGate(store, classifier).run()

    assert result.missing == 1
    assert result.saved == 0
    assert [a.id for a in store.fetch_pending_articles(10)] == ["a"]
