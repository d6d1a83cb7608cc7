import pandas as pd
import pytest

from signalcheck.models.datatypes import ValidationRecord, Verdict
from signalcheck.pipeline.analytics import build_report, price_distribution
from signalcheck.storage.store import OUTCOME_IRRELEVANT
from tests.helpers import make_article, relevant, utc


def _validate(store, article_id, ticker, sentiment, before, after, volumes=(0, 0)):
    published = utc(2024, 3, 11, 15, 0)
    store.save_raw_article(make_article(article_id, published))
    store.save_sentiment(article_id, relevant(ticker, sentiment), published)
    diff = after - before
    actual = (diff > 0) - (diff < 0)
    predicted = (sentiment > 0) - (sentiment < 0)
    store.save_validation(ValidationRecord(
        article_id=article_id, ticker=ticker, price_before=before, price_after=after,
        price_diff=diff, price_change_pct=diff / before * 100, sentiment_score=sentiment,
        actual_direction=actual, prediction_correct=actual != 0 and actual == predicted,
        news_timestamp=published, validated_at=utc(2024, 3, 20), provider="TwelveData",
        volume_before=volumes[0], volume_after=volumes[1],
        volume_change_pct=(volumes[1] - volumes[0]) / volumes[0] * 100 if volumes[0] else 0.0,
    ))


def test_report_on_empty_store(store):
    report = build_report(store)
    assert report["signals"]["overall"]["total"] == 0
    assert report["signals"]["overall"]["accuracy_rate"] == 0.0
    assert report["news"]["total_raw"] == 0
    assert report["price_movement"]["top_performers"] == []


def test_accuracy_buckets_and_ticker_rankings(store):
    _validate(store, "t1", "TSLA", 0.8, 100.0, 103.0)   # strong positive, correct
    _validate(store, "t2", "TSLA", 0.7, 100.0, 99.0)    # strong positive, wrong
    _validate(store, "t3", "TSLA", 0.3, 100.0, 101.0)   # weak, correct
    _validate(store, "a1", "AAPL", -0.9, 100.0, 94.0)   # strong negative, correct
    _validate(store, "a2", "AAPL", -0.2, 100.0, 100.0)  # flat, wrong
    _validate(store, "a3", "AAPL", 0.1, 100.0, 98.0)    # weak, wrong
    _validate(store, "m1", "MSFT", 0.5, 100.0, 110.0)

    report = build_report(store)
    signals = report["signals"]

    assert signals["overall"] == {"total": 7, "correct": 4, "incorrect": 3, "accuracy_rate": pytest.approx(57.14)}
    assert signals["strong_positive"]["total"] == 2
    assert signals["strong_positive"]["correct"] == 1
    assert signals["strong_negative"]["correct"] == 1
    assert signals["weak"]["total"] == 4

    movement = report["price_movement"]
    assert movement["max"] == pytest.approx(10.0)
    assert movement["min"] == pytest.approx(-6.0)
    assert [row["ticker"] for row in movement["top_performers"]] == ["TSLA", "AAPL"]
    assert [row["ticker"] for row in movement["worst_performers"]] == ["AAPL", "TSLA"]
    assert movement["providers"] == {"TwelveData": 7}


def test_news_metrics(store):
    _validate(store, "t1", "TSLA", 0.8, 100.0, 103.0)
    store.save_raw_article(make_article("noise", utc(2024, 3, 11)))
    store.mark_processed("noise", OUTCOME_IRRELEVANT)
    store.save_raw_article(make_article("pending", utc(2024, 3, 11)))
    store.save_sentiment("neutral", Verdict(True, ["AAPL"], 0.1), utc(2024, 3, 11))

    news = build_report(store)["news"]

    assert news["total_raw"] == 3
    assert news["total_analyzed"] == 2
    assert news["consumed"] == {"classified": 2, "irrelevant": 1}
    assert news["sentiment_distribution"] == {"positive": 1, "negative": 0, "neutral": 1}


def test_price_distribution_buckets():
    rows = price_distribution(pd.Series([-7.0, -3.0, -0.5, 0.0, 0.0, 0.4, 1.5, 6.0]))
    counts = {row["range"]: row["count"] for row in rows}
    assert counts == {
        "< -5%": 1, "-5% to -2%": 1, "-2% to -1%": 0, "-1% to 0%": 1, "0%": 2,
        "0% to 1%": 1, "1% to 2%": 1, "2% to 5%": 0, "> 5%": 1,
    }


def test_volume_section_splits_by_outcome(store):
    _validate(store, "t1", "TSLA", 0.8, 100.0, 103.0, volumes=(1000, 1500))  # correct, +50%
    _validate(store, "t2", "TSLA", 0.7, 100.0, 99.0, volumes=(1000, 900))    # wrong, -10%
    _validate(store, "t3", "TSLA", 0.3, 100.0, 101.0)                        # no reference volume

    volume = build_report(store)["volume"]

    assert volume["with_volume"] == 2
    assert volume["average_change_pct"] == pytest.approx(20.0)
    assert volume["average_change_pct_correct"] == pytest.approx(50.0)
    assert volume["average_change_pct_incorrect"] == pytest.approx(-10.0)


def test_volume_section_on_empty_store(store):
    assert build_report(store)["volume"] == {
        "with_volume": 0, "average_change_pct": 0.0,
        "average_change_pct_correct": 0.0, "average_change_pct_incorrect": 0.0,
    }
