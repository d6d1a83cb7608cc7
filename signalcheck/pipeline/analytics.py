"""Read-only accuracy and price-movement report over the persisted outcomes.

Mirrors the aggregations a dashboard would chart:
  1. Signal accuracy overall and by sentiment strength
  2. Price-change statistics, histogram and best/worst tickers
  3. Volume change between the two candles, by prediction outcome
  4. News coverage: raw vs analysed counts, sentiment split, busiest tickers
  5. Validation backlog: pending vs unvalidatable records

Usage:
    python run_pipeline.py report
"""

from typing import Any, Dict, List

import numpy as np
import pandas as pd

from signalcheck.storage.store import RecordStore

STRONG_SIGNAL = 0.6
NEUTRAL_BAND = 0.2
MIN_PREDICTIONS_PER_TICKER = 3

_BUCKET_EDGES = [-np.inf, -5, -2, -1, 0, 1, 2, 5, np.inf]
_BUCKET_LABELS = ["< -5%", "-5% to -2%", "-2% to -1%", "-1% to 0%", "0% to 1%", "1% to 2%", "2% to 5%", "> 5%"]


def _accuracy(frame: pd.DataFrame) -> Dict[str, Any]:
    total = int(len(frame))
    correct = int(frame["prediction_correct"].sum()) if total else 0
    return {
        "total": total,
        "correct": correct,
        "incorrect": total - correct,
        "accuracy_rate": round(correct * 100.0 / total, 2) if total else 0.0,
    }


def signal_accuracy(signals: pd.DataFrame) -> Dict[str, Any]:
    """Overall accuracy plus strong-positive, strong-negative and weak buckets."""
    score = signals["sentiment_score"]
    return {
        "overall": _accuracy(signals),
        "strong_positive": _accuracy(signals[score > STRONG_SIGNAL]),
        "strong_negative": _accuracy(signals[score < -STRONG_SIGNAL]),
        "weak": _accuracy(signals[score.abs() <= STRONG_SIGNAL]),
    }


def price_distribution(changes: pd.Series) -> List[Dict[str, Any]]:
    """Histogram of percentage moves; exactly flat moves get their own "0%" bucket."""
    flat = changes == 0
    moved = changes[~flat].dropna()
    if moved.empty:
        counts = pd.Series(0, index=_BUCKET_LABELS)
    else:
        buckets = pd.cut(moved, bins=_BUCKET_EDGES, labels=_BUCKET_LABELS, right=False)
        counts = buckets.value_counts().reindex(_BUCKET_LABELS, fill_value=0)
    rows = [{"range": label, "count": int(count)} for label, count in counts.items()]
    rows.insert(4, {"range": "0%", "count": int(flat.sum())})
    return rows


def ticker_performance(signals: pd.DataFrame, ascending: bool, top: int = 10) -> List[Dict[str, Any]]:
    """Tickers with enough predictions ranked by mean percentage move."""
    if signals.empty:
        return []
    grouped = signals.groupby("ticker").agg(
        avg_price_change=("price_change_pct", "mean"),
        predictions=("price_change_pct", "size"),
        accuracy=("prediction_correct", "mean"),
    )
    grouped = grouped[grouped["predictions"] >= MIN_PREDICTIONS_PER_TICKER]
    grouped = grouped.sort_values("avg_price_change", ascending=ascending).head(top)
    return [
        {
            "ticker": ticker,
            "avg_price_change": round(float(row.avg_price_change), 4),
            "predictions": int(row.predictions),
            "accuracy": round(float(row.accuracy) * 100.0, 2),
        }
        for ticker, row in grouped.iterrows()
    ]


def volume_movement(signals: pd.DataFrame) -> Dict[str, Any]:
    """Mean volume change overall and split by prediction outcome, over rows with a reference volume."""
    traded = signals[signals["volume_before"] > 0]

    def _mean(frame: pd.DataFrame) -> float:
        return round(float(frame["volume_change_pct"].mean()), 4) if len(frame) else 0.0

    return {
        "with_volume": int(len(traded)),
        "average_change_pct": _mean(traded),
        "average_change_pct_correct": _mean(traded[traded["prediction_correct"]]),
        "average_change_pct_incorrect": _mean(traded[~traded["prediction_correct"]]),
    }


def build_report(store: RecordStore) -> Dict[str, Any]:
    """
    Aggregate the store into a JSON-serialisable report.

    Args:
        store: Record store to read from.

    Returns:
        Dict[str, Any]: ``signals``, ``price_movement``, ``volume``, ``news`` and ``backlog`` sections.
    """
    with store.connect() as conn:
        conn.row_factory = None
        signals = pd.read_sql_query(
            "SELECT ticker, price_change_pct, sentiment_score, prediction_correct, provider, "
            "volume_before, volume_change_pct "
            "FROM signals_verified",
            conn,
        )
        analyzed = pd.read_sql_query(
            "SELECT ticker, sentiment, validated, validation_status FROM news_analyzed", conn
        )
        total_raw = int(conn.execute("SELECT COUNT(*) FROM news_raw").fetchone()[0])
        processed = pd.read_sql_query("SELECT outcome FROM news_processed", conn)

    for column in ("price_change_pct", "sentiment_score", "volume_before", "volume_change_pct"):
        signals[column] = pd.to_numeric(signals[column], errors="coerce")
    signals["prediction_correct"] = signals["prediction_correct"].astype(bool)
    analyzed["sentiment"] = pd.to_numeric(analyzed["sentiment"], errors="coerce")
    changes = signals["price_change_pct"]

    sentiment = analyzed["sentiment"]
    return {
        "signals": signal_accuracy(signals),
        "price_movement": {
            "average": round(float(changes.mean()), 4) if len(changes) else 0.0,
            "max": round(float(changes.max()), 4) if len(changes) else 0.0,
            "min": round(float(changes.min()), 4) if len(changes) else 0.0,
            "distribution": price_distribution(changes),
            "top_performers": ticker_performance(signals, ascending=False),
            "worst_performers": ticker_performance(signals, ascending=True),
            "providers": {k: int(v) for k, v in signals["provider"].value_counts().items()},
        },
        "volume": volume_movement(signals),
        "news": {
            "total_raw": total_raw,
            "total_analyzed": int(len(analyzed)),
            "analysis_completion_rate": round(len(analyzed) * 100.0 / total_raw, 2) if total_raw else 0.0,
            "consumed": {k: int(v) for k, v in processed["outcome"].value_counts().items()},
            "sentiment_distribution": {
                "positive": int((sentiment > NEUTRAL_BAND).sum()),
                "negative": int((sentiment < -NEUTRAL_BAND).sum()),
                "neutral": int(sentiment.abs().le(NEUTRAL_BAND).sum()),
            },
            "top_tickers": [
                {"ticker": t, "news_count": int(c)}
                for t, c in analyzed["ticker"].value_counts().head(10).items()
            ],
        },
        "backlog": {k: int(v) for k, v in analyzed["validation_status"].value_counts().items()},
    }
