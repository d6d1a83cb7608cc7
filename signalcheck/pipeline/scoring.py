"""Directional scoring of a sentiment prediction against a realised price move."""

from signalcheck.models.datatypes import PredictionOutcome


def sign(value: float) -> int:
    """-1, 0 or 1; exactly zero maps to 0."""
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def score_prediction(price_before: float, price_after: float, sentiment: float) -> PredictionOutcome:
    """
    Compare the sentiment direction with the price move between two closes.

    A flat move is never a correct prediction, not even for a zero sentiment.

    Args:
        price_before: Close at the start of the window; must be positive.
        price_after: Close at the end of the window.
        sentiment: Predicted score in ``[-1, 1]``.

    Returns:
        PredictionOutcome: Diff, percentage change, both directions and correctness.

    Raises:
        ValueError: If ``price_before`` is not positive.
    """
    if price_before <= 0:
        raise ValueError(f"price_before must be positive, got {price_before}")

    price_diff = price_after - price_before
    actual = sign(price_diff)
    predicted = sign(sentiment)
    return PredictionOutcome(
        price_before=price_before,
        price_after=price_after,
        price_diff=price_diff,
        price_change_pct=price_diff / price_before * 100.0,
        actual_direction=actual,
        sentiment_direction=predicted,
        prediction_correct=actual != 0 and actual == predicted,
    )


def volume_change_pct(volume_before: int, volume_after: int) -> float:
    """Percentage change in traded volume; 0.0 when there is no reference volume."""
    if volume_before <= 0:
        return 0.0
    return (volume_after - volume_before) / volume_before * 100.0
