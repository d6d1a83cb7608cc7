import pytest

from signalcheck.core.cache import ResponseCache
from signalcheck.core.retry import with_retries


def test_retries_with_exponential_backoff():
    sleeps, calls = [], []

    @with_retries(max_retries=3, initial_delay=2, exceptions=(ConnectionError,), sleep=sleeps.append)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert flaky() == "ok"
    assert sleeps == [2, 4]


def test_last_failure_is_reraised():
    @with_retries(max_retries=1, initial_delay=1, exceptions=(ConnectionError,), sleep=lambda _: None)
    def down():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        down()


def test_other_exceptions_are_not_retried():
    calls = []

    @with_retries(max_retries=3, exceptions=(ConnectionError,), sleep=lambda _: None)
    def bad():
        calls.append(1)
        raise KeyError("close")

    with pytest.raises(KeyError):
        bad()
    assert calls == [1]


def test_cache_round_trip_and_expiry(tmp_path):
    cache = ResponseCache(str(tmp_path / "cache.db"), ttl_hours=6)
    cache.set("twelvedata_daily_TSLA_2024-03-11", {"values": [{"close": "250"}]})
    assert cache.get("twelvedata_daily_TSLA_2024-03-11") == {"values": [{"close": "250"}]}
    assert cache.get("missing") is None

    expired = ResponseCache(str(tmp_path / "cache.db"), ttl_hours=-1)
    assert expired.get("twelvedata_daily_TSLA_2024-03-11") is None
