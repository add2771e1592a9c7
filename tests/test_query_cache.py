import pytest
from conftest import FakeClock

from squares.utils.errors import UpstreamError, UpstreamTimeout
from squares.utils.query_cache import QueryCache, query_keys


def failing(error):
    def fetcher():
        raise error

    return fetcher


def test_query_keys_normalize_ids():
    assert query_keys.contest("8453", 7) == ("contest", 8453, "7")
    assert query_keys.game_scores(401) == ("gameScores", "401")
    assert query_keys.pickem_contest("3") == ("pickemContest", 3)


def test_fetch_respects_stale_time():
    clock = FakeClock()
    query_cache = QueryCache(clock=clock)
    key = query_keys.game_scores(1)
    values = iter([1, 2])

    assert query_cache.fetch(key, lambda: next(values), stale_time=5) == 1
    clock.advance(4)
    assert query_cache.fetch(key, lambda: next(values), stale_time=5) == 1
    clock.advance(1)
    assert query_cache.fetch(key, lambda: next(values), stale_time=5) == 2


def test_invalidate_keeps_data_until_refetch():
    query_cache = QueryCache(clock=FakeClock())
    key = query_keys.contest(8453, 7)
    query_cache.set(key, "old")

    query_cache.invalidate(key)

    assert query_cache.get(key) == "old"
    assert query_cache.is_stale(key, stale_time=60)
    assert query_cache.fetch(key, lambda: "new", stale_time=60) == "new"


def test_timeout_keeps_last_good_value_and_flags_in_progress():
    clock = FakeClock()
    query_cache = QueryCache(clock=clock)
    key = query_keys.game_scores(1)
    query_cache.set(key, "good")
    clock.advance(10)

    assert query_cache.fetch(key, failing(UpstreamTimeout("slow")), stale_time=5) == "good"
    entry = query_cache.get_entry(key)
    assert entry.fetch_in_progress is True
    assert isinstance(entry.error, UpstreamTimeout)


def test_failure_without_data_propagates():
    query_cache = QueryCache(clock=FakeClock())
    with pytest.raises(UpstreamError):
        query_cache.fetch(query_keys.game_scores(2), failing(UpstreamError("down")))
    with pytest.raises(UpstreamTimeout):
        query_cache.fetch(query_keys.game_scores(3), failing(UpstreamTimeout("slow")))


def test_invalidate_prefix_and_remove():
    query_cache = QueryCache(clock=FakeClock())
    query_cache.set(query_keys.contest(8453, 1), "a")
    query_cache.set(query_keys.contest(8453, 2), "b")
    query_cache.set(query_keys.contest(84532, 1), "c")

    assert query_cache.invalidate_prefix(("contest", 8453)) == 2
    assert not query_cache.is_stale(query_keys.contest(84532, 1), stale_time=60)

    query_cache.remove(query_keys.contest(8453, 1))
    assert len(query_cache) == 2
    query_cache.clear()
    assert len(query_cache) == 0


def test_poll_interval_uses_registered_function():
    query_cache = QueryCache(clock=FakeClock())
    query_cache.register_interval("gameScores", lambda data: None if data == "final" else 12)
    key = query_keys.game_scores(1)

    assert query_cache.poll_interval(key) == 12
    query_cache.set(key, "final")
    assert query_cache.poll_interval(key) is None
    assert query_cache.poll_interval(query_keys.contest(8453, 1)) is None
