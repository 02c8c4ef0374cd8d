import threading

import pytest

from community_match.models import AgeRange, MatchScore, Preferences, ScoreBreakdown
from community_match.services.match_cache import MatchCache, cache_key


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def _scores(*ids: str) -> list[MatchScore]:
    return [MatchScore(user_id=i, total_score=50.0, breakdown=ScoreBreakdown()) for i in ids]


def test_cache_key_depends_on_user_and_preferences():
    prefs = Preferences()
    assert cache_key("u1", prefs) == cache_key("u1", Preferences())
    assert cache_key("u1", prefs) != cache_key("u2", prefs)
    assert cache_key("u1", prefs) != cache_key("u1", Preferences(age_range=AgeRange(min=20, max=30)))
    assert len(cache_key("u1", prefs)[1]) == 20


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = MatchCache(ttl_minutes=30, clock=clock)
    key = cache_key("u1", Preferences())
    cache.put(key, _scores("a"))

    clock.now += 1799
    assert cache.get(key) is not None
    clock.now += 1
    assert cache.get(key) is None
    assert len(cache) == 0


def test_put_returns_immutable_snapshot():
    cache = MatchCache(clock=FakeClock())
    source = _scores("a", "b")
    stored = cache.put(cache_key("u1", Preferences()), source)
    source.append(MatchScore(user_id="c", total_score=1.0, breakdown=ScoreBreakdown()))
    assert isinstance(stored, tuple)
    assert [s.user_id for s in stored] == ["a", "b"]


def test_clear_matches_user_id_exactly():
    cache = MatchCache(clock=FakeClock())
    cache.put(cache_key("u1", Preferences()), _scores("a"))
    cache.put(cache_key("u10", Preferences()), _scores("b"))

    assert cache.clear("u1") == 1
    assert cache.get(cache_key("u10", Preferences())) is not None
    assert cache.clear("missing") == 0


def test_clear_all():
    cache = MatchCache(clock=FakeClock())
    cache.put(cache_key("u1", Preferences()), _scores("a"))
    cache.put(cache_key("u2", Preferences()), _scores("b"))
    assert cache.clear() == 2
    assert len(cache) == 0


def test_get_or_compute_calls_compute_once_while_fresh():
    cache = MatchCache(clock=FakeClock())
    key = cache_key("u1", Preferences())
    calls = []

    def compute():
        calls.append(1)
        return _scores("a")

    first = cache.get_or_compute(key, compute)
    second = cache.get_or_compute(key, compute)
    assert first == second
    assert len(calls) == 1


def test_single_flight_shares_one_computation():
    cache = MatchCache(single_flight=True)
    key = cache_key("u1", Preferences())
    started = threading.Event()
    release = threading.Event()
    calls = []

    def compute():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return _scores("a")

    results = []

    def worker():
        results.append(cache.get_or_compute(key, compute))

    first = threading.Thread(target=worker)
    first.start()
    assert started.wait(timeout=5)
    second = threading.Thread(target=worker)
    second.start()
    release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert len(calls) == 1
    assert len(results) == 2
    assert results[0] == results[1]


def test_cached_adjustments_cannot_be_changed_by_callers():
    cache = MatchCache(clock=FakeClock())
    key = cache_key("u1", Preferences())
    source = {"time_decay": -1.5, "popularity_penalty": 0.0}
    stored = cache.put(key, [MatchScore(user_id="a", total_score=50.0, breakdown=ScoreBreakdown(), adjustments=source)])

    source["time_decay"] = 123.0
    with pytest.raises(TypeError):
        stored[0].adjustments["time_decay"] = 999.0

    assert dict(cache.get(key)[0].adjustments) == {"time_decay": -1.5, "popularity_penalty": 0.0}
