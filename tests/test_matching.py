"""
End-to-end matching tests: filter -> score -> adjust -> rank, plus the cache,
special-feature searches and the auxiliary network/collaborative helpers.
"""
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from community_match.models import (
    Community,
    Connection,
    Interests,
    Lifestyle,
    Location,
    MatchScore,
    PracticeProfile,
    Preferences,
    Profile,
    ScoreBreakdown,
    UserBehavior,
)
from community_match.services.match_cache import MatchCache
from community_match.services.matching import MatchingService, MatchOptions, popularity_counts, rank_matches

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
IDENTICAL_TOTAL = (100 * 0.8 + 100 * 0.4 + 100 * 0.6 + 100 * 0.2 + 95 * 0.9 + 100 * 0.7) / 3.9


def _profile(
    pid: str,
    *,
    age: int = 30,
    city: str = "London",
    lat: float = 51.5074,
    lon: float = -0.1278,
    faith: tuple = ("history",),
    study: tuple = (),
    new: bool = False,
    last_active: datetime = NOW,
) -> Profile:
    return Profile(
        id=pid,
        age=age,
        location=Location(latitude=lat, longitude=lon, city=city, country="UK"),
        languages=("English",),
        practice=PracticeProfile(practice_level="intermediate", new_to_community=new),
        interests=Interests(hobbies=("reading",), faith_interests=faith, study_interests=study),
        lifestyle=Lifestyle(work_status="working", preferred_time_slots=("evening",)),
        created_at=NOW - timedelta(days=100),
        last_active=last_active,
        verified=True,
    )


def _accepted(a: str, b: str, when: datetime = NOW) -> Connection:
    return Connection(id=f"{a}-{b}", user1_id=a, user2_id=b, status="accepted", created_at=when, accepted_at=when)


def _ids(matches):
    return [m.user_id for m in matches]


REQUESTER = _profile("me")


@pytest.fixture
def service():
    return MatchingService(cache=MatchCache())


class TestFindMatches:
    def test_default_limit_and_explicit_limit(self, service):
        pool = [_profile(f"c{i:02d}") for i in range(25)]
        assert len(service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(now=NOW, use_cache=False))) == 20
        assert len(service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(now=NOW, limit=5))) == 5
        assert service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(now=NOW, limit=0)) == []

    def test_negative_limit_rejected(self, service):
        with pytest.raises(ValueError):
            service.find_matches(REQUESTER, [], Preferences(), MatchOptions(limit=-1))

    def test_requester_never_matches_themselves(self, service):
        results = service.find_matches(REQUESTER, [_profile("me"), _profile("a")], Preferences(), MatchOptions(now=NOW))
        assert _ids(results) == ["a"]

    def test_empty_pool(self, service):
        assert service.find_matches(REQUESTER, [], Preferences(), MatchOptions(now=NOW)) == []

    def test_results_carry_breakdown_reasons_and_percentile(self, service):
        results = service.find_matches(REQUESTER, [_profile("a"), _profile("b", age=40)], Preferences(), MatchOptions(now=NOW))
        top = results[0]
        assert top.user_id == "a"
        assert top.total_score == pytest.approx(IDENTICAL_TOTAL, abs=1e-5)
        assert "You live in the same city" in top.reasons
        assert top.percentile_rank == 50.0
        assert results[1].percentile_rank == 0.0

    def test_same_city_shared_faith_outranks_nearby_stranger(self, service):
        requester = _profile("me", faith=("history", "recitation"))
        pool = [
            _profile("other", faith=(), city="Watford", lat=51.6565, lon=-0.3903),
            _profile("same", faith=("history", "recitation")),
        ]
        results = service.find_matches(requester, pool, Preferences(), MatchOptions(now=NOW))
        assert _ids(results) == ["same", "other"]


class TestMatchCacheIntegration:
    def test_cached_results_survive_pool_changes_until_cleared(self, service):
        pool = [_profile("a")]
        options = MatchOptions(now=NOW)
        first = service.find_matches(REQUESTER, pool, Preferences(), options)

        grown = pool + [_profile("b")]
        assert service.find_matches(REQUESTER, grown, Preferences(), options) == first

        fresh = service.find_matches(REQUESTER, grown, Preferences(), MatchOptions(now=NOW, use_cache=False))
        assert _ids(fresh) == ["a", "b"]

        assert service.clear_cache("me") == 1
        assert _ids(service.find_matches(REQUESTER, grown, Preferences(), options)) == ["a", "b"]

    def test_cache_hit_is_unaffected_by_caller_edits(self, service):
        options = MatchOptions(now=NOW)
        first = service.find_matches(REQUESTER, [_profile("a")], Preferences(), options)
        with pytest.raises(TypeError):
            first[0].adjustments["time_decay"] = 999.0
        first.clear()

        again = service.find_matches(REQUESTER, [_profile("a")], Preferences(), options)
        assert _ids(again) == ["a"]
        assert dict(again[0].adjustments) == {"time_decay": 0.0, "popularity_penalty": 0.0}

    def test_different_preferences_use_different_entries(self, service):
        pool = [_profile("a"), _profile("far", city="Watford", lat=51.6565, lon=-0.3903)]
        wide = service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(now=NOW))
        narrow = service.find_matches(REQUESTER, pool, Preferences(max_distance=5), MatchOptions(now=NOW))
        assert _ids(wide) == ["a", "far"]
        assert _ids(narrow) == ["a"]


class TestCandidateCoercion:
    def test_malformed_mapping_is_skipped_with_warning(self, service, caplog):
        caplog.set_level(logging.WARNING, logger="community_match.services.matching")
        pool = [{"id": "bad", "age": "not-a-number"}, _profile("a")]

        results = service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(now=NOW, use_cache=False))

        assert _ids(results) == ["a"]
        assert "skipping malformed candidate id=bad" in caplog.text

    def test_valid_mapping_is_accepted(self, service):
        pool = [_profile("d").model_dump()]
        results = service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(now=NOW, use_cache=False))
        assert _ids(results) == ["d"]


def _score(uid: str, total: float, factors: tuple) -> MatchScore:
    return MatchScore(user_id=uid, total_score=total, breakdown=ScoreBreakdown(*factors))


class TestRanking:
    def test_balanced_match_wins_near_tie(self):
        a = _score("A", 80.0, (100, 60, 100, 60, 100, 60))
        b = _score("B", 77.0, (77,) * 6)
        c = _score("C", 60.0, (60,) * 6)

        ranked = rank_matches([a, b, c])

        assert _ids(ranked) == ["B", "A", "C"]
        assert [m.percentile_rank for m in ranked] == [33.333333, 66.666667, 0.0]

    def test_bands_are_anchored_on_the_highest_remaining_score(self):
        ranked = rank_matches(
            [
                _score("top", 80.0, (100, 60, 100, 60, 100, 60)),
                _score("mid", 76.0, (76,) * 6),
                _score("low", 72.0, (72,) * 6),
            ]
        )
        assert _ids(ranked) == ["mid", "top", "low"]

    def test_empty_input(self):
        assert rank_matches([]) == []


class TestScoreAdjustments:
    def test_inactive_candidates_decay(self, service):
        pool = [_profile("fresh"), _profile("stale", last_active=NOW - timedelta(days=10))]
        results = {m.user_id: m for m in service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(now=NOW))}
        ratio = results["stale"].total_score / results["fresh"].total_score
        assert ratio == pytest.approx(math.exp(-0.2), rel=1e-5)
        assert results["stale"].adjustments["time_decay"] < 0

    def test_popular_candidates_are_penalised(self, service):
        connections = [_accepted("pop", f"u{i}") for i in range(50)]
        pool = [_profile("pop"), _profile("plain")]
        options = MatchOptions(connections=connections, now=NOW)

        results = {m.user_id: m for m in service.find_matches(REQUESTER, pool, Preferences(), options)}

        assert results["plain"].total_score - results["pop"].total_score == pytest.approx(7.5, abs=1e-5)
        assert results["pop"].adjustments["popularity_penalty"] == pytest.approx(-7.5)

    def test_popularity_window_ignores_old_acceptances(self):
        old = NOW - timedelta(days=45)
        counts = popularity_counts([_accepted("a", "b"), _accepted("a", "c", when=old)], NOW)
        assert counts == {"a": 1, "b": 1}

    def test_mutual_connection_raises_score(self, service):
        connections = [_accepted("me", "friend"), _accepted("a", "friend")]
        pool = [_profile("a"), _profile("b")]
        results = service.find_matches(REQUESTER, pool, Preferences(), MatchOptions(connections=connections, now=NOW))
        assert _ids(results) == ["a", "b"]
        assert results[0].breakdown.social_graph_bonus > 0
        assert "You have mutual connections" in results[0].reasons

    def test_behavior_pattern_bonus(self, service):
        behavior = UserBehavior(user_id="me", liked=("x1", "x2", "x3", "x4"))
        options = MatchOptions(behavior=behavior, all_behaviors={"me": behavior}, now=NOW)

        results = service.find_matches(REQUESTER, [_profile("a")], Preferences(), options)

        assert results[0].total_score == pytest.approx(IDENTICAL_TOTAL + 5, abs=1e-5)
        assert "Matches your interaction patterns" in results[0].reasons
        assert results[0].adjustments["pattern"] == 5.0

    def test_candidates_rescored_to_zero_are_dropped(self):
        class ZeroingAdjuster:
            def adjust_scores(self, matches, user_id, behavior, all_behaviors):
                return [replace(m, total_score=0.0) if m.user_id == "b" else m for m in matches]

        behavior = UserBehavior(user_id="me")
        options = MatchOptions(behavior=behavior, all_behaviors={"me": behavior}, now=NOW)
        service = MatchingService(cache=MatchCache(), adjuster=ZeroingAdjuster())

        results = service.find_matches(REQUESTER, [_profile("a"), _profile("b")], Preferences(), options)

        assert _ids(results) == ["a"]
        assert all(m.total_score > 0 for m in results)

    def test_parallel_scoring_matches_serial(self):
        pool = [_profile(f"c{i}", age=25 + i) for i in range(10)]
        options = MatchOptions(now=NOW, use_cache=False)
        serial = MatchingService(workers=1).find_matches(REQUESTER, pool, Preferences(), options)
        parallel = MatchingService(workers=4).find_matches(REQUESTER, pool, Preferences(), options)
        assert [(m.user_id, m.total_score) for m in serial] == [(m.user_id, m.total_score) for m in parallel]


class TestSpecialFeatureMatches:
    def test_study_buddy_limit_and_eligibility(self, service):
        requester = _profile("me", study=("arabic",))
        pool = [_profile(f"s{i:02d}", study=("arabic",)) for i in range(12)]
        pool.append(_profile("paris", study=("arabic",), city="Paris", lat=48.8566, lon=2.3522))

        results = service.find_special_feature_matches(requester, pool, "study_buddy", options=MatchOptions(now=NOW))

        assert len(results) == 10
        assert "paris" not in _ids(results)
        assert results[0].total_score == pytest.approx(IDENTICAL_TOTAL + 5, abs=1e-5)
        assert results[0].adjustments["feature_bonus"] == 5.0

    def test_mentorship_bonus(self, service):
        requester = _profile("me", new=True)
        results = service.find_special_feature_matches(
            requester, [_profile("mentor"), _profile("peer", new=True)], "mentorship", options=MatchOptions(now=NOW)
        )
        assert _ids(results) == ["mentor"]
        assert results[0].adjustments["feature_bonus"] == 15.0

    def test_special_search_skips_unverified_and_inactive(self, service):
        requester = _profile("me", study=("arabic",))
        pool = [
            _profile("ok", study=("arabic",)),
            _profile("quiet", study=("arabic",), last_active=NOW - timedelta(days=45)),
            _profile("anon", study=("arabic",)).model_copy(update={"verified": False}),
        ]
        results = service.find_special_feature_matches(requester, pool, "study_buddy", options=MatchOptions(now=NOW))
        assert _ids(results) == ["ok"]

    def test_unknown_feature(self, service):
        with pytest.raises(ValueError):
            service.find_special_feature_matches(REQUESTER, [], "speed_dating")


def test_collaborative_recommendations():
    service = MatchingService()
    similar = _profile("sim")
    connections = [_accepted("sim", "t")]

    recs = service.get_collaborative_recommendations(REQUESTER, [REQUESTER, similar], connections, UserBehavior(user_id="me"))
    assert recs == [{"user_id": "t", "score": 14.1, "reason": "Members like you also connected with this person"}]

    seen = UserBehavior(user_id="me", declined=("t",))
    assert service.get_collaborative_recommendations(REQUESTER, [similar], connections, seen) == []


def test_network_analysis_includes_cohesion_and_trust():
    connections = [_accepted("a", "b"), _accepted("a", "c"), _accepted("b", "c"), _accepted("c", "d")]
    communities = [Community(id="k", members=frozenset({"a", "b", "c"})), Community(id="other", members=frozenset({"d"}))]

    analysis = MatchingService().get_network_analysis("a", connections, communities)

    assert analysis["connection_count"] == 2
    assert analysis["community_cohesion"] == {"k": 100.0}
    assert [r["user_id"] for r in analysis["trust_recommendations"]] == ["d"]


def test_conversation_starters_are_bounded():
    starters = MatchingService().generate_conversation_starters(REQUESTER, _profile("a", new=True))
    assert 1 <= len(starters) <= 3
