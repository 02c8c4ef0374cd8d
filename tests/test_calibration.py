from datetime import datetime, timezone

import community_match.services.calibration as c
from community_match.models import Location, MatchScore, Profile, ScoreBreakdown
from community_match.services.behavior import BehaviorAdjuster
from community_match.services.matching import MatchingService, MatchOptions
from community_match.services.seeding import dump_pool, generate_pool, load_pool

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeService:
    adjuster = BehaviorAdjuster()

    def __init__(self, results):
        self.results = results

    def find_matches(self, requester, pool, preferences, options):
        assert options.use_cache is False
        return [MatchScore(user_id=uid, total_score=s, breakdown=ScoreBreakdown()) for uid, s in self.results[requester.id]]


def _profile(pid: str) -> Profile:
    return Profile(id=pid, age=30, location=Location(latitude=51.5, longitude=-0.12, city="London", country="UK"))


def test_percentile_summary_deterministic():
    out = c.percentile_summary([0.1, 0.2, 0.3, 0.4, 0.5])
    assert out["p50"] == 0.3
    assert out["p90"] == 0.46
    assert c.percentile_summary([])["p50"] is None


def test_compute_calibration_report_counts():
    service = FakeService({"u1": [("u2", 80.0), ("u3", 60.0)], "u2": [("u3", 40.0)], "u3": []})
    profiles = [_profile("u1"), _profile("u2"), _profile("u3")]

    report = c.compute_calibration_report(service, profiles, now=NOW)

    assert report["users"] == 3
    assert report["match_score_distribution"]["count"] == 3
    assert report["per_user_best_distribution"]["percentiles"]["p50"] == 60.0
    assert report["no_match"] == {"count": 1, "rate": 0.333333}
    assert report["diversity_distribution"]["count"] == 2
    assert report["stability_proxy"]["best_score_iqr"] == 20.0


def test_report_over_synthetic_pool():
    pool = generate_pool(12, seed=3, now=NOW)
    options = MatchOptions(connections=pool["connections"], communities=pool["communities"], events=pool["events"])

    report = c.compute_calibration_report(MatchingService(), pool["profiles"], options=options, limit=5, now=NOW)

    assert report["users"] == 12
    assert report["result_size_distribution"]["count"] == 12
    assert report["per_user_best_distribution"]["count"] + report["no_match"]["count"] == 12
    sizes = report["result_size_distribution"]["percentiles"]
    assert all(v is None or 0 <= v <= 5 for v in sizes.values())


def test_seeded_pool_is_deterministic():
    first = generate_pool(6, seed=11, now=NOW)
    second = generate_pool(6, seed=11, now=NOW)
    assert first["profiles"] == second["profiles"]
    assert first["connections"] == second["connections"]
    assert generate_pool(6, seed=12, now=NOW)["profiles"] != first["profiles"]


def test_pool_survives_json_dump():
    pool = generate_pool(5, seed=2, now=NOW)
    restored = load_pool(dump_pool(pool))
    assert restored["profiles"] == pool["profiles"]
    assert restored["communities"] == pool["communities"]
