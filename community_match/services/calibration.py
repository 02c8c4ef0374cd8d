from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from community_match.models import Preferences, Profile, default_preferences
from community_match.services.matching import MatchingService, MatchOptions


def _percentile(values: list[float], p: float) -> float | None:
    if not values:
        return None
    vals = sorted(values)
    if len(vals) == 1:
        return round(vals[0], 6)
    pos = (len(vals) - 1) * p
    lo = int(pos)
    hi = min(lo + 1, len(vals) - 1)
    frac = pos - lo
    v = vals[lo] * (1 - frac) + vals[hi] * frac
    return round(v, 6)


def percentile_summary(values: list[float]) -> dict[str, float | None]:
    return {
        "p10": _percentile(values, 0.10),
        "p25": _percentile(values, 0.25),
        "p50": _percentile(values, 0.50),
        "p75": _percentile(values, 0.75),
        "p90": _percentile(values, 0.90),
    }


def compute_calibration_report(
    service: MatchingService,
    profiles: Sequence[Profile],
    *,
    preferences_for: Callable[[Profile], Preferences] | None = None,
    options: MatchOptions | None = None,
    limit: int = 20,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run matching for every profile in the pool and summarise the score spread.

    Caching is bypassed so the report always reflects the current weights.
    """
    preferences_for = preferences_for or (lambda _p: default_preferences())
    base = options or MatchOptions()

    all_scores: list[float] = []
    best_scores: list[float] = []
    result_sizes: list[float] = []
    diversity: list[float] = []
    no_match = 0

    for requester in profiles:
        run_options = MatchOptions(
            connections=base.connections,
            communities=base.communities,
            events=base.events,
            limit=limit,
            use_cache=False,
            now=now or base.now,
        )
        matches = service.find_matches(requester, profiles, preferences_for(requester), run_options)
        result_sizes.append(float(len(matches)))
        if not matches:
            no_match += 1
            continue
        totals = [m.total_score for m in matches]
        all_scores.extend(totals)
        best_scores.append(max(totals))
        diversity.append(service.adjuster.recommendation_diversity(matches, profiles))

    users = len(profiles)
    stability_proxy: dict[str, float | None] = {
        "best_score_p50": _percentile(best_scores, 0.50),
        "best_score_iqr": None,
        "best_score_std_approx": None,
    }
    p25 = _percentile(best_scores, 0.25)
    p75 = _percentile(best_scores, 0.75)
    if p25 is not None and p75 is not None:
        stability_proxy["best_score_iqr"] = round(p75 - p25, 6)
        stability_proxy["best_score_std_approx"] = round((p75 - p25) / 1.349, 6)

    return {
        "users": users,
        "match_score_distribution": {
            "count": len(all_scores),
            "percentiles": percentile_summary(all_scores),
        },
        "per_user_best_distribution": {
            "count": len(best_scores),
            "percentiles": percentile_summary(best_scores),
        },
        "result_size_distribution": {
            "count": len(result_sizes),
            "percentiles": percentile_summary(result_sizes),
        },
        "diversity_distribution": {
            "count": len(diversity),
            "percentiles": percentile_summary(diversity),
        },
        "no_match": {
            "count": no_match,
            "rate": round(no_match / users, 6) if users else 0.0,
        },
        "stability_proxy": stability_proxy,
    }
