from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone
from statistics import pvariance

from community_match.models import AgeRange


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def age_compatibility(age1: int, age2: int, preferred: AgeRange) -> float:
    if age2 < preferred.min or age2 > preferred.max:
        return 0.0

    diff = abs(age1 - age2)
    if diff == 0:
        return 100.0
    if diff <= 2:
        return 95.0
    if diff <= 5:
        return 80.0
    if diff <= 10:
        return 60.0

    span = preferred.max - preferred.min
    if span <= 0:
        return 20.0
    return max(20.0, 100.0 - (diff / span) * 80.0)


def jaccard_similarity(a: Iterable, b: Iterable) -> float:
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union) * 100.0


def weighted_average(pairs: Iterable[tuple[float, float]]) -> float:
    pairs = list(pairs)
    total_w = sum(w for _, w in pairs)
    if total_w == 0:
        return 0.0
    return sum(s * w for s, w in pairs) / total_w


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days elapsed from ``earlier`` to ``later`` (floored, never negative)."""
    delta = as_utc(later) - as_utc(earlier)
    return max(0, math.floor(delta.total_seconds() / 86400))


def apply_time_decay(score: float, days_inactive: float, rate: float = 0.02) -> float:
    return score * math.exp(-rate * days_inactive)


def apply_popularity_penalty(
    score: float,
    popularity: float,
    max_penalty: float = 15.0,
    normalizer: float = 100.0,
) -> float:
    normalized = min(1.0, popularity / normalizer) if normalizer > 0 else 1.0
    return max(0.0, score - normalized * max_penalty)


def percentile_rank(score: float, scores: list[float]) -> float:
    if not scores:
        return 100.0
    below = sum(1 for s in scores if s < score)
    return below / len(scores) * 100.0


def score_variance(values: Iterable[float]) -> float:
    vals = list(values)
    if len(vals) < 2:
        return 0.0
    return float(pvariance(vals))
