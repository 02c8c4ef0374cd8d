from __future__ import annotations

import logging
from typing import Any

from community_match.config import DEFAULT_MATCHING_CONFIG
from community_match.models import (
    ATTENDANCE_LEVELS,
    AVAILABILITY_LEVELS,
    PRACTICE_LEVELS,
    PRAYER_FREQUENCIES,
    AgeRange,
    MatchScore,
    Preferences,
    Profile,
    ScoreBreakdown,
    validate_preferences,
)
from community_match.services.explanations import (
    deal_breaker_reasons,
    match_reasons,
    special_feature_annotations,
)
from community_match.services.geo import distance_km, same_city
from community_match.services.scoring import age_compatibility, clamp, jaccard_similarity

logger = logging.getLogger(__name__)

WORK_STATUS_COMPATIBILITY: dict[str, dict[str, float]] = {
    "student": {"student": 100, "working": 70, "homemaker": 60, "retired": 50, "unemployed": 80},
    "working": {"student": 70, "working": 100, "homemaker": 60, "retired": 50, "unemployed": 50},
    "homemaker": {"student": 60, "working": 60, "homemaker": 100, "retired": 80, "unemployed": 70},
    "retired": {"student": 50, "working": 50, "homemaker": 80, "retired": 100, "unemployed": 60},
    "unemployed": {"student": 80, "working": 50, "homemaker": 70, "retired": 60, "unemployed": 100},
}


def _ordinal_gap(levels: tuple[str, ...], a: str, b: str) -> int:
    return abs(levels.index(a) - levels.index(b))


def interest_score(requester: Profile, candidate: Profile) -> float:
    mine = requester.interests.all_interests()
    theirs = candidate.interests.all_interests()
    if not mine and not theirs:
        return 50.0

    common = mine & theirs
    base = len(common) / max(len(mine), len(theirs)) * 100.0
    faith_common = set(requester.interests.faith_interests) & set(candidate.interests.faith_interests)
    return clamp(base + 10.0 * len(faith_common))


def location_score(requester: Profile, candidate: Profile, max_distance: float) -> float:
    distance = distance_km(requester.location, candidate.location)
    if distance > max_distance:
        return 0.0
    if same_city(requester.location, candidate.location):
        return 100.0
    if max_distance <= 0:
        return 100.0
    return clamp(100.0 - distance / max_distance * 100.0)


def language_score(requester: Profile, candidate: Profile) -> float:
    mine = requester.all_languages()
    theirs = candidate.all_languages()
    common = mine & theirs
    if not common:
        return 0.0

    base = len(common) / max(len(mine), len(theirs)) * 100.0
    primary_bonus = 20.0 if set(requester.languages) & set(candidate.languages) else 0.0
    return clamp(base + primary_bonus)


def practice_score(requester: Profile, candidate: Profile) -> float:
    a, b = requester.practice, candidate.practice
    level = max(0.0, 100.0 - _ordinal_gap(PRACTICE_LEVELS, a.practice_level, b.practice_level) * 25)
    prayer = max(0.0, 100.0 - _ordinal_gap(PRAYER_FREQUENCIES, a.prayer_frequency, b.prayer_frequency) * 30)
    attendance = max(0.0, 100.0 - _ordinal_gap(ATTENDANCE_LEVELS, a.attendance, b.attendance) * 25)
    if a.visible_marker == b.visible_marker:
        marker = 100.0 if a.visible_marker else 80.0
    else:
        marker = 60.0

    total = level + prayer + attendance + marker
    if a.new_to_community or b.new_to_community:
        total += 10.0
    return clamp(total / 4.0)


def lifestyle_score(requester: Profile, candidate: Profile) -> float:
    a, b = requester.lifestyle, candidate.lifestyle
    work = WORK_STATUS_COMPATIBILITY.get(a.work_status, {}).get(b.work_status, 50.0)
    family = 100.0 if a.family_status == b.family_status else 60.0
    dependents = 100.0 if a.has_dependents == b.has_dependents else 70.0
    availability = max(0.0, 100.0 - _ordinal_gap(AVAILABILITY_LEVELS, a.availability, b.availability) * 20)
    slots = jaccard_similarity(a.preferred_time_slots, b.preferred_time_slots)
    return (work + family + dependents + availability + slots) / 5.0


def age_score(requester: Profile, candidate: Profile, preferred: AgeRange) -> float:
    return age_compatibility(requester.age, candidate.age, preferred)


def _ineligible(candidate: Profile, reasons: list[str]) -> MatchScore:
    return MatchScore(
        user_id=candidate.id,
        total_score=0.0,
        breakdown=ScoreBreakdown(),
        reasons=tuple(reasons),
        special_features=(),
        ineligible=True,
    )


def score_compatibility(
    requester: Profile,
    candidate: Profile,
    preferences: Preferences,
    social_bonus: float = 0.0,
    cfg: dict[str, Any] | None = None,
) -> MatchScore:
    """Score ``candidate`` for ``requester`` on a 0-100 scale.

    A fired deal-breaker short-circuits to a zero score with ``ineligible=True``
    and the reasons that fired. Otherwise the six factor sub-scores are combined
    with the requester's soft-preference weights (language has a fixed weight and
    the social bonus is added unweighted) and normalised by the weight total plus
    a constant offset.
    """
    validate_preferences(preferences)
    cfg = cfg or DEFAULT_MATCHING_CONFIG

    blockers = deal_breaker_reasons(requester, candidate, preferences)
    if blockers:
        logger.debug("[SCORING] %s ineligible for %s: %s", candidate.id, requester.id, blockers)
        return _ineligible(candidate, blockers)

    breakdown = ScoreBreakdown(
        interest_compatibility=interest_score(requester, candidate),
        location_proximity=location_score(requester, candidate, preferences.max_distance),
        age_compatibility=age_score(requester, candidate, preferences.age_range),
        language_match=language_score(requester, candidate),
        practice_compatibility=practice_score(requester, candidate),
        lifestyle_compatibility=lifestyle_score(requester, candidate),
        social_graph_bonus=float(social_bonus),
    )

    soft = preferences.soft_preferences
    language_w = float(cfg.get("LANGUAGE_W", 0.2))
    weighted = (
        breakdown.interest_compatibility * soft.similar_interests
        + breakdown.location_proximity * soft.same_city
        + breakdown.age_compatibility * soft.similar_age
        + breakdown.language_match * language_w
        + breakdown.practice_compatibility * soft.similar_practice_level
        + breakdown.lifestyle_compatibility * soft.similar_lifestyle
        + breakdown.social_graph_bonus
    )
    denominator = soft.total_weight() + float(cfg.get("DENOMINATOR_OFFSET", 0.5))
    # Weights are not validated; only a zero denominator is special-cased.
    total = weighted / denominator if denominator != 0 else 0.0

    return MatchScore(
        user_id=candidate.id,
        total_score=round(clamp(total), 6),
        breakdown=breakdown,
        reasons=tuple(match_reasons(breakdown)),
        special_features=tuple(special_feature_annotations(requester, candidate, preferences)),
    )


class CompatibilityScorer:
    def __init__(self, cfg: dict[str, Any] | None = None):
        self.cfg = cfg or DEFAULT_MATCHING_CONFIG

    def score(
        self,
        requester: Profile,
        candidate: Profile,
        preferences: Preferences,
        social_bonus: float = 0.0,
    ) -> MatchScore:
        return score_compatibility(requester, candidate, preferences, social_bonus, cfg=self.cfg)
