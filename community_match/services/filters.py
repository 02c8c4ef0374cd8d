from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from statistics import mean, pstdev

from community_match.config import INACTIVE_AFTER_DAYS
from community_match.models import (
    AgeRange,
    Preferences,
    Profile,
    SpecialFeature,
    UserBehavior,
    validate_preferences,
)
from community_match.services.geo import distance_km, same_city
from community_match.services.scoring import days_between

logger = logging.getLogger(__name__)

MIN_LEARNED_AGE = 18
MAX_LEARNED_AGE = 80


def _speaks_required_language(candidate: Profile, required: Sequence[str]) -> bool:
    if not required:
        return True
    spoken = candidate.all_languages()
    return any(lang in spoken for lang in required)


def passes_hard_filters(requester: Profile, candidate: Profile, preferences: Preferences) -> bool:
    rng = preferences.age_range
    if candidate.age < rng.min or candidate.age > rng.max:
        return False
    if distance_km(requester.location, candidate.location) > preferences.max_distance:
        return False
    if not _speaks_required_language(candidate, preferences.required_languages):
        return False

    db = preferences.deal_breakers
    if db.different_practice_level and requester.practice.practice_level != candidate.practice.practice_level:
        return False
    if db.no_visible_marker and not candidate.practice.visible_marker:
        return False
    if db.different_family_status and requester.lifestyle.family_status != candidate.lifestyle.family_status:
        return False
    if db.different_dependents_status and requester.lifestyle.has_dependents != candidate.lifestyle.has_dependents:
        return False
    return True


def passes_behavior_filters(candidate: Profile, behavior: UserBehavior) -> bool:
    return candidate.id not in behavior.excluded_ids()


def passes_privacy_filters(requester: Profile, candidate: Profile, now: datetime) -> bool:
    if candidate.id == requester.id:
        return False
    if not candidate.verified:
        return False
    return days_between(now, candidate.last_active) <= INACTIVE_AFTER_DAYS


def filter_candidates(
    requester: Profile,
    candidates: Iterable[Profile],
    preferences: Preferences,
    behavior: UserBehavior | None = None,
    *,
    now: datetime | None = None,
) -> list[Profile]:
    validate_preferences(preferences)
    now = now or datetime.now(timezone.utc)

    filtered = [c for c in candidates if passes_hard_filters(requester, c, preferences)]
    if not filtered:
        return filtered

    if behavior is not None:
        filtered = [c for c in filtered if passes_behavior_filters(c, behavior)]
        if not filtered:
            return filtered

    return [c for c in filtered if passes_privacy_filters(requester, c, now)]


def apply_privacy_filters(
    requester: Profile,
    candidates: Iterable[Profile],
    *,
    now: datetime | None = None,
) -> list[Profile]:
    now = now or datetime.now(timezone.utc)
    return [c for c in candidates if passes_privacy_filters(requester, c, now)]


def _overlap(a: Sequence[str], b: Sequence[str]) -> list[str]:
    other = set(b)
    return [x for x in dict.fromkeys(a) if x in other]


def _study_buddy(requester: Profile, candidate: Profile) -> bool:
    return bool(
        _overlap(requester.interests.study_interests, candidate.interests.study_interests)
        or _overlap(requester.interests.faith_interests, candidate.interests.faith_interests)
    )


def _mentorship(requester: Profile, candidate: Profile) -> bool:
    if requester.practice.new_to_community != candidate.practice.new_to_community:
        return True
    return abs(requester.age - candidate.age) >= 5


def _event_companion(requester: Profile, candidate: Profile) -> bool:
    if not same_city(requester.location, candidate.location):
        return False
    return bool(_overlap(requester.lifestyle.preferred_time_slots, candidate.lifestyle.preferred_time_slots))


def _working_or_studying(profile: Profile) -> bool:
    return profile.lifestyle.work_status == "working" or profile.lifestyle.study_status != "not_studying"


def _professional_networking(requester: Profile, candidate: Profile) -> bool:
    shared = _overlap(requester.interests.professional_interests, candidate.interests.professional_interests)
    return bool(shared) and _working_or_studying(requester) and _working_or_studying(candidate)


SPECIAL_FEATURE_PREDICATES = {
    "study_buddy": _study_buddy,
    "mentorship": _mentorship,
    "event_companion": _event_companion,
    "professional_networking": _professional_networking,
}


def apply_special_feature_filter(
    requester: Profile,
    candidates: Iterable[Profile],
    feature: SpecialFeature,
) -> list[Profile]:
    predicate = SPECIAL_FEATURE_PREDICATES.get(feature)
    if predicate is None:
        raise ValueError(f"unknown special feature: {feature}")
    return [c for c in candidates if predicate(requester, c)]


def update_preferences_from_behavior(
    preferences: Preferences,
    behavior: UserBehavior,
    all_users: Iterable[Profile],
    requester: Profile | None = None,
) -> Preferences:
    """Derive a new preferences value from what the user has liked and accepted.

    Needs at least three liked profiles that are present in ``all_users`` before
    the age range or distance is moved. The input preferences are not touched.
    """
    by_id = {u.id: u for u in all_users}
    liked = [by_id[uid] for uid in behavior.liked if uid in by_id]
    update: dict = {}

    ages = [p.age for p in liked]
    if len(ages) >= 3:
        avg = mean(ages)
        spread = pstdev(ages)
        lo = max(MIN_LEARNED_AGE, math.floor(avg - spread * 1.5))
        hi = min(MAX_LEARNED_AGE, math.ceil(avg + spread * 1.5))
        if lo <= hi:
            update["age_range"] = AgeRange(min=lo, max=hi)

    if requester is not None:
        distances = [distance_km(requester.location, p.location) for p in liked]
        if len(distances) >= 3:
            update["max_distance"] = float(max(preferences.max_distance, math.ceil(mean(distances) * 1.2)))

    if not update:
        return preferences
    logger.debug("[PREFERENCES] learned update for user_id=%s keys=%s", behavior.user_id, sorted(update))
    return preferences.model_copy(update=update)
