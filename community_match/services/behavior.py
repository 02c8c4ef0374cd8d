from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from community_match.models import INTERACTION_OUTCOMES, InteractionOutcome, MatchScore, Profile, UserBehavior
from community_match.services.scoring import clamp, jaccard_similarity

logger = logging.getLogger(__name__)

_OUTCOME_FIELD = {
    "like": "liked",
    "dislike": "disliked",
    "accept": "accepted",
    "decline": "declined",
    "report": "reported",
}

# Neighbour interaction -> estimated score, checked in this order.
_NEIGHBOUR_SIGNALS: tuple[tuple[str, float], ...] = (
    ("liked", 80.0),
    ("accepted", 90.0),
    ("disliked", 20.0),
    ("declined", 10.0),
)
NEUTRAL_ESTIMATE = 50.0
SIMILARITY_THRESHOLD = 0.3
MAX_NEIGHBOURS = 5
CF_BONUS_SCALE = 0.2
PATTERN_BONUS = 5.0
PATTERN_MIN_LIKES = 3


def track_interaction(
    user_id: str,
    target_id: str,
    outcome: InteractionOutcome,
    behavior: UserBehavior,
    *,
    target_age: int | None = None,
    target_distance_km: float | None = None,
) -> UserBehavior:
    """Return a new behavior record with ``target_id`` added to the outcome set.

    Positive outcomes (like, accept) also remember the target's age and
    distance when given, which feeds preference learning later on.
    """
    if outcome not in INTERACTION_OUTCOMES:
        raise ValueError(f"unknown interaction outcome: {outcome}")
    if behavior.user_id != user_id:
        raise ValueError(f"behavior belongs to {behavior.user_id}, not {user_id}")

    field_name = _OUTCOME_FIELD[outcome]
    current: tuple[str, ...] = getattr(behavior, field_name)
    update: dict[str, Any] = {}
    if target_id not in current:
        update[field_name] = current + (target_id,)

    if outcome in ("like", "accept"):
        if target_age is not None:
            update["preferred_age_ranges"] = behavior.preferred_age_ranges + (int(target_age),)
        if target_distance_km is not None:
            update["preferred_distances"] = behavior.preferred_distances + (float(target_distance_km),)

    if not update:
        return behavior
    logger.debug("[BEHAVIOR] user_id=%s %s target=%s", user_id, outcome, target_id)
    return behavior.model_copy(update=update)


def behavior_similarity(a: UserBehavior, b: UserBehavior) -> float:
    liked = jaccard_similarity(a.liked, b.liked) / 100.0
    accepted = jaccard_similarity(a.accepted, b.accepted) / 100.0
    return (liked + accepted) / 2.0


def behavior_consistency(behavior: UserBehavior) -> float:
    positive = len(behavior.liked) + len(behavior.accepted)
    total = positive + len(behavior.disliked) + len(behavior.declined)
    if total == 0:
        return 0.0
    return positive / total * 100.0


class BehaviorAdjuster:
    """Optional re-scoring from interaction history.

    Nothing in the matching pipeline depends on this class; it only runs when
    the caller supplies behavior records.
    """

    def similar_users(self, user_id: str, all_behaviors: Mapping[str, UserBehavior]) -> list[tuple[str, float]]:
        mine = all_behaviors.get(user_id)
        if mine is None:
            return []
        out = []
        for other_id, other in all_behaviors.items():
            if other_id == user_id:
                continue
            sim = behavior_similarity(mine, other)
            if sim > SIMILARITY_THRESHOLD:
                out.append((other_id, sim))
        out.sort(key=lambda x: (-x[1], x[0]))
        return out

    def predict_compatibility(
        self,
        user_id: str,
        target_id: str,
        all_behaviors: Mapping[str, UserBehavior],
    ) -> float:
        total = 0.0
        weight = 0.0
        for neighbour_id, sim in self.similar_users(user_id, all_behaviors)[:MAX_NEIGHBOURS]:
            neighbour = all_behaviors[neighbour_id]
            estimate = NEUTRAL_ESTIMATE
            for field_name, signal in _NEIGHBOUR_SIGNALS:
                if target_id in getattr(neighbour, field_name):
                    estimate = signal
                    break
            total += estimate * sim
            weight += sim
        return total / weight if weight > 0 else NEUTRAL_ESTIMATE

    def pattern_bonus(self, behavior: UserBehavior) -> float:
        return PATTERN_BONUS if len(behavior.liked) > PATTERN_MIN_LIKES else 0.0

    def adjust_scores(
        self,
        matches: Sequence[MatchScore],
        user_id: str,
        behavior: UserBehavior,
        all_behaviors: Mapping[str, UserBehavior],
    ) -> list[MatchScore]:
        pattern = self.pattern_bonus(behavior)
        adjusted: list[MatchScore] = []
        for match in matches:
            cf_bonus = (self.predict_compatibility(user_id, match.user_id, all_behaviors) - NEUTRAL_ESTIMATE) * CF_BONUS_SCALE
            reasons = list(match.reasons)
            if cf_bonus > 2:
                reasons.append("Members with similar preferences also connected with this person")
            if pattern > 2:
                reasons.append("Matches your interaction patterns")
            adjusted.append(
                replace(
                    match,
                    total_score=round(clamp(match.total_score + cf_bonus + pattern), 6),
                    reasons=tuple(reasons),
                    adjustments={**match.adjustments, "collaborative": round(cf_bonus, 6), "pattern": pattern},
                )
            )
        return adjusted

    def recommendation_diversity(self, matches: Sequence[MatchScore], users: Iterable[Profile]) -> float:
        if len(matches) < 2:
            return 100.0
        by_id = {u.id: u for u in users}
        profiles = [by_id[m.user_id] for m in matches if m.user_id in by_id]
        if len(profiles) < 2:
            return 100.0

        def _ratio(values: list) -> float:
            return min(100.0, len(set(values)) / len(values) * 100.0)

        return (
            _ratio([p.age for p in profiles])
            + _ratio([p.location.city.strip().lower() for p in profiles])
            + _ratio([p.practice.practice_level for p in profiles])
        ) / 3.0

    def analyze_user_preferences(self, behavior: UserBehavior, all_users: Iterable[Profile]) -> dict[str, Any]:
        by_id = {u.id: u for u in all_users}
        positive = [by_id[uid] for uid in (*behavior.liked, *behavior.accepted) if uid in by_id]
        if not positive:
            return {
                "preferred_age_range": {"min": 18, "max": 65},
                "preferred_interests": [],
                "preferred_practice_levels": [],
                "behavior_score": 0.0,
            }

        ages = [p.age for p in positive]
        interests = Counter(
            tag
            for p in positive
            for tag in (*p.interests.hobbies, *p.interests.activities, *p.interests.faith_interests)
        )
        levels = Counter(p.practice.practice_level for p in positive)
        lo = max(18, min(ages) - 2)
        hi = max(lo, min(65, max(ages) + 2))
        return {
            "preferred_age_range": {"min": lo, "max": hi},
            "preferred_interests": sorted(tag for tag, count in interests.items() if count >= 2),
            "preferred_practice_levels": [level for level, _ in levels.most_common()],
            "behavior_score": behavior_consistency(behavior),
        }
