from __future__ import annotations

from collections.abc import Sequence

from community_match.models import Preferences, Profile, ScoreBreakdown
from community_match.services.geo import distance_km, same_city

MAX_STARTERS = 3

# (factor, threshold, reason) in output order.
_REASON_RULES: tuple[tuple[str, float, str], ...] = (
    ("interest_compatibility", 70.0, "You share many common interests"),
    ("practice_compatibility", 80.0, "You have similar practice levels"),
    ("age_compatibility", 80.0, "You are in similar age groups"),
    ("language_match", 80.0, "You speak the same languages"),
    ("lifestyle_compatibility", 75.0, "You have compatible lifestyles"),
)


def _fmt_km(value: float) -> str:
    return f"{value:g}"


def _overlap(a: Sequence[str], b: Sequence[str]) -> list[str]:
    other = set(b)
    return [x for x in dict.fromkeys(a) if x in other]


def deal_breaker_reasons(requester: Profile, candidate: Profile, preferences: Preferences) -> list[str]:
    reasons: list[str] = []
    rng = preferences.age_range
    if candidate.age < rng.min or candidate.age > rng.max:
        reasons.append(f"Age {candidate.age} is outside preferred range {rng.min}-{rng.max}")

    distance = distance_km(requester.location, candidate.location)
    if distance > preferences.max_distance:
        reasons.append(f"Distance {distance:.1f}km exceeds maximum {_fmt_km(preferences.max_distance)}km")

    db = preferences.deal_breakers
    if db.different_practice_level and requester.practice.practice_level != candidate.practice.practice_level:
        reasons.append("Different practice levels")
    if db.no_visible_marker and not candidate.practice.visible_marker:
        reasons.append("Does not wear a visible faith marker")
    if db.different_family_status and requester.lifestyle.family_status != candidate.lifestyle.family_status:
        reasons.append("Different family status")
    if db.different_dependents_status and requester.lifestyle.has_dependents != candidate.lifestyle.has_dependents:
        reasons.append("Different dependents status")

    required = preferences.required_languages
    if required and not any(lang in candidate.all_languages() for lang in required):
        reasons.append(f"Does not speak required languages: {', '.join(required)}")
    return reasons


def match_reasons(breakdown: ScoreBreakdown) -> list[str]:
    reasons: list[str] = []
    for factor, threshold, text in _REASON_RULES[:2]:
        if getattr(breakdown, factor) > threshold:
            reasons.append(text)

    if breakdown.location_proximity > 90:
        reasons.append("You live in the same city")
    elif breakdown.location_proximity > 70:
        reasons.append("You live relatively close to each other")

    for factor, threshold, text in _REASON_RULES[2:]:
        if getattr(breakdown, factor) > threshold:
            reasons.append(text)

    if breakdown.social_graph_bonus > 0:
        reasons.append("You have mutual connections")
    return reasons


def special_feature_annotations(requester: Profile, candidate: Profile, preferences: Preferences) -> list[str]:
    toggles = preferences.special_features
    features: list[str] = []

    if toggles.study_buddy:
        shared = _overlap(requester.interests.study_interests, candidate.interests.study_interests)
        if shared:
            features.append(f"Study buddy for: {', '.join(shared)}")

    if toggles.mentorship:
        if requester.practice.new_to_community and not candidate.practice.new_to_community:
            features.append("Potential mentor for community guidance")
        elif not requester.practice.new_to_community and candidate.practice.new_to_community:
            features.append("Opportunity to mentor someone new to the community")

    if toggles.professional_networking:
        shared = _overlap(requester.interests.professional_interests, candidate.interests.professional_interests)
        if shared:
            features.append(f"Professional networking: {', '.join(shared)}")
    return features


def conversation_starters(requester: Profile, candidate: Profile) -> list[str]:
    starters: list[str] = []

    faith_shared = _overlap(requester.interests.faith_interests, candidate.interests.faith_interests)
    if faith_shared:
        starters.append(f"You both listed {faith_shared[0]}. Is there a text or scholar that shaped how you see it?")

    hobbies = _overlap(requester.interests.hobbies, candidate.interests.hobbies)
    if hobbies:
        starters.append(f"I noticed we both enjoy {hobbies[0]}! How did you get started with it?")

    professional = _overlap(requester.interests.professional_interests, candidate.interests.professional_interests)
    if professional:
        starters.append(f"Great to meet someone else interested in {professional[0]}! Are you working in this field?")

    if same_city(requester.location, candidate.location):
        starters.append(f"Nice to meet someone else from {requester.location.city}! Any favourite community spots nearby?")

    if candidate.practice.new_to_community:
        starters.append("Welcome to the community! How has your journey been so far?")

    if not starters:
        starters.append("Peace be with you! I'd love to get to know you better. How are you doing today?")
    return starters[:MAX_STARTERS]
