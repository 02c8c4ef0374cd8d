from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

PracticeLevel = Literal["beginner", "intermediate", "advanced", "scholar"]
PrayerFrequency = Literal["rarely", "sometimes", "regularly", "always"]
Attendance = Literal["never", "occasionally", "weekly", "daily"]
WorkStatus = Literal["student", "working", "homemaker", "retired", "unemployed"]
StudyStatus = Literal["not_studying", "part_time", "full_time"]
FamilyStatus = Literal["single", "married", "married_with_children", "widowed"]
Availability = Literal["very_limited", "limited", "moderate", "flexible", "very_flexible"]
TimeSlot = Literal["morning", "afternoon", "evening", "weekend"]
ConnectionStatus = Literal["pending", "accepted", "declined", "blocked"]
EventCategory = Literal["religious", "educational", "social", "professional", "charity"]
SpecialFeature = Literal["study_buddy", "mentorship", "event_companion", "professional_networking"]
InteractionOutcome = Literal["like", "dislike", "accept", "decline", "report"]

PRACTICE_LEVELS: tuple[str, ...] = ("beginner", "intermediate", "advanced", "scholar")
PRAYER_FREQUENCIES: tuple[str, ...] = ("rarely", "sometimes", "regularly", "always")
ATTENDANCE_LEVELS: tuple[str, ...] = ("never", "occasionally", "weekly", "daily")
AVAILABILITY_LEVELS: tuple[str, ...] = ("very_limited", "limited", "moderate", "flexible", "very_flexible")
SPECIAL_FEATURES: tuple[str, ...] = ("study_buddy", "mentorship", "event_companion", "professional_networking")
INTERACTION_OUTCOMES: tuple[str, ...] = ("like", "dislike", "accept", "decline", "report")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvalidPreferencesError(ValueError):
    pass


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Location(_Frozen):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    city: str
    country: str
    timezone: str = "UTC"


class PracticeProfile(_Frozen):
    practice_level: PracticeLevel = "intermediate"
    prayer_frequency: PrayerFrequency = "regularly"
    visible_marker: bool = False
    attendance: Attendance = "occasionally"
    scripture_study_interest: bool = False
    history_interest: bool = False
    language_learning_interest: bool = False
    new_to_community: bool = False
    years_in_community: Optional[int] = Field(default=None, ge=0)


class Interests(_Frozen):
    hobbies: tuple[str, ...] = ()
    activities: tuple[str, ...] = ()
    faith_interests: tuple[str, ...] = ()
    study_interests: tuple[str, ...] = ()
    professional_interests: tuple[str, ...] = ()

    def all_interests(self) -> set[str]:
        return {
            *self.hobbies,
            *self.activities,
            *self.faith_interests,
            *self.study_interests,
            *self.professional_interests,
        }


class Lifestyle(_Frozen):
    work_status: WorkStatus = "working"
    study_status: StudyStatus = "not_studying"
    family_status: FamilyStatus = "single"
    has_dependents: bool = False
    dependents_count: Optional[int] = Field(default=None, ge=0)
    availability: Availability = "moderate"
    preferred_time_slots: tuple[TimeSlot, ...] = ()


class Profile(_Frozen):
    id: str
    first_name: Optional[str] = None
    age: int = Field(ge=0, le=130)
    location: Location
    languages: tuple[str, ...] = ()
    secondary_languages: tuple[str, ...] = ()
    practice: PracticeProfile = Field(default_factory=PracticeProfile)
    interests: Interests = Field(default_factory=Interests)
    lifestyle: Lifestyle = Field(default_factory=Lifestyle)
    created_at: datetime = Field(default_factory=_utcnow)
    last_active: datetime = Field(default_factory=_utcnow)
    verified: bool = False

    def all_languages(self) -> set[str]:
        return {*self.languages, *self.secondary_languages}


class AgeRange(_Frozen):
    min: int
    max: int

    @model_validator(mode="after")
    def _check_order(self) -> "AgeRange":
        if self.min > self.max:
            raise ValueError(f"age_range min ({self.min}) must be <= max ({self.max})")
        return self


class DealBreakers(_Frozen):
    different_practice_level: bool = False
    no_visible_marker: bool = False
    different_family_status: bool = False
    too_far_distance: bool = True
    different_dependents_status: bool = False


class SoftPreferences(_Frozen):
    similar_interests: float = 0.8
    similar_age: float = 0.6
    same_city: float = 0.4
    similar_practice_level: float = 0.9
    similar_lifestyle: float = 0.7

    def total_weight(self) -> float:
        return (
            self.similar_interests
            + self.similar_age
            + self.same_city
            + self.similar_practice_level
            + self.similar_lifestyle
        )


class SpecialFeatures(_Frozen):
    study_buddy: bool = True
    mentorship: bool = True
    event_companion: bool = True
    professional_networking: bool = False


class Preferences(_Frozen):
    age_range: AgeRange = Field(default_factory=lambda: AgeRange(min=18, max=65))
    max_distance: float = Field(default=50.0, ge=0)
    required_languages: tuple[str, ...] = ()
    deal_breakers: DealBreakers = Field(default_factory=DealBreakers)
    soft_preferences: SoftPreferences = Field(default_factory=SoftPreferences)
    special_features: SpecialFeatures = Field(default_factory=SpecialFeatures)

    def cache_fingerprint(self) -> str:
        return self.model_dump_json()


def default_preferences() -> Preferences:
    return Preferences()


def validate_preferences(preferences: Preferences) -> Preferences:
    """Reject preference shapes that would produce meaningless scores.

    Models built through pydantic validation already satisfy these checks; this
    guards instances assembled with ``model_construct``.
    """
    rng = preferences.age_range
    if rng.min > rng.max:
        raise InvalidPreferencesError(f"age_range min ({rng.min}) must be <= max ({rng.max})")
    if preferences.max_distance < 0:
        raise InvalidPreferencesError(f"max_distance must be >= 0, got {preferences.max_distance}")
    return preferences


class Connection(_Frozen):
    id: str
    user1_id: str
    user2_id: str
    initiated_by: Optional[str] = None
    status: ConnectionStatus = "pending"
    match_score: Optional[float] = None
    created_at: datetime = Field(default_factory=_utcnow)
    accepted_at: Optional[datetime] = None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def other(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id


class Community(_Frozen):
    id: str
    name: str = ""
    members: frozenset[str] = frozenset()
    leader_id: Optional[str] = None
    affiliation: Optional[str] = None


class Event(_Frozen):
    id: str
    title: str = ""
    organizer: Optional[str] = None
    attendees: frozenset[str] = frozenset()
    start: datetime
    end: Optional[datetime] = None
    category: EventCategory = "social"


class InteractionPatterns(_Frozen):
    response_time_minutes: float = 0.0
    message_frequency: float = 0.0
    active_hours: tuple[int, ...] = ()


class UserBehavior(_Frozen):
    user_id: str
    liked: tuple[str, ...] = ()
    disliked: tuple[str, ...] = ()
    accepted: tuple[str, ...] = ()
    declined: tuple[str, ...] = ()
    reported: tuple[str, ...] = ()
    preferred_age_ranges: tuple[int, ...] = ()
    preferred_distances: tuple[float, ...] = ()
    interaction_patterns: InteractionPatterns = Field(default_factory=InteractionPatterns)

    def excluded_ids(self) -> set[str]:
        return {*self.disliked, *self.reported, *self.declined}


@dataclass(frozen=True)
class ScoreBreakdown:
    interest_compatibility: float = 0.0
    location_proximity: float = 0.0
    age_compatibility: float = 0.0
    language_match: float = 0.0
    practice_compatibility: float = 0.0
    lifestyle_compatibility: float = 0.0
    social_graph_bonus: float = 0.0

    def factor_values(self) -> tuple[float, ...]:
        # Social bonus is an additive slot, not a compatibility factor.
        return tuple(getattr(self, f.name) for f in fields(self) if f.name != "social_graph_bonus")


@dataclass(frozen=True)
class MatchScore:
    user_id: str
    total_score: float
    breakdown: ScoreBreakdown
    reasons: tuple[str, ...] = ()
    special_features: tuple[str, ...] = ()
    ineligible: bool = False
    percentile_rank: Optional[float] = None
    adjustments: Mapping[str, float] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        # Cached results are shared between callers, so the mapping is read-only.
        object.__setattr__(self, "adjustments", MappingProxyType(dict(self.adjustments)))
