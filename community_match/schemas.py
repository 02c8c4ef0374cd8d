from dataclasses import asdict
from typing import Any

from pydantic import BaseModel, Field

from community_match.models import (
    Community,
    Connection,
    Event,
    InteractionOutcome,
    MatchScore,
    Preferences,
    Profile,
    UserBehavior,
)


class SocialContext(BaseModel):
    connections: list[Connection] = Field(default_factory=list)
    communities: list[Community] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)


class FindMatchesRequest(SocialContext):
    requester: Profile
    # Raw records so one malformed candidate is skipped instead of failing the request.
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    behavior: UserBehavior | None = None
    all_behaviors: list[UserBehavior] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=0)
    use_cache: bool = True


class SpecialMatchesRequest(SocialContext):
    requester: Profile
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    limit: int | None = Field(default=None, ge=0)


class ScoreRequest(BaseModel):
    requester: Profile
    candidate: Profile
    preferences: Preferences = Field(default_factory=Preferences)
    social_bonus: float = Field(default=0.0, ge=0, le=50)


class MatchScoreOut(BaseModel):
    user_id: str
    total_score: float
    breakdown: dict[str, float]
    reasons: list[str]
    special_features: list[str]
    ineligible: bool
    percentile_rank: float | None = None
    adjustments: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_score(cls, score: MatchScore) -> "MatchScoreOut":
        return cls(
            user_id=score.user_id,
            total_score=score.total_score,
            breakdown=asdict(score.breakdown),
            reasons=list(score.reasons),
            special_features=list(score.special_features),
            ineligible=score.ineligible,
            percentile_rank=score.percentile_rank,
            adjustments=dict(score.adjustments),
        )


class MatchListResponse(BaseModel):
    matches: list[MatchScoreOut]
    count: int


class ClearCacheResponse(BaseModel):
    removed: int


class InteractionRequest(BaseModel):
    user_id: str
    target_id: str
    outcome: InteractionOutcome
    behavior: UserBehavior | None = None
    target_age: int | None = Field(default=None, ge=0, le=130)
    target_distance_km: float | None = Field(default=None, ge=0)


class InteractionResponse(BaseModel):
    behavior: UserBehavior


class LearnPreferencesRequest(BaseModel):
    preferences: Preferences = Field(default_factory=Preferences)
    behavior: UserBehavior
    users: list[dict[str, Any]] = Field(default_factory=list)
    requester: Profile | None = None


class LearnPreferencesResponse(BaseModel):
    preferences: Preferences
    changed: bool


class NetworkAnalysisRequest(SocialContext):
    user_id: str
