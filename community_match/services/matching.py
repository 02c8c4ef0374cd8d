from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import networkx as nx
from pydantic import ValidationError

from community_match.config import (
    DEFAULT_MATCHING_CONFIG,
    MATCH_DEFAULT_LIMIT,
    MATCH_SCORING_WORKERS,
    MATCH_SPECIAL_LIMIT,
)
from community_match.models import (
    SPECIAL_FEATURES,
    Community,
    Connection,
    Event,
    MatchScore,
    Preferences,
    Profile,
    SpecialFeature,
    UserBehavior,
    default_preferences,
    validate_preferences,
)
from community_match.services import filters
from community_match.services.behavior import BehaviorAdjuster
from community_match.services.compatibility import CompatibilityScorer
from community_match.services.explanations import conversation_starters
from community_match.services.geo import same_city
from community_match.services.match_cache import MatchCache, cache_key
from community_match.services.scoring import (
    apply_popularity_penalty,
    apply_time_decay,
    as_utc,
    clamp,
    days_between,
    percentile_rank,
    score_variance,
)
from community_match.services.social_graph import SocialGraphEngine, build_connection_graph

logger = logging.getLogger(__name__)


@dataclass
class MatchOptions:
    connections: Sequence[Connection] = ()
    communities: Sequence[Community] = ()
    events: Sequence[Event] = ()
    behavior: UserBehavior | None = None
    all_behaviors: Mapping[str, UserBehavior] | None = None
    limit: int | None = None
    use_cache: bool = True
    now: datetime | None = None


def _coerce_profiles(pool: Iterable[Any]) -> list[Profile]:
    out: list[Profile] = []
    for item in pool:
        if isinstance(item, Profile):
            out.append(item)
            continue
        if isinstance(item, Mapping):
            try:
                out.append(Profile.model_validate(item))
            except ValidationError as exc:
                logger.warning(
                    "[MATCHING] skipping malformed candidate id=%s (%s validation errors)",
                    item.get("id"),
                    exc.error_count(),
                )
            continue
        logger.warning("[MATCHING] skipping candidate of unsupported type %s", type(item).__name__)
    return out


def popularity_counts(
    connections: Iterable[Connection],
    now: datetime,
    window_days: int = 30,
) -> dict[str, int]:
    """Accepted connections per user whose acceptance falls inside the window."""
    cutoff = as_utc(now) - timedelta(days=window_days)
    counts: dict[str, int] = {}
    for conn in connections:
        if conn.status != "accepted" or conn.accepted_at is None:
            continue
        if as_utc(conn.accepted_at) < cutoff:
            continue
        for uid in (conn.user1_id, conn.user2_id):
            counts[uid] = counts.get(uid, 0) + 1
    return counts


def feature_bonus(requester: Profile, candidate: Profile, feature: SpecialFeature) -> float:
    if feature == "study_buddy":
        shared = set(requester.interests.study_interests) & set(candidate.interests.study_interests)
        return 5.0 * len(shared)
    if feature == "mentorship":
        return 15.0 if requester.practice.new_to_community != candidate.practice.new_to_community else 0.0
    if feature == "event_companion":
        return 10.0 if same_city(requester.location, candidate.location) else 0.0
    if feature == "professional_networking":
        shared = set(requester.interests.professional_interests) & set(candidate.interests.professional_interests)
        return 3.0 * len(shared)
    return 0.0


def rank_matches(matches: Sequence[MatchScore], band_points: float = 5.0) -> list[MatchScore]:
    """Order by total score, breaking near-ties by balance.

    Starting from the highest remaining score, every match within
    ``band_points`` of it forms a band. Inside a band the match whose six
    factor sub-scores have the lowest variance comes first. Each result is
    decorated with its percentile rank over the whole set.
    """
    if not matches:
        return []

    scores = [m.total_score for m in matches]
    remaining = sorted(matches, key=lambda m: (-m.total_score, m.user_id))
    ranked: list[MatchScore] = []
    i = 0
    while i < len(remaining):
        anchor = remaining[i].total_score
        j = i
        while j < len(remaining) and anchor - remaining[j].total_score <= band_points:
            j += 1
        band = sorted(
            remaining[i:j],
            key=lambda m: (score_variance(m.breakdown.factor_values()), -m.total_score, m.user_id),
        )
        ranked.extend(band)
        i = j

    return [replace(m, percentile_rank=round(percentile_rank(m.total_score, scores), 6)) for m in ranked]


class MatchingService:
    """Runs filter -> score -> adjust -> rank for one requester.

    The service owns an injected ``MatchCache``; callers must invoke
    ``clear_cache`` after any profile change that affects scoring.
    """

    def __init__(
        self,
        cache: MatchCache | None = None,
        *,
        scorer: CompatibilityScorer | None = None,
        graph: SocialGraphEngine | None = None,
        adjuster: BehaviorAdjuster | None = None,
        cfg: dict[str, Any] | None = None,
        workers: int = MATCH_SCORING_WORKERS,
    ) -> None:
        self.cfg = cfg or DEFAULT_MATCHING_CONFIG
        self.cache = cache if cache is not None else MatchCache()
        self.scorer = scorer or CompatibilityScorer(self.cfg)
        self.graph = graph or SocialGraphEngine(self.cfg)
        self.adjuster = adjuster or BehaviorAdjuster()
        self.workers = max(1, int(workers))

    # -- main entry points -----------------------------------------------------

    def find_matches(
        self,
        requester: Profile,
        candidate_pool: Iterable[Any],
        preferences: Preferences,
        options: MatchOptions | None = None,
    ) -> list[MatchScore]:
        options = options or MatchOptions()
        limit = MATCH_DEFAULT_LIMIT if options.limit is None else options.limit
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        validate_preferences(preferences)

        pool = list(candidate_pool)

        def _compute() -> list[MatchScore]:
            return self._compute_matches(requester, pool, preferences, options)

        if options.use_cache:
            results = self.cache.get_or_compute(cache_key(requester.id, preferences), _compute)
        else:
            results = tuple(_compute())
        return list(results[:limit])

    def find_special_feature_matches(
        self,
        requester: Profile,
        candidate_pool: Iterable[Any],
        feature: SpecialFeature,
        preferences: Preferences | None = None,
        options: MatchOptions | None = None,
    ) -> list[MatchScore]:
        if feature not in SPECIAL_FEATURES:
            raise ValueError(f"unknown special feature: {feature}")
        options = options or MatchOptions()
        preferences = preferences or default_preferences()
        validate_preferences(preferences)
        limit = MATCH_SPECIAL_LIMIT if options.limit is None else options.limit
        now = options.now or datetime.now(timezone.utc)

        profiles = [p for p in _coerce_profiles(candidate_pool) if p.id != requester.id]
        candidates = filters.apply_special_feature_filter(requester, profiles, feature)
        candidates = filters.apply_privacy_filters(requester, candidates, now=now)

        G = build_connection_graph(options.connections)
        out: list[MatchScore] = []
        for candidate in candidates:
            bonus = self.graph.social_bonus(
                requester.id, candidate.id, G, options.communities, options.events, now=now
            )
            scored = self.scorer.score(requester, candidate, preferences, bonus)
            if scored.ineligible:
                continue
            extra = feature_bonus(requester, candidate, feature)
            total = round(clamp(scored.total_score + extra), 6)
            if total <= 0:
                continue
            out.append(replace(scored, total_score=total, adjustments={"feature_bonus": extra}))

        out.sort(key=lambda m: (-m.total_score, m.user_id))
        logger.info(
            "[MATCHING] special feature=%s user_id=%s candidates=%s results=%s",
            feature,
            requester.id,
            len(candidates),
            len(out),
        )
        return out[: max(0, limit)]

    def rank_matches(self, matches: Sequence[MatchScore]) -> list[MatchScore]:
        return rank_matches(matches, band_points=float(self.cfg["TIE_BAND_POINTS"]))

    def clear_cache(self, user_id: str | None = None) -> int:
        return self.cache.clear(user_id)

    # -- pipeline --------------------------------------------------------------

    def _compute_matches(
        self,
        requester: Profile,
        pool: Sequence[Any],
        preferences: Preferences,
        options: MatchOptions,
    ) -> list[MatchScore]:
        now = options.now or datetime.now(timezone.utc)
        profiles = [p for p in _coerce_profiles(pool) if p.id != requester.id]
        candidates = filters.filter_candidates(requester, profiles, preferences, options.behavior, now=now)
        if not candidates:
            logger.info("[MATCHING] user_id=%s pool=%s eligible=0", requester.id, len(pool))
            return []

        G = build_connection_graph(options.connections)
        popularity = popularity_counts(options.connections, now, int(self.cfg["POPULARITY_WINDOW_DAYS"]))

        def _score(candidate: Profile) -> MatchScore | None:
            return self._score_candidate(requester, candidate, preferences, options, G, popularity, now)

        if self.workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool_exec:
                scored = list(pool_exec.map(_score, candidates))
        else:
            scored = [_score(c) for c in candidates]

        ranked = self.rank_matches([m for m in scored if m is not None])

        if options.behavior is not None and options.all_behaviors:
            adjusted = self.adjuster.adjust_scores(ranked, requester.id, options.behavior, options.all_behaviors)
            # A candidate re-scored to zero is dropped, as after decay and penalty.
            ranked = self.rank_matches([m for m in adjusted if m.total_score > 0])

        logger.info(
            "[MATCHING] user_id=%s pool=%s eligible=%s ranked=%s",
            requester.id,
            len(pool),
            len(candidates),
            len(ranked),
        )
        return ranked

    def _score_candidate(
        self,
        requester: Profile,
        candidate: Profile,
        preferences: Preferences,
        options: MatchOptions,
        G: nx.Graph,
        popularity: Mapping[str, int],
        now: datetime,
    ) -> MatchScore | None:
        bonus = self.graph.social_bonus(requester.id, candidate.id, G, options.communities, options.events, now=now)
        scored = self.scorer.score(requester, candidate, preferences, bonus)
        if scored.ineligible:
            return None

        inactive_days = days_between(now, candidate.last_active)
        decayed = apply_time_decay(scored.total_score, inactive_days, float(self.cfg["TIME_DECAY_RATE"]))
        penalised = apply_popularity_penalty(
            decayed,
            popularity.get(candidate.id, 0),
            max_penalty=float(self.cfg["POPULARITY_MAX_PENALTY"]),
            normalizer=float(self.cfg["POPULARITY_NORMALIZER"]),
        )
        total = round(penalised, 6)
        if total <= 0:
            return None
        return replace(
            scored,
            total_score=total,
            adjustments={
                "time_decay": round(decayed - scored.total_score, 6),
                "popularity_penalty": round(penalised - decayed, 6),
            },
        )

    # -- auxiliary operations --------------------------------------------------

    def generate_conversation_starters(self, requester: Profile, candidate: Profile) -> list[str]:
        return conversation_starters(requester, candidate)

    def update_preferences_from_behavior(
        self,
        preferences: Preferences,
        behavior: UserBehavior,
        all_users: Iterable[Any],
        requester: Profile | None = None,
    ) -> Preferences:
        return filters.update_preferences_from_behavior(
            preferences, behavior, _coerce_profiles(all_users), requester=requester
        )

    def get_network_analysis(
        self,
        user_id: str,
        connections: Sequence[Connection] = (),
        communities: Sequence[Community] = (),
        events: Sequence[Event] = (),
    ) -> dict[str, Any]:
        G = build_connection_graph(connections)
        analysis = self.graph.network_analysis(user_id, G, communities, events)
        analysis["community_cohesion"] = self.graph.community_cohesion(
            [c for c in communities if user_id in c.members], G
        )
        analysis["trust_recommendations"] = self.graph.recommendations_by_trust_path(user_id, G)
        return analysis

    def get_collaborative_recommendations(
        self,
        requester: Profile,
        all_users: Iterable[Any],
        connections: Sequence[Connection],
        behavior: UserBehavior,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """People that profile-similar members went on to connect with."""
        users = [u for u in _coerce_profiles(all_users) if u.id != requester.id]
        similar = sorted(
            ((u.id, s) for u in users if (s := _profile_similarity(requester, u)) > 20),
            key=lambda x: (-x[1], x[0]),
        )[:5]

        seen = {*behavior.accepted, *behavior.declined, *behavior.liked, *behavior.disliked, requester.id}
        G = build_connection_graph(connections)
        scores: dict[str, float] = {}
        for similar_id, similarity in similar:
            for other in self.graph.connections_of(similar_id, G):
                if other in seen:
                    continue
                scores[other] = scores.get(other, 0.0) + similarity * 0.3

        recs = [
            {
                "user_id": uid,
                "score": round(score, 6),
                "reason": "Members like you also connected with this person",
            }
            for uid, score in scores.items()
        ]
        recs.sort(key=lambda r: (-r["score"], r["user_id"]))
        return recs[:limit]


def _profile_similarity(a: Profile, b: Profile) -> float:
    score = max(0, 20 - abs(a.age - b.age))
    if same_city(a.location, b.location):
        score += 15
    if a.practice.practice_level == b.practice.practice_level:
        score += 10
    score += 2 * len(set(a.interests.hobbies) & set(b.interests.hobbies))
    return float(score)
