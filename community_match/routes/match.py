import logging

from fastapi import APIRouter, Depends

from ..deps import bad_request, get_matching_service
from ..models import SPECIAL_FEATURES
from ..schemas import (
    ClearCacheResponse,
    FindMatchesRequest,
    MatchListResponse,
    MatchScoreOut,
    ScoreRequest,
    SpecialMatchesRequest,
)
from ..services.matching import MatchingService, MatchOptions

logger = logging.getLogger(__name__)

router = APIRouter()
scaffold_router = APIRouter()


def _list_response(matches) -> MatchListResponse:
    out = [MatchScoreOut.from_score(m) for m in matches]
    return MatchListResponse(matches=out, count=len(out))


@scaffold_router.get("/health")
def match_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "match"}


@router.post("/matches", response_model=MatchListResponse)
def find_matches(payload: FindMatchesRequest, service: MatchingService = Depends(get_matching_service)):
    options = MatchOptions(
        connections=payload.connections,
        communities=payload.communities,
        events=payload.events,
        behavior=payload.behavior,
        all_behaviors={b.user_id: b for b in payload.all_behaviors},
        limit=payload.limit,
        use_cache=payload.use_cache,
    )
    try:
        matches = service.find_matches(payload.requester, payload.candidates, payload.preferences, options)
    except ValueError as exc:
        raise bad_request(exc)
    return _list_response(matches)


@router.post("/matches/special/{feature}", response_model=MatchListResponse)
def find_special_feature_matches(
    feature: str,
    payload: SpecialMatchesRequest,
    service: MatchingService = Depends(get_matching_service),
):
    if feature not in SPECIAL_FEATURES:
        raise bad_request(ValueError(f"Unknown special feature '{feature}'. Expected one of: {', '.join(SPECIAL_FEATURES)}"))
    options = MatchOptions(
        connections=payload.connections,
        communities=payload.communities,
        events=payload.events,
        limit=payload.limit,
    )
    try:
        matches = service.find_special_feature_matches(
            payload.requester, payload.candidates, feature, payload.preferences, options
        )
    except ValueError as exc:
        raise bad_request(exc)
    return _list_response(matches)


@router.post("/matches/score", response_model=MatchScoreOut)
def score_pair(payload: ScoreRequest, service: MatchingService = Depends(get_matching_service)):
    try:
        score = service.scorer.score(payload.requester, payload.candidate, payload.preferences, payload.social_bonus)
    except ValueError as exc:
        raise bad_request(exc)
    return MatchScoreOut.from_score(score)


@router.delete("/matches/cache", response_model=ClearCacheResponse)
def clear_match_cache(user_id: str | None = None, service: MatchingService = Depends(get_matching_service)):
    removed = service.clear_cache(user_id)
    logger.info("[MATCHING] cache cleared via API user_id=%s removed=%s", user_id, removed)
    return ClearCacheResponse(removed=removed)
