from fastapi import APIRouter, Depends

from ..deps import bad_request, get_matching_service
from ..models import UserBehavior
from ..schemas import (
    InteractionRequest,
    InteractionResponse,
    LearnPreferencesRequest,
    LearnPreferencesResponse,
)
from ..services.behavior import track_interaction
from ..services.matching import MatchingService

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def behavior_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "behavior"}


@router.post("/behavior/interactions", response_model=InteractionResponse)
def record_interaction(payload: InteractionRequest):
    behavior = payload.behavior or UserBehavior(user_id=payload.user_id)
    try:
        updated = track_interaction(
            payload.user_id,
            payload.target_id,
            payload.outcome,
            behavior,
            target_age=payload.target_age,
            target_distance_km=payload.target_distance_km,
        )
    except ValueError as exc:
        raise bad_request(exc)
    return InteractionResponse(behavior=updated)


@router.post("/preferences/learn", response_model=LearnPreferencesResponse)
def learn_preferences(payload: LearnPreferencesRequest, service: MatchingService = Depends(get_matching_service)):
    try:
        learned = service.update_preferences_from_behavior(
            payload.preferences, payload.behavior, payload.users, requester=payload.requester
        )
    except ValueError as exc:
        raise bad_request(exc)
    return LearnPreferencesResponse(preferences=learned, changed=learned != payload.preferences)
