from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_matching_service
from ..schemas import NetworkAnalysisRequest
from ..services.matching import MatchingService

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def network_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "network"}


@router.post("/network/analysis")
def network_analysis(
    payload: NetworkAnalysisRequest,
    service: MatchingService = Depends(get_matching_service),
) -> dict[str, Any]:
    return service.get_network_analysis(payload.user_id, payload.connections, payload.communities, payload.events)
