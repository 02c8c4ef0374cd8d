from fastapi import HTTPException

from community_match.models import InvalidPreferencesError
from community_match.services.match_cache import MatchCache
from community_match.services.matching import MatchingService

_service = MatchingService(cache=MatchCache())


def get_matching_service() -> MatchingService:
    return _service


def bad_request(exc: ValueError) -> HTTPException:
    if isinstance(exc, InvalidPreferencesError):
        return HTTPException(status_code=400, detail=f"Invalid preferences: {exc}")
    return HTTPException(status_code=400, detail=str(exc))
