import json
import logging
import os
from typing import Any

logger = logging.getLogger(__name__)

MATCH_CACHE_TTL_MINUTES = int(os.getenv("MATCH_CACHE_TTL_MINUTES", "30"))
MATCH_CACHE_SINGLE_FLIGHT = os.getenv("MATCH_CACHE_SINGLE_FLIGHT", "false").lower() == "true"
MATCH_DEFAULT_LIMIT = int(os.getenv("MATCH_DEFAULT_LIMIT", "20"))
MATCH_SPECIAL_LIMIT = int(os.getenv("MATCH_SPECIAL_LIMIT", "10"))
MATCH_SCORING_WORKERS = int(os.getenv("MATCH_SCORING_WORKERS", "1"))
INACTIVE_AFTER_DAYS = int(os.getenv("INACTIVE_AFTER_DAYS", "30"))
TRUST_PATH_MAX_HOPS = int(os.getenv("TRUST_PATH_MAX_HOPS", "3"))
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

DEFAULT_MATCHING_CONFIG: dict[str, Any] = {
    "LANGUAGE_W": float(os.getenv("LANGUAGE_W", "0.2")),
    "DENOMINATOR_OFFSET": float(os.getenv("DENOMINATOR_OFFSET", "0.5")),
    "TIME_DECAY_RATE": float(os.getenv("TIME_DECAY_RATE", "0.02")),
    "POPULARITY_MAX_PENALTY": float(os.getenv("POPULARITY_MAX_PENALTY", "15")),
    "POPULARITY_NORMALIZER": float(os.getenv("POPULARITY_NORMALIZER", "100")),
    "POPULARITY_WINDOW_DAYS": int(os.getenv("POPULARITY_WINDOW_DAYS", "30")),
    "TIE_BAND_POINTS": float(os.getenv("TIE_BAND_POINTS", "5")),
    "SOCIAL_BONUS_CAP": float(os.getenv("SOCIAL_BONUS_CAP", "50")),
    "MUTUAL_POINTS": float(os.getenv("MUTUAL_POINTS", "5")),
    "MUTUAL_CAP": float(os.getenv("MUTUAL_CAP", "25")),
    "COMMUNITY_POINTS": float(os.getenv("COMMUNITY_POINTS", "8")),
    "SMALL_COMMUNITY_SIZE": int(os.getenv("SMALL_COMMUNITY_SIZE", "20")),
    "SMALL_COMMUNITY_POINTS": float(os.getenv("SMALL_COMMUNITY_POINTS", "5")),
    "AFFILIATION_POINTS": float(os.getenv("AFFILIATION_POINTS", "10")),
    "COMMUNITY_CAP": float(os.getenv("COMMUNITY_CAP", "20")),
    "EVENT_POINTS": float(os.getenv("EVENT_POINTS", "3")),
    "RECENT_EVENT_POINTS": float(os.getenv("RECENT_EVENT_POINTS", "2")),
    "RECENT_EVENT_DAYS": int(os.getenv("RECENT_EVENT_DAYS", "183")),
    "EVENT_CAP": float(os.getenv("EVENT_CAP", "15")),
    "DENSITY_MULTIPLIER": float(os.getenv("DENSITY_MULTIPLIER", "50")),
    "DENSITY_CAP": float(os.getenv("DENSITY_CAP", "10")),
    "TRUST_DECAY": float(os.getenv("TRUST_DECAY", "0.7")),
}

if os.getenv("MATCHING_CONFIG_JSON"):
    try:
        DEFAULT_MATCHING_CONFIG.update(json.loads(os.getenv("MATCHING_CONFIG_JSON", "{}")))
    except json.JSONDecodeError:
        logger.warning("MATCHING_CONFIG_JSON is not valid JSON; using environment defaults.")
