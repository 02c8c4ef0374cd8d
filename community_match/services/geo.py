from __future__ import annotations

import math
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from community_match.models import Location

EARTH_RADIUS_KM = 6371.0


def distance_km(a: Location, b: Location) -> float:
    """Great-circle distance between two locations (haversine)."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def same_city(a: Location, b: Location) -> bool:
    return a.city.strip().lower() == b.city.strip().lower() and a.country.strip().lower() == b.country.strip().lower()


def same_timezone(a: Location, b: Location) -> bool:
    return a.timezone == b.timezone


def _utc_offset_hours(tz: str, at: datetime) -> float:
    try:
        offset = at.astimezone(ZoneInfo(tz)).utcoffset()
    except (ZoneInfoNotFoundError, ValueError):
        return 0.0
    return offset.total_seconds() / 3600.0 if offset is not None else 0.0


def timezone_offset_hours(a: Location, b: Location, at: datetime | None = None) -> float:
    at = at or datetime.now(timezone.utc)
    return abs(_utc_offset_hours(a.timezone, at) - _utc_offset_hours(b.timezone, at))
