from __future__ import annotations

import math
from datetime import datetime, timezone

EARTH_RADIUS_KM = 6371.0

SAME_COUNTRY_DEFAULT_KM = 150.0
CROSS_COUNTRY_DEFAULT_KM = 600.0

# Road distances for common European lanes, looked up in either direction.
_CITY_DISTANCES_KM: dict[str, dict[str, float]] = {
    "bucharest": {"berlin": 1100, "vienna": 650, "budapest": 450, "warsaw": 850},
    "berlin": {"paris": 880, "amsterdam": 580, "prague": 350, "vienna": 530},
    "paris": {"madrid": 1050, "rome": 1100, "london": 460, "brussels": 300},
    "warsaw": {"berlin": 520, "prague": 680, "vienna": 600, "kiev": 760},
}


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def lookup_city_distance(from_city: str | None, to_city: str | None) -> float | None:
    a = (from_city or "").strip().lower()
    b = (to_city or "").strip().lower()
    if not a or not b:
        return None
    known = _CITY_DISTANCES_KM.get(a, {}).get(b)
    if known is None:
        known = _CITY_DISTANCES_KM.get(b, {}).get(a)
    return float(known) if known is not None else None


def estimate_distance_by_location(from_city: str, to_city: str, from_country: str, to_country: str) -> float:
    """City table first, then a flat same-country / cross-country estimate."""
    known = lookup_city_distance(from_city, to_city)
    if known is not None:
        return known
    if from_country == to_country:
        return SAME_COUNTRY_DEFAULT_KM
    return CROSS_COUNTRY_DEFAULT_KM


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; treat them as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_until(deadline: datetime, now: datetime) -> float:
    """Hours from now to deadline, never negative."""
    delta = as_utc(deadline) - as_utc(now)
    return max(0.0, delta.total_seconds() / 3600)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
