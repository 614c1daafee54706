"""
Distance Resolver: road distance from the store to a delivery address.

Fallback tiers (first that succeeds wins, callers never see a failure):
  1. Route cache in Redis (2-hour TTL), when REDIS_URL is set
  2. Road-routing service lookup, single attempt with a short timeout
  3. Haversine × road-curvature factor, when both ends have coordinates
  4. Flat per-zone estimate, when the address has no coordinates
"""

import hashlib
import logging
import math
from dataclasses import dataclass

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config import settings
from services.zones import Zone, classify_zone

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None
_http: httpx.AsyncClient | None = None

EARTH_RADIUS_KM = 6371.0
ROAD_CURVATURE_FACTOR = 1.3

# Typical road distance from the store to each zone
ZONE_FLAT_DISTANCE_KM = {
    "cavite": 8,
    "laguna": 15,
    "metro_manila": 35,
    "rizal": 45,
    "bulacan": 55,
    "batangas": 40,
    "provincial": 60,
}
DEFAULT_FLAT_DISTANCE_KM = 30


class RoutingUnavailable(Exception):
    """Routing lookup failed; always handled inside this module."""


@dataclass(frozen=True)
class Address:
    street_address: str
    city: str
    province: str
    zip_code: str = ""
    lat: float | None = None
    lng: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def locality(self) -> str:
        """Text used for zone matching: province first, city if blank."""
        return self.province or self.city


@dataclass(frozen=True)
class DistanceEstimate:
    distance_km: float
    eta_minutes: float | None
    accurate: bool
    source: str  # "routing" | "cache" | "haversine" | "zone_estimate"


async def _get_redis() -> aioredis.Redis | None:
    global _redis
    if not settings.REDIS_URL:
        return None
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


async def _get_http() -> httpx.AsyncClient:
    global _http
    if _http is None:
        _http = httpx.AsyncClient(timeout=settings.ROUTING_TIMEOUT_S)
    return _http


async def close_clients() -> None:
    """Release pooled connections (called on app shutdown)."""
    global _redis, _http
    if _http is not None:
        await _http.aclose()
        _http = None
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def _latlng_hash(lat: float, lng: float) -> str:
    """Hash lat/lng to 4 decimal places for the route cache key."""
    key = f"{lat:.4f},{lng:.4f}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


# ── Pure geometry ──────────────────────────────────────────

def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def road_distance_estimate(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Straight-line distance stretched by the road-curvature factor."""
    return haversine_distance(lat1, lng1, lat2, lng2) * ROAD_CURVATURE_FACTOR


def zone_flat_distance(zone: Zone) -> float:
    return float(ZONE_FLAT_DISTANCE_KM.get(zone.key, DEFAULT_FLAT_DISTANCE_KM))


# ── Routing service ────────────────────────────────────────

def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


async def _fetch_route(
    origin: tuple[float, float],
    destination: tuple[float, float],
) -> tuple[float, float]:
    """
    One lookup against the routing service.

    Returns:
        (distance_km, duration_min)

    Raises:
        RoutingUnavailable on any transport error, non-2xx status or
        malformed body
    """
    if not settings.ROUTING_URL:
        raise RoutingUnavailable("routing service not configured")

    try:
        http = await _get_http()
        resp = await http.get(
            f"{settings.ROUTING_URL.rstrip('/')}/route",
            params={
                "from": f"{origin[0]},{origin[1]}",
                "to": f"{destination[0]},{destination[1]}",
            },
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise RoutingUnavailable(f"routing request failed: {e}") from e

    if not resp.is_success:
        raise RoutingUnavailable(f"routing service returned HTTP {resp.status_code}")

    try:
        data = resp.json()
        distance_m = data["distanceMeters"]
        duration_s = data["durationSeconds"]
    except (ValueError, KeyError, TypeError) as e:
        raise RoutingUnavailable("malformed routing response") from e

    if not (_is_number(distance_m) and _is_number(duration_s)):
        raise RoutingUnavailable("malformed routing response")

    return distance_m / 1000.0, duration_s / 60.0


# ── Route cache ────────────────────────────────────────────

def _cache_key(origin: tuple[float, float], destination: tuple[float, float]) -> str:
    return f"route:{_latlng_hash(*origin)}:{_latlng_hash(*destination)}"


async def _cache_get(key: str) -> tuple[float, float] | None:
    try:
        r = await _get_redis()
        if r is None:
            return None
        cached = await r.hgetall(key)
    except (RedisError, OSError, ValueError) as e:
        logger.warning("Route cache read failed: %s", e)
        return None

    if cached and "distance_km" in cached:
        try:
            return float(cached["distance_km"]), float(cached["duration_min"])
        except (KeyError, ValueError):
            return None
    return None


async def _cache_set(key: str, distance_km: float, duration_min: float) -> None:
    try:
        r = await _get_redis()
        if r is None:
            return
        await r.hset(key, mapping={
            "distance_km": str(distance_km),
            "duration_min": str(duration_min),
        })
        await r.expire(key, settings.ROUTE_CACHE_TTL)
    except (RedisError, OSError, ValueError) as e:
        logger.warning("Route cache write failed: %s", e)


# ── Resolver ───────────────────────────────────────────────

async def resolve_distance(
    origin: tuple[float, float],
    destination: Address,
    zone: Zone | None = None,
) -> DistanceEstimate:
    """
    Resolve the distance from `origin` (store lat/lng) to `destination`.

    Never raises: every failure degrades to the next tier.
    """
    if not destination.has_coordinates:
        zone = zone or classify_zone(destination.locality)
        return DistanceEstimate(
            distance_km=zone_flat_distance(zone),
            eta_minutes=None,
            accurate=False,
            source="zone_estimate",
        )

    dest = (destination.lat, destination.lng)
    cache_key = _cache_key(origin, dest)

    cached = await _cache_get(cache_key)
    if cached is not None:
        return DistanceEstimate(
            distance_km=cached[0], eta_minutes=cached[1], accurate=True, source="cache",
        )

    try:
        distance_km, duration_min = await _fetch_route(origin, dest)
    except RoutingUnavailable as e:
        logger.warning(
            "Routing unavailable for %s,%s → %s,%s (%s); using haversine",
            origin[0], origin[1], dest[0], dest[1], e,
        )
        return DistanceEstimate(
            distance_km=road_distance_estimate(origin[0], origin[1], dest[0], dest[1]),
            eta_minutes=None,
            accurate=False,
            source="haversine",
        )

    await _cache_set(cache_key, distance_km, duration_min)
    return DistanceEstimate(
        distance_km=distance_km, eta_minutes=duration_min, accurate=True, source="routing",
    )
