"""Tests for the distance resolver (routing service and Redis mocked)."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import httpx
import pytest
from unittest.mock import AsyncMock, patch
from redis.exceptions import RedisError

from services import maps
from services.maps import (
    Address, DistanceEstimate, RoutingUnavailable, ROAD_CURVATURE_FACTOR,
    haversine_distance, resolve_distance,
)

STORE = (14.3269, 120.9365)
MAKATI = Address("Ayala Ave", "Makati", "Metro Manila", "1226", lat=14.5547, lng=121.0244)
NO_COORDS_BULACAN = Address("Purok 3", "Malolos", "Bulacan", "3000")


def _routing_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_haversine_one_degree_longitude_at_equator():
    assert haversine_distance(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.195, rel=1e-4)


def test_haversine_same_point():
    assert haversine_distance(*STORE, *STORE) == 0.0


@pytest.mark.asyncio
async def test_no_coordinates_uses_zone_estimate_without_network():
    with patch("services.maps._fetch_route", new=AsyncMock()) as fetch:
        result = await resolve_distance(STORE, NO_COORDS_BULACAN)
    fetch.assert_not_called()
    assert result == DistanceEstimate(55.0, None, False, "zone_estimate")


@pytest.mark.asyncio
async def test_unmatched_locality_uses_provincial_estimate():
    result = await resolve_distance(STORE, Address("", "Davao City", "Davao del Sur"))
    assert result.distance_km == 60.0
    assert result.accurate is False


@pytest.mark.asyncio
async def test_routing_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"distanceMeters": 31500, "durationSeconds": 3300})

    with patch.object(maps.settings, "ROUTING_URL", "http://routing.test"), \
            patch("services.maps._get_http", new=AsyncMock(return_value=_routing_client(handler))):
        result = await resolve_distance(STORE, MAKATI)

    assert seen["path"] == "/route"
    assert seen["params"] == {"from": "14.3269,120.9365", "to": "14.5547,121.0244"}
    assert result.distance_km == pytest.approx(31.5)
    assert result.eta_minutes == pytest.approx(55.0)
    assert result.accurate is True
    assert result.source == "routing"


@pytest.mark.parametrize("response", [
    httpx.Response(503, json={"error": "overloaded"}),
    httpx.Response(200, json={"distance": 1000}),
    httpx.Response(200, text="<html>not json</html>"),
    httpx.Response(200, json={"distanceMeters": "far", "durationSeconds": 10}),
    httpx.Response(200, json={"distanceMeters": -5, "durationSeconds": 10}),
    httpx.Response(200, json=[1, 2, 3]),
])
@pytest.mark.asyncio
async def test_bad_routing_response_falls_back_to_haversine(response):
    with patch.object(maps.settings, "ROUTING_URL", "http://routing.test"), \
            patch("services.maps._get_http", new=AsyncMock(return_value=_routing_client(lambda r: response))):
        result = await resolve_distance(STORE, MAKATI)

    expected = haversine_distance(*STORE, MAKATI.lat, MAKATI.lng) * ROAD_CURVATURE_FACTOR
    assert result.distance_km == pytest.approx(expected)
    assert result.accurate is False
    assert result.source == "haversine"
    assert result.eta_minutes is None


@pytest.mark.asyncio
async def test_routing_timeout_falls_back_to_haversine():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with patch.object(maps.settings, "ROUTING_URL", "http://routing.test"), \
            patch("services.maps._get_http", new=AsyncMock(return_value=_routing_client(handler))):
        result = await resolve_distance(STORE, MAKATI)

    assert result.source == "haversine"


@pytest.mark.asyncio
async def test_routing_not_configured_is_unavailable():
    with patch.object(maps.settings, "ROUTING_URL", None):
        with pytest.raises(RoutingUnavailable):
            await maps._fetch_route(STORE, (MAKATI.lat, MAKATI.lng))


@pytest.mark.asyncio
async def test_haversine_fallback_is_deterministic():
    first = await resolve_distance(STORE, MAKATI)
    second = await resolve_distance(STORE, MAKATI)
    assert first == second
    assert first.source == "haversine"


@pytest.mark.asyncio
async def test_cached_route_skips_routing_call():
    redis = AsyncMock()
    redis.hgetall.return_value = {"distance_km": "30.2", "duration_min": "48.5"}

    with patch("services.maps._get_redis", new=AsyncMock(return_value=redis)), \
            patch("services.maps._fetch_route", new=AsyncMock()) as fetch:
        result = await resolve_distance(STORE, MAKATI)

    fetch.assert_not_called()
    assert result == DistanceEstimate(30.2, 48.5, True, "cache")


@pytest.mark.asyncio
async def test_routed_result_is_cached():
    redis = AsyncMock()
    redis.hgetall.return_value = {}

    with patch("services.maps._get_redis", new=AsyncMock(return_value=redis)), \
            patch("services.maps._fetch_route", new=AsyncMock(return_value=(12.0, 20.0))):
        result = await resolve_distance(STORE, MAKATI)

    assert result.source == "routing"
    redis.hset.assert_called_once()
    redis.expire.assert_called_once()


@pytest.mark.asyncio
async def test_redis_failure_does_not_break_resolution():
    redis = AsyncMock()
    redis.hgetall.side_effect = RedisError("connection refused")
    redis.hset.side_effect = RedisError("connection refused")

    with patch("services.maps._get_redis", new=AsyncMock(return_value=redis)), \
            patch("services.maps._fetch_route", new=AsyncMock(return_value=(12.0, 20.0))):
        result = await resolve_distance(STORE, MAKATI)

    assert result.distance_km == 12.0
    assert result.accurate is True


@pytest.mark.asyncio
async def test_malformed_redis_url_does_not_break_resolution():
    with patch.object(maps.settings, "REDIS_URL", "localhost:6379"):
        result = await resolve_distance(STORE, MAKATI)

    assert result.source == "haversine"
    assert maps._redis is None
