"""Tests for the quote aggregator."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest
from types import MappingProxyType
from unittest.mock import AsyncMock, patch

from services.fares import VEHICLE_PROFILES, VehicleProfile
from services import maps
from services.maps import Address, DistanceEstimate, RoutingUnavailable
from services.quotes import (
    DEFAULT_STORE, STORE_PICKUP, find_nearest_store, get_quotes, get_shipping_cost,
)

BULACAN_NO_COORDS = Address("Purok 3", "Malolos", "Bulacan", "3000")
MAKATI = Address("Ayala Ave", "Makati", "Metro Manila", "1226", lat=14.5547, lng=121.0244)


def _fixed_distance(km: float, minutes: float | None = None, source: str = "routing"):
    return AsyncMock(return_value=DistanceEstimate(km, minutes, minutes is not None, source))


@pytest.mark.asyncio
async def test_bulacan_without_coordinates_prices_from_zone_estimate():
    with patch("services.maps._fetch_route", new=AsyncMock()) as fetch:
        options = await get_quotes(BULACAN_NO_COORDS)

    fetch.assert_not_called()
    assert options.distance_source == "zone_estimate"
    assert options.distance_accurate is False

    by_type = {q.vehicle_type: q for q in options.quotes}
    assert by_type["motorcycle"].distance_km == 55.0
    assert by_type["motorcycle"].zone_key == "bulacan"
    assert by_type["motorcycle"].zone_multiplier == 1.4
    assert by_type["motorcycle"].distance_charge == 1000
    assert [(q.vehicle_type, q.total_fare, q.estimated_minutes) for q in options.quotes] == [
        ("motorcycle", 1098, 138),
        ("sedan", 1893, 165),
        ("mpv", 2447, 193),
        ("pickup_truck", 3413, 220),
    ]


@pytest.mark.asyncio
async def test_one_quote_per_vehicle_profile():
    options = await get_quotes(BULACAN_NO_COORDS)
    assert {q.vehicle_type for q in options.quotes} == set(VEHICLE_PROFILES)
    assert not any(q.is_pickup for q in options.quotes)


@pytest.mark.asyncio
async def test_quotes_sorted_and_recommended_is_cheapest():
    with patch("services.quotes.resolve_distance", new=_fixed_distance(10.0, 22.0)):
        options = await get_quotes(MAKATI)

    totals = [q.total_fare for q in options.quotes]
    assert totals == sorted(totals)
    assert options.recommended == options.quotes[0]
    assert options.recommended.total_fare == 185
    assert options.recommended.estimated_minutes == 22


@pytest.mark.asyncio
async def test_pickup_is_free_even_when_routing_fails():
    with patch("services.maps._fetch_route", new=AsyncMock(side_effect=RoutingUnavailable("down"))):
        options = await get_quotes(MAKATI)

    pickup = options.pickup_option
    assert pickup.vehicle_type == STORE_PICKUP
    assert pickup.is_pickup is True
    assert pickup.total_fare == 0
    assert pickup.distance_km == 0.0
    assert pickup.store == DEFAULT_STORE
    assert options.distance_source == "haversine"
    assert len(options.quotes) == len(VEHICLE_PROFILES)


@pytest.mark.asyncio
async def test_distance_rounded_for_display_only():
    with patch("services.quotes.resolve_distance", new=_fixed_distance(4.04)):
        options = await get_quotes(MAKATI)

    motorcycle = options.find("motorcycle")
    assert motorcycle.distance_km == 4.0
    # 4.04 km is still 1 km beyond the base distance
    assert motorcycle.distance_charge == 17


@pytest.mark.asyncio
async def test_ties_broken_by_time_then_declaration_order():
    def profile(key, pace):
        return VehicleProfile(
            key=key, label=key.title(), description="", base_fare=100,
            base_distance_km=4, per_km_rate_beyond_base=10,
            max_weight_kg=50, avg_minutes_per_km=pace,
        )

    profiles = MappingProxyType({
        "slow": profile("slow", 4.0),
        "fast_a": profile("fast_a", 2.0),
        "fast_b": profile("fast_b", 2.0),
    })
    with patch("services.quotes.VEHICLE_PROFILES", profiles), \
            patch("services.quotes.resolve_distance", new=_fixed_distance(10.0, source="haversine")):
        options = await get_quotes(MAKATI)

    assert [q.vehicle_type for q in options.quotes] == ["fast_a", "fast_b", "slow"]
    assert options.recommended.vehicle_type == "fast_a"


@pytest.mark.asyncio
async def test_find_returns_pickup_and_vehicles():
    options = await get_quotes(BULACAN_NO_COORDS)
    assert options.find(STORE_PICKUP) is options.pickup_option
    assert options.find("sedan").vehicle_type == "sedan"
    assert options.find("hovercraft") is None


@pytest.mark.asyncio
async def test_shipping_cost_summary():
    result = await get_shipping_cost(BULACAN_NO_COORDS)
    assert result == {
        "cost": 1098,
        "vehicle_type": "motorcycle",
        "estimated_time": "138-168 mins",
    }


def test_nearest_store():
    store, distance = find_nearest_store(14.33, 120.94)
    assert store == DEFAULT_STORE
    assert distance < 1.0


@pytest.mark.asyncio
async def test_quotes_survive_malformed_redis_url():
    with patch.object(maps.settings, "REDIS_URL", "localhost:6379"):
        options = await get_quotes(MAKATI)

    assert options.pickup_option.total_fare == 0
    assert len(options.quotes) == len(VEHICLE_PROFILES)
