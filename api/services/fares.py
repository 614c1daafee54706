"""
Fare Calculator: per-vehicle delivery fares (PHP).

Rates follow the courier's published Philippine table:
  base fare covers the first `base_distance_km`, every started km beyond
  that is charged at `per_km_rate_beyond_base`, and the whole subtotal is
  scaled by the destination zone multiplier.

Rounding rule (applied everywhere):
  the zone multiplier is applied to the unrounded ceil-km charge, and the
  result is rounded half-up to a whole peso exactly once.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType


@dataclass(frozen=True)
class VehicleProfile:
    key: str
    label: str
    description: str
    base_fare: int
    base_distance_km: float
    per_km_rate_beyond_base: int
    max_weight_kg: int
    avg_minutes_per_km: float

    def __post_init__(self):
        if self.base_distance_km < 0:
            raise ValueError(f"{self.key}: base_distance_km must be >= 0")
        if self.per_km_rate_beyond_base < 0:
            raise ValueError(f"{self.key}: per_km_rate_beyond_base must be >= 0")


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: int
    distance_charge: int
    total: int


# ── Rate table (declaration order breaks price ties) ───────

VEHICLE_PROFILES = MappingProxyType({
    "motorcycle": VehicleProfile(
        key="motorcycle",
        label="Motorcycle",
        description="Small packages up to 20kg",
        base_fare=70,
        base_distance_km=4,
        per_km_rate_beyond_base=14,
        max_weight_kg=20,
        avg_minutes_per_km=2.5,
    ),
    "sedan": VehicleProfile(
        key="sedan",
        label="Sedan",
        description="Medium packages up to 100kg",
        base_fare=230,
        base_distance_km=4,
        per_km_rate_beyond_base=22,
        max_weight_kg=100,
        avg_minutes_per_km=3.0,
    ),
    "mpv": VehicleProfile(
        key="mpv",
        label="MPV/SUV",
        description="Large packages up to 200kg",
        base_fare=320,
        base_distance_km=4,
        per_km_rate_beyond_base=28,
        max_weight_kg=200,
        avg_minutes_per_km=3.5,
    ),
    "pickup_truck": VehicleProfile(
        key="pickup_truck",
        label="Pickup Truck",
        description="Extra large/bulk orders",
        base_fare=500,
        base_distance_km=4,
        per_km_rate_beyond_base=38,
        max_weight_kg=500,
        avg_minutes_per_km=4.0,
    ),
})


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 away from zero (not banker's rounding)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_fare(
    distance_km: float,
    vehicle: VehicleProfile,
    zone_multiplier: float,
) -> FareBreakdown:
    """
    Calculate the fare for one vehicle over a distance.

    Args:
        distance_km: Road (or estimated) distance from the store
        vehicle: Rate profile to apply
        zone_multiplier: Destination zone multiplier (>= 1.0)

    Returns:
        FareBreakdown with the unscaled base fare, the zone-scaled distance
        charge and the zone-scaled total
    """
    extra_km = max(0.0, distance_km - vehicle.base_distance_km)
    raw_distance_charge = math.ceil(extra_km) * vehicle.per_km_rate_beyond_base

    return FareBreakdown(
        base_fare=vehicle.base_fare,
        distance_charge=round_half_up(raw_distance_charge * zone_multiplier),
        total=round_half_up((vehicle.base_fare + raw_distance_charge) * zone_multiplier),
    )


def estimate_minutes(
    distance_km: float,
    vehicle: VehicleProfile,
    routed_minutes: float | None = None,
) -> int:
    """Routed duration when known, otherwise the vehicle's average pace."""
    if routed_minutes is not None:
        return round_half_up(routed_minutes)
    return round_half_up(distance_km * vehicle.avg_minutes_per_km)
