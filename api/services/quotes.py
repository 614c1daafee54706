"""
Quote Aggregator: every delivery option for one address, plus free pickup.

Distance is resolved once and the zone classified once; each vehicle
profile is then priced against the same inputs. The result is sorted by
(total fare, estimated minutes, vehicle declaration order), so the output
never depends on evaluation order.
"""

from dataclasses import dataclass

from services.fares import VEHICLE_PROFILES, calculate_fare, estimate_minutes
from services.maps import Address, haversine_distance, resolve_distance
from services.zones import ZONES, classify_zone

STORE_PICKUP = "store_pickup"


@dataclass(frozen=True)
class StoreLocation:
    id: int
    name: str
    lat: float
    lng: float
    city: str
    address: str
    operating_hours: str
    zone_key: str

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.lat, self.lng)


STORE_LOCATIONS: tuple[StoreLocation, ...] = (
    StoreLocation(
        id=1,
        name="Fragranza Dasmariñas",
        lat=14.3269,
        lng=120.9365,
        city="Dasmariñas, Cavite",
        address="Blk 16 Lot1-A Brgy San Dionisio, Dasmariñas, Cavite",
        operating_hours="9:00 AM - 8:00 PM",
        zone_key="cavite",
    ),
)

DEFAULT_STORE = STORE_LOCATIONS[0]


@dataclass(frozen=True)
class DeliveryQuote:
    vehicle_type: str
    vehicle_label: str
    description: str
    distance_km: float
    base_fare: int
    distance_charge: int
    zone_multiplier: float
    zone_key: str
    zone_name: str
    total_fare: int
    estimated_minutes: int
    is_pickup: bool
    store: StoreLocation


@dataclass(frozen=True)
class DeliveryOptions:
    quotes: list[DeliveryQuote]
    recommended: DeliveryQuote
    pickup_option: DeliveryQuote
    distance_accurate: bool
    distance_source: str

    def find(self, vehicle_type: str) -> DeliveryQuote | None:
        if vehicle_type == STORE_PICKUP:
            return self.pickup_option
        return next((q for q in self.quotes if q.vehicle_type == vehicle_type), None)


def find_nearest_store(lat: float, lng: float) -> tuple[StoreLocation, float]:
    """Closest configured store and its straight-line distance in km."""
    nearest = min(
        STORE_LOCATIONS,
        key=lambda s: haversine_distance(lat, lng, s.lat, s.lng),
    )
    return nearest, haversine_distance(lat, lng, nearest.lat, nearest.lng)


def build_pickup_option(store: StoreLocation = DEFAULT_STORE) -> DeliveryQuote:
    """Free in-store pickup; available for every address."""
    zone = ZONES[store.zone_key]
    return DeliveryQuote(
        vehicle_type=STORE_PICKUP,
        vehicle_label="Store Pickup",
        description=f"Pick up at {store.name} - FREE",
        distance_km=0.0,
        base_fare=0,
        distance_charge=0,
        zone_multiplier=1.0,
        zone_key=zone.key,
        zone_name=store.city,
        total_fare=0,
        estimated_minutes=0,
        is_pickup=True,
        store=store,
    )


async def get_quotes(address: Address, store: StoreLocation | None = None) -> DeliveryOptions:
    """
    Price every vehicle profile for `address` from `store`, or from the
    nearest store when the address carries coordinates.

    Never raises; distance degrades silently (see services.maps) and the
    pickup option is always present.
    """
    if store is None:
        store = (
            find_nearest_store(address.lat, address.lng)[0]
            if address.has_coordinates else DEFAULT_STORE
        )

    zone = classify_zone(address.locality)
    distance = await resolve_distance(store.coordinates, address, zone=zone)

    ranked = []
    for order_idx, vehicle in enumerate(VEHICLE_PROFILES.values()):
        fare = calculate_fare(distance.distance_km, vehicle, zone.multiplier)
        quote = DeliveryQuote(
            vehicle_type=vehicle.key,
            vehicle_label=vehicle.label,
            description=vehicle.description,
            distance_km=round(distance.distance_km, 1),
            base_fare=fare.base_fare,
            distance_charge=fare.distance_charge,
            zone_multiplier=zone.multiplier,
            zone_key=zone.key,
            zone_name=zone.display_name,
            total_fare=fare.total,
            estimated_minutes=estimate_minutes(
                distance.distance_km, vehicle, routed_minutes=distance.eta_minutes,
            ),
            is_pickup=False,
            store=store,
        )
        ranked.append(((quote.total_fare, quote.estimated_minutes, order_idx), quote))

    ranked.sort(key=lambda pair: pair[0])
    quotes = [quote for _, quote in ranked]

    return DeliveryOptions(
        quotes=quotes,
        recommended=quotes[0],
        pickup_option=build_pickup_option(store),
        distance_accurate=distance.accurate,
        distance_source=distance.source,
    )


async def get_shipping_cost(address: Address) -> dict:
    """Cheapest delivery fare with a display time window, for checkout summaries."""
    options = await get_quotes(address)
    cheapest = options.recommended
    return {
        "cost": cheapest.total_fare,
        "vehicle_type": cheapest.vehicle_type,
        "estimated_time": f"{cheapest.estimated_minutes}-{cheapest.estimated_minutes + 30} mins",
    }
