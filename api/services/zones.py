"""
Zone Classifier: maps a free-text province/city to a pricing zone.

Rules are evaluated top-down, first match wins. Zones nearer the store
(Dasmariñas, Cavite) come first so overlapping keywords resolve to the
closer zone. Anything unmatched falls into the provincial catch-all,
which carries the highest multiplier.
"""

from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class Zone:
    key: str
    display_name: str
    multiplier: float


# ── Zone table ─────────────────────────────────────────────

ZONES = MappingProxyType({
    "cavite": Zone("cavite", "Cavite", 1.0),
    "laguna": Zone("laguna", "Laguna", 1.1),
    "metro_manila": Zone("metro_manila", "Metro Manila", 1.2),
    "rizal": Zone("rizal", "Rizal", 1.3),
    "bulacan": Zone("bulacan", "Bulacan", 1.4),
    "batangas": Zone("batangas", "Batangas", 1.3),
    "provincial": Zone("provincial", "Provincial", 1.8),
})

FALLBACK_ZONE = ZONES["provincial"]

# (keywords, zone key), in priority order
ZONE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        (
            "cavite", "dasmariñas", "dasmarinas", "imus", "bacoor",
            "general trias", "kawit", "rosario", "noveleta",
        ),
        "cavite",
    ),
    (
        ("laguna", "biñan", "binan", "santa rosa", "calamba", "san pedro"),
        "laguna",
    ),
    (
        (
            "metro manila", "ncr", "manila", "quezon", "makati", "pasig",
            "taguig", "mandaluyong", "pasay", "parañaque", "paranaque",
            "muntinlupa", "las piñas", "las pinas", "marikina", "caloocan",
            "malabon", "navotas", "valenzuela", "pateros", "san juan",
        ),
        "metro_manila",
    ),
    (("rizal",), "rizal"),
    (("bulacan",), "bulacan"),
    (("batangas",), "batangas"),
)


def classify_zone(province_or_city: str | None) -> Zone:
    """Return the first zone whose keywords occur in the text, else provincial."""
    text = (province_or_city or "").strip().lower()
    if not text:
        return FALLBACK_ZONE

    for keywords, zone_key in ZONE_RULES:
        if any(keyword in text for keyword in keywords):
            return ZONES[zone_key]

    return FALLBACK_ZONE
