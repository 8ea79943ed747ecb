import math
from dataclasses import dataclass
from typing import Optional, Sequence

# Degrees, measured as a straight line in lat/long space (not geodesic); roughly 100 km near the equator
NEAREST_PLACE_THRESHOLD = 1.0
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ReferencePlace:
    latitude: float
    longitude: float
    city: str
    region: str
    country: str = "Tanzania"

    def distance_to(self, latitude: float, longitude: float) -> float:
        return math.hypot(latitude - self.latitude, longitude - self.longitude)


@dataclass(frozen=True)
class ResolvedPlace:
    city: str
    region: str
    country: str
    distance: Optional[float] = None


TANZANIA_PLACES = (
    ReferencePlace(-6.7924, 39.2083, "Dar es Salaam", "Dar es Salaam"),
    ReferencePlace(-3.3869, 36.6830, "Arusha", "Arusha"),
    ReferencePlace(-8.7832, 34.5085, "Mbeya", "Mbeya"),
    ReferencePlace(-5.0893, 39.2658, "Tanga", "Tanga"),
    ReferencePlace(-4.0435, 39.6682, "Malindi", "Kilifi"),
    ReferencePlace(-6.1659, 35.7497, "Dodoma", "Dodoma"),
)


def nearest_place(
    latitude: float,
    longitude: float,
    places: Sequence[ReferencePlace] = TANZANIA_PLACES,
    threshold: float = NEAREST_PLACE_THRESHOLD,
    default_country: str = "Tanzania",
) -> ResolvedPlace:
    """
    Resolve city/region from the closest reference place.

    The closest place wins only when it lies strictly within `threshold`
    degrees; otherwise city and region are "Unknown".
    """
    best = None
    best_distance = math.inf
    for place in places:
        distance = place.distance_to(latitude, longitude)
        if distance < best_distance:
            best, best_distance = place, distance

    if best is None or best_distance >= threshold:
        return ResolvedPlace(UNKNOWN, UNKNOWN, default_country)
    return ResolvedPlace(best.city, best.region, best.country, best_distance)
