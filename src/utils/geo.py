"""
Geopoint helpers.

Geopoints are stored as ``{"latitude": float, "longitude": float}`` maps.
Distances are great circle distances in kilometres.
"""

import math
from typing import Optional, Tuple
from urllib.parse import quote_plus


EARTH_RADIUS_KM = 6371

# Distances below this are treated as no movement
MIN_DISTANCE_KM = 0.5


def coordinates(geopoint) -> Optional[Tuple[float, float]]:
    """Extract (latitude, longitude) from a stored geopoint map."""
    if not isinstance(geopoint, dict):
        return None

    lat = geopoint.get("latitude", geopoint.get("_latitude"))
    lng = geopoint.get("longitude", geopoint.get("_longitude"))
    if lat is None or lng is None:
        return None
    return float(lat), float(lng)


def make_geopoint(latitude: float, longitude: float) -> dict:
    return {"latitude": float(latitude), "longitude": float(longitude)}


def haversine_distance(geopoint_one, geopoint_two) -> float:
    """
    Great circle distance between two geopoints in kilometres.

    Returns 0 for distances under half a kilometre.
    """
    one = coordinates(geopoint_one)
    two = coordinates(geopoint_two)
    if one is None or two is None:
        return 0

    phi1 = math.radians(one[0])
    phi2 = math.radians(two[0])
    delta_phi = math.radians(two[0] - one[0])
    delta_lambda = math.radians(two[1] - one[1])

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    distance = EARTH_RADIUS_KM * c

    if distance < MIN_DISTANCE_KM:
        return 0
    return distance


def adjusted_geopoint(geopoint) -> Optional[dict]:
    """Geopoint rounded to two decimals, used to match nearby venues."""
    point = coordinates(geopoint)
    if point is None:
        return None
    return make_geopoint(round(point[0], 2), round(point[1], 2))


def adjusted_geopoint_key(geopoint) -> Optional[str]:
    """The ``"lat,lng"`` string stored as ``adjustedGeopoints`` on activities."""
    gp = adjusted_geopoint(geopoint)
    if gp is None:
        return None
    return f"{gp['latitude']},{gp['longitude']}"


def adjusted_geopoints_from_venue(venue) -> Optional[str]:
    if not venue or not isinstance(venue, list):
        return None
    first = venue[0]
    if not isinstance(first, dict):
        return None
    return adjusted_geopoint_key(first.get("geopoint"))


def accuracy_tolerance(accuracy) -> float:
    """Radius in km within which a reported location counts as accurate."""
    if accuracy and accuracy < 350:
        return 0.5
    return 1


def is_distance_accurate(location, accuracy, venue_geopoint) -> bool:
    if coordinates(location) is None or coordinates(venue_geopoint) is None:
        return False
    return haversine_distance(location, venue_geopoint) < accuracy_tolerance(accuracy)


def maps_url(geopoint) -> Optional[str]:
    point = coordinates(geopoint)
    if point is None:
        return None
    return f"https://www.google.com/maps/search/?api=1&query={point[0]},{point[1]}"


def place_url(query: str) -> str:
    return f"https://www.google.com/maps/search/?api=1&query={quote_plus(query)}"


def plus_code_url(plus_code: str) -> str:
    return f"https://plus.codes/{plus_code}"
