# Pure geo helpers: distance, privacy masking, midpoint, formatting

import math
from typing import Optional
from urllib.parse import urlencode

from meetsession.schemas.session import Coordinate

EARTH_RADIUS_KM = 6371.0
# Safe-meet masking granularity: 2 decimal places is roughly 1.1 km
MASK_DECIMAL_PLACES = 2

MAPS_SEARCH_URL = "https://www.google.com/maps/search/"


def haversine_distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in km between two coordinates."""
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    # abs(): swapping a and b gives bit-identical results
    dphi = math.radians(abs(b.latitude - a.latitude))
    dlam = math.radians(abs(b.longitude - a.longitude))
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def mask_coordinate(c: Coordinate) -> Coordinate:
    """
    Round both axes to MASK_DECIMAL_PLACES so the exact position is not revealed.
    Rounding an already-rounded coordinate returns it unchanged.
    """
    return Coordinate(
        latitude=round(c.latitude, MASK_DECIMAL_PLACES),
        longitude=round(c.longitude, MASK_DECIMAL_PLACES),
    )


def compute_midpoint(a: Coordinate, b: Coordinate, mask_a: bool = False) -> Coordinate:
    """
    Arithmetic mean of the two coordinates per axis (planar, no geodesic correction).
    `a` is masked first when mask_a is set.
    """
    if mask_a:
        a = mask_coordinate(a)
    return Coordinate(
        latitude=(a.latitude + b.latitude) / 2,
        longitude=(a.longitude + b.longitude) / 2,
    )


def is_valid_coordinate(c: Coordinate) -> bool:
    lat, lng = c.latitude, c.longitude
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def format_coordinate(c: Coordinate, precision: int = 4) -> str:
    return f"{c.latitude:.{precision}f}, {c.longitude:.{precision}f}"


def maps_search_url(c: Coordinate, place_id: Optional[str] = None) -> str:
    """Google Maps search link for a coordinate, pinned to a place when its id is known."""
    params = {"api": "1", "query": f"{c.latitude},{c.longitude}"}
    if place_id:
        params["query_place_id"] = place_id
    return f"{MAPS_SEARCH_URL}?{urlencode(params, safe=',')}"
