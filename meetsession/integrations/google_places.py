# Google Places Nearby Search integration (places around the session midpoint)

import uuid
from typing import Any, Dict, List, Optional

import httpx

from meetsession.core.logger import get_logger
from meetsession.integrations.places_provider import (
    AccessDenied,
    ConfigurationError,
    InvalidRequest,
    PlaceProvider,
    TransientError,
    category_to_query_params,
    rank_places,
)
from meetsession.schemas.session import Coordinate, Place
from meetsession.services.geo_math import format_coordinate, haversine_distance_km

logger = get_logger(__name__)

NEARBY_SEARCH_PATH = "/maps/api/place/nearbysearch/json"
GEOCODE_PATH = "/maps/api/geocode/json"
DEFAULT_BASE_URL = "https://maps.googleapis.com"

# Namespace for ids of results the provider returned without a place_id
_SYNTHETIC_ID_NAMESPACE = uuid.UUID("6f1c2b9e-3d4a-4e0b-9a57-2f8c1d7e5b10")

_DENIED_STATUSES = {"REQUEST_DENIED", "OVER_QUERY_LIMIT"}


def _synthesize_id(name: str, lat: float, lng: float, index: int) -> str:
    """Same inputs give the same id, so a repeated search yields an identical batch."""
    return str(uuid.uuid5(_SYNTHETIC_ID_NAMESPACE, f"{name}|{lat}|{lng}|{index}"))


def _standardize(result: Dict[str, Any], center: Coordinate, index: int) -> Optional[Place]:
    """Map one provider result to a Place. Results without a position are skipped."""
    loc = (result.get("geometry") or {}).get("location") or {}
    lat, lng = loc.get("lat"), loc.get("lng")
    if lat is None or lng is None:
        return None
    location = Coordinate(latitude=float(lat), longitude=float(lng))
    name = result.get("name") or ""
    provider_place_id = result.get("place_id") or None
    return Place(
        id=provider_place_id or _synthesize_id(name, location.latitude, location.longitude, index),
        name=name,
        address=result.get("vicinity") or result.get("formatted_address") or "",
        location=location,
        rating=float(result.get("rating") or 0),
        distance_km=haversine_distance_km(center, location),
        provider_place_id=provider_place_id,
    )


class GooglePlacesProvider(PlaceProvider):
    """Nearby Search client. One GET per search, bounded by `timeout_sec`."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_sec: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_sec = timeout_sec
        self._transport = transport

    async def search(self, center: Coordinate, category: str, radius_m: int) -> List[Place]:
        if not self._api_key:
            raise ConfigurationError("GOOGLE_PLACES_API_KEY is not configured.")

        query = category_to_query_params(category)
        params: Dict[str, Any] = {
            "location": f"{center.latitude},{center.longitude}",
            "radius": radius_m,
            "key": self._api_key,
        }
        if query.provider_type:
            params["type"] = query.provider_type
        if query.provider_keyword:
            params["keyword"] = query.provider_keyword

        data = await self._get(NEARBY_SEARCH_PATH, params)
        status = data.get("status")

        if status == "ZERO_RESULTS":
            logger.info("Places search: category=%s radius=%d results=0", category, radius_m)
            return []
        if status in _DENIED_STATUSES:
            logger.warning("Places API denied request: status=%s message=%s", status, data.get("error_message"))
            raise AccessDenied(f"Places API request denied ({status}).")
        if status == "INVALID_REQUEST":
            logger.warning("Places API rejected parameters: %s", data.get("error_message"))
            raise InvalidRequest("Places API reported an invalid request.")
        if status != "OK":
            logger.warning("Places API unexpected status: %s", status)
            raise TransientError(f"Places API returned status {status!r}.")

        places = [
            place
            for place in (_standardize(r, center, i) for i, r in enumerate(data.get("results") or []))
            if place is not None
        ]
        logger.info("Places search: category=%s radius=%d results=%d", category, radius_m, len(places))
        return rank_places(places)

    async def reverse_geocode(self, center: Coordinate) -> Optional[str]:
        """Formatted address of `center` from the Geocoding API. Best effort: None on any failure."""
        if not self._api_key:
            return None
        params = {"latlng": f"{center.latitude},{center.longitude}", "key": self._api_key}
        try:
            data = await self._get(GEOCODE_PATH, params)
        except TransientError:
            logger.warning("Reverse geocoding unavailable for %s", format_coordinate(center))
            return None
        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.info("Reverse geocoding found no address: status=%s", data.get("status"))
            return None
        return results[0].get("formatted_address") or None

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout_sec, transport=self._transport) as client:
                resp = await client.get(url, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("Places API timed out after %.1fs", self._timeout_sec)
            raise TransientError("Places API request timed out.") from exc
        except httpx.HTTPError as exc:
            logger.warning("Places API network error: %s", exc)
            raise TransientError("Network error while contacting Places API.") from exc

        if resp.status_code != 200:
            logger.warning("Places API HTTP error: status=%d", resp.status_code)
            raise TransientError(f"Places API HTTP {resp.status_code}.")
        try:
            return resp.json()
        except ValueError as exc:
            raise TransientError("Places API returned a malformed response.") from exc
