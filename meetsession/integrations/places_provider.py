"""Places provider contract: category mapping, typed failures, ranking."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from meetsession.schemas.session import Coordinate, Place
from meetsession.services.session_errors import MeetSessionError


class ProviderError(MeetSessionError):
    """Place search failed. Subclasses say why, so callers can tell users something useful."""

    code = "provider_error"
    status_code = 502


class ConfigurationError(ProviderError):
    code = "provider_not_configured"
    status_code = 503


class AccessDenied(ProviderError):
    code = "provider_access_denied"
    status_code = 502


class InvalidRequest(ProviderError):
    code = "provider_invalid_request"
    status_code = 502


class TransientError(ProviderError):
    """Network failure, timeout or an unexpected provider status. Worth retrying."""

    code = "provider_unavailable"
    status_code = 504


@dataclass(frozen=True)
class QueryParams:
    provider_type: Optional[str] = None
    provider_keyword: Optional[str] = None


DEFAULT_QUERY = QueryParams(provider_type="point_of_interest")

CATEGORY_QUERY_PARAMS: Dict[str, QueryParams] = {
    "police": QueryParams(provider_type="police"),
    "gas": QueryParams(provider_type="gas_station"),
    "restaurant": QueryParams(provider_type="restaurant"),
    "cafe": QueryParams(provider_type="cafe"),
    "shopping_mall": QueryParams(provider_type="shopping_mall"),
    "park": QueryParams(provider_type="park"),
    "rest": QueryParams(provider_keyword="rest area"),
    "public": DEFAULT_QUERY,
    "point_of_interest": DEFAULT_QUERY,
}


def category_to_query_params(category: str) -> QueryParams:
    """Unknown categories fall back to the point_of_interest query, never an error."""
    key = (category or "").strip().lower()
    return CATEGORY_QUERY_PARAMS.get(key, DEFAULT_QUERY)


def rank_places(places: Iterable[Place]) -> List[Place]:
    """Rating descending, then distance ascending. Stable for full ties."""
    return sorted(places, key=lambda p: (-p.rating, p.distance_km))


class PlaceProvider(ABC):
    """Search for candidate venues around a point."""

    @abstractmethod
    async def search(self, center: Coordinate, category: str, radius_m: int) -> List[Place]:
        """
        Return every matching venue ranked by rank_places, each annotated with its
        distance from `center`. Truncation is the caller's job.

        Raises:
            ProviderError subclass on failure. Zero results is an empty list, not an error.
        """
        raise NotImplementedError

    async def reverse_geocode(self, center: Coordinate) -> Optional[str]:
        """Readable address for a point, if the provider offers one. Never raises."""
        return None
