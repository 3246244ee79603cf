import asyncio

import httpx
import pytest

from meetsession.integrations.google_places import GEOCODE_PATH, NEARBY_SEARCH_PATH, GooglePlacesProvider
from meetsession.integrations.places_provider import (
    AccessDenied,
    ConfigurationError,
    InvalidRequest,
    TransientError,
    category_to_query_params,
    rank_places,
)
from meetsession.schemas.session import Coordinate
from tests.mocks.mock_place_provider import make_place

CENTER = Coordinate(latitude=37.7749, longitude=-122.4194)

OK_PAYLOAD = {
    "status": "OK",
    "results": [
        {
            "place_id": "p1",
            "name": "Ferry Building Coffee",
            "vicinity": "1 Ferry Building",
            "rating": 4.2,
            "geometry": {"location": {"lat": 37.7955, "lng": -122.3937}},
        },
        {
            "place_id": "p2",
            "name": "Mission Roasters",
            "formatted_address": "3101 24th St",
            "rating": 4.6,
            "geometry": {"location": {"lat": 37.7527, "lng": -122.4148}},
        },
        {
            "name": "Unlisted Kiosk",
            "geometry": {"location": {"lat": 37.7760, "lng": -122.4180}},
        },
        {"place_id": "p4", "name": "Nowhere"},
    ],
}


def _provider(handler, api_key="test-key"):
    return GooglePlacesProvider(api_key=api_key, transport=httpx.MockTransport(handler))


def _json_handler(payload, seen=None, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return handler


@pytest.mark.parametrize(
    "category,provider_type,keyword",
    [
        ("police", "police", None),
        ("gas", "gas_station", None),
        ("restaurant", "restaurant", None),
        ("cafe", "cafe", None),
        ("shopping_mall", "shopping_mall", None),
        ("park", "park", None),
        ("rest", None, "rest area"),
        ("public", "point_of_interest", None),
        (" Cafe ", "cafe", None),
        ("coffee", "point_of_interest", None),
        ("", "point_of_interest", None),
    ],
)
def test_category_to_query_params(category, provider_type, keyword):
    query = category_to_query_params(category)
    assert query.provider_type == provider_type
    assert query.provider_keyword == keyword


def test_rank_places_rating_then_distance():
    ranked = rank_places(
        [
            make_place("a", rating=3.0, distance_km=1.0),
            make_place("b", rating=4.5, distance_km=2.0),
            make_place("c", rating=4.5, distance_km=0.5),
        ]
    )
    assert [p.id for p in ranked] == ["c", "b", "a"]


def test_rank_places_keeps_input_order_for_full_ties():
    ranked = rank_places([make_place("x", 4.0, 1.0), make_place("y", 4.0, 1.0)])
    assert [p.id for p in ranked] == ["x", "y"]


def test_search_sends_nearby_query():
    seen = []
    provider = _provider(_json_handler({"status": "ZERO_RESULTS", "results": []}, seen))

    asyncio.run(provider.search(CENTER, "cafe", 5000))

    request = seen[0]
    assert request.url.path == NEARBY_SEARCH_PATH
    assert request.url.params["location"] == "37.7749,-122.4194"
    assert request.url.params["radius"] == "5000"
    assert request.url.params["type"] == "cafe"
    assert request.url.params["key"] == "test-key"
    assert "keyword" not in request.url.params


def test_search_uses_keyword_for_rest_category():
    seen = []
    provider = _provider(_json_handler({"status": "ZERO_RESULTS"}, seen))

    asyncio.run(provider.search(CENTER, "rest", 2000))

    assert seen[0].url.params["keyword"] == "rest area"
    assert "type" not in seen[0].url.params


def test_search_standardizes_and_ranks_results():
    places = asyncio.run(_provider(_json_handler(OK_PAYLOAD)).search(CENTER, "cafe", 5000))

    # the result without geometry is skipped
    assert len(places) == 3
    assert [p.name for p in places] == ["Mission Roasters", "Ferry Building Coffee", "Unlisted Kiosk"]

    top = places[0]
    assert top.id == "p2"
    assert top.provider_place_id == "p2"
    assert top.address == "3101 24th St"
    assert top.distance_km > 0

    assert places[1].address == "1 Ferry Building"

    unlisted = places[2]
    assert unlisted.rating == 0
    assert unlisted.address == ""
    assert unlisted.provider_place_id is None
    assert unlisted.id


def test_synthesized_ids_are_stable_across_searches():
    provider = _provider(_json_handler(OK_PAYLOAD))
    first = asyncio.run(provider.search(CENTER, "cafe", 5000))
    second = asyncio.run(provider.search(CENTER, "cafe", 5000))
    assert [p.id for p in first] == [p.id for p in second]


def test_zero_results_is_empty_list():
    assert asyncio.run(_provider(_json_handler({"status": "ZERO_RESULTS"})).search(CENTER, "park", 5000)) == []


@pytest.mark.parametrize(
    "status,error",
    [
        ("REQUEST_DENIED", AccessDenied),
        ("OVER_QUERY_LIMIT", AccessDenied),
        ("INVALID_REQUEST", InvalidRequest),
        ("UNKNOWN_ERROR", TransientError),
    ],
)
def test_provider_status_maps_to_error(status, error):
    provider = _provider(_json_handler({"status": status, "error_message": "nope"}))
    with pytest.raises(error):
        asyncio.run(provider.search(CENTER, "cafe", 5000))


def test_http_error_status_is_transient():
    provider = _provider(_json_handler({"error": "boom"}, status_code=500))
    with pytest.raises(TransientError):
        asyncio.run(provider.search(CENTER, "cafe", 5000))


def test_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransientError):
        asyncio.run(_provider(handler).search(CENTER, "cafe", 5000))


def test_malformed_body_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>not json</html>")

    with pytest.raises(TransientError):
        asyncio.run(_provider(handler).search(CENTER, "cafe", 5000))


def test_missing_api_key_fails_before_any_request():
    seen = []
    provider = _provider(_json_handler(OK_PAYLOAD, seen), api_key="")
    with pytest.raises(ConfigurationError):
        asyncio.run(provider.search(CENTER, "cafe", 5000))
    assert seen == []


def test_reverse_geocode_returns_first_formatted_address():
    seen = []
    payload = {
        "status": "OK",
        "results": [{"formatted_address": "1 Market St, San Francisco"}, {"formatted_address": "San Francisco"}],
    }
    address = asyncio.run(_provider(_json_handler(payload, seen)).reverse_geocode(CENTER))

    assert address == "1 Market St, San Francisco"
    assert seen[0].url.path == GEOCODE_PATH
    assert seen[0].url.params["latlng"] == "37.7749,-122.4194"
    assert seen[0].url.params["key"] == "test-key"


@pytest.mark.parametrize(
    "payload,status_code",
    [
        ({"status": "ZERO_RESULTS", "results": []}, 200),
        ({"status": "REQUEST_DENIED"}, 200),
        ({"status": "OK", "results": [{"place_id": "x"}]}, 200),
        ({"error": "boom"}, 500),
    ],
)
def test_reverse_geocode_failures_give_no_address(payload, status_code):
    provider = _provider(_json_handler(payload, status_code=status_code))
    assert asyncio.run(provider.reverse_geocode(CENTER)) is None


def test_reverse_geocode_without_api_key_sends_nothing():
    seen = []
    provider = _provider(_json_handler({"status": "OK", "results": []}, seen), api_key="")
    assert asyncio.run(provider.reverse_geocode(CENTER)) is None
    assert seen == []
