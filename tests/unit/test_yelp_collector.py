"""Unit tests for the Yelp search collector."""

import httpx
import pytest

from hexsweep.collectors.registry import CollectorType, get_collector
from hexsweep.collectors.yelp import YelpSearchCollector
from hexsweep.core.exceptions import (
    CollectorAuthError,
    CollectorNetworkError,
    CollectorRateLimitError,
    CollectorRequestError,
    CollectorTimeoutError,
    CollectorUnavailableError,
    PermanentError,
    RetryableError,
)

SEARCH_PAYLOAD = {
    "total": 2,
    "businesses": [
        {
            "id": "abc123",
            "name": "Joe's Pizza",
            "rating": 4.5,
            "review_count": 1200,
            "price": "$",
            "categories": [{"alias": "pizza", "title": "Pizza"}],
            "coordinates": {"latitude": 40.7306, "longitude": -74.0022},
            "location": {
                "address1": "7 Carmine St",
                "city": "New York",
                "state": "NY",
                "zip_code": "10014",
            },
            "phone": "+12123661182",
            "url": "https://www.yelp.com/biz/joes-pizza-new-york",
            "distance": 312.4,
        },
        {"id": "def456", "name": "No Location"},
    ],
}


def _collector(handler, **config):
    return YelpSearchCollector(
        {"api_key": "test-key", "transport": httpx.MockTransport(handler), **config}
    )


class TestYelpSearch:
    """Test request building and response parsing."""

    @pytest.mark.asyncio
    async def test_parses_search_page(self):
        collector = _collector(lambda request: httpx.Response(200, json=SEARCH_PAYLOAD))

        async with collector:
            page = await collector.search(40.73, -74.0, radius_meters=800)

        assert page.total == 2
        first = page.businesses[0]
        assert first.id == "abc123"
        assert first.latitude == 40.7306
        assert first.address.line1 == "7 Carmine St"
        assert first.address.city == "New York"
        assert first.categories[0].alias == "pizza"
        assert page.businesses[1].latitude is None

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        """Radius and page size are clamped to the API maximums."""
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"total": 0, "businesses": []})

        collector = _collector(handler, categories="restaurants,bars")

        async with collector:
            await collector.search(40.73, -74.0, radius_meters=55_000, offset=100, limit=80)

        params = seen["url"].params
        assert seen["url"].path == "/v3/businesses/search"
        assert seen["auth"] == "Bearer test-key"
        assert params["radius"] == "40000"
        assert params["limit"] == "50"
        assert params["offset"] == "100"
        assert params["categories"] == "restaurants,bars"

    @pytest.mark.asyncio
    async def test_missing_businesses_key(self):
        collector = _collector(lambda request: httpx.Response(200, json={}))

        async with collector:
            page = await collector.search(40.73, -74.0, radius_meters=500)

        assert page.total == 0
        assert page.businesses == []


class TestYelpErrors:
    """Test mapping of failures onto the retry hierarchy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,error_type,retryable",
        [
            (429, CollectorRateLimitError, True),
            (503, CollectorUnavailableError, True),
            (500, CollectorUnavailableError, True),
            (401, CollectorAuthError, False),
            (400, CollectorRequestError, False),
        ],
    )
    async def test_status_codes(self, status_code, error_type, retryable):
        collector = _collector(
            lambda request: httpx.Response(
                status_code,
                json={"error": {"code": "X", "description": "radius too large"}},
            )
        )

        async with collector:
            with pytest.raises(error_type) as exc_info:
                await collector.search(40.73, -74.0, radius_meters=500)

        assert exc_info.value.status_code == status_code
        assert isinstance(exc_info.value, RetryableError) is retryable
        assert isinstance(exc_info.value, PermanentError) is not retryable

    @pytest.mark.asyncio
    async def test_error_description_in_message(self):
        collector = _collector(
            lambda request: httpx.Response(
                400, json={"error": {"code": "VALIDATION_ERROR", "description": "radius too large"}}
            )
        )

        async with collector:
            with pytest.raises(CollectorRequestError, match="radius too large"):
                await collector.search(40.73, -74.0, radius_meters=500)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _collector(handler) as collector:
            with pytest.raises(CollectorTimeoutError):
                await collector.search(40.73, -74.0, radius_meters=500)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _collector(handler) as collector:
            with pytest.raises(CollectorNetworkError):
                await collector.search(40.73, -74.0, radius_meters=500)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        collector = _collector(lambda request: httpx.Response(200, content=b"<html>"))

        async with collector:
            with pytest.raises(CollectorRequestError):
                await collector.search(40.73, -74.0, radius_meters=500)

    def test_missing_api_key(self):
        with pytest.raises(CollectorAuthError):
            YelpSearchCollector({"api_key": None})


class TestRegistry:
    """Test collector registration."""

    @pytest.mark.asyncio
    async def test_get_collector(self):
        collector = get_collector(CollectorType.YELP, {"api_key": "k"})

        assert isinstance(collector, YelpSearchCollector)
        assert await collector.health_check() is True
