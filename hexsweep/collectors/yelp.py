"""Yelp Fusion business search collector.

One call per page: the collector maps HTTP and transport failures onto the
RetryableError / PermanentError hierarchy and leaves retrying, pacing and
pagination to the search orchestrator.

API Reference: https://docs.developer.yelp.com/reference/v3_business_search
"""

from typing import Any, Optional

import httpx
import structlog

from hexsweep.collectors.base import BaseCollector
from hexsweep.collectors.registry import CollectorType, register_collector
from hexsweep.core.exceptions import (
    CollectorAuthError,
    CollectorNetworkError,
    CollectorRateLimitError,
    CollectorRequestError,
    CollectorTimeoutError,
    CollectorUnavailableError,
)
from hexsweep.models.schemas import Business, SearchPage
from hexsweep.monitoring.metrics import track_collector_operation

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

YELP_API_BASE = "https://api.yelp.com/v3"
SEARCH_ENDPOINT = "businesses/search"

# Yelp rejects radius above 40 km and page sizes above 50
MAX_RADIUS_METERS = 40_000
MAX_PAGE_SIZE = 50

COLLECTOR_NAME = "yelp"


# =============================================================================
# Yelp Collector
# =============================================================================


@register_collector(CollectorType.YELP)
class YelpSearchCollector(BaseCollector):
    """Async client for the Yelp Fusion ``/businesses/search`` endpoint.

    Config keys:
        api_key: Yelp Fusion API key (required)
        base_url: API root, defaults to the public v3 endpoint
        categories: Comma separated category aliases to filter on
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (used by tests)

    Example:
        collector = YelpSearchCollector({"api_key": key})
        async with collector:
            page = await collector.search(40.7128, -74.0060, radius_meters=1200)
    """

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self._api_key: Optional[str] = config.get("api_key")
        if not self._api_key:
            raise CollectorAuthError(COLLECTOR_NAME, "Yelp API key not configured")

        self._base_url = (config.get("base_url") or YELP_API_BASE).rstrip("/")
        self._categories: Optional[str] = config.get("categories") or None
        self._timeout = float(config.get("timeout", 10.0))
        self._transport: Optional[httpx.AsyncBaseTransport] = config.get("transport")
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "YelpSearchCollector":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def health_check(self) -> bool:
        """Report whether the collector is configured.

        Does not call the API: every call counts against the daily quota.
        """
        return bool(self._api_key)

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    async def search(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        offset: int = 0,
        limit: int = MAX_PAGE_SIZE,
    ) -> SearchPage:
        """Fetch one page of businesses within ``radius_meters`` of a point.

        Raises:
            CollectorRateLimitError: HTTP 429
            CollectorUnavailableError: HTTP 503 and other 5xx
            CollectorTimeoutError: Transport timeout
            CollectorNetworkError: Connection-level failure
            CollectorAuthError: HTTP 401/403
            CollectorRequestError: Any other 4xx or an unreadable body
        """
        params: dict[str, Any] = {
            "latitude": latitude,
            "longitude": longitude,
            "radius": min(int(round(radius_meters)), MAX_RADIUS_METERS),
            "limit": min(limit, MAX_PAGE_SIZE),
            "offset": offset,
        }
        if self._categories:
            params["categories"] = self._categories

        with track_collector_operation(COLLECTOR_NAME, "search"):
            data = await self._request(SEARCH_ENDPOINT, params)

        businesses = [Business.from_yelp(entry) for entry in data.get("businesses") or []]
        return SearchPage(total=data.get("total") or 0, businesses=businesses)

    async def _request(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        client = await self._ensure_client()
        context = {"endpoint": endpoint, "offset": params.get("offset")}

        try:
            response = await client.get(endpoint, params=params)
        except httpx.TimeoutException as e:
            logger.warning("yelp_timeout", error=str(e), **context)
            raise CollectorTimeoutError(COLLECTOR_NAME, f"Request timeout: {e}", context) from e
        except httpx.RequestError as e:
            logger.warning("yelp_network_error", error=str(e), **context)
            raise CollectorNetworkError(
                COLLECTOR_NAME,
                f"Request failed: {e}",
                {**context, "original_error": str(e)},
            ) from e

        status = response.status_code
        if status >= 400:
            self._raise_for_status(response, context)

        try:
            return response.json()
        except ValueError as e:
            raise CollectorRequestError(
                COLLECTOR_NAME,
                "Response body is not valid JSON",
                {**context, "status_code": status},
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, context: dict[str, Any]) -> None:
        status = response.status_code
        details = {**context, "status_code": status}

        if status == 429:
            logger.warning("yelp_rate_limited", **context)
            raise CollectorRateLimitError(COLLECTOR_NAME, "Rate limited by Yelp API", details)
        if status >= 500:
            logger.warning("yelp_unavailable", status_code=status, **context)
            raise CollectorUnavailableError(COLLECTOR_NAME, f"Yelp API returned {status}", details)
        if status in (401, 403):
            raise CollectorAuthError(COLLECTOR_NAME, "Yelp API rejected the credentials", details)

        description = _error_description(response)
        logger.error("yelp_api_error", status_code=status, error=description, **context)
        raise CollectorRequestError(
            COLLECTOR_NAME,
            f"API error {status}: {description}",
            details,
        )


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or "Unknown error"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("description") or error.get("code") or "Unknown error"
    return "Unknown error"
