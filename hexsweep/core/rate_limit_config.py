"""Rate limit configuration for the upstream search providers.

Defines the per-second and per-day ceilings each provider is known to
enforce. Settings override these defaults per deployment.

Usage:
    from hexsweep.core.rate_limit_config import get_api_limits, Duration

    config = get_api_limits("yelp_search")
    # config.requests_per_second = 10
    # config.requests_per_day = 5000
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class Duration(IntEnum):
    """Time durations in seconds for rate limiting."""

    SECOND = 1
    MINUTE = 60
    HOUR = 3600
    DAY = 86400


@dataclass
class Rate:
    """A rate limit specification."""

    limit: int
    window: Duration

    def __repr__(self) -> str:
        duration_name = {
            Duration.SECOND: "second",
            Duration.MINUTE: "minute",
            Duration.HOUR: "hour",
            Duration.DAY: "day",
        }.get(self.window, f"{self.window}s")
        return f"Rate({self.limit}/{duration_name})"


@dataclass
class RateLimitConfig:
    """Configuration for a rate-limited provider."""

    name: str
    rates: list[Rate]
    description: str = ""

    def limit_for(self, window: Duration) -> Optional[int]:
        """Get the limit for a window if defined."""
        for rate in self.rates:
            if rate.window == window:
                return rate.limit
        return None

    @property
    def requests_per_second(self) -> Optional[int]:
        """Get the per-second limit if defined."""
        return self.limit_for(Duration.SECOND)

    @property
    def requests_per_day(self) -> Optional[int]:
        """Get the per-day limit if defined."""
        return self.limit_for(Duration.DAY)


# =============================================================================
# Provider Rate Limits
# =============================================================================

API_LIMITS: dict[str, RateLimitConfig] = {
    # Yelp Fusion business search. Yelp does not publish an exact QPS;
    # 10/s has proven safe against 503 bursts.
    "yelp_search": RateLimitConfig(
        name="yelp_search",
        description="Yelp Fusion /businesses/search",
        rates=[
            Rate(10, Duration.SECOND),
            Rate(5000, Duration.DAY),
        ],
    ),
}


def get_api_limits(identifier: str) -> Optional[RateLimitConfig]:
    """
    Get rate limit configuration for a provider.

    Args:
        identifier: The provider identifier (e.g., "yelp_search")

    Returns:
        RateLimitConfig if found, None otherwise
    """
    return API_LIMITS.get(identifier)
