"""Base collector interface for business search providers.

All collectors should extend BaseCollector and implement the required methods.
Code that only consumes search results should depend on the
BusinessSearchProvider protocol instead, so fakes can stand in for tests.
"""

from abc import ABC, abstractmethod
from typing import Any, Protocol

from hexsweep.models.schemas import SearchPage


class BusinessSearchProvider(Protocol):
    """Anything that can run one page of a radius search."""

    async def search(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        offset: int = 0,
        limit: int = 50,
    ) -> SearchPage: ...


class BaseCollector(ABC):
    """Abstract base class for all search collectors.

    Provides common interface for initialization and health checking.
    Concrete collectors implement the provider-specific search call.
    """

    def __init__(self, config: dict[str, Any]):
        """Initialize collector with configuration.

        Args:
            config: Configuration dictionary with collector-specific settings.
        """
        self.config = config

    @abstractmethod
    async def search(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        offset: int = 0,
        limit: int = 50,
    ) -> SearchPage:
        """Fetch one page of businesses around a point.

        Raises:
            RetryableError subclasses for transient failures, PermanentError
            subclasses for everything retrying cannot fix.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the collector is operational.

        Returns:
            True if the collector is configured and able to issue requests.
        """
        ...

    async def close(self) -> None:
        """Release network resources. No-op by default."""
        return None
