"""
Core exception hierarchy for hexsweep.

Provides standardized exception types with categorization for retry logic.
Anything derived from RetryableError is retried with backoff by the search
orchestrator; everything else fails the call immediately.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class HexsweepError(Exception):
    """Base exception for all hexsweep errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(HexsweepError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, temporary network issues.
    """

    pass


class PermanentError(HexsweepError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid input, missing required data, authentication failures.
    """

    pass


# =============================================================================
# Initialization / Configuration Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Collector Errors
# =============================================================================


class CollectorError(HexsweepError):
    """Base exception for search provider errors."""

    def __init__(
        self,
        collector_type: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.collector_type = collector_type
        super().__init__(f"[{collector_type}] {message}", details)

    @property
    def status_code(self) -> Optional[int]:
        """HTTP status code of the failed call, when there was one."""
        return self.details.get("status_code")


class CollectorRateLimitError(CollectorError, RetryableError):
    """Raised when the provider throttles us (HTTP 429)."""

    pass


class CollectorTimeoutError(CollectorError, RetryableError):
    """Raised when a provider call exceeds the transport timeout."""

    pass


class CollectorUnavailableError(CollectorError, RetryableError):
    """Raised on 503 and other 5xx responses."""

    pass


class CollectorNetworkError(CollectorError, RetryableError):
    """Raised on connection resets, DNS failures and similar network blips."""

    pass


class CollectorAuthError(CollectorError, PermanentError):
    """Raised when provider authentication fails."""

    pass


class CollectorRequestError(CollectorError, PermanentError):
    """Raised when the provider rejects the request itself (4xx)."""

    pass


# =============================================================================
# Quota Errors
# =============================================================================


class QuotaExhaustedError(PermanentError):
    """Raised before any call is made when a batch cannot fit the daily budget."""

    def __init__(
        self,
        estimated_calls: int,
        remaining: int,
        recommendations: Optional[list[str]] = None,
    ):
        self.estimated_calls = estimated_calls
        self.remaining = remaining
        self.recommendations = recommendations or []
        super().__init__(
            f"Insufficient quota: need ~{estimated_calls} calls, {remaining} remaining",
            {
                "estimated_calls": estimated_calls,
                "remaining": remaining,
                "recommendations": self.recommendations,
            },
        )


# =============================================================================
# Geometry Errors
# =============================================================================


class GeometryError(PermanentError):
    """Raised when a cell id or coordinate cannot be resolved on the grid."""

    pass


class SubdivisionLimitError(GeometryError):
    """Raised when a subdivision would exceed the maximum resolution."""

    def __init__(self, cell_id: str, resolution: int, max_resolution: int):
        self.cell_id = cell_id
        self.resolution = resolution
        self.max_resolution = max_resolution
        super().__init__(
            f"Cannot subdivide {cell_id} to resolution {resolution} (max {max_resolution})",
            {"cell_id": cell_id, "resolution": resolution, "max_resolution": max_resolution},
        )


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(HexsweepError):
    """Raised when the persistent store rejects a read or write."""

    def __init__(self, table: str, operation: str, message: str, details: Optional[dict[str, Any]] = None):
        self.table = table
        self.operation = operation
        super().__init__(f"[{table}.{operation}] {message}", details)


# =============================================================================
# Processing Control
# =============================================================================


class RunInProgressError(PermanentError):
    """Raised when a run is requested while another is still active."""

    def __init__(self, import_run_id: Optional[str]):
        self.import_run_id = import_run_id
        super().__init__(
            f"Run {import_run_id} is still in progress",
            {"import_run_id": import_run_id},
        )


class ProcessingCancelledError(PermanentError):
    """Raised when a cell's processing is abandoned between probes."""

    def __init__(self, cell_id: str, completed_probes: int):
        self.cell_id = cell_id
        self.completed_probes = completed_probes
        super().__init__(
            f"Processing of {cell_id} cancelled after {completed_probes} probes",
            {"cell_id": cell_id, "completed_probes": completed_probes},
        )
