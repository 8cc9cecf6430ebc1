"""Pydantic models for API requests and responses."""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from hexsweep.models.schemas import RiskLevel, RunProgress, StagingStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Run Models
# =============================================================================


class RunCreate(BaseModel):
    """Request model for starting a run over cells or a polygon."""

    cell_ids: list[str] = Field(
        default_factory=list,
        description="H3 cell ids to process",
        json_schema_extra={"example": ["872a1072bffffff"]},
    )
    polygon: Optional[dict[str, Any]] = Field(
        None,
        description="GeoJSON Polygon, MultiPolygon or Feature to tile into cells",
    )
    resolution: Optional[int] = Field(
        None,
        ge=0,
        le=15,
        description="Resolution used to tile the polygon (defaults to the base resolution)",
    )
    city_id: Optional[str] = Field(None, description="Optional city reference for the import log")

    @model_validator(mode="after")
    def require_cells_or_polygon(self) -> "RunCreate":
        if not self.cell_ids and self.polygon is None:
            raise ValueError("Provide cell_ids or polygon")
        if self.cell_ids and self.polygon is not None:
            raise ValueError("Provide either cell_ids or polygon, not both")
        return self


class RunAccepted(BaseModel):
    """Response returned when a run is queued."""

    import_run_id: str
    cell_count: int
    estimated_api_calls: int
    status: Literal["accepted"] = "accepted"


class RunStatusResponse(RunProgress):
    """Progress of the current (or last) run."""


class CancelResponse(BaseModel):
    cancelled: bool
    import_run_id: Optional[str] = None


# =============================================================================
# Quota Models
# =============================================================================


class QuotaResponse(BaseModel):
    calls_today: int
    daily_limit: int
    daily_remaining: int
    usage_percentage: float
    per_second_limit: Optional[int] = None
    queue_depth: int = 0


class QuotaErrorResponse(BaseModel):
    error: str = "quota_exhausted"
    message: str
    estimated_calls: int
    remaining: int
    recommendations: list[str] = Field(default_factory=list)
    risk_level: Optional[RiskLevel] = None


# =============================================================================
# Staging Models
# =============================================================================


class StagingStatusUpdate(BaseModel):
    """Bulk review decision."""

    ids: list[str] = Field(..., min_length=1, description="Staged business ids")
    status: StagingStatus = Field(..., description="New review status")


class StagingStatusUpdateResponse(BaseModel):
    success_count: int
    failed_count: int
    failed_ids: list[str] = Field(default_factory=list)


# =============================================================================
# Health Models
# =============================================================================


class HealthStatus(BaseModel):
    """Individual service health status."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Service status"
    )
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Overall system status"
    )
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Check timestamp")
    services: dict[str, HealthStatus] = Field(
        default_factory=dict,
        description="Individual service statuses",
    )
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


# =============================================================================
# Error Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(default_factory=_utc_now, description="Error timestamp")


class ValidationErrorDetail(BaseModel):
    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Validation error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ValidationErrorResponse(BaseModel):
    error: str = Field(default="validation_error", description="Error type")
    message: str = Field(default="Request validation failed", description="Error message")
    errors: list[ValidationErrorDetail] = Field(..., description="List of validation errors")
    timestamp: datetime = Field(default_factory=_utc_now, description="Error timestamp")
