"""Health check endpoints.

Reports store connectivity, whether the search pipeline is configured, and
the rate gate backlog.
"""

import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends

from hexsweep import __version__
from hexsweep.api.dependencies import get_app_container
from hexsweep.api.models import HealthCheckResponse, HealthStatus
from hexsweep.core.container import DependencyContainer
from hexsweep.core.exceptions import HexsweepError

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


async def check_store_health(container: DependencyContainer) -> HealthStatus:
    """Round-trip a lookup against the cell cache table."""
    start_time = time.time()
    try:
        container.store.select_by_ids(container.settings.hextiles_table, ["health-check"])
        latency = (time.time() - start_time) * 1000
        kind = "Supabase" if container.settings.has_supabase else "in-memory store"
        return HealthStatus(
            status="healthy" if container.settings.has_supabase else "degraded",
            latency_ms=round(latency, 2),
            message=f"Connected to {kind}",
        )
    except HexsweepError as e:
        latency = (time.time() - start_time) * 1000
        logger.error("store_health_check_failed", error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"Store check failed: {str(e)[:100]}",
        )


def check_pipeline_health(container: DependencyContainer) -> HealthStatus:
    if not container.has_pipeline:
        return HealthStatus(status="degraded", message="Runs disabled: Yelp API key not configured")

    pipeline = container.pipeline
    state = "running" if pipeline.is_running else "idle"
    return HealthStatus(status="healthy", message=f"Pipeline {state}")


def check_rate_gate_health(container: DependencyContainer) -> HealthStatus:
    gate = container.rate_gate.status()
    if gate.daily_remaining == 0:
        return HealthStatus(status="degraded", message="Daily quota exhausted")
    return HealthStatus(
        status="healthy",
        message=f"{gate.calls_today}/{gate.daily_limit} calls today, {gate.queue_depth} queued",
    )


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check(
    container: DependencyContainer = Depends(get_app_container),
) -> HealthCheckResponse:
    services = {
        "store": await check_store_health(container),
        "pipeline": check_pipeline_health(container),
        "rate_gate": check_rate_gate_health(container),
    }

    statuses = [s.status for s in services.values()]
    if all(s == "healthy" for s in statuses):
        overall_status = "healthy"
    elif any(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
    else:
        overall_status = "degraded"

    return HealthCheckResponse(
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        services=services,
        uptime_seconds=get_uptime_seconds(),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}
