"""Run management endpoints.

Runs execute in the background; clients poll ``/runs/status`` for progress.
A run that cannot fit today's quota is refused with 429 before any call.
"""

from uuid import uuid4

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from hexsweep.api.dependencies import get_app_container, get_pipeline
from hexsweep.api.models import (
    CancelResponse,
    ErrorResponse,
    QuotaErrorResponse,
    QuotaResponse,
    RunAccepted,
    RunCreate,
    RunStatusResponse,
)
from hexsweep.core.container import DependencyContainer
from hexsweep.core.exceptions import (
    GeometryError,
    HexsweepError,
    QuotaExhaustedError,
    RunInProgressError,
)
from hexsweep.orchestration.pipeline import CellPipeline

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Runs"])


async def _run_in_background(
    pipeline: CellPipeline,
    cell_ids: list[str],
    import_run_id: str,
    city_id: str | None,
) -> None:
    try:
        await pipeline.plan_and_run(cell_ids, import_run_id=import_run_id, city_id=city_id)
    except QuotaExhaustedError as e:
        # Quota moved between the pre-flight check and the start of the run
        logger.warning("background_run_refused", import_run_id=import_run_id, error=str(e))
    except HexsweepError as e:
        logger.error(
            "background_run_failed",
            import_run_id=import_run_id,
            error=str(e),
            error_type=type(e).__name__,
        )


@router.post(
    "/runs",
    response_model=RunAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a run",
    description="Process a list of H3 cells, or a polygon tiled at a resolution, in the background.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid polygon or cell ids"},
        409: {"model": ErrorResponse, "description": "A run is already in progress"},
        429: {"model": QuotaErrorResponse, "description": "Insufficient quota"},
        503: {"model": ErrorResponse, "description": "Runs are not configured"},
    },
)
async def start_run(
    request: RunCreate,
    background_tasks: BackgroundTasks,
    pipeline: CellPipeline = Depends(get_pipeline),
):
    if pipeline.is_running:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A run is already in progress")

    if request.polygon is not None:
        try:
            cell_ids = pipeline.plan_polygon(request.polygon, request.resolution)
        except GeometryError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    else:
        cell_ids = list(dict.fromkeys(request.cell_ids))

    try:
        estimated_calls = pipeline.preflight(cell_ids)
    except QuotaExhaustedError as e:
        logger.warning(
            "run_request_refused_quota",
            estimated_calls=e.estimated_calls,
            remaining=e.remaining,
        )
        body = QuotaErrorResponse(
            message=e.message,
            estimated_calls=e.estimated_calls,
            remaining=e.remaining,
            recommendations=e.recommendations,
        )
        return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=body.model_dump(mode="json"))

    import_run_id = str(uuid4())
    try:
        pipeline.reserve(import_run_id)
    except RunInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    background_tasks.add_task(_run_in_background, pipeline, cell_ids, import_run_id, request.city_id)

    logger.info(
        "run_accepted",
        import_run_id=import_run_id,
        cell_count=len(cell_ids),
        estimated_api_calls=estimated_calls,
    )
    return RunAccepted(
        import_run_id=import_run_id,
        cell_count=len(cell_ids),
        estimated_api_calls=estimated_calls,
    )


@router.get(
    "/runs/status",
    response_model=RunStatusResponse,
    summary="Run progress",
)
async def run_status(pipeline: CellPipeline = Depends(get_pipeline)) -> RunStatusResponse:
    return RunStatusResponse(**pipeline.status().model_dump())


@router.post(
    "/runs/cancel",
    response_model=CancelResponse,
    summary="Cancel the active run",
    description="Cancellation takes effect between probes; the current cell is abandoned.",
)
async def cancel_run(pipeline: CellPipeline = Depends(get_pipeline)) -> CancelResponse:
    cancelled = pipeline.cancel()
    return CancelResponse(cancelled=cancelled, import_run_id=pipeline.status().import_run_id)


@router.get(
    "/quota",
    response_model=QuotaResponse,
    summary="Today's quota usage",
)
async def quota_status(container: DependencyContainer = Depends(get_app_container)) -> QuotaResponse:
    return _quota_response(container)


@router.post(
    "/quota/reset",
    response_model=QuotaResponse,
    summary="Reset today's quota counters",
    description="Operator override for when the upstream daily quota was reset out of band.",
)
async def reset_quota(container: DependencyContainer = Depends(get_app_container)) -> QuotaResponse:
    container.rate_gate.reset_daily()
    container.quota.reset_daily()
    logger.info("quota_reset_requested")
    return _quota_response(container)


def _quota_response(container: DependencyContainer) -> QuotaResponse:
    quota = container.quota.status()
    gate = container.rate_gate.status()
    return QuotaResponse(
        calls_today=quota.calls_today,
        daily_limit=quota.daily_limit,
        daily_remaining=quota.daily_remaining,
        usage_percentage=round(quota.usage_percentage, 2),
        per_second_limit=gate.per_second_limit,
        queue_depth=gate.queue_depth,
    )
