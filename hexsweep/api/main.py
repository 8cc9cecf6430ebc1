"""hexsweep API - Main FastAPI Application.

Exposes the acquisition pipeline over HTTP:
- Health check endpoints
- Run management (start, status, cancel) and quota usage under /api/v1
- Staging review transitions under /api/v1/staging
- Prometheus metrics at /metrics

Usage:
    uvicorn hexsweep.api.main:app --reload
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from hexsweep import __version__
from hexsweep.api.models import ErrorResponse, ValidationErrorDetail, ValidationErrorResponse
from hexsweep.api.routes.health import router as health_router, set_server_start_time
from hexsweep.api.routes.runs import router as runs_router
from hexsweep.api.routes.staging import router as staging_router
from hexsweep.config.settings import get_settings
from hexsweep.core.container import initialize_container, shutdown_container
from hexsweep.core.exceptions import PersistenceError
from hexsweep.monitoring.metrics import get_metrics_app

logger = structlog.get_logger(__name__)

API_TITLE = "hexsweep API"
API_DESCRIPTION = """
## Exhaustive business discovery over H3 cells

Tiles an area into H3 cells, searches each cell with overlapping probes under
the provider's rate and daily quotas, subdivides saturated cells, and stages
deduplicated businesses for review.
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the dependency container on startup and release it on shutdown."""
    logger.info("application_starting")
    set_server_start_time()

    await initialize_container()
    logger.info("application_started")

    yield

    logger.info("application_stopping")
    await shutdown_container()
    logger.info("application_stopped")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Health", "description": "System health and status endpoints"},
        {"name": "Runs", "description": "Start, monitor and cancel acquisition runs"},
        {"name": "Staging", "description": "Review transitions for staged businesses"},
    ],
)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with detailed response."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append(ValidationErrorDetail(
            field=field,
            message=error["msg"],
            value=error.get("input"),
        ))

    response = ValidationErrorResponse(errors=errors)
    return JSONResponse(
        status_code=422,
        content=response.model_dump(mode="json"),
    )


@app.exception_handler(PersistenceError)
async def persistence_exception_handler(
    request: Request, exc: PersistenceError
) -> JSONResponse:
    logger.error("persistence_error", path=request.url.path, error=str(exc))
    response = ErrorResponse(
        error="persistence_error",
        message="The store rejected the operation",
        detail=exc.message if get_settings().debug else None,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )

    response = ErrorResponse(
        error="internal_server_error",
        message="An unexpected error occurred",
        detail=str(exc) if get_settings().debug else None,
        path=request.url.path,
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(mode="json"),
    )


# =============================================================================
# Routers
# =============================================================================


@app.get("/", include_in_schema=False)
async def root() -> dict:
    return {
        "name": API_TITLE,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "api": "/api/v1",
    }


app.include_router(health_router)

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(runs_router)
api_v1_router.include_router(staging_router)
app.include_router(api_v1_router)

app.mount("/metrics", get_metrics_app())
