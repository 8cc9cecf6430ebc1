"""FastAPI dependency injection providers.

Route handlers receive services from the global DependencyContainer, which
the application lifespan initializes on startup.
"""

from fastapi import HTTPException, status

from hexsweep.core.container import DependencyContainer, get_container
from hexsweep.orchestration.pipeline import CellPipeline
from hexsweep.storage.staging import StagingWriter


def get_app_container() -> DependencyContainer:
    return get_container()


def get_pipeline() -> CellPipeline:
    """
    Get the cell pipeline.

    Raises:
        HTTPException: 503 when runs are disabled (no Yelp API key).
    """
    container = get_container()
    if not container.has_pipeline:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search pipeline is not configured (missing Yelp API key)",
        )
    return container.pipeline


def get_staging_writer() -> StagingWriter:
    return get_container().writer
