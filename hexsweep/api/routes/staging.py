"""Staging review endpoints."""

import structlog
from fastapi import APIRouter, Depends

from hexsweep.api.dependencies import get_staging_writer
from hexsweep.api.models import StagingStatusUpdate, StagingStatusUpdateResponse
from hexsweep.storage.staging import StagingWriter

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/staging", tags=["Staging"])


@router.post(
    "/status",
    response_model=StagingStatusUpdateResponse,
    summary="Bulk approve or reject staged businesses",
)
async def update_staging_status(
    request: StagingStatusUpdate,
    writer: StagingWriter = Depends(get_staging_writer),
) -> StagingStatusUpdateResponse:
    """
    Set the review status of many staged businesses.

    Unknown ids are reported back in ``failed_ids``; the rest are updated.
    """
    logger.info("staging_status_requested", id_count=len(request.ids), status=request.status.value)
    result = await writer.bulk_update_status(request.ids, request.status)
    return StagingStatusUpdateResponse(**result.model_dump())
