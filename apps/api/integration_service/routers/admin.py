import logging

from fastapi import APIRouter, Depends

from integration_service.dependencies import get_pipeline, get_request_id
from integration_service.schemas import DataResponse
from integration_service.services.pipeline import SubmissionPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reset-records", response_model=DataResponse)
async def reset_records(
    request_id: str = Depends(get_request_id),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    """Destructive: drops every indexed record. Committed files in the repository are untouched."""
    logger.warning("Records reset requested")
    await pipeline.reset_records()
    return DataResponse(message="Records collection reset", request_id=request_id)
