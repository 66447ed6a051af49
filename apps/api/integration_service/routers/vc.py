import logging

from fastapi import APIRouter, Depends, Path

from integration_service.dependencies import get_pipeline
from integration_service.schemas import DataResponse
from integration_service.services.pipeline import SubmissionPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vc", tags=["version-control"])


@router.get("/stats", response_model=DataResponse)
async def repository_stats(pipeline: SubmissionPipeline = Depends(get_pipeline)):
    return DataResponse(data=await pipeline.gitea.repository_stats())


@router.post("/pulls/{number}/merge", response_model=DataResponse)
async def merge_pull_request(
    number: int = Path(..., ge=1),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    """Single merge attempt; the merge webhook drives propagation."""
    result = await pipeline.gitea.merge_pull_request(number)
    logger.info("PR #%s merged on operator request", number)
    return DataResponse(message=f"Pull request #{number} merged successfully", data=result)
