from typing import Optional

from fastapi import APIRouter, Depends, Query

from integration_service.dependencies import get_pipeline
from integration_service.schemas import DataResponse
from integration_service.services.pipeline import SubmissionPipeline

router = APIRouter(prefix="/reference", tags=["reference"])


@router.get("", response_model=DataResponse)
async def reference_data(
    type: Optional[str] = Query(None, max_length=50),
    category: Optional[str] = Query(None, max_length=50),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    """One reference type as value/label pairs, or every form dropdown when no type is given."""
    if type:
        rows = await pipeline.index.reference_data(type, category)
        return DataResponse(data=[{"value": r.get("value"), "label": r.get("label")} for r in rows])
    return DataResponse(data=await pipeline.index.form_dropdowns())
