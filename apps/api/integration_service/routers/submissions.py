import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from integration_service.core import NotFoundError, ValidationError, get_settings, limiter
from integration_service.core.constants import DEFAULT_SOURCE, DEFAULT_SUBMITTER, MAX_PAGE_SIZE, MAX_RESULT_WINDOW
from integration_service.dependencies import get_db, get_pipeline, get_request_id
from integration_service.schemas import DataResponse, SearchResponse, SearchResult, SubmissionResponse, SyncResponse
from integration_service.serializers import error_body, submission_response, sync_response
from integration_service.services.ledger import get_idempotent_response, save_idempotent_response
from integration_service.services.pipeline import SubmissionContext, SubmissionPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submissions", tags=["submissions"])


def _submission_rate_limit() -> str:
    return get_settings().submission_rate_limit


@router.post("", response_model=SubmissionResponse, status_code=201)
@limiter.limit(_submission_rate_limit)
async def submit_contact(
    request: Request,
    body: dict[str, Any] = Body(...),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    request_id: str = Depends(get_request_id),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
    db: AsyncSession = Depends(get_db),
):
    endpoint = "POST /submissions"
    if idempotency_key:
        existing = await get_idempotent_response(db, idempotency_key, endpoint)
        if existing and existing.response_body:
            logger.info("Replaying stored response for Idempotency-Key %s", idempotency_key)
            return JSONResponse(status_code=existing.response_status or 201, content=existing.response_body)

    raw = dict(body)
    context = SubmissionContext(
        request_id=request_id,
        source=str(raw.pop("source", None) or request.headers.get("X-Submission-Source") or DEFAULT_SOURCE),
        submitted_by=str(raw.pop("submittedBy", None) or DEFAULT_SUBMITTER),
        extra={"originalData": raw},
    )
    logger.info("Contact submission started (source %s)", context.source)
    outcome = await pipeline.submit(raw, context)
    index_name = getattr(pipeline.index, "contacts_index", "contacts")
    resp = submission_response(outcome, request_id, index_name)
    logger.info(
        "Contact %s submitted as PR #%s in %sms",
        outcome.record.contact_id,
        outcome.commit.pull_request_number,
        outcome.processing_ms,
    )
    if idempotency_key:
        await save_idempotent_response(
            db, idempotency_key, endpoint,
            201, resp.model_dump(mode="json", by_alias=True),
        )
    return resp


@router.get("", response_model=SearchResponse)
async def search_contacts(
    q: Optional[str] = Query(None, max_length=500),
    company: Optional[str] = None,
    department: Optional[str] = None,
    country: Optional[str] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    if page * size > MAX_RESULT_WINDOW:
        raise ValidationError(
            [{"field": "page", "message": f"page * size must not exceed {MAX_RESULT_WINDOW}"}],
            message="Request validation failed",
        )
    filters = {"company": company, "department": department, "country": country, "isActive": is_active}
    results = await pipeline.index.search(q, {k: v for k, v in filters.items() if v is not None}, page, size)
    return SearchResponse(data=SearchResult.model_validate(results))


@router.post("/test/complete-flow", response_model=DataResponse)
async def complete_flow(
    request_id: str = Depends(get_request_id),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    data = await pipeline.run_complete_flow(request_id)
    return DataResponse(message="Complete flow test executed", data=data, request_id=request_id)


@router.get("/{contact_id}", response_model=DataResponse)
async def get_contact(contact_id: str, pipeline: SubmissionPipeline = Depends(get_pipeline)):
    document = await pipeline.index.get(contact_id)
    if document is None:
        raise NotFoundError(f"Contact {contact_id} not found", entity_id=contact_id)
    return DataResponse(data=document)


@router.post("/{contact_id}/resync", response_model=SyncResponse)
async def resync_contact(
    contact_id: str,
    request_id: str = Depends(get_request_id),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    outcome = await pipeline.resync(contact_id)
    if not outcome.success:
        return JSONResponse(
            status_code=500,
            content=error_body(
                "Sync failed",
                outcome.error or "Downstream propagation failed",
                request_id,
                details=[s.to_dict() for s in outcome.steps if not s.succeeded],
            ),
        )
    return sync_response(outcome, request_id)
