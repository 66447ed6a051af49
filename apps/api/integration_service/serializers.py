"""Response shaping shared by routers and exception handlers."""

from datetime import datetime, timezone
from typing import Any

from integration_service.schemas import (
    ErrorResponse,
    VersionControlHandle,
    IndexHandle,
    SubmissionData,
    SubmissionResponse,
    SyncResponse,
)
from integration_service.services.pipeline import SubmissionOutcome, SyncOutcome


def error_body(
    error: str,
    message: str,
    request_id: str | None,
    details: list[Any] | None = None,
) -> dict[str, Any]:
    """`{success: false, error, message, details?, requestId}`; details omitted when empty."""
    body = ErrorResponse(error=error, message=message, details=details or None, request_id=request_id)
    return body.model_dump(by_alias=True, exclude_none=True)


def submission_response(outcome: SubmissionOutcome, request_id: str, index_name: str | None) -> SubmissionResponse:
    commit = outcome.commit
    return SubmissionResponse(
        data=SubmissionData(
            id=outcome.record.contact_id,
            review_status=outcome.document["syncStatus"],
            version_control=VersionControlHandle(
                branch=commit.branch_name,
                pull_request_id=commit.pull_request_number,
                pull_request_url=commit.pull_request_url,
            ),
            contact_id=outcome.record.contact_id,
            submission_id=commit.submission_id,
            status=outcome.document["syncStatus"],
            index=IndexHandle(indexed=True, index_name=index_name),
            phases=outcome.phases.phases,
            processing_time=f"{outcome.processing_ms}ms",
        ),
        request_id=request_id,
        timestamp=datetime.now(timezone.utc),
    )


def sync_response(outcome: SyncOutcome, request_id: str | None) -> SyncResponse:
    if outcome.success:
        message = "Contact successfully synced"
    else:
        message = f"Contact sync failed: {outcome.error}"
    return SyncResponse(success=outcome.success, message=message, data=outcome.to_dict(), request_id=request_id)
