from datetime import datetime
from typing import Any, Optional

from .common import CamelModel


class VersionControlHandle(CamelModel):
    branch: str
    pull_request_id: Optional[int] = None
    pull_request_url: Optional[str] = None


class IndexHandle(CamelModel):
    indexed: bool = True
    index_name: Optional[str] = None


class SubmissionData(CamelModel):
    id: str
    review_status: str
    version_control: VersionControlHandle
    contact_id: str
    submission_id: str
    status: str
    index: IndexHandle
    phases: list[str] = []
    processing_time: str


class SubmissionResponse(CamelModel):
    success: bool = True
    message: str = "Contact data submitted successfully"
    data: SubmissionData
    request_id: str
    timestamp: datetime


class SearchResult(CamelModel):
    total: int
    contacts: list[dict[str, Any]]
    page: int
    size: int
    total_pages: int


class SearchResponse(CamelModel):
    success: bool = True
    data: SearchResult


class SyncResponse(CamelModel):
    success: bool
    message: str
    data: dict[str, Any]
    request_id: Optional[str] = None
