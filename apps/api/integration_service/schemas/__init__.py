"""Pydantic request/response schemas."""

from integration_service.schemas.common import CamelModel, DataResponse, ErrorResponse
from integration_service.schemas.health import DetailedHealthResponse, HealthResponse, ServiceHealth
from integration_service.schemas.notification import (
    NotificationList,
    NotificationListResponse,
    NotificationStats,
    NotificationStatsResponse,
    TestNotificationRequest,
)
from integration_service.schemas.submission import (
    VersionControlHandle,
    IndexHandle,
    SearchResponse,
    SearchResult,
    SubmissionData,
    SubmissionResponse,
    SyncResponse,
)

__all__ = [
    "CamelModel",
    "DataResponse",
    "ErrorResponse",
    "DetailedHealthResponse",
    "HealthResponse",
    "ServiceHealth",
    "NotificationList",
    "NotificationListResponse",
    "NotificationStats",
    "NotificationStatsResponse",
    "TestNotificationRequest",
    "VersionControlHandle",
    "IndexHandle",
    "SearchResponse",
    "SearchResult",
    "SubmissionData",
    "SubmissionResponse",
    "SyncResponse",
]
