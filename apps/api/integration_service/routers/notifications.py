import time
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from integration_service.core.constants import MAX_NOTIFICATIONS
from integration_service.dependencies import get_notifier, get_request_id
from integration_service.domain import NotificationType
from integration_service.schemas import (
    DataResponse,
    NotificationList,
    NotificationListResponse,
    NotificationStats,
    NotificationStatsResponse,
    TestNotificationRequest,
)
from integration_service.services.notifications import NotificationEmitter

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=MAX_NOTIFICATIONS),
    type: Optional[NotificationType] = Query(None),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    data = await notifier.list(limit, type.value if type else None)
    return NotificationListResponse(data=NotificationList.model_validate(data))


@router.get("/stats", response_model=NotificationStatsResponse)
async def notification_stats(notifier: NotificationEmitter = Depends(get_notifier)):
    return NotificationStatsResponse(data=NotificationStats.model_validate(await notifier.stats()))


@router.post("/test", response_model=DataResponse)
async def test_notification(
    body: Optional[TestNotificationRequest] = Body(None),
    request_id: str = Depends(get_request_id),
    notifier: NotificationEmitter = Depends(get_notifier),
):
    delivery = await notifier.emit(
        NotificationType.SYSTEM_ALERT,
        "Test Notification",
        "This is a test notification from the CDM integration system",
        {
            "testId": f"test-{int(time.time() * 1000)}",
            "requestedBy": "api-test",
            "channels": (body.channel if body else None) or "all",
        },
    )
    return DataResponse(message="Test notification sent", data=delivery.to_dict(), request_id=request_id)


@router.post("/{notification_id}/read", response_model=DataResponse)
async def mark_notification_read(notification_id: str, notifier: NotificationEmitter = Depends(get_notifier)):
    notification = await notifier.mark_read(notification_id)
    return DataResponse(message="Notification marked as read", data=notification)
