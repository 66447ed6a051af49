from typing import Any, Optional

from pydantic import Field

from .common import CamelModel


class NotificationList(CamelModel):
    notifications: list[dict[str, Any]]
    total: int
    types: list[str]


class NotificationListResponse(CamelModel):
    success: bool = True
    data: NotificationList


class NotificationStats(CamelModel):
    total: int
    last_hour: int
    last_day: int
    by_type: dict[str, int]
    by_status: dict[str, int]
    unread: int


class NotificationStatsResponse(CamelModel):
    success: bool = True
    data: NotificationStats


class TestNotificationRequest(CamelModel):
    channel: Optional[str] = Field(None, max_length=100)
