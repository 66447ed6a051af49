"""Notification emitter: persist, fan out to every channel, record the outcome."""

import asyncio
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from integration_service.core.constants import MAX_NOTIFICATIONS
from integration_service.core.errors import AdapterError, NotFoundError, safe_error
from integration_service.domain import DeliveryStatus, NotificationType
from integration_service.providers.channels import ChannelResult, NotificationChannel
from integration_service.providers.index import RecordIndex

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    notification_id: str
    status: str
    results: list[ChannelResult] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == DeliveryStatus.SENT.value

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "notificationId": self.notification_id,
            "status": self.status,
            "channels": len(self.results),
            "results": [r.to_dict() for r in self.results],
        }
        if self.error:
            out["error"] = self.error
        return out


def new_notification_id() -> str:
    return f"notif-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class NotificationEmitter:
    def __init__(self, index: RecordIndex, channels: list[NotificationChannel]):
        self.index = index
        self.channels = channels

    async def emit(
        self,
        type_: NotificationType | str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> DeliveryResult:
        """Deliver to all channels and wait for every attempt to settle.

        Never raises for adapter failures: channel errors are per-channel results and
        storage errors are reported on the returned DeliveryResult.
        """
        type_value = type_.value if isinstance(type_, NotificationType) else str(type_)
        notification: dict[str, Any] = {
            "id": new_notification_id(),
            "type": type_value,
            "title": title,
            "message": message,
            "metadata": metadata or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": DeliveryStatus.PENDING.value,
            "read": False,
            "readAt": None,
            "results": [],
        }
        logger.info("Sending notification %s (%s): %s", notification["id"], type_value, title)

        storage_error: str | None = None
        try:
            await self.index.put_notification(notification)
        except AdapterError as e:
            logger.error("Failed to store notification %s: %s", notification["id"], safe_error(e))
            storage_error = str(e)

        results = list(await asyncio.gather(*(c.deliver(notification) for c in self.channels)))
        status = DeliveryStatus.SENT if any(r.ok for r in results) else DeliveryStatus.FAILED
        logger.info(
            "Notification %s processed: %s (%s channel(s))", notification["id"], status.value, len(results)
        )

        if storage_error is None:
            final: dict[str, Any] = {"status": status.value, "results": [r.to_dict() for r in results]}
            if status is DeliveryStatus.FAILED:
                final["error"] = "; ".join(r.error for r in results if r.error) or None
            try:
                await self.index.update_notification(notification["id"], final)
            except AdapterError as e:
                logger.error("Failed to update notification %s: %s", notification["id"], safe_error(e))
                storage_error = str(e)

        return DeliveryResult(
            notification_id=notification["id"], status=status.value, results=results, error=storage_error
        )

    async def list(self, limit: int = 50, type_: str | None = None) -> dict[str, Any]:
        limit = max(1, min(limit, MAX_NOTIFICATIONS))
        notifications = await self.index.list_notifications(limit=limit, type_=type_)
        return {
            "notifications": notifications,
            "total": len(notifications),
            "types": sorted({n.get("type") for n in notifications if n.get("type")}),
        }

    async def stats(self, now: datetime | None = None) -> dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        notifications = await self.index.all_notifications()
        last_hour = now - timedelta(hours=1)
        last_day = now - timedelta(days=1)
        stamps = [_parse_timestamp(n.get("timestamp")) for n in notifications]
        return {
            "total": len(notifications),
            "lastHour": sum(1 for t in stamps if t and t >= last_hour),
            "lastDay": sum(1 for t in stamps if t and t >= last_day),
            "byType": dict(Counter(n.get("type") for n in notifications)),
            "byStatus": dict(Counter(n.get("status") for n in notifications)),
            "unread": sum(1 for n in notifications if not n.get("read")),
        }

    async def mark_read(self, notification_id: str) -> dict[str, Any]:
        existing = await self.index.get_notification(notification_id)
        if existing is None:
            raise NotFoundError(f"Notification {notification_id} not found", entity_id=notification_id)
        fields = {"read": True, "readAt": datetime.now(timezone.utc).isoformat()}
        await self.index.update_notification(notification_id, fields)
        return {**existing, **fields}
