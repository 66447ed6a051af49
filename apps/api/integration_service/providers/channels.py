"""Notification delivery channels.

Every channel returns a ChannelResult; adapter failures become `failed` results
so one broken channel never prevents the others from delivering.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from integration_service.core.config import Settings
from integration_service.core.errors import AdapterError, PipelineStage, safe_error
from integration_service.domain import DeliveryStatus, NotificationType
from integration_service.providers.email import EmailConfigError, SendGridProvider, get_email_provider

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NotificationType.CONTACT_SYNCED.value: logging.INFO,
    NotificationType.SYNC_FAILED.value: logging.ERROR,
    NotificationType.REVIEW_REQUESTED.value: logging.INFO,
    NotificationType.REVIEW_UPDATED.value: logging.INFO,
    NotificationType.SYSTEM_ALERT.value: logging.WARNING,
    NotificationType.REPOSITORY_DELETED.value: logging.WARNING,
}


class NotificationServiceError(AdapterError):
    """Raised when an outbound notification webhook fails."""

    service = "notification-webhook"


@dataclass
class ChannelResult:
    channel: str
    status: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT.value

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"channel": self.channel, "status": self.status}
        if self.error:
            out["error"] = self.error
        return out


class NotificationChannel(ABC):
    name: str = "channel"

    @abstractmethod
    async def send(self, notification: dict[str, Any]) -> None:
        """Deliver or raise AdapterError."""

    async def deliver(self, notification: dict[str, Any]) -> ChannelResult:
        try:
            await self.send(notification)
        except AdapterError as e:
            logger.warning("Notification channel %s failed: %s", self.name, safe_error(e))
            return ChannelResult(channel=self.name, status=DeliveryStatus.FAILED.value, error=str(e))
        return ChannelResult(channel=self.name, status=DeliveryStatus.SENT.value)


class ConsoleChannel(NotificationChannel):
    name = "console"

    async def send(self, notification: dict[str, Any]) -> None:
        level = _LOG_LEVELS.get(notification.get("type"), logging.INFO)
        logger.log(
            level,
            "[notification %s] %s: %s",
            notification.get("id"),
            notification.get("title"),
            notification.get("message"),
        )


class EmailChannel(NotificationChannel):
    name = "email"

    def __init__(self, provider: SendGridProvider, to_email: str):
        self.provider = provider
        self.to_email = to_email

    async def send(self, notification: dict[str, Any]) -> None:
        lines = [notification.get("message") or ""]
        for key, value in (notification.get("metadata") or {}).items():
            lines.append(f"{key}: {value}")
        await self.provider.send_email(
            to_email=self.to_email,
            subject=f"[{notification.get('type')}] {notification.get('title')}",
            text="\n".join(lines),
        )


class WebhookChannel(NotificationChannel):
    def __init__(self, url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self.name = f"webhook:{url}"
        self._transport = transport

    async def send(self, notification: dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, json=notification)
                r.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = (getattr(e.response, "text", None) or "")[:500]
            raise NotificationServiceError(
                f"Webhook {self.url} returned {e.response.status_code}",
                status_code=e.response.status_code,
                body=body,
                phase=PipelineStage.NOTIFY,
            ) from e
        except httpx.RequestError as e:
            raise NotificationServiceError(
                f"Webhook {self.url} unreachable ({type(e).__name__})", phase=PipelineStage.NOTIFY
            ) from e


def build_channels(settings: Settings) -> list[NotificationChannel]:
    """Console always; email when SendGrid and a recipient are configured; one channel per webhook URL."""
    channels: list[NotificationChannel] = [ConsoleChannel()]
    if settings.notification_email:
        try:
            channels.append(EmailChannel(get_email_provider(), settings.notification_email))
        except EmailConfigError:
            logger.info("NOTIFICATION_EMAIL set but SendGrid is not configured; email channel disabled")
    for url in settings.notification_webhook_list:
        channels.append(WebhookChannel(url, timeout=settings.notification_webhook_timeout_seconds))
    return channels
