"""Tests for notification fan-out, persistence and read tracking."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from integration_service.core.config import Settings
from integration_service.core.errors import NotFoundError
from integration_service.domain import NotificationType
from integration_service.providers.channels import ConsoleChannel, EmailChannel, WebhookChannel, build_channels
from integration_service.providers.email import SendGridProvider
from integration_service.providers.index import IndexServiceError
from integration_service.providers.memory_index import InMemoryIndex
from integration_service.services.notifications import NotificationEmitter


def _webhook(status: int, received: list | None = None) -> WebhookChannel:
    def handler(request: httpx.Request) -> httpx.Response:
        if received is not None:
            received.append(json.loads(request.content))
        return httpx.Response(status)

    return WebhookChannel("http://hooks.test/notify", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_emit_delivers_to_every_channel_and_persists(index: InMemoryIndex) -> None:
    received: list[dict] = []
    emitter = NotificationEmitter(index, [ConsoleChannel(), _webhook(200, received)])

    delivery = await emitter.emit(NotificationType.CONTACT_SYNCED, "Synced", "Jane synced", {"contactId": "c1"})

    assert delivery.success
    assert delivery.error is None
    assert [r.channel for r in delivery.results] == ["console", "webhook:http://hooks.test/notify"]
    assert received[0]["type"] == "contact_synced"
    assert received[0]["metadata"] == {"contactId": "c1"}

    stored = await index.get_notification(delivery.notification_id)
    assert stored["status"] == "sent"
    assert stored["read"] is False
    assert len(stored["results"]) == 2


@pytest.mark.asyncio
async def test_one_failing_channel_does_not_block_others(index: InMemoryIndex) -> None:
    emitter = NotificationEmitter(index, [_webhook(502), ConsoleChannel()])

    delivery = await emitter.emit(NotificationType.SYNC_FAILED, "Failed", "boom")

    assert delivery.success
    failed = [r for r in delivery.results if not r.ok]
    assert len(failed) == 1
    assert "502" in failed[0].error


@pytest.mark.asyncio
async def test_all_channels_failing_marks_notification_failed(index: InMemoryIndex) -> None:
    emitter = NotificationEmitter(index, [_webhook(500)])

    delivery = await emitter.emit(NotificationType.SYSTEM_ALERT, "Alert", "boom")

    assert delivery.status == "failed"
    stored = await index.get_notification(delivery.notification_id)
    assert stored["status"] == "failed"
    assert "500" in stored["error"]


@pytest.mark.asyncio
async def test_storage_failure_is_reported_not_raised() -> None:
    class BrokenIndex(InMemoryIndex):
        async def put_notification(self, notification: dict) -> None:
            raise IndexServiceError("OpenSearch unavailable (ConnectError)")

    emitter = NotificationEmitter(BrokenIndex(), [ConsoleChannel()])

    delivery = await emitter.emit(NotificationType.SYSTEM_ALERT, "Alert", "boom")

    assert delivery.status == "sent"
    assert "unavailable" in delivery.error
    assert delivery.to_dict()["error"] == delivery.error


@pytest.mark.asyncio
async def test_list_is_newest_first_and_filterable(index: InMemoryIndex) -> None:
    emitter = NotificationEmitter(index, [ConsoleChannel()])
    first = await emitter.emit(NotificationType.REVIEW_REQUESTED, "Review", "PR #1")
    second = await emitter.emit(NotificationType.CONTACT_SYNCED, "Synced", "c1")
    index.notifications[first.notification_id]["timestamp"] = "2026-01-01T00:00:00+00:00"

    listed = await emitter.list()
    assert [n["id"] for n in listed["notifications"]] == [second.notification_id, first.notification_id]
    assert listed["total"] == 2
    assert listed["types"] == ["contact_synced", "review_requested"]

    only_reviews = await emitter.list(type_="review_requested")
    assert [n["id"] for n in only_reviews["notifications"]] == [first.notification_id]


@pytest.mark.asyncio
async def test_stats(index: InMemoryIndex) -> None:
    emitter = NotificationEmitter(index, [ConsoleChannel()])
    recent = await emitter.emit(NotificationType.CONTACT_SYNCED, "Synced", "c1")
    old = await emitter.emit(NotificationType.SYNC_FAILED, "Failed", "c2")
    now = datetime.now(timezone.utc)
    index.notifications[old.notification_id]["timestamp"] = (now - timedelta(hours=3)).isoformat()
    await emitter.mark_read(recent.notification_id)

    stats = await emitter.stats(now=now)

    assert stats == {
        "total": 2,
        "lastHour": 1,
        "lastDay": 2,
        "byType": {"contact_synced": 1, "sync_failed": 1},
        "byStatus": {"sent": 2},
        "unread": 1,
    }


@pytest.mark.asyncio
async def test_mark_read(index: InMemoryIndex) -> None:
    emitter = NotificationEmitter(index, [ConsoleChannel()])
    delivery = await emitter.emit(NotificationType.SYSTEM_ALERT, "Alert", "hello")

    marked = await emitter.mark_read(delivery.notification_id)

    assert marked["read"] is True
    assert marked["readAt"]
    assert (await index.get_notification(delivery.notification_id))["read"] is True


@pytest.mark.asyncio
async def test_mark_read_unknown_id(index: InMemoryIndex) -> None:
    with pytest.raises(NotFoundError):
        await NotificationEmitter(index, []).mark_read("notif-nope")


def test_build_channels_from_settings() -> None:
    settings = Settings(notification_webhooks="http://a.test/x, http://b.test/y", notification_email=None)

    names = [c.name for c in build_channels(settings)]

    assert names == ["console", "webhook:http://a.test/x", "webhook:http://b.test/y"]


@pytest.mark.asyncio
async def test_email_channel_sends_through_sendgrid(index: InMemoryIndex) -> None:
    sent: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(202)

    provider = SendGridProvider("sg-key", "noreply@acme.io", "CDM", transport=httpx.MockTransport(handler))
    emitter = NotificationEmitter(index, [EmailChannel(provider, "ops@acme.io")])

    delivery = await emitter.emit(NotificationType.SYNC_FAILED, "Contact Sync Failed", "boom", {"contactId": "c1"})

    assert delivery.success
    payload = json.loads(sent[0].content)
    assert sent[0].headers["Authorization"] == "Bearer sg-key"
    assert payload["personalizations"][0]["to"] == [{"email": "ops@acme.io"}]
    assert payload["personalizations"][0]["subject"] == "[sync_failed] Contact Sync Failed"
    assert payload["content"][0]["value"] == "boom\ncontactId: c1"


@pytest.mark.asyncio
async def test_email_channel_failure_is_a_channel_result(index: InMemoryIndex) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="bad key")

    provider = SendGridProvider("sg-key", "noreply@acme.io", transport=httpx.MockTransport(handler))

    result = await EmailChannel(provider, "ops@acme.io").deliver({"type": "system_alert", "title": "t", "message": "m"})

    assert result.ok is False
    assert result.to_dict() == {"channel": "email", "status": "failed", "error": "Email service returned an error."}
