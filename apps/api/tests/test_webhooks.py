"""Tests for signed VC webhook intake, end to end through the app."""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from fakes import WEBHOOK_SECRET, FakeGitea, FakeMoqui
from integration_service.core.errors import SignatureError
from integration_service.core.signature import compute_signature, verify_signature
from integration_service.providers.memory_index import InMemoryIndex


def _post_event(client: TestClient, payload: dict, *, delivery: str | None = None, secret: str = WEBHOOK_SECRET):
    raw = json.dumps(payload).encode()
    headers = {
        "Content-Type": "application/json",
        "X-Gitea-Event": "pull_request",
        "X-Gitea-Signature": compute_signature(secret, raw),
    }
    if delivery:
        headers["X-Gitea-Delivery"] = delivery
    return client.post("/webhooks/vc", content=raw, headers=headers)


def _merged(pull_request: dict) -> dict:
    return {"action": "closed", "pull_request": {**pull_request, "merged": True}, "repository": {"name": "cdm-data"}}


def test_verify_signature_accepts_matching_hmac() -> None:
    payload = b'{"action":"opened"}'

    verify_signature("s3cret", payload, compute_signature("s3cret", payload))
    verify_signature("s3cret", payload, compute_signature("s3cret", payload).upper())


@pytest.mark.parametrize("signature", [None, "", "deadbeef"])
def test_verify_signature_rejects(signature) -> None:
    with pytest.raises(SignatureError):
        verify_signature("s3cret", b"{}", signature)


def test_signature_depends_on_body_and_secret() -> None:
    assert compute_signature("a", b"x") != compute_signature("b", b"x")
    assert compute_signature("a", b"x") != compute_signature("a", b"y")


def test_merge_webhook_syncs_submitted_contact(
    client: TestClient, gitea_host: FakeGitea, moqui_host: FakeMoqui, index: InMemoryIndex, contact_form: dict
) -> None:
    contact_id = client.post("/submissions", json=contact_form).json()["data"]["contactId"]
    assert index.records[contact_id]["syncStatus"] == "pending_review"

    response = _post_event(client, _merged(gitea_host.pulls[1]), delivery="d-1")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["handled"] == "pull_request_merged"
    assert body["outcome"] == "synced"
    assert body["contactId"] == contact_id
    assert body["webhookId"].startswith("webhook-")
    assert index.records[contact_id]["syncStatus"] == "synced"
    assert index.records[contact_id]["remoteId"] == "P101"
    assert "contact_synced" in {n["type"] for n in index.notifications.values()}


def test_bad_signature_is_rejected_without_side_effects(
    client: TestClient, gitea_host: FakeGitea, moqui_host: FakeMoqui, index: InMemoryIndex, contact_form: dict
) -> None:
    contact_id = client.post("/submissions", json=contact_form).json()["data"]["contactId"]

    response = _post_event(client, _merged(gitea_host.pulls[1]), secret="wrong-secret")

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"
    assert index.records[contact_id]["syncStatus"] == "pending_review"
    assert moqui_host.calls == []
    assert index.notifications == {}


def test_missing_signature_is_rejected(client: TestClient) -> None:
    response = client.post("/webhooks/vc", json={"action": "opened"})

    assert response.status_code == 401


def test_invalid_json_is_rejected(client: TestClient) -> None:
    raw = b"not json"
    response = client.post(
        "/webhooks/vc", content=raw, headers={"X-Gitea-Signature": compute_signature(WEBHOOK_SECRET, raw)}
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid webhook payload"


def test_duplicate_delivery_is_acknowledged_once(
    client: TestClient, gitea_host: FakeGitea, moqui_host: FakeMoqui, contact_form: dict
) -> None:
    client.post("/submissions", json=contact_form)
    event = _merged(gitea_host.pulls[1])

    first = _post_event(client, event, delivery="d-42")
    second = _post_event(client, event, delivery="d-42")

    assert first.json()["outcome"] == "synced"
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert len(moqui_host.calls_to(r"^/persons$")) == 1


def test_concurrent_duplicate_delivery_is_acknowledged_not_dispatched(
    client: TestClient, gitea_host: FakeGitea, moqui_host: FakeMoqui, contact_form: dict, monkeypatch
) -> None:
    async def not_seen_yet(db, delivery_id):
        return None

    # both requests pass the lookup before either has committed its row
    monkeypatch.setattr("integration_service.routers.webhooks.get_webhook_delivery", not_seen_yet)
    client.post("/submissions", json=contact_form)
    event = _merged(gitea_host.pulls[1])

    first = _post_event(client, event, delivery="d-race")
    second = _post_event(client, event, delivery="d-race")

    assert first.json()["outcome"] == "synced"
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert len(moqui_host.calls_to(r"^/persons$")) == 1


def test_redelivery_without_delivery_id_is_still_idempotent(
    client: TestClient, gitea_host: FakeGitea, moqui_host: FakeMoqui, contact_form: dict
) -> None:
    client.post("/submissions", json=contact_form)
    event = _merged(gitea_host.pulls[1])

    _post_event(client, event)
    second = _post_event(client, event)

    assert second.json()["outcome"] == "already_synced"
    assert len(moqui_host.calls_to(r"^/persons$")) == 1


def test_failed_propagation_is_acknowledged(
    client: TestClient, gitea_host: FakeGitea, moqui_host: FakeMoqui, index: InMemoryIndex, contact_form: dict
) -> None:
    contact_id = client.post("/submissions", json=contact_form).json()["data"]["contactId"]
    moqui_host.fail(r"^/persons$", 0)

    response = _post_event(client, _merged(gitea_host.pulls[1]), delivery="d-7")

    assert response.status_code == 200
    assert response.json()["outcome"] == "failed"
    assert index.records[contact_id]["syncStatus"] == "failed"
    assert "sync_failed" in {n["type"] for n in index.notifications.values()}


def test_unhandled_action_is_ignored(client: TestClient) -> None:
    response = _post_event(client, {"action": "reopened", "pull_request": {"number": 1}})

    assert response.status_code == 200
    assert response.json()["handled"] == "ignored"
