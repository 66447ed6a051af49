"""HTTP tests for the submission, search, reference, notification and health routes."""

from __future__ import annotations

import re

from fastapi.testclient import TestClient

from fakes import FakeGitea, FakeMoqui
from integration_service.providers.memory_index import InMemoryIndex


def test_submit_contact(client: TestClient, gitea_host: FakeGitea, contact_form: dict) -> None:
    response = client.post("/submissions", json=contact_form, headers={"X-Request-ID": "req-abc"})

    assert response.status_code == 201
    assert response.headers["X-Request-ID"] == "req-abc"
    body = response.json()
    assert body["success"] is True
    assert body["requestId"] == "req-abc"
    data = body["data"]
    assert data["reviewStatus"] == "pending_review"
    assert data["id"] == data["contactId"]
    assert data["versionControl"]["branch"].startswith("contact-")
    assert data["versionControl"]["pullRequestId"] == 1
    assert data["versionControl"]["pullRequestUrl"] == gitea_host.pulls[1]["html_url"]
    assert data["index"] == {"indexed": True, "indexName": "contacts"}
    assert data["phases"] == ["received", "committed", "indexed", "awaiting_merge"]
    assert data["processingTime"].endswith("ms")
    assert len(gitea_host.pulls) == 1


def test_submitted_contact_is_pending_review_and_searchable(client: TestClient) -> None:
    response = client.post("/submissions", json={"fullName": "Jane Roe", "emailAddress": "jane@x.com", "company": "Acme"})

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["reviewStatus"] == "pending_review"
    assert re.fullmatch(r"contact-\S+", data["versionControl"]["branch"])
    assert data["index"]["indexed"] is True

    found = client.get("/submissions", params={"q": "jane@x.com"}).json()["data"]
    assert [c["contactId"] for c in found["contacts"]] == [data["id"]]


def test_submission_source_and_submitter_are_recorded(
    client: TestClient, gitea_host: FakeGitea, index: InMemoryIndex, contact_form: dict
) -> None:
    response = client.post("/submissions", json={**contact_form, "source": "landing-page", "submittedBy": "web"})

    contact_id = response.json()["data"]["contactId"]
    assert index.records[contact_id]["createdBy"] == "web"
    assert "**Source:** landing-page" in gitea_host.pulls[1]["body"]


def test_invalid_submission_lists_every_field(client: TestClient, gitea_host: FakeGitea) -> None:
    response = client.post("/submissions", json={"emailAddress": "nope", "phoneNumber": "letters"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert {d["field"] for d in body["details"]} == {"fullName", "emailAddress", "phoneNumber"}
    assert body["requestId"]
    assert gitea_host.calls == []


def test_contact_id_outside_uuid_format_never_reaches_gitea(
    client: TestClient, gitea_host: FakeGitea, index: InMemoryIndex, contact_form: dict
) -> None:
    response = client.post("/submissions", json={**contact_form, "contactId": "../../metadata/evil"})

    assert response.status_code == 400
    assert [d["field"] for d in response.json()["details"]] == ["contactId"]
    assert gitea_host.calls == []
    assert index.records == {}


def test_commit_failure_returns_500_without_remote_body(
    client: TestClient, gitea_host: FakeGitea, index: InMemoryIndex, contact_form: dict
) -> None:
    gitea_host.fail("POST", r"/pulls$", 500)

    response = client.post("/submissions", json=contact_form)

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal server error"
    assert body["message"] == "Failed to commit record to version control"
    assert "injected failure" not in response.text
    assert index.records == {}


def test_idempotency_key_replays_first_response(client: TestClient, gitea_host: FakeGitea, contact_form: dict) -> None:
    headers = {"Idempotency-Key": "form-123"}

    first = client.post("/submissions", json=contact_form, headers=headers)
    second = client.post("/submissions", json=contact_form, headers=headers)

    assert first.status_code == second.status_code == 201
    assert second.json() == first.json()
    assert len(gitea_host.pulls) == 1


def test_get_contact(client: TestClient, contact_form: dict) -> None:
    contact_id = client.post("/submissions", json=contact_form).json()["data"]["contactId"]

    response = client.get(f"/submissions/{contact_id}")

    assert response.status_code == 200
    assert response.json()["data"]["emailAddress"] == "jane.doe@acme.io"


def test_get_missing_contact(client: TestClient) -> None:
    response = client.get("/submissions/missing")

    assert response.status_code == 404
    assert response.json()["error"] == "Not found"


def test_search(client: TestClient, contact_form: dict) -> None:
    client.post("/submissions", json=contact_form)
    client.post("/submissions", json={**contact_form, "fullName": "John Roe", "emailAddress": "john@initech.io", "company": "Initech"})

    response = client.get("/submissions", params={"q": "acme", "isActive": "true"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 1
    assert data["contacts"][0]["fullName"] == "Jane Doe"
    assert data["totalPages"] == 1


def test_search_rejects_oversized_page(client: TestClient) -> None:
    response = client.get("/submissions", params={"size": 1000})

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_search_rejects_pages_beyond_result_window(client: TestClient) -> None:
    response = client.get("/submissions", params={"page": 5000, "size": 100})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert body["details"][0]["field"] == "page"


def test_search_allows_last_page_inside_result_window(client: TestClient) -> None:
    response = client.get("/submissions", params={"page": 100, "size": 100})

    assert response.status_code == 200
    assert response.json()["data"]["contacts"] == []


def test_resync(client: TestClient, index: InMemoryIndex, contact_form: dict) -> None:
    contact_id = client.post("/submissions", json=contact_form).json()["data"]["contactId"]

    response = client.post(f"/submissions/{contact_id}/resync")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["remoteId"] == "P101"
    assert index.records[contact_id]["syncStatus"] == "synced"


def test_resync_failure_returns_500(
    client: TestClient, moqui_host: FakeMoqui, index: InMemoryIndex, contact_form: dict
) -> None:
    contact_id = client.post("/submissions", json=contact_form).json()["data"]["contactId"]
    moqui_host.fail(r"^/persons$", 500)

    response = client.post(f"/submissions/{contact_id}/resync")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Sync failed"
    assert body["details"][0]["name"] == "person"
    assert index.records[contact_id]["syncStatus"] == "failed"


def test_resync_unknown_contact(client: TestClient) -> None:
    assert client.post("/submissions/missing/resync").status_code == 404


def test_complete_flow(client: TestClient) -> None:
    response = client.post("/submissions/test/complete-flow")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["testId"].startswith("test-")
    assert data["phases"]["merge"]["pullRequestMerged"] is True
    assert data["phases"]["propagation"]["synced"] is True


def test_reference_dropdowns(client: TestClient) -> None:
    response = client.get("/reference")

    assert response.status_code == 200
    assert response.json()["data"]["contactMethods"] == [
        {"value": "email", "label": "Email"},
        {"value": "phone", "label": "Phone"},
        {"value": "mail", "label": "Mail"},
    ]


def test_reference_by_type(client: TestClient) -> None:
    response = client.get("/reference", params={"type": "department"})

    assert [row["value"] for row in response.json()["data"]] == ["IT", "HR", "Finance", "Sales", "Marketing"]


def test_notification_routes(client: TestClient) -> None:
    sent = client.post("/notifications/test", json={"channel": "console"})
    assert sent.status_code == 200
    notification_id = sent.json()["data"]["notificationId"]

    listed = client.get("/notifications", params={"type": "system_alert"}).json()["data"]
    assert [n["id"] for n in listed["notifications"]] == [notification_id]
    assert listed["notifications"][0]["metadata"]["channels"] == "console"

    stats = client.get("/notifications/stats").json()["data"]
    assert stats["total"] == 1
    assert stats["unread"] == 1

    read = client.post(f"/notifications/{notification_id}/read")
    assert read.json()["data"]["read"] is True
    assert client.get("/notifications/stats").json()["data"]["unread"] == 0

    assert client.post("/notifications/notif-missing/read").status_code == 404


def test_unknown_notification_type_is_rejected(client: TestClient) -> None:
    assert client.get("/notifications", params={"type": "bogus"}).status_code == 400


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "OK"
    assert body["services"]["gitea"]["status"] == "healthy"
    assert body["services"]["opensearch"]["status"] == "healthy"


def test_health_reports_unreachable_gitea(client: TestClient, gitea_host: FakeGitea) -> None:
    gitea_host.unreachable = True

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["message"] == "Critical services unhealthy: gitea"


def test_detailed_health_treats_moqui_as_informational(client: TestClient, moqui_host: FakeMoqui) -> None:
    moqui_host.fail(r"^/status$", 0)

    response = client.get("/health/detailed")

    assert response.status_code == 200
    body = response.json()
    assert body["services"]["moqui"]["status"] == "unhealthy"
    assert body["configuration"]["indexBackend"] == "memory"


def test_vc_stats_and_merge(client: TestClient, gitea_host: FakeGitea, contact_form: dict) -> None:
    client.post("/submissions", json=contact_form)

    merged = client.post("/vc/pulls/1/merge")
    stats = client.get("/vc/stats").json()["data"]

    assert merged.status_code == 200
    assert gitea_host.pulls[1]["merged"] is True
    assert stats["pullRequests"]["merged"] == 1


def test_admin_reset_records(client: TestClient, index: InMemoryIndex, contact_form: dict) -> None:
    client.post("/submissions", json=contact_form)

    response = client.post("/admin/reset-records")

    assert response.status_code == 200
    assert index.records == {}
