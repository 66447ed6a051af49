"""Tests for the in-memory and OpenSearch record indexes."""

from __future__ import annotations

import json

import httpx
import pytest

from integration_service.providers.index import IndexServiceError, total_pages
from integration_service.providers.memory_index import InMemoryIndex
from integration_service.providers.opensearch import OpenSearchIndex, build_search_body, doc_id_segment


def _doc(contact_id: str, full_name: str, **fields) -> dict:
    return {
        "contactId": contact_id,
        "fullName": full_name,
        "emailAddress": f"{contact_id}@acme.io",
        "isActive": True,
        "modifiedOn": "2026-10-18T09:00:00+00:00",
        **fields,
    }


def test_total_pages() -> None:
    assert total_pages(0, 20) == 0
    assert total_pages(41, 20) == 3
    assert total_pages(5, 0) == 0


# ---- in-memory ----


@pytest.mark.asyncio
async def test_memory_upsert_get_update(index: InMemoryIndex) -> None:
    assert (await index.upsert(_doc("c1", "Jane Doe")))["result"] == "created"
    assert (await index.upsert(_doc("c1", "Jane Doe")))["result"] == "updated"

    updated = await index.update("c1", {"syncStatus": "synced", "remoteId": "P1"})

    assert updated["syncStatus"] == "synced"
    assert updated["fullName"] == "Jane Doe"
    assert updated["modifiedOn"] != "2026-10-18T09:00:00+00:00"
    assert (await index.get("c1"))["remoteId"] == "P1"
    assert await index.get("missing") is None


@pytest.mark.asyncio
async def test_memory_update_of_missing_record_raises(index: InMemoryIndex) -> None:
    with pytest.raises(IndexServiceError) as exc_info:
        await index.update("missing", {"syncStatus": "synced"})

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_memory_returns_copies(index: InMemoryIndex) -> None:
    await index.upsert(_doc("c1", "Jane Doe"))

    fetched = await index.get("c1")
    fetched["fullName"] = "Mutated"

    assert (await index.get("c1"))["fullName"] == "Jane Doe"


@pytest.mark.asyncio
async def test_memory_search_ranks_filters_and_paginates(index: InMemoryIndex) -> None:
    await index.upsert(_doc("c1", "Jane Doe", company="Acme", department="IT"))
    await index.upsert(_doc("c2", "John Acme", company="Initech", department="IT"))
    await index.upsert(_doc("c3", "Alice Smith", company="Acme", department="HR", isActive=False))

    ranked = await index.search("acme")
    assert [c["contactId"] for c in ranked["contacts"]] == ["c2", "c3", "c1"]
    assert ranked["total"] == 3

    filtered = await index.search(None, {"department": "IT", "isActive": True})
    assert [c["fullName"] for c in filtered["contacts"]] == ["Jane Doe", "John Acme"]

    page = await index.search(None, None, page=2, size=2)
    assert page["total"] == 3
    assert page["totalPages"] == 2
    assert [c["contactId"] for c in page["contacts"]] == ["c2"]

    assert (await index.search("nobody"))["total"] == 0


@pytest.mark.asyncio
async def test_memory_find_one(index: InMemoryIndex) -> None:
    await index.upsert(_doc("c1", "Jane Doe", pullRequestId=7))

    assert (await index.find_one("pullRequestId", 7))["contactId"] == "c1"
    assert await index.find_one("pullRequestId", 8) is None


@pytest.mark.asyncio
async def test_memory_reference_data_is_ordered(index: InMemoryIndex) -> None:
    states = await index.reference_data("state", "geography")

    assert states[0]["sortOrder"] == 1
    assert [r["sortOrder"] for r in states] == sorted(r["sortOrder"] for r in states)
    # same sortOrder across countries falls back to the label
    first_two = [r["label"] for r in states[:2]]
    assert first_two == sorted(first_two)


@pytest.mark.asyncio
async def test_memory_form_dropdowns(index: InMemoryIndex) -> None:
    dropdowns = await index.form_dropdowns()

    assert set(dropdowns) == {"countries", "states", "contactMethods", "jobTitles", "departments", "industries"}
    assert dropdowns["countries"][0] == {"value": "MA", "label": "Morocco"}
    assert {"value": "MA-04", "label": "Région de Rabat – Salé – Kénitra", "country": "MA"} in dropdowns["states"]


@pytest.mark.asyncio
async def test_memory_reset_keeps_reference_data(index: InMemoryIndex) -> None:
    await index.upsert(_doc("c1", "Jane Doe"))

    await index.reset_records()
    await index.ensure_collections()

    assert await index.get("c1") is None
    assert await index.reference_data("country")


# ---- OpenSearch ----


class FakeCluster:
    """Just enough of the OpenSearch REST API to exercise OpenSearchIndex."""

    def __init__(self, health_statuses: list[str] | None = None):
        self.health_statuses = list(health_statuses or ["green"])
        self.indices: set[str] = {"contacts", "reference-data"}
        self.requests: list[httpx.Request] = []
        self.bulk_lines: list[dict] = []
        self.search_bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/_cluster/health":
            status = self.health_statuses.pop(0) if len(self.health_statuses) > 1 else self.health_statuses[0]
            return httpx.Response(200, json={"status": status})
        if path == "/_cat/indices":
            return httpx.Response(200, json=[{"index": i, "docs.count": "0"} for i in sorted(self.indices)] + [{"index": "other"}])
        if path == "/_bulk":
            self.bulk_lines = [json.loads(line) for line in request.content.decode().splitlines() if line]
            return httpx.Response(200, json={"errors": False, "items": []})
        name = path.strip("/").split("/")[0]
        if request.method == "HEAD":
            return httpx.Response(200 if name in self.indices else 404)
        if request.method == "DELETE":
            self.indices.discard(name)
            return httpx.Response(200, json={"acknowledged": True})
        if request.method == "PUT" and "/" not in path.strip("/"):
            self.indices.add(name)
            return httpx.Response(200, json={"acknowledged": True})
        if path.endswith("/_search"):
            self.search_bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={"hits": {"total": {"value": 1}, "hits": [{"_source": {"contactId": "c1"}, "_score": 1.5}]}},
            )
        if "/_doc/" in path and request.method == "GET":
            return httpx.Response(404, json={"found": False})
        return httpx.Response(200, json={"result": "created"})


def _opensearch(cluster: FakeCluster, **kwargs) -> OpenSearchIndex:
    return OpenSearchIndex("http://opensearch.test:9200", bootstrap_delay=0, transport=httpx.MockTransport(cluster), **kwargs)


def test_search_body_with_query_and_filters() -> None:
    body = build_search_body(" jane ", {"company": "Acme", "isActive": False, "country": None}, page=3, size=10)

    assert body["query"]["bool"]["must"][0]["multi_match"]["query"] == "jane"
    assert body["query"]["bool"]["filter"] == [{"term": {"company.keyword": "Acme"}}, {"term": {"isActive": False}}]
    assert body["from"] == 20
    assert body["size"] == 10
    assert body["sort"][1] == {"fullName.keyword": {"order": "asc"}}


def test_doc_id_segment_escapes_path_characters() -> None:
    assert doc_id_segment("c0ffee00-1111-2222-3333-444455556666") == "c0ffee00-1111-2222-3333-444455556666"
    assert doc_id_segment("../../_cluster") == "%2E%2E%2F%2E%2E%2F_cluster"


def test_search_body_without_query_matches_all() -> None:
    assert build_search_body(None, None, 1, 20)["query"]["bool"]["must"] == [{"match_all": {}}]


@pytest.mark.asyncio
async def test_opensearch_bootstrap_waits_and_rebuilds_reference_data() -> None:
    cluster = FakeCluster(["red", "yellow"])

    await _opensearch(cluster).bootstrap()

    assert cluster.indices == {"contacts", "reference-data", "notifications"}
    calls = [(r.method, r.url.path) for r in cluster.requests]
    assert calls.count(("GET", "/_cluster/health")) == 2
    assert ("DELETE", "/reference-data") in calls
    assert ("PUT", "/reference-data") in calls
    assert ("PUT", "/contacts") not in calls
    assert cluster.bulk_lines[0] == {"index": {"_index": "reference-data"}}
    assert cluster.bulk_lines[1]["type"] == "country"


@pytest.mark.asyncio
async def test_opensearch_bootstrap_gives_up() -> None:
    with pytest.raises(IndexServiceError, match="after 2 attempts"):
        await _opensearch(FakeCluster(["red"]), bootstrap_attempts=2).bootstrap()


@pytest.mark.asyncio
async def test_opensearch_search_and_get() -> None:
    cluster = FakeCluster()
    index = _opensearch(cluster)

    results = await index.search("jane", {"department": "IT"}, page=1, size=5)

    assert results == {
        "total": 1,
        "contacts": [{"contactId": "c1", "_score": 1.5, "_highlights": None}],
        "page": 1,
        "size": 5,
        "totalPages": 1,
    }
    assert cluster.search_bodies[0]["query"]["bool"]["filter"] == [{"term": {"department": "IT"}}]
    assert await index.get("missing") is None


@pytest.mark.asyncio
async def test_opensearch_health_lists_own_indices() -> None:
    health = await _opensearch(FakeCluster()).health()

    assert health["cluster"] == {"status": "green"}
    assert [i["index"] for i in health["indices"]] == ["contacts", "reference-data"]


@pytest.mark.asyncio
async def test_opensearch_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    index = OpenSearchIndex("http://opensearch.test:9200", transport=httpx.MockTransport(handler))

    with pytest.raises(IndexServiceError, match="unavailable"):
        await index.upsert(_doc("c1", "Jane Doe"))
