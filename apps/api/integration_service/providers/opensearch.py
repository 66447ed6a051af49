import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from integration_service.core.constants import MAX_RESULT_WINDOW
from integration_service.providers.index import IndexServiceError, RecordIndex, total_pages
from integration_service.services.reference_data import seed_rows

logger = logging.getLogger(__name__)

_KEYWORD = {"type": "keyword"}
_TEXT_WITH_KEYWORD = {"type": "text", "fields": {"keyword": _KEYWORD}}

CONTACTS_MAPPING: dict[str, Any] = {
    "properties": {
        "contactId": _KEYWORD,
        "fullName": _TEXT_WITH_KEYWORD,
        "emailAddress": _KEYWORD,
        "phoneNumber": _KEYWORD,
        "company": _TEXT_WITH_KEYWORD,
        "city": _KEYWORD,
        "stateProvince": _KEYWORD,
        "country": _KEYWORD,
        "jobTitle": _KEYWORD,
        "department": _KEYWORD,
        "preferredContactMethod": _KEYWORD,
        "isActive": {"type": "boolean"},
        "tags": _KEYWORD,
        "createdOn": {"type": "date"},
        "modifiedOn": {"type": "date"},
        "createdBy": _KEYWORD,
        "modifiedBy": _KEYWORD,
        "syncStatus": _KEYWORD,
        "gitBranch": _KEYWORD,
        "pullRequestId": {"type": "long"},
        "submissionId": _KEYWORD,
        "remoteId": _KEYWORD,
        "lastSyncType": _KEYWORD,
    }
}

REFERENCE_MAPPING: dict[str, Any] = {
    "properties": {
        "type": _KEYWORD,
        "category": _KEYWORD,
        "value": _KEYWORD,
        "label": {
            "type": "text",
            "fields": {"keyword": _KEYWORD, "sort": {"type": "text", "fielddata": True}},
        },
        "description": {"type": "text"},
        "sortOrder": {"type": "integer"},
        "isActive": {"type": "boolean"},
        "metadata": {"type": "object"},
        "createdAt": {"type": "date"},
        "updatedAt": {"type": "date"},
    }
}

NOTIFICATIONS_MAPPING: dict[str, Any] = {
    "properties": {
        "id": _KEYWORD,
        "type": _KEYWORD,
        "title": _TEXT_WITH_KEYWORD,
        "message": {"type": "text"},
        "metadata": {"type": "object"},
        "timestamp": {"type": "date"},
        "status": _KEYWORD,
        "read": {"type": "boolean"},
        "readAt": {"type": "date"},
        "results": {"type": "object", "enabled": False},
        "error": {"type": "text"},
    }
}

SEARCH_FIELDS = ["fullName^3", "emailAddress^2", "company^2", "jobTitle", "department"]

# filter name -> indexed field
_FILTER_FIELDS = {
    "company": "company.keyword",
    "department": "department",
    "country": "country",
    "isActive": "isActive",
}


def doc_id_segment(contact_id: str) -> str:
    """Single URL path segment for a document id; separators and dot segments are escaped."""
    return quote(str(contact_id), safe="").replace(".", "%2E")


def build_search_body(query: str | None, filters: dict[str, Any] | None, page: int, size: int) -> dict[str, Any]:
    must: list[dict[str, Any]] = []
    if query and query.strip():
        must.append(
            {
                "multi_match": {
                    "query": query.strip(),
                    "fields": SEARCH_FIELDS,
                    "type": "best_fields",
                    "fuzziness": "AUTO",
                }
            }
        )
    else:
        must.append({"match_all": {}})
    filter_clauses = [
        {"term": {field: (filters or {})[name]}}
        for name, field in _FILTER_FIELDS.items()
        if (filters or {}).get(name) is not None
    ]
    return {
        "query": {"bool": {"must": must, "filter": filter_clauses}},
        "from": (page - 1) * size,
        "size": size,
        "sort": [{"_score": {"order": "desc"}}, {"fullName.keyword": {"order": "asc"}}],
        "highlight": {"fields": {"fullName": {}, "emailAddress": {}, "company": {}}},
    }


class OpenSearchIndex(RecordIndex):
    """RecordIndex over the OpenSearch REST API."""

    def __init__(
        self,
        base_url: str,
        username: str | None = None,
        password: str | None = None,
        verify_tls: bool = False,
        timeout: float = 30.0,
        contacts_index: str = "contacts",
        reference_index: str = "reference-data",
        notifications_index: str = "notifications",
        bootstrap_attempts: int = 5,
        bootstrap_delay: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = httpx.BasicAuth(username, password or "") if username else None
        self.verify_tls = verify_tls
        self.timeout = timeout
        self.contacts_index = contacts_index
        self.reference_index = reference_index
        self.notifications_index = notifications_index
        self.bootstrap_attempts = max(1, bootstrap_attempts)
        self.bootstrap_delay = bootstrap_delay
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: str | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        allow_missing: bool = False,
    ) -> httpx.Response | None:
        """Send one request; with `allow_missing`, a 404 returns None instead of raising."""
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=self.auth,
                verify=self.verify_tls,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                r = await client.request(method, path, json=json_body, content=content, params=params, headers=headers)
                if allow_missing and r.status_code == 404:
                    return None
                r.raise_for_status()
                return r
        except httpx.HTTPStatusError as e:
            body = (getattr(e.response, "text", None) or "")[:500]
            logger.warning("OpenSearch error %s on %s %s: %s", e.response.status_code, method, path, body)
            raise IndexServiceError(
                f"OpenSearch returned {e.response.status_code} for {method} {path}",
                status_code=e.response.status_code,
                body=body,
            ) from e
        except httpx.RequestError as e:
            raise IndexServiceError(f"OpenSearch unavailable ({type(e).__name__})") from e

    # ---- lifecycle ----

    async def _cluster_status(self) -> str:
        r = await self._request("GET", "/_cluster/health")
        return r.json().get("status", "red")

    async def _exists(self, index: str) -> bool:
        r = await self._request("HEAD", f"/{index}", allow_missing=True)
        return r is not None

    async def _drop(self, index: str) -> None:
        if await self._exists(index):
            await self._request("DELETE", f"/{index}")
            logger.info("Deleted index: %s", index)

    async def bootstrap(self) -> None:
        for attempt in range(1, self.bootstrap_attempts + 1):
            try:
                status = await self._cluster_status()
                if status == "red":
                    raise IndexServiceError("Cluster health is red")
                logger.info("Connected to OpenSearch (cluster status %s)", status)
                break
            except IndexServiceError as e:
                logger.warning(
                    "OpenSearch not ready (attempt %s/%s): %s", attempt, self.bootstrap_attempts, e
                )
                if attempt == self.bootstrap_attempts:
                    raise IndexServiceError(
                        f"Failed to initialize OpenSearch after {self.bootstrap_attempts} attempts"
                    ) from e
                await asyncio.sleep(self.bootstrap_delay)
        await self._drop(self.reference_index)
        await self.ensure_collections()

    async def ensure_collections(self) -> None:
        if not await self._exists(self.contacts_index):
            await self._request("PUT", f"/{self.contacts_index}", json_body={"mappings": CONTACTS_MAPPING})
            logger.info("Created contacts index: %s", self.contacts_index)
        if not await self._exists(self.reference_index):
            await self._request("PUT", f"/{self.reference_index}", json_body={"mappings": REFERENCE_MAPPING})
            logger.info("Created reference data index: %s", self.reference_index)
            await self._seed_reference_data()
        if not await self._exists(self.notifications_index):
            await self._request(
                "PUT", f"/{self.notifications_index}", json_body={"mappings": NOTIFICATIONS_MAPPING}
            )
            logger.info("Created notifications index: %s", self.notifications_index)

    async def _seed_reference_data(self) -> None:
        lines = []
        for row in seed_rows():
            lines.append(json.dumps({"index": {"_index": self.reference_index}}))
            lines.append(json.dumps(row, ensure_ascii=False))
        r = await self._request(
            "POST",
            "/_bulk",
            content="\n".join(lines) + "\n",
            params={"refresh": "true"},
            headers={"Content-Type": "application/x-ndjson"},
        )
        if r.json().get("errors"):
            raise IndexServiceError("Reference data bulk load reported item errors")
        logger.info("Reference data seeded (%s rows)", len(lines) // 2)

    async def reset_records(self) -> None:
        await self._drop(self.contacts_index)

    async def health(self) -> dict[str, Any]:
        cluster_r, indices_r = await asyncio.gather(
            self._request("GET", "/_cluster/health"),
            self._request("GET", "/_cat/indices", params={"format": "json"}),
        )
        ours = {self.contacts_index, self.reference_index, self.notifications_index}
        return {
            "cluster": cluster_r.json(),
            "indices": [i for i in (indices_r.json() or []) if i.get("index") in ours],
        }

    # ---- records ----

    async def upsert(self, document: dict[str, Any]) -> dict[str, Any]:
        contact_id = document["contactId"]
        r = await self._request(
            "PUT",
            f"/{self.contacts_index}/_doc/{doc_id_segment(contact_id)}",
            json_body=document,
            params={"refresh": "wait_for"},
        )
        logger.info("Record indexed: %s", contact_id)
        return r.json()

    async def get(self, contact_id: str) -> dict[str, Any] | None:
        r = await self._request("GET", f"/{self.contacts_index}/_doc/{doc_id_segment(contact_id)}", allow_missing=True)
        if r is None:
            return None
        data = r.json()
        return data.get("_source") if data.get("found", True) else None

    async def update(self, contact_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        doc = {**fields, "modifiedOn": datetime.now(timezone.utc).isoformat()}
        r = await self._request(
            "POST",
            f"/{self.contacts_index}/_update/{doc_id_segment(contact_id)}",
            json_body={"doc": doc},
            params={"refresh": "wait_for", "_source": "true"},
        )
        logger.info("Record updated: %s", contact_id)
        return (r.json().get("get") or {}).get("_source") or doc

    async def search(
        self,
        query: str | None = None,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        size: int = 20,
    ) -> dict[str, Any]:
        body = build_search_body(query, filters, page, size)
        r = await self._request("POST", f"/{self.contacts_index}/_search", json_body=body)
        hits = r.json().get("hits") or {}
        total = (hits.get("total") or {}).get("value", 0)
        contacts = [
            {**hit.get("_source", {}), "_score": hit.get("_score"), "_highlights": hit.get("highlight")}
            for hit in hits.get("hits", [])
        ]
        return {"total": total, "contacts": contacts, "page": page, "size": size, "totalPages": total_pages(total, size)}

    async def find_one(self, field: str, value: Any) -> dict[str, Any] | None:
        body = {"query": {"term": {field: value}}, "size": 1, "sort": [{"modifiedOn": {"order": "desc"}}]}
        r = await self._request("POST", f"/{self.contacts_index}/_search", json_body=body)
        hits = (r.json().get("hits") or {}).get("hits") or []
        return hits[0].get("_source") if hits else None

    # ---- reference data ----

    async def reference_data(self, type_: str, category: str | None = None) -> list[dict[str, Any]]:
        must: list[dict[str, Any]] = [{"term": {"type": type_}}, {"term": {"isActive": True}}]
        if category:
            must.append({"term": {"category": category}})
        body = {
            "query": {"bool": {"must": must}},
            "sort": [{"sortOrder": {"order": "asc"}}, {"label.keyword": {"order": "asc"}}],
            "size": 1000,
        }
        r = await self._request("POST", f"/{self.reference_index}/_search", json_body=body)
        return [hit.get("_source", {}) for hit in (r.json().get("hits") or {}).get("hits", [])]

    # ---- notifications ----

    async def put_notification(self, notification: dict[str, Any]) -> None:
        await self._request(
            "PUT",
            f"/{self.notifications_index}/_doc/{notification['id']}",
            json_body=notification,
            params={"refresh": "wait_for"},
        )

    async def update_notification(self, notification_id: str, fields: dict[str, Any]) -> None:
        await self._request(
            "POST",
            f"/{self.notifications_index}/_update/{notification_id}",
            json_body={"doc": fields},
            params={"refresh": "wait_for"},
        )

    async def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        r = await self._request("GET", f"/{self.notifications_index}/_doc/{notification_id}", allow_missing=True)
        if r is None:
            return None
        data = r.json()
        return data.get("_source") if data.get("found", True) else None

    async def list_notifications(self, limit: int = 50, type_: str | None = None) -> list[dict[str, Any]]:
        query: dict[str, Any] = {"term": {"type": type_}} if type_ else {"match_all": {}}
        body = {"query": query, "sort": [{"timestamp": {"order": "desc"}}], "size": limit}
        r = await self._request("POST", f"/{self.notifications_index}/_search", json_body=body)
        return [hit.get("_source", {}) for hit in (r.json().get("hits") or {}).get("hits", [])]

    async def all_notifications(self) -> list[dict[str, Any]]:
        return await self.list_notifications(limit=MAX_RESULT_WINDOW)
