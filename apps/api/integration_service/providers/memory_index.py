"""In-process RecordIndex for local development and tests.

Search is an approximation of the OpenSearch query: weighted case-insensitive
token matching over the same fields, same filters, same tie-break.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any

from integration_service.providers.index import IndexServiceError, RecordIndex, total_pages
from integration_service.services.reference_data import seed_rows, sort_reference_rows

logger = logging.getLogger(__name__)

_FIELD_WEIGHTS = {"fullName": 3.0, "emailAddress": 2.0, "company": 2.0, "jobTitle": 1.0, "department": 1.0}
_FILTER_FIELDS = ("company", "department", "country", "isActive")


def _score(document: dict[str, Any], terms: list[str]) -> float:
    score = 0.0
    for field, weight in _FIELD_WEIGHTS.items():
        value = str(document.get(field) or "").lower()
        if not value:
            continue
        score += weight * sum(1 for term in terms if term in value)
    return score


class InMemoryIndex(RecordIndex):
    def __init__(self):
        self.records: dict[str, dict[str, Any]] = {}
        self.reference: list[dict[str, Any]] = []
        self.notifications: dict[str, dict[str, Any]] = {}
        self._reference_ready = False

    async def bootstrap(self) -> None:
        self.reference = []
        self._reference_ready = False
        await self.ensure_collections()

    async def ensure_collections(self) -> None:
        if not self._reference_ready:
            self.reference = seed_rows()
            self._reference_ready = True
            logger.info("Reference data seeded (%s rows)", len(self.reference))

    async def reset_records(self) -> None:
        self.records.clear()
        logger.info("Records collection reset")

    async def health(self) -> dict[str, Any]:
        return {
            "cluster": {"status": "green", "backend": "memory"},
            "indices": [
                {"index": "contacts", "docs.count": len(self.records)},
                {"index": "reference-data", "docs.count": len(self.reference)},
                {"index": "notifications", "docs.count": len(self.notifications)},
            ],
        }

    # ---- records ----

    async def upsert(self, document: dict[str, Any]) -> dict[str, Any]:
        contact_id = document["contactId"]
        result = "updated" if contact_id in self.records else "created"
        self.records[contact_id] = copy.deepcopy(document)
        return {"_id": contact_id, "result": result}

    async def get(self, contact_id: str) -> dict[str, Any] | None:
        document = self.records.get(contact_id)
        return copy.deepcopy(document) if document is not None else None

    async def update(self, contact_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        if contact_id not in self.records:
            raise IndexServiceError(f"Record {contact_id} not found", status_code=404)
        self.records[contact_id].update(copy.deepcopy(fields))
        self.records[contact_id]["modifiedOn"] = datetime.now(timezone.utc).isoformat()
        return copy.deepcopy(self.records[contact_id])

    async def search(
        self,
        query: str | None = None,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        size: int = 20,
    ) -> dict[str, Any]:
        filters = {k: v for k, v in (filters or {}).items() if k in _FILTER_FIELDS and v is not None}
        terms = [t for t in (query or "").lower().split() if t]
        scored = []
        for document in self.records.values():
            if any(document.get(field) != value for field, value in filters.items()):
                continue
            score = _score(document, terms) if terms else 1.0
            if terms and score == 0:
                continue
            scored.append((score, document))
        scored.sort(key=lambda pair: (-pair[0], pair[1].get("fullName") or ""))
        start = (page - 1) * size
        contacts = [{**copy.deepcopy(d), "_score": s, "_highlights": None} for s, d in scored[start : start + size]]
        total = len(scored)
        return {"total": total, "contacts": contacts, "page": page, "size": size, "totalPages": total_pages(total, size)}

    async def find_one(self, field: str, value: Any) -> dict[str, Any] | None:
        matches = [d for d in self.records.values() if d.get(field) == value]
        if not matches:
            return None
        matches.sort(key=lambda d: d.get("modifiedOn") or "", reverse=True)
        return copy.deepcopy(matches[0])

    # ---- reference data ----

    async def reference_data(self, type_: str, category: str | None = None) -> list[dict[str, Any]]:
        rows = [
            r
            for r in self.reference
            if r.get("type") == type_ and r.get("isActive") and (category is None or r.get("category") == category)
        ]
        return copy.deepcopy(sort_reference_rows(rows))

    # ---- notifications ----

    async def put_notification(self, notification: dict[str, Any]) -> None:
        self.notifications[notification["id"]] = copy.deepcopy(notification)

    async def update_notification(self, notification_id: str, fields: dict[str, Any]) -> None:
        if notification_id not in self.notifications:
            raise IndexServiceError(f"Notification {notification_id} not found", status_code=404)
        self.notifications[notification_id].update(copy.deepcopy(fields))

    async def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        notification = self.notifications.get(notification_id)
        return copy.deepcopy(notification) if notification is not None else None

    async def list_notifications(self, limit: int = 50, type_: str | None = None) -> list[dict[str, Any]]:
        items = [n for n in self.notifications.values() if type_ is None or n.get("type") == type_]
        items.sort(key=lambda n: n.get("timestamp") or "", reverse=True)
        return copy.deepcopy(items[:limit])

    async def all_notifications(self) -> list[dict[str, Any]]:
        return copy.deepcopy(list(self.notifications.values()))
