import asyncio
import logging
import math
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

from integration_service.core import get_settings
from integration_service.core.errors import AdapterError
from integration_service.services.reference_data import DROPDOWN_SOURCES, dropdown_options

logger = logging.getLogger(__name__)


class IndexServiceError(AdapterError):
    """Raised when the search index is unavailable or rejects a request."""

    service = "opensearch"


class IndexConfigError(IndexServiceError):
    """Raised when the configured index backend is unknown."""


def total_pages(total: int, size: int) -> int:
    return math.ceil(total / size) if size else 0


class RecordIndex(ABC):
    """Storage for indexed records, reference data and notifications.

    Records are camelCase documents keyed by contactId. Notifications are keyed
    by their id. All writes are last-writer-wins.
    """

    # ---- lifecycle ----

    @abstractmethod
    async def bootstrap(self) -> None:
        """Wait for the backend, rebuild reference data, create missing collections."""

    @abstractmethod
    async def ensure_collections(self) -> None:
        pass

    @abstractmethod
    async def reset_records(self) -> None:
        """Drop the records collection; it is recreated empty on next ensure_collections()."""

    @abstractmethod
    async def health(self) -> dict[str, Any]:
        pass

    # ---- records ----

    @abstractmethod
    async def upsert(self, document: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def get(self, contact_id: str) -> dict[str, Any] | None:
        pass

    @abstractmethod
    async def update(self, contact_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge `fields` into the stored document and refresh modifiedOn."""

    @abstractmethod
    async def search(
        self,
        query: str | None = None,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        size: int = 20,
    ) -> dict[str, Any]:
        """Returns {total, contacts, page, size, totalPages}."""

    @abstractmethod
    async def find_one(self, field: str, value: Any) -> dict[str, Any] | None:
        """First record whose `field` equals `value` exactly, or None."""

    # ---- reference data ----

    @abstractmethod
    async def reference_data(self, type_: str, category: str | None = None) -> list[dict[str, Any]]:
        """Active rows of a type, sortOrder ascending then label ascending."""

    async def form_dropdowns(self) -> dict[str, list[dict[str, Any]]]:
        keys = list(DROPDOWN_SOURCES)
        results = await asyncio.gather(*(self.reference_data(*DROPDOWN_SOURCES[k]) for k in keys))
        return {key: dropdown_options(key, rows) for key, rows in zip(keys, results)}

    # ---- notifications ----

    @abstractmethod
    async def put_notification(self, notification: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def update_notification(self, notification_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        pass

    @abstractmethod
    async def list_notifications(self, limit: int = 50, type_: str | None = None) -> list[dict[str, Any]]:
        """Newest first."""

    @abstractmethod
    async def all_notifications(self) -> list[dict[str, Any]]:
        pass


@lru_cache
def get_record_index() -> RecordIndex:
    s = get_settings()
    backend = (s.index_backend or "").strip().lower()
    if backend == "memory":
        from integration_service.providers.memory_index import InMemoryIndex

        logger.info("Using in-memory record index")
        return InMemoryIndex()
    if backend == "opensearch":
        from integration_service.providers.opensearch import OpenSearchIndex

        return OpenSearchIndex(
            base_url=s.opensearch_url,
            username=s.opensearch_username,
            password=s.opensearch_password,
            verify_tls=s.opensearch_verify_tls,
            timeout=s.opensearch_timeout,
            contacts_index=s.opensearch_index_contacts,
            reference_index=s.opensearch_index_reference,
            notifications_index=s.opensearch_index_notifications,
            bootstrap_attempts=s.index_bootstrap_attempts,
            bootstrap_delay=s.index_bootstrap_delay_seconds,
        )
    raise IndexConfigError(f"Unknown INDEX_BACKEND: {s.index_backend!r}")
