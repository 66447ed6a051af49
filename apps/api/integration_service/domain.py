"""
Domain types for the contact submission pipeline.
Single source of truth for the canonical (CDM) contact record, pipeline states
and notification vocabulary.
"""

import os
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

# -----------------------------------------------------------------------------
# 1. Enums
# -----------------------------------------------------------------------------


class SyncStatus(str, Enum):
    """Pipeline state stored on the indexed record."""
    PENDING_REVIEW = "pending_review"
    SYNCED = "synced"
    FAILED = "failed"


class SyncType(str, Enum):
    WEBHOOK = "webhook"
    MANUAL = "manual"
    AUTOMATION = "automation"


class PipelinePhase(str, Enum):
    RECEIVED = "received"
    COMMITTED = "committed"
    INDEXED = "indexed"
    AWAITING_MERGE = "awaiting_merge"
    PROPAGATED = "propagated"
    NOTIFIED = "notified"
    FAILED = "failed"


class NotificationType(str, Enum):
    CONTACT_SYNCED = "contact_synced"
    SYNC_FAILED = "sync_failed"
    REVIEW_REQUESTED = "review_requested"
    REVIEW_UPDATED = "review_updated"
    SYSTEM_ALERT = "system_alert"
    REPOSITORY_DELETED = "repository_deleted"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


ContactMethod = Literal["email", "phone", "mail"]

# -----------------------------------------------------------------------------
# 2. Canonical record
# -----------------------------------------------------------------------------

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
Text255 = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]
Text100 = Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]
Text20 = Annotated[str, StringConstraints(strip_whitespace=True, max_length=20)]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, max_length=50, pattern=r"^\+?[0-9\s()-]+$")]
Notes = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]
# used verbatim in branch names, repository paths and index document urls
ContactId = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True,
        pattern=r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$",
    ),
]

_OPTIONAL_TEXT_FIELDS = (
    "phone_number",
    "company",
    "address_line1",
    "address_line2",
    "city",
    "state_province",
    "postal_code",
    "country",
    "job_title",
    "department",
    "notes",
)


class Record(BaseModel):
    """CDM contact. camelCase on the wire, in committed files and in the index."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    contact_id: ContactId
    full_name: Name
    email_address: EmailStr
    phone_number: Optional[Phone] = None
    company: Optional[Text255] = None
    address_line1: Optional[Text255] = None
    address_line2: Optional[Text255] = None
    city: Optional[Text100] = None
    state_province: Optional[Text100] = None
    postal_code: Optional[Text20] = None
    country: Optional[Text100] = None
    job_title: Optional[Text255] = None
    department: Optional[Text255] = None
    preferred_contact_method: ContactMethod = "email"
    is_active: bool = True
    notes: Optional[Notes] = None
    tags: list[str] = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    created_on: datetime
    modified_on: datetime
    created_by: str = "system"
    modified_by: str = "system"

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("preferred_contact_method", mode="before")
    @classmethod
    def _default_contact_method(cls, value: Any) -> Any:
        return value or "email"

    @field_validator("is_active", mode="before")
    @classmethod
    def _default_active(cls, value: Any) -> Any:
        return True if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return value

    @field_validator("custom_fields", mode="before")
    @classmethod
    def _default_custom_fields(cls, value: Any) -> Any:
        return value or {}

    @field_validator("created_on", "modified_on")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_document(self) -> dict[str, Any]:
        """JSON-safe camelCase dict used for the committed file and the index."""
        return self.model_dump(mode="json", by_alias=True)

    @property
    def short_id(self) -> str:
        return self.contact_id[:8]


def split_full_name(full_name: str) -> tuple[str, str]:
    """First whitespace token is the first name; the rest is the last name."""
    parts = (full_name or "").strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


# -----------------------------------------------------------------------------
# 3. CDM entity description (committed next to each record)
# -----------------------------------------------------------------------------

CDM_ENTITY_NAME = "Contact"
CDM_SCHEMA_VERSION = os.getenv("CDM_SCHEMA_VERSION", "1.0")
CDM_NAMESPACE = os.getenv("CDM_NAMESPACE", "com.example.cdm")

CDM_REQUIRED_ATTRIBUTES = ("contactId", "fullName", "emailAddress", "createdOn", "modifiedOn")


def cdm_entity_metadata() -> dict[str, Any]:
    attributes = []
    for name, field in Record.model_fields.items():
        alias = field.alias or name
        attributes.append({"name": alias, "isRequired": alias in CDM_REQUIRED_ATTRIBUTES})
    return {
        "entityName": CDM_ENTITY_NAME,
        "entityDescription": "Contact entity following Microsoft CDM standard",
        "version": CDM_SCHEMA_VERSION,
        "namespace": CDM_NAMESPACE,
        "attributes": attributes,
    }
