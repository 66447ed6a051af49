"""Raw form fields → canonical CDM contact record.

Pure functions: no I/O. Alias fields accepted from older form versions are folded
into their canonical names, unknown fields are dropped, and every constraint
violation is reported at once.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from integration_service.core.constants import DEFAULT_ACTOR
from integration_service.core.errors import ValidationError
from integration_service.domain import Record, cdm_entity_metadata

# canonical field -> accepted fallbacks, first non-empty wins
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "emailAddress": ("email",),
    "phoneNumber": ("phone",),
    "company": ("organization",),
    "addressLine1": ("address1",),
    "addressLine2": ("address2",),
    "stateProvince": ("state",),
    "postalCode": ("zipCode",),
    "jobTitle": ("title",),
    "notes": ("comments",),
}

_PASSTHROUGH_FIELDS = ("city", "country", "department", "tags", "customFields", "preferredContactMethod", "isActive")


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _full_name(raw: Mapping[str, Any]) -> Any:
    if raw.get("fullName"):
        return raw["fullName"]
    joined = f"{raw.get('firstName') or ''} {raw.get('lastName') or ''}".strip()
    return joined or raw.get("fullName")


def _error_details(error: PydanticValidationError) -> list[dict[str, str]]:
    details = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"]) or "record"
        details.append({"field": field, "message": f'"{field}" {err["msg"]}'})
    return details


def transform_record(
    raw: Mapping[str, Any],
    actor: str | None = None,
    *,
    now: datetime | None = None,
) -> Record:
    """Map raw submitted fields to a validated Record.

    `contactId` is kept when supplied and generated (UUID4) otherwise; it is never
    regenerated for an existing record. `now` pins the clock for callers that need
    reproducible output.
    """
    actor = actor or DEFAULT_ACTOR
    now = now or datetime.now(timezone.utc)

    data: dict[str, Any] = {
        "contactId": raw.get("contactId") or str(uuid.uuid4()),
        "fullName": _full_name(raw),
    }
    for canonical, fallbacks in _FIELD_ALIASES.items():
        data[canonical] = _first_present(raw, canonical, *fallbacks)
    for name in _PASSTHROUGH_FIELDS:
        data[name] = raw.get(name)
    data["createdOn"] = raw.get("createdOn") or now
    data["modifiedOn"] = now
    data["createdBy"] = raw.get("createdBy") or actor
    data["modifiedBy"] = actor

    try:
        return Record.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(_error_details(e), message="CDM contact validation failed") from e


def build_cdm_document(record: Record, **metadata: Any) -> dict[str, Any]:
    """CDM file structure: entity metadata plus the single contact entity."""
    return {
        "metadata": {**cdm_entity_metadata(), "recordCount": 1, **metadata},
        "entities": {"Contact": [record.to_document()]},
    }
