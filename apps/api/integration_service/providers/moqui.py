import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Awaitable

import httpx

from integration_service.core import get_settings
from integration_service.core.errors import AdapterError, PipelineStage, safe_error
from integration_service.domain import split_full_name

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "212"
DEFAULT_AREA_CODE = "212"

COUNTRY_GEO_IDS = {"US": "USA", "FR": "FRA", "MA": "MAR"}

STATE_GEO_IDS: dict[str, dict[str, str]] = {
    "US": {"CA": "USA_CA", "NY": "USA_NY", "TX": "USA_TX", "FL": "USA_FL"},
    "MA": {
        "01": "MAR_TNG",
        "02": "MAR_OUJ",
        "03": "MAR_FES",
        "04": "MAR_RBA",
        "05": "MAR_BES",
        "06": "MAR_CAS",
        "07": "MAR_MRA",
        "08": "MAR_DRS",
        "09": "MAR_SOU",
        "10": "MAR_GUI",
        "11": "MAR_LAA",
        "12": "MAR_DAK",
    },
    "FR": {"75": "FRA_PAR", "69": "FRA_RHO", "93": "FRA_SEN"},
}

_COUNTRY_CODE_RE = re.compile(r"^\+(\d{1,3})")


class MoquiServiceError(AdapterError):
    """Raised when the Moqui party API fails or returns an unexpected response."""

    service = "moqui"


def extract_country_code(phone_number: str) -> str:
    match = _COUNTRY_CODE_RE.match(phone_number or "")
    return match.group(1) if match else DEFAULT_COUNTRY_CODE


def map_country_to_geo_id(country: str | None) -> str | None:
    return COUNTRY_GEO_IDS.get(country, country) if country else country


def map_state_to_geo_id(state: str | None, country: str | None = "MA") -> str | None:
    """Region code -> Moqui geo id; unmapped values pass through. Accepts `MA-06` as well as `06`."""
    if not state:
        return state
    country = country or "MA"
    key = state
    prefix = f"{country}-"
    if key.upper().startswith(prefix.upper()):
        key = key[len(prefix):]
    return STATE_GEO_IDS.get(country, {}).get(key, state)


@dataclass
class SubStepResult:
    name: str
    attempted: bool = True
    succeeded: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "attempted": self.attempted, "succeeded": self.succeeded, "error": self.error}


@dataclass
class PropagationResult:
    success: bool
    remote_id: str | None = None
    error: str | None = None
    steps: list[SubStepResult] = field(default_factory=list)

    @property
    def failed_steps(self) -> list[SubStepResult]:
        return [s for s in self.steps if s.attempted and not s.succeeded]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "remoteId": self.remote_id,
            "error": self.error,
            "steps": [s.to_dict() for s in self.steps],
        }


class MoquiProvider:
    """Creates a Moqui party (person, contact mechanisms, employment, attributes) from a record document."""

    def __init__(
        self,
        base_url: str,
        api_path: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}{api_path}"
        self.auth = httpx.BasicAuth(username, password)
        self.timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, *, json_body: Any = None, params: dict | None = None) -> Any:
        logger.info("Moqui API request: %s %s", method, path)
        try:
            async with httpx.AsyncClient(
                base_url=self.api_url,
                auth=self.auth,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            ) as client:
                r = await client.request(method, path, json=json_body, params=params)
                r.raise_for_status()
                logger.info("Moqui API response: %s %s", r.status_code, path)
                return r.json() if r.content else None
        except httpx.HTTPStatusError as e:
            body = (getattr(e.response, "text", None) or "")[:500]
            logger.warning("Moqui error %s on %s %s: %s", e.response.status_code, method, path, body)
            raise MoquiServiceError(
                f"Moqui returned {e.response.status_code} for {method} {path}",
                status_code=e.response.status_code,
                body=body,
                phase=PipelineStage.PROPAGATE,
            ) from e
        except httpx.RequestError as e:
            raise MoquiServiceError(
                f"Moqui unavailable ({type(e).__name__}) for {method} {path}", phase=PipelineStage.PROPAGATE
            ) from e

    async def _step(self, name: str, call: Awaitable[Any]) -> SubStepResult:
        """Run one best-effort sub-step; adapter failures are recorded, not raised."""
        try:
            await call
            return SubStepResult(name=name, succeeded=True)
        except AdapterError as e:
            logger.warning("Moqui sub-step %s failed: %s", name, safe_error(e))
            return SubStepResult(name=name, succeeded=False, error=str(e))

    # ---- payload builders ----

    @staticmethod
    def contact_mechanisms(record: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
        mechs: list[tuple[str, dict[str, Any]]] = []
        if record.get("emailAddress"):
            mechs.append(
                (
                    "contact_mech:email",
                    {
                        "contactMechTypeEnumId": "CmtEmailAddress",
                        "infoString": record["emailAddress"],
                        "contactMechPurposeId": "EmailPrimary",
                    },
                )
            )
        if record.get("phoneNumber"):
            mechs.append(
                (
                    "contact_mech:phone",
                    {
                        "contactMechTypeEnumId": "CmtTelecomNumber",
                        "countryCode": extract_country_code(record["phoneNumber"]),
                        "areaCode": DEFAULT_AREA_CODE,
                        "contactNumber": record["phoneNumber"],
                        "contactMechPurposeId": "PhonePrimary",
                    },
                )
            )
        if record.get("addressLine1") or record.get("city"):
            mechs.append(
                (
                    "contact_mech:postal",
                    {
                        "contactMechTypeEnumId": "CmtPostalAddress",
                        "address1": record.get("addressLine1") or "",
                        "address2": record.get("addressLine2") or "",
                        "city": record.get("city") or "",
                        "stateProvinceGeoId": map_state_to_geo_id(record.get("stateProvince"), record.get("country")),
                        "postalCode": record.get("postalCode") or "",
                        "countryGeoId": map_country_to_geo_id(record.get("country")),
                        "contactMechPurposeId": "PostalPrimary",
                    },
                )
            )
        return mechs

    @staticmethod
    def attributes(party_id: str, record: dict[str, Any]) -> list[dict[str, Any]]:
        attrs = []

        def add(name: str, value: Any, description: str) -> None:
            attrs.append({"partyId": party_id, "attrName": name, "attrValue": value, "attrDescription": description})

        if record.get("notes"):
            add("notes", record["notes"], "Contact Notes")
        if record.get("department"):
            add("department", record["department"], "Department")
        if record.get("preferredContactMethod"):
            add("preferredContactMethod", record["preferredContactMethod"], "Preferred Contact Method")
        if record.get("tags"):
            add("tags", ",".join(record["tags"]), "Contact Tags")
        for key, value in (record.get("customFields") or {}).items():
            add(f"custom_{key}", str(value), f"Custom Field: {key}")
        return attrs

    # ---- remote operations ----

    async def create_person(self, record: dict[str, Any]) -> str:
        first_name, last_name = split_full_name(record.get("fullName") or "")
        data = await self._request(
            "POST",
            "/persons",
            json_body={
                "firstName": first_name,
                "lastName": last_name,
                "partyTypeEnumId": "PtyPerson",
                "statusId": "PtyEnabled" if record.get("isActive", True) is not False else "PtyDisabled",
            },
        )
        party_id = (data or {}).get("partyId")
        if not party_id:
            raise MoquiServiceError("Moqui did not return a partyId for the new person", phase=PipelineStage.PROPAGATE)
        return str(party_id)

    async def find_or_create_organization(self, company: str) -> str:
        found = await self._request("GET", "/organizations", params={"organizationName": company})
        if isinstance(found, list) and found and found[0].get("partyId"):
            return str(found[0]["partyId"])
        created = await self._request(
            "POST",
            "/organizations",
            json_body={"organizationName": company, "partyTypeEnumId": "PtyOrganization", "statusId": "PtyEnabled"},
        )
        party_id = (created or {}).get("partyId")
        if not party_id:
            raise MoquiServiceError(f"Moqui did not return a partyId for organization {company!r}")
        return str(party_id)

    async def add_employment(self, party_id: str, record: dict[str, Any]) -> None:
        organization_id = await self.find_or_create_organization(record["company"])
        from_date = datetime.now(timezone.utc).isoformat()
        relationship: dict[str, Any] = {
            "fromPartyId": party_id,
            "toPartyId": organization_id,
            "partyRelationshipTypeEnumId": "PrtEmployee",
            "fromDate": from_date,
            "statusId": "PrActive",
        }
        if record.get("jobTitle"):
            relationship["comments"] = f"Job Title: {record['jobTitle']}"
        await self._request("POST", "/relationships", json_body=relationship)
        if record.get("jobTitle"):
            await self._request("POST", f"/{party_id}/roles", json_body={"roleTypeId": "Employee", "fromDate": from_date})
        logger.info("Employment added for party %s (organization %s)", party_id, organization_id)

    async def propagate(self, record: dict[str, Any]) -> PropagationResult:
        """Create the remote party for a record.

        Only the person step can fail the result; contact mechanisms, employment and
        attributes are best-effort and reported per sub-step.
        """
        contact_id = record.get("contactId")
        logger.info("Propagating record %s to Moqui", contact_id)
        try:
            party_id = await self.create_person(record)
        except AdapterError as e:
            logger.error("Moqui person creation failed for %s: %s", contact_id, safe_error(e))
            return PropagationResult(
                success=False,
                error=str(e),
                steps=[SubStepResult(name="person", succeeded=False, error=str(e))],
            )
        steps = [SubStepResult(name="person", succeeded=True)]

        mechs = self.contact_mechanisms(record)
        steps.extend(
            await asyncio.gather(
                *(self._step(name, self._request("POST", f"/{party_id}/contactMechs", json_body=body)) for name, body in mechs)
            )
        )
        if record.get("company"):
            steps.append(await self._step("employment", self.add_employment(party_id, record)))
        attrs = self.attributes(party_id, record)
        steps.extend(
            await asyncio.gather(
                *(
                    self._step(f"attribute:{a['attrName']}", self._request("POST", f"/{party_id}/attributes", json_body=a))
                    for a in attrs
                )
            )
        )

        result = PropagationResult(success=True, remote_id=party_id, steps=steps)
        if result.failed_steps:
            logger.warning(
                "Record %s propagated as party %s with %s failed sub-step(s): %s",
                contact_id,
                party_id,
                len(result.failed_steps),
                ", ".join(s.name for s in result.failed_steps),
            )
        else:
            logger.info("Record %s propagated as party %s", contact_id, party_id)
        return result

    async def health(self) -> dict[str, Any]:
        data = await self._request("GET", "/status")
        return {"status": "healthy", "details": data}


@lru_cache
def get_moqui_provider() -> MoquiProvider:
    s = get_settings()
    return MoquiProvider(
        base_url=s.moqui_url,
        api_path=s.moqui_api_path,
        username=s.moqui_username,
        password=s.moqui_password,
        timeout=s.moqui_timeout_seconds,
    )
