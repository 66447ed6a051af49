"""Link a pull-request event back to the submission that opened it.

The PR title and body written at commit time are the durable handle: the title
carries the contact name and the body carries the contact id, email and company.
"""

import re
from typing import Any

from integration_service.core.constants import CONTACT_PR_TITLE_PREFIX

_TITLE_RE = re.compile(rf"{re.escape(CONTACT_PR_TITLE_PREFIX)}(.+)")
_BODY_FIELDS = {
    "contactId": re.compile(r"\*\*Contact ID:\*\* (.+)"),
    "emailAddress": re.compile(r"\*\*Email:\*\* (.+)"),
    "company": re.compile(r"\*\*Company:\*\* (.+)"),
    "submissionId": re.compile(r"\*\*Submission ID:\*\* (.+)"),
}


def extract_contact_from_pull_request(pull_request: dict[str, Any]) -> dict[str, Any] | None:
    """Partial record from a contact PR, or None when the PR is not a contact PR."""
    match = _TITLE_RE.search(pull_request.get("title") or "")
    if not match:
        return None
    body = pull_request.get("body") or ""
    contact: dict[str, Any] = {"fullName": match.group(1).strip()}
    for name, pattern in _BODY_FIELDS.items():
        found = pattern.search(body)
        value = found.group(1).strip() if found else None
        contact[name] = None if value in (None, "", "N/A") else value
    return contact


async def locate_indexed_record(index, pull_request_number: int | None, extracted: dict[str, Any]):
    """Contact id from the PR body first, then the stored PR number, then the email."""
    if extracted.get("contactId"):
        found = await index.get(extracted["contactId"])
        if found:
            return found
    if pull_request_number is not None:
        found = await index.find_one("pullRequestId", pull_request_number)
        if found:
            return found
    if extracted.get("emailAddress"):
        return await index.find_one("emailAddress", extracted["emailAddress"])
    return None
