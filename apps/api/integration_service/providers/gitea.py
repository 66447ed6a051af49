import asyncio
import base64
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import httpx

from integration_service.core import get_settings
from integration_service.core.constants import (
    BRANCH_SHORT_ID_LENGTH,
    BRANCH_TYPE_CONTACT,
    CONTACT_DATA_DIR,
    CONTACT_PR_TITLE_PREFIX,
    SUBMISSION_METADATA_DIR,
)
from integration_service.core.errors import AdapterError, safe_error
from integration_service.domain import Record
from integration_service.services.transformer import build_cdm_document

logger = logging.getLogger(__name__)

# Gitea answers 409 (newer) or 422 (older releases) when the branch already exists
_BRANCH_EXISTS_STATUSES = (409, 422)


class GiteaServiceError(AdapterError):
    """Raised when the Gitea API fails or returns an unexpected response."""

    service = "gitea"


@dataclass
class CommitResult:
    branch_name: str
    submission_id: str
    contact_id: str
    data_file_path: str
    metadata_file_path: str
    pull_request: dict[str, Any] = field(default_factory=dict)

    @property
    def pull_request_number(self) -> int | None:
        return self.pull_request.get("number")

    @property
    def pull_request_url(self) -> str | None:
        return self.pull_request.get("html_url")


def generate_branch_name(type_: str = BRANCH_TYPE_CONTACT, identifier: str = "", now: datetime | None = None) -> str:
    """`<type>-<shortid>-<timestamp>`, lowercased; ':' and '.' in the timestamp become '-'."""
    now = now or datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    timestamp = timestamp.replace(":", "-").replace(".", "-")
    ident = identifier or uuid.uuid4().hex[:9]
    return f"{type_}-{ident}-{timestamp}".lower()


def generate_submission_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def pull_request_body(record: Record, submission_id: str, processed_at: str, source: str) -> str:
    return "\n".join(
        [
            "## Contact Information",
            f"**Contact ID:** {record.contact_id}",
            f"**Name:** {record.full_name}",
            f"**Email:** {record.email_address}",
            f"**Company:** {record.company or 'N/A'}",
            "",
            "## CDM Compliance",
            "- Schema validation passed",
            "- Required fields present",
            "- Data format validated",
            "",
            "## Submission Details",
            f"- **Submission ID:** {submission_id}",
            f"- **Processed At:** {processed_at}",
            f"- **Source:** {source}",
            "",
            "Please review and approve to merge this contact data into the main branch.",
        ]
    )


class GiteaProvider:
    """Branch / file / pull-request operations against one Gitea repository."""

    def __init__(
        self,
        base_url: str,
        token: str | None,
        owner: str,
        repo: str,
        default_branch: str = "main",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api/v1"
        self.token = token
        self.owner = owner
        self.repo = repo
        self.default_branch = default_branch
        self.timeout = timeout
        self._transport = transport

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        logger.debug("Gitea API request: %s %s", method, path)
        try:
            async with self._client(timeout) as client:
                r = await client.request(method, path, json=json_body, params=params)
                r.raise_for_status()
                logger.debug("Gitea API response: %s %s", r.status_code, path)
                return r
        except httpx.HTTPStatusError as e:
            body = (getattr(e.response, "text", None) or "")[:500]
            status_code = e.response.status_code
            if status_code != 404:
                logger.warning("Gitea error %s on %s %s: %s", status_code, method, path, body)
            raise GiteaServiceError(
                f"Gitea returned {status_code} for {method} {path}",
                status_code=status_code,
                body=body,
            ) from e
        except httpx.RequestError as e:
            raise GiteaServiceError(f"Gitea unavailable ({type(e).__name__}) for {method} {path}") from e

    # ------------------------------------------------------------------
    # Repository / branches
    # ------------------------------------------------------------------

    async def ensure_repository(self) -> bool:
        """No-op when the repository exists; creates it (initialised on the default branch) otherwise."""
        try:
            await self._request("GET", self.repo_path)
            logger.info("Repository %s/%s exists", self.owner, self.repo)
            return True
        except GiteaServiceError as e:
            if e.status_code != 404:
                raise
        logger.info("Creating repository %s/%s", self.owner, self.repo)
        await self._request(
            "POST",
            "/user/repos",
            json_body={
                "name": self.repo,
                "description": "CDM Data Repository for Master Data Management",
                "private": False,
                "auto_init": True,
                "default_branch": self.default_branch,
                "readme": "Default",
            },
        )
        logger.info("Repository %s/%s created", self.owner, self.repo)
        return True

    async def create_branch(self, branch_name: str, base_branch: str | None = None) -> str:
        base_branch = base_branch or self.default_branch
        try:
            await self._request(
                "POST",
                f"{self.repo_path}/branches",
                json_body={"new_branch_name": branch_name, "old_branch_name": base_branch},
            )
        except GiteaServiceError as e:
            if e.status_code in _BRANCH_EXISTS_STATUSES:
                logger.warning("Branch %s already exists", branch_name)
                return branch_name
            raise
        logger.info("Branch %s created from %s", branch_name, base_branch)
        return branch_name

    async def delete_branch(self, branch_name: str) -> None:
        await self._request("DELETE", f"{self.repo_path}/branches/{branch_name}")
        logger.info("Branch %s deleted", branch_name)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def get_file(self, file_path: str, branch: str | None = None) -> dict[str, Any] | None:
        """Current content and version token (sha) of a file, or None when absent."""
        try:
            r = await self._request(
                "GET",
                f"{self.repo_path}/contents/{file_path}",
                params={"ref": branch or self.default_branch},
            )
        except GiteaServiceError as e:
            if e.status_code == 404:
                return None
            raise
        data = r.json()
        content = base64.b64decode(data.get("content") or "").decode("utf-8")
        return {"content": content, "sha": data.get("sha"), "size": data.get("size")}

    async def commit_file(self, file_path: str, content: str, message: str, branch: str | None = None) -> dict:
        """Create the file, or update it with its current sha so concurrent writers cannot lose updates."""
        branch = branch or self.default_branch
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        existing = await self.get_file(file_path, branch)
        if existing:
            payload["sha"] = existing["sha"]
            r = await self._request("PUT", f"{self.repo_path}/contents/{file_path}", json_body=payload)
            logger.info("File %s updated in branch %s", file_path, branch)
        else:
            r = await self._request("POST", f"{self.repo_path}/contents/{file_path}", json_body=payload)
            logger.info("File %s created in branch %s", file_path, branch)
        return r.json()

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    async def create_pull_request(self, title: str, head: str, base: str | None = None, body: str = "") -> dict:
        r = await self._request(
            "POST",
            f"{self.repo_path}/pulls",
            json_body={"title": title, "head": head, "base": base or self.default_branch, "body": body},
        )
        pr = r.json()
        logger.info("Pull request #%s created: %s", pr.get("number"), pr.get("html_url"))
        return pr

    async def merge_pull_request(self, number: int, merge_method: str = "merge") -> dict:
        r = await self._request("POST", f"{self.repo_path}/pulls/{number}/merge", json_body={"Do": merge_method})
        logger.info("Pull request #%s merged", number)
        return r.json() if r.content else {}

    # ------------------------------------------------------------------
    # Composite: one record -> branch + two files + PR
    # ------------------------------------------------------------------

    async def commit_record(self, record: Record, metadata: dict[str, Any] | None = None) -> CommitResult:
        """Commit a record and its submission metadata on a fresh branch and open a PR.

        Any failure after the branch exists deletes the branch and re-raises the
        original error; a failed delete is only logged.
        """
        branch_name = generate_branch_name(BRANCH_TYPE_CONTACT, record.contact_id[:BRANCH_SHORT_ID_LENGTH])
        submission_id = generate_submission_id()
        processed_at = datetime.now(timezone.utc).isoformat()
        commit_message = f"Add contact data: {record.full_name}"
        submission_metadata = {
            **build_cdm_document(record)["metadata"],
            **(metadata or {}),
            "submissionId": submission_id,
            "gitBranch": branch_name,
            "contactId": record.contact_id,
            "gitCommitMessage": commit_message,
            "processedAt": processed_at,
        }
        data_file_path = f"{CONTACT_DATA_DIR}/{record.contact_id}.json"
        metadata_file_path = f"{SUBMISSION_METADATA_DIR}/{submission_id}.json"

        await self.ensure_repository()
        await self.create_branch(branch_name)
        try:
            await self.commit_file(
                data_file_path,
                json.dumps(record.to_document(), indent=2, ensure_ascii=False),
                commit_message,
                branch_name,
            )
            await self.commit_file(
                metadata_file_path,
                json.dumps(submission_metadata, indent=2, ensure_ascii=False, default=str),
                f"Add metadata for submission: {submission_id}",
                branch_name,
            )
            pull_request = await self.create_pull_request(
                f"{CONTACT_PR_TITLE_PREFIX}{record.full_name}",
                branch_name,
                self.default_branch,
                pull_request_body(record, submission_id, processed_at, str((metadata or {}).get("source", "form"))),
            )
        except Exception as e:
            logger.error("Failed to commit CDM data for %s: %s", record.contact_id, safe_error(e))
            try:
                await self.delete_branch(branch_name)
            except AdapterError as cleanup_error:
                logger.error("Failed to clean up branch %s: %s", branch_name, safe_error(cleanup_error))
            raise

        return CommitResult(
            branch_name=branch_name,
            submission_id=submission_id,
            contact_id=record.contact_id,
            data_file_path=data_file_path,
            metadata_file_path=metadata_file_path,
            pull_request=pull_request,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def repository_stats(self) -> dict[str, Any]:
        repo_r, branches_r, pulls_r = await asyncio.gather(
            self._request("GET", self.repo_path),
            self._request("GET", f"{self.repo_path}/branches"),
            self._request("GET", f"{self.repo_path}/pulls", params={"state": "all"}),
        )
        repo = repo_r.json()
        branches = branches_r.json() or []
        pulls = pulls_r.json()
        pulls = pulls if isinstance(pulls, list) else []
        return {
            "repository": {
                "name": repo.get("name"),
                "description": repo.get("description"),
                "size": repo.get("size"),
                "createdAt": repo.get("created_at"),
                "updatedAt": repo.get("updated_at"),
            },
            "branches": [
                {"name": b.get("name"), "commit": ((b.get("commit") or {}).get("id") or "")[:7]} for b in branches
            ],
            "pullRequests": {
                "total": len(pulls),
                "open": sum(1 for p in pulls if p.get("state") == "open"),
                "merged": sum(1 for p in pulls if p.get("merged_at") or p.get("merged")),
            },
        }

    async def ping(self) -> dict[str, Any]:
        r = await self._request("GET", "/version", timeout=5.0)
        return {"status": "healthy", "version": r.json().get("version")}


@lru_cache
def get_gitea_provider() -> GiteaProvider:
    s = get_settings()
    return GiteaProvider(
        base_url=s.gitea_url,
        token=s.gitea_token,
        owner=s.gitea_repo_owner,
        repo=s.gitea_repo_name,
        default_branch=s.gitea_default_branch,
        timeout=s.gitea_timeout_seconds,
    )
