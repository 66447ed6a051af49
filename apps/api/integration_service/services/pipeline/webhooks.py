import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from integration_service.core.errors import AdapterError, PipelineError, PipelineStage
from integration_service.domain import NotificationType

from .correlation import extract_contact_from_pull_request
from .orchestrator import SubmissionPipeline

logger = logging.getLogger(__name__)


def new_webhook_id() -> str:
    return f"webhook-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


@dataclass
class WebhookOutcome:
    webhook_id: str
    action: str | None
    handled: str
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"webhookId": self.webhook_id, "action": self.action, "handled": self.handled, **self.detail}


class WebhookDispatcher:
    """Routes a verified VC host event to the matching pipeline handler."""

    def __init__(self, pipeline: SubmissionPipeline):
        self.pipeline = pipeline

    async def dispatch(self, payload: dict[str, Any], webhook_id: str | None = None) -> WebhookOutcome:
        webhook_id = webhook_id or new_webhook_id()
        action = payload.get("action")
        pull_request = payload.get("pull_request")
        repository = payload.get("repository")
        logger.info(
            "VC webhook %s received: action=%s repository=%s pr=%s",
            webhook_id,
            action,
            (repository or {}).get("name"),
            (pull_request or {}).get("number"),
        )

        if action == "deleted" and repository and not pull_request:
            return await self._repository_deleted(repository, webhook_id)
        if pull_request and action == "closed" and pull_request.get("merged"):
            merge = await self.pipeline.handle_merge(pull_request)
            return WebhookOutcome(webhook_id, action, "pull_request_merged", merge.to_dict())
        if pull_request and action == "opened":
            return await self._pull_request_opened(pull_request, webhook_id)
        if pull_request and action == "synchronized":
            return await self._pull_request_updated(pull_request, webhook_id)

        logger.info("VC webhook %s ignored (action=%s)", webhook_id, action)
        return WebhookOutcome(webhook_id, action, "ignored")

    async def _repository_deleted(self, repository: dict[str, Any], webhook_id: str) -> WebhookOutcome:
        logger.warning("Repository %s deleted; resetting records", repository.get("name"))
        try:
            await self.pipeline.reset_records()
        except AdapterError as e:
            raise PipelineError(PipelineStage.INDEX, "Failed to reset records after repository deletion", e) from e
        delivery = await self.pipeline.notifier.emit(
            NotificationType.REPOSITORY_DELETED,
            "Repository Deleted",
            f'Repository "{repository.get("name")}" has been deleted.',
            {"repositoryName": repository.get("name"), "repositoryId": repository.get("id"), "webhookId": webhook_id},
        )
        return WebhookOutcome(webhook_id, "deleted", "repository_deleted", {"notificationId": delivery.notification_id})

    async def _pull_request_opened(self, pull_request: dict[str, Any], webhook_id: str) -> WebhookOutcome:
        number = pull_request.get("number")
        contact = extract_contact_from_pull_request(pull_request) or {}
        delivery = await self.pipeline.notifier.emit(
            NotificationType.REVIEW_REQUESTED,
            "New Contact Data Submitted for Review",
            f"Pull request #{number} contains new contact data that requires review",
            {
                "pullRequestNumber": number,
                "contactName": contact.get("fullName"),
                "submittedBy": (pull_request.get("user") or {}).get("login"),
                "reviewUrl": pull_request.get("html_url"),
                "webhookId": webhook_id,
            },
        )
        return WebhookOutcome(webhook_id, "opened", "review_requested", {"notificationId": delivery.notification_id})

    async def _pull_request_updated(self, pull_request: dict[str, Any], webhook_id: str) -> WebhookOutcome:
        number = pull_request.get("number")
        delivery = await self.pipeline.notifier.emit(
            NotificationType.REVIEW_UPDATED,
            "Pull Request Updated",
            f"Pull request #{number} has been updated and is being re-validated",
            {"pullRequestNumber": number, "reviewUrl": pull_request.get("html_url"), "webhookId": webhook_id},
        )
        return WebhookOutcome(
            webhook_id, "synchronized", "review_updated", {"notificationId": delivery.notification_id}
        )
