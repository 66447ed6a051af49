"""Pipeline state carried through one submission or one merge event."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from integration_service.core.constants import DEFAULT_SOURCE, DEFAULT_SUBMITTER
from integration_service.core.errors import PipelineStage
from integration_service.domain import PipelinePhase, Record
from integration_service.providers.gitea import CommitResult
from integration_service.providers.moqui import SubStepResult

logger = logging.getLogger(__name__)


@dataclass
class SubmissionContext:
    """Request-scoped facts about a submission; never stored on its own."""

    request_id: str
    source: str = DEFAULT_SOURCE
    submitted_by: str = DEFAULT_SUBMITTER
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    extra: dict[str, Any] = field(default_factory=dict)

    def commit_metadata(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "source": self.source,
            "submittedBy": self.submitted_by,
            "receivedAt": self.received_at.isoformat(),
            **self.extra,
        }


@dataclass
class PhaseLog:
    """Ordered phase transitions for one pipeline run."""

    contact_id: str | None = None
    phases: list[str] = field(default_factory=list)

    def advance(self, phase: PipelinePhase) -> None:
        self.phases.append(phase.value)
        logger.info("Pipeline %s -> %s", self.contact_id, phase.value)

    def fail(self, stage: PipelineStage) -> None:
        self.phases.append(f"{PipelinePhase.FAILED.value}({stage.value})")
        logger.warning("Pipeline %s failed at %s", self.contact_id, stage.value)

    @property
    def current(self) -> str | None:
        return self.phases[-1] if self.phases else None


@dataclass
class SubmissionOutcome:
    record: Record
    commit: CommitResult
    document: dict[str, Any]
    phases: PhaseLog
    processing_ms: int = 0


@dataclass
class SyncOutcome:
    """Result of one propagation attempt (webhook, manual or automation)."""

    contact_id: str | None
    sync_type: str
    success: bool
    remote_id: str | None = None
    error: str | None = None
    steps: list[SubStepResult] = field(default_factory=list)
    indexed: bool = True
    index_error: str | None = None
    notification_id: str | None = None
    phases: PhaseLog = field(default_factory=PhaseLog)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contactId": self.contact_id,
            "syncType": self.sync_type,
            "success": self.success,
            "remoteId": self.remote_id,
            "error": self.error,
            "steps": [s.to_dict() for s in self.steps],
            "indexUpdated": self.indexed and self.index_error is None,
            "notificationId": self.notification_id,
            "phases": self.phases.phases,
        }


@dataclass
class MergeOutcome:
    """What the merge handler did with one merged pull request."""

    outcome: str
    pull_request_number: int | None = None
    contact_id: str | None = None
    sync: SyncOutcome | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "outcome": self.outcome,
            "pullRequestNumber": self.pull_request_number,
            "contactId": self.contact_id,
        }
        if self.reason:
            out["reason"] = self.reason
        if self.sync is not None:
            out["sync"] = self.sync.to_dict()
        return out


@dataclass
class MergeAttempt:
    merged: bool
    attempts: int
    error: str | None = None
    result: dict[str, Any] | None = None
