"""
Submission Pipeline

Two-phase saga:
  A. submit()        validate → commit (branch + files + PR) → index as pending_review.
                     Synchronous; the PR is the durable handle for phase B.
  B. handle_merge()  triggered by the merge webhook; correlates the PR to the
                     indexed record → propagate → mark synced/failed → notify.
                     Safe to run twice for the same merge.

Manual re-sync and the automation flow re-enter phase B directly.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping

from integration_service.core.errors import AdapterError, NotFoundError, PipelineError, PipelineStage, safe_error
from integration_service.core.logging import log_context
from integration_service.domain import NotificationType, PipelinePhase, SyncStatus, SyncType
from integration_service.providers.gitea import GiteaProvider
from integration_service.providers.index import RecordIndex
from integration_service.providers.moqui import MoquiProvider
from integration_service.services.notifications import NotificationEmitter
from integration_service.services.transformer import transform_record

from .correlation import extract_contact_from_pull_request, locate_indexed_record
from .state import MergeAttempt, MergeOutcome, PhaseLog, SubmissionContext, SubmissionOutcome, SyncOutcome

logger = logging.getLogger(__name__)

COMPLETE_FLOW_FIXTURE: dict[str, Any] = {
    "fullName": "Flane weld flane",
    "phoneNumber": "+212610000000",
    "company": "Hooli Corporation Inc",
    "jobTitle": "Senior Developer",
    "department": "Engineering",
    "country": "MA",
    "stateProvince": "MA-04",
    "city": "Rabat",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SubmissionPipeline:
    def __init__(
        self,
        gitea: GiteaProvider,
        index: RecordIndex,
        moqui: MoquiProvider,
        notifier: NotificationEmitter,
        merge_retry_attempts: int = 5,
        merge_retry_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.gitea = gitea
        self.index = index
        self.moqui = moqui
        self.notifier = notifier
        self.merge_retry_attempts = max(1, merge_retry_attempts)
        self.merge_retry_delay = merge_retry_delay
        self._sleep = sleep

    # =========================================================================
    # Phase A: submission
    # =========================================================================

    async def submit(self, raw: Mapping[str, Any], context: SubmissionContext) -> SubmissionOutcome:
        """Validate, commit and index one submission.

        Raises ValidationError before any side effect. Commit failures are already
        compensated (branch deleted) by the adapter. Index failures after a
        successful commit leave the branch and PR in place; their ids are logged.
        """
        started = time.monotonic()
        record = transform_record(raw, context.submitted_by)
        phases = PhaseLog(contact_id=record.contact_id)
        phases.advance(PipelinePhase.RECEIVED)

        with log_context({"contact_id": record.contact_id}):
            try:
                commit = await self.gitea.commit_record(record, context.commit_metadata())
            except AdapterError as e:
                e.phase = PipelineStage.COMMIT
                phases.fail(PipelineStage.COMMIT)
                raise PipelineError(PipelineStage.COMMIT, "Failed to commit record to version control", e) from e
            phases.advance(PipelinePhase.COMMITTED)

            document = {
                **record.to_document(),
                "syncStatus": SyncStatus.PENDING_REVIEW.value,
                "gitBranch": commit.branch_name,
                "pullRequestId": commit.pull_request_number,
                "pullRequestUrl": commit.pull_request_url,
                "submissionId": commit.submission_id,
            }
            try:
                await self.index.upsert(document)
            except AdapterError as e:
                e.phase = PipelineStage.INDEX
                phases.fail(PipelineStage.INDEX)
                # commit is not rolled back; leave a trail for operator cleanup
                logger.warning(
                    "Record %s committed but not indexed; orphaned branch %s and PR #%s",
                    record.contact_id,
                    commit.branch_name,
                    commit.pull_request_number,
                )
                raise PipelineError(PipelineStage.INDEX, "Failed to index committed record", e) from e
            phases.advance(PipelinePhase.INDEXED)
            phases.advance(PipelinePhase.AWAITING_MERGE)

        return SubmissionOutcome(
            record=record,
            commit=commit,
            document=document,
            phases=phases,
            processing_ms=int((time.monotonic() - started) * 1000),
        )

    # =========================================================================
    # Phase B: propagation
    # =========================================================================

    async def propagate_record(
        self,
        document: dict[str, Any],
        sync_type: SyncType,
        *,
        indexed: bool = True,
        extra_fields: dict[str, Any] | None = None,
        notification_metadata: dict[str, Any] | None = None,
    ) -> SyncOutcome:
        """Propagate one record downstream, store the sync status, emit the outcome notification.

        `indexed=False` skips the status write for records that were never indexed.
        A failed status write or notification is logged and reported, not raised.
        """
        contact_id = document.get("contactId")
        phases = PhaseLog(contact_id=contact_id)
        result = await self.moqui.propagate(document)

        if result.success:
            phases.advance(PipelinePhase.PROPAGATED)
            fields: dict[str, Any] = {
                "remoteId": result.remote_id,
                "syncStatus": SyncStatus.SYNCED.value,
                "syncedAt": _now_iso(),
                "syncError": None,
                "lastSyncType": sync_type.value,
            }
        else:
            phases.fail(PipelineStage.PROPAGATE)
            fields = {
                "syncStatus": SyncStatus.FAILED.value,
                "syncError": result.error,
                "syncAttemptedAt": _now_iso(),
                "lastSyncType": sync_type.value,
            }
        fields["propagationSteps"] = [s.to_dict() for s in result.steps]
        fields.update(extra_fields or {})

        outcome = SyncOutcome(
            contact_id=contact_id,
            sync_type=sync_type.value,
            success=result.success,
            remote_id=result.remote_id,
            error=result.error,
            steps=result.steps,
            indexed=indexed and bool(contact_id),
            phases=phases,
        )

        if outcome.indexed:
            try:
                await self.index.update(contact_id, fields)
            except AdapterError as e:
                logger.error("Failed to store sync status for %s: %s", contact_id, safe_error(e))
                outcome.index_error = str(e)
        else:
            logger.warning("Record %s is not indexed; sync status not stored", contact_id)

        metadata = {
            "contactId": contact_id,
            "syncType": sync_type.value,
            **(notification_metadata or {}),
        }
        name = document.get("fullName") or contact_id
        if result.success:
            metadata["remoteId"] = result.remote_id
            failed = [s.name for s in result.failed_steps]
            if failed:
                metadata["failedSteps"] = failed
            delivery = await self.notifier.emit(
                NotificationType.CONTACT_SYNCED,
                "Contact Successfully Synced",
                f"Contact {name} has been successfully synced to the party system",
                metadata,
            )
        else:
            metadata["error"] = result.error
            delivery = await self.notifier.emit(
                NotificationType.SYNC_FAILED,
                "Contact Sync Failed",
                f"Failed to sync contact {name} to the party system: {result.error}",
                metadata,
            )
        outcome.notification_id = delivery.notification_id
        if delivery.success and result.success:
            phases.advance(PipelinePhase.NOTIFIED)
        elif not delivery.success:
            logger.warning("Notification %s for %s was not delivered", delivery.notification_id, contact_id)
        return outcome

    async def handle_merge(self, pull_request: dict[str, Any]) -> MergeOutcome:
        """Resume the pipeline for a merged contact PR. Idempotent per record."""
        number = pull_request.get("number")
        extracted = extract_contact_from_pull_request(pull_request)
        if extracted is None:
            logger.info("PR #%s is not a contact pull request; ignoring", number)
            return MergeOutcome(outcome="ignored", pull_request_number=number, reason="not a contact pull request")

        try:
            indexed = await locate_indexed_record(self.index, number, extracted)
        except AdapterError as e:
            e.phase = PipelineStage.INDEX
            raise PipelineError(PipelineStage.INDEX, f"Failed to look up record for PR #{number}", e) from e

        if indexed and indexed.get("syncStatus") == SyncStatus.SYNCED.value and indexed.get("remoteId"):
            logger.info(
                "Record %s already synced as %s; skipping PR #%s", indexed.get("contactId"), indexed["remoteId"], number
            )
            return MergeOutcome(
                outcome="already_synced",
                pull_request_number=number,
                contact_id=indexed.get("contactId"),
                reason="record already synced",
            )

        document = indexed or extracted
        with log_context({"contact_id": document.get("contactId"), "pull_request": number}):
            sync = await self.propagate_record(
                document,
                SyncType.WEBHOOK,
                indexed=indexed is not None,
                notification_metadata={"pullRequestNumber": number},
            )
        return MergeOutcome(
            outcome="synced" if sync.success else "failed",
            pull_request_number=number,
            contact_id=document.get("contactId"),
            sync=sync,
        )

    async def resync(self, contact_id: str) -> SyncOutcome:
        """Operator re-run of propagation for an indexed record, whatever its state or merge status."""
        try:
            document = await self.index.get(contact_id)
        except AdapterError as e:
            raise PipelineError(PipelineStage.INDEX, f"Failed to load record {contact_id}", e) from e
        if document is None:
            raise NotFoundError(f"Record {contact_id} not found", entity_id=contact_id)
        logger.info("Manual re-sync requested for %s (status %s)", contact_id, document.get("syncStatus"))
        with log_context({"contact_id": contact_id}):
            return await self.propagate_record(document, SyncType.MANUAL)

    # =========================================================================
    # Automation path
    # =========================================================================

    async def merge_with_retry(self, number: int) -> MergeAttempt:
        """Merge a PR, retrying with a fixed delay while the host refuses (e.g. checks pending)."""
        last_error: str | None = None
        for attempt in range(1, self.merge_retry_attempts + 1):
            try:
                result = await self.gitea.merge_pull_request(number)
                return MergeAttempt(merged=True, attempts=attempt, result=result)
            except AdapterError as e:
                last_error = str(e)
                logger.warning(
                    "Merge attempt %s/%s failed for PR #%s: %s", attempt, self.merge_retry_attempts, number, e
                )
                if attempt < self.merge_retry_attempts:
                    await self._sleep(self.merge_retry_delay)
        return MergeAttempt(merged=False, attempts=self.merge_retry_attempts, error=last_error)

    async def run_complete_flow(self, request_id: str) -> dict[str, Any]:
        """Submit a fixture contact, merge its PR and propagate it, reporting each phase."""
        test_id = f"test-{int(time.time() * 1000)}"
        raw = {**COMPLETE_FLOW_FIXTURE, "emailAddress": f"flane.test.{test_id}@hooli.com"}
        context = SubmissionContext(
            request_id=request_id,
            source="complete-flow-test",
            submitted_by="test-automation",
            extra={"testId": test_id, "phase": "complete-flow-test"},
        )
        logger.info("Starting complete flow test %s", test_id)

        submission = await self.submit(raw, context)
        number = submission.commit.pull_request_number
        merge = await self.merge_with_retry(number)
        # propagates even when the merge did not go through, mirroring an operator override
        sync = await self.propagate_record(
            submission.document,
            SyncType.AUTOMATION,
            extra_fields={"testId": test_id},
            notification_metadata={"pullRequestNumber": number, "testId": test_id},
        )
        return {
            "testId": test_id,
            "phases": {
                "submission": {
                    "contactId": submission.record.contact_id,
                    "gitBranch": submission.commit.branch_name,
                    "pullRequestId": number,
                    "indexed": True,
                },
                "merge": {
                    "pullRequestMerged": merge.merged,
                    "attempts": merge.attempts,
                    "mergeError": merge.error,
                },
                "propagation": {
                    "synced": sync.success,
                    "remoteId": sync.remote_id,
                    "error": sync.error,
                },
            },
            "pipelinePhases": submission.phases.phases + sync.phases.phases,
        }

    # =========================================================================
    # Administration
    # =========================================================================

    async def reset_records(self) -> None:
        """Drop every indexed record and recreate the empty collection."""
        await self.index.reset_records()
        await self.index.ensure_collections()
        logger.warning("Records collection reset")
