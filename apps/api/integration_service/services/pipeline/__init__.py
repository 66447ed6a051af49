"""Submission pipeline: commit + index, then merge-triggered propagation."""

from .correlation import extract_contact_from_pull_request, locate_indexed_record
from .orchestrator import COMPLETE_FLOW_FIXTURE, SubmissionPipeline
from .state import MergeAttempt, MergeOutcome, PhaseLog, SubmissionContext, SubmissionOutcome, SyncOutcome
from .webhooks import WebhookDispatcher, WebhookOutcome, new_webhook_id

__all__ = [
    "extract_contact_from_pull_request",
    "locate_indexed_record",
    "COMPLETE_FLOW_FIXTURE",
    "SubmissionPipeline",
    "MergeAttempt",
    "MergeOutcome",
    "PhaseLog",
    "SubmissionContext",
    "SubmissionOutcome",
    "SyncOutcome",
    "WebhookDispatcher",
    "WebhookOutcome",
    "new_webhook_id",
]
