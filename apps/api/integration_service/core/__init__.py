"""Core configuration, errors, logging, and shared infrastructure."""

from integration_service.core.config import Settings, get_settings
from integration_service.core.constants import CONTACT_PR_TITLE_PREFIX, DEFAULT_ACTOR
from integration_service.core.errors import (
    AdapterError,
    NotFoundError,
    PipelineError,
    PipelineStage,
    SignatureError,
    ValidationError,
    safe_error,
)
from integration_service.core.limiter import limiter
from integration_service.core.logging import bind_context, configure_logging, log_context
from integration_service.core.signature import compute_signature, verify_signature

__all__ = [
    "Settings",
    "get_settings",
    "CONTACT_PR_TITLE_PREFIX",
    "DEFAULT_ACTOR",
    "AdapterError",
    "NotFoundError",
    "PipelineError",
    "PipelineStage",
    "SignatureError",
    "ValidationError",
    "safe_error",
    "limiter",
    "bind_context",
    "configure_logging",
    "log_context",
    "compute_signature",
    "verify_signature",
]
