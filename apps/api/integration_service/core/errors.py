"""Error taxonomy shared by providers, services and routers."""

from enum import Enum
from typing import Any, Optional


class PipelineStage(str, Enum):
    """Pipeline stage identifiers for error reporting."""
    VALIDATE = "validate"
    COMMIT = "commit"
    INDEX = "index"
    PROPAGATE = "propagate"
    NOTIFY = "notify"


class ValidationError(Exception):
    """Caller-fixable input problem. Carries every failing field, not just the first."""

    def __init__(self, details: list[dict[str, str]], message: str = "Validation failed"):
        self.details = details
        self.message = message
        super().__init__(f"{message}: " + ", ".join(d["message"] for d in details))

    @property
    def fields(self) -> list[str]:
        return [d["field"] for d in self.details]


class AdapterError(Exception):
    """A call to an external system failed.

    `service` names the remote system, `status_code` is the remote HTTP status when
    one was received, `body` is the (truncated) remote response for logs only.
    """

    service = "external"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
        phase: PipelineStage | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.body = body
        self.phase = phase
        super().__init__(message)


class SignatureError(Exception):
    """Webhook signature missing or invalid."""


class NotFoundError(Exception):
    """Requested entity does not exist."""

    def __init__(self, message: str, *, entity_id: str | None = None):
        self.entity_id = entity_id
        super().__init__(message)


class PipelineError(Exception):
    """Pipeline error with stage context."""
    def __init__(self, stage: PipelineStage, message: str, cause: Optional[Exception] = None):
        self.stage = stage
        self.message = message
        self.cause = cause
        super().__init__(f"[{stage.value}] {message}")


def safe_error(error: BaseException) -> dict[str, Any]:
    """Log-safe summary of an exception (no request objects, no headers)."""
    info: dict[str, Any] = {"type": type(error).__name__, "message": str(error)}
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        info["status"] = status_code
    body = getattr(error, "body", None)
    if body:
        info["body"] = body
    return info
