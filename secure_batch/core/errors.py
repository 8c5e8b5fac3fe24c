"""
Error taxonomy for batch export and ingest.

Every error carries a `kind` so callers can tell "fix your request"
(validation, authorization) from "retry later" (rate_limited, system)
without parsing messages. Partial failure is not an error: it is a
terminal BatchJob whose failure list is populated.
"""

from datetime import datetime


class BatchOperationError(Exception):
    """Base class for all engine errors."""

    kind = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BatchOperationError):
    """Malformed or missing request fields. Raised before any side effect."""

    kind = "validation"

    def __init__(self, message: str, field_name: str | None = None):
        self.field_name = field_name
        super().__init__(message)


class AuthorizationError(BatchOperationError):
    """Requested fields are not exportable for the principal's role."""

    kind = "authorization"

    def __init__(self, denied_fields: list[str], message: str | None = None):
        self.denied_fields = list(denied_fields)
        super().__init__(
            message or f"Fields not exportable for this role: {', '.join(self.denied_fields)}"
        )


class ApprovalRequiredError(AuthorizationError):
    """Requested fields need an approval workflow before they can be exported."""

    def __init__(self, approval_fields: list[str]):
        self.approval_fields = list(approval_fields)
        super().__init__(
            approval_fields,
            f"Fields require approval before export: {', '.join(self.approval_fields)}",
        )


class RateLimitExceeded(BatchOperationError):
    """Daily quota for the operation class is used up."""

    kind = "rate_limited"

    def __init__(self, operation_class: str, limit: int, reset_at: datetime):
        self.operation_class = operation_class
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(
            f"Daily {operation_class} limit of {limit} reached; resets at {reset_at.isoformat()}"
        )


class SystemFailureError(BatchOperationError):
    """Repository or storage failure. Retried per item before it is recorded."""

    kind = "system"


class ItemRejected(BatchOperationError):
    """A single ingest record failed validation or threat screening."""

    kind = "validation"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class JobNotFoundError(BatchOperationError):
    """No batch job with the given id."""

    kind = "not_found"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class DownloadNotFound(BatchOperationError):
    """Unknown or expired download token. Both cases are indistinguishable."""

    kind = "not_found"

    def __init__(self):
        super().__init__("Download token is invalid or has expired")


class AuditWriteError(BatchOperationError):
    """A security-relevant audit record could not be persisted after retries."""

    kind = "system"


class OperationCancelled(BatchOperationError):
    """The export job was cancelled before its payload was produced."""

    kind = "cancelled"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job cancelled: {job_id}")
