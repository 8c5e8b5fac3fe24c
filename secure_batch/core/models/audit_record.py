"""
AuditRecord model: append-only record of every export/ingest attempt.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from secure_batch.core.clock import utc_now


class AuditClassification(str, Enum):
    """Security classification of an attempt."""
    ROUTINE = "routine"
    FLAGGED = "flagged"
    DENIED = "denied"
    APPROVAL_REQUIRED = "approval_required"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"

    @property
    def is_security_relevant(self) -> bool:
        """Rejections whose audit record is itself the security control."""
        return self in (
            AuditClassification.DENIED,
            AuditClassification.APPROVAL_REQUIRED,
            AuditClassification.RATE_LIMITED,
        )


class AuditEvent(BaseModel):
    """
    What happened, as reported by the engine. The recorder turns it into an AuditRecord.

    Attributes:
        audit_id: Pre-assigned id (exports bind the download token to it before recording)
        principal_id: Who attempted the operation
        role: Role at the time of the attempt
        operation: "export" or "ingest"
        classification: Security classification
        fields: Requested fields (export)
        field_count: Number of exported fields
        record_count: Records exported or ingested successfully
        artifact_size: Export payload size in bytes
        failure_summary: Ingest failure counts or export failure reason
        anomaly_flags: Advisory flag kinds raised for this attempt
        job_id: Batch job behind the attempt
        source_label: Origin label of an ingest batch
        download_token: Token minted for a successful export
        token_expires_at: Expiry of that token
        reason: Rejection reason
    """

    audit_id: str | None = None
    principal_id: str
    role: str
    operation: str
    classification: AuditClassification
    fields: list[str] = Field(default_factory=list)
    field_count: int = 0
    record_count: int = 0
    artifact_size: int | None = None
    failure_summary: str | None = None
    anomaly_flags: list[str] = Field(default_factory=list)
    job_id: str | None = None
    source_label: str | None = None
    download_token: str | None = None
    token_expires_at: datetime | None = None
    reason: str | None = None


class AuditRecord(AuditEvent):
    """Persisted audit entry. Never updated after creation."""

    audit_id: str
    created_at: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "audit_id": "0f7c6a52-8d7e-4b8e-bb3e-5d6a0d6a7f21",
                "principal_id": "user-7f3a",
                "role": "viewer",
                "operation": "export",
                "classification": "denied",
                "fields": ["name", "ssn"],
                "field_count": 0,
                "record_count": 0,
                "reason": "Fields not exportable for this role: ssn"
            }
        }
