"""
Core data models for the secure batch engine.

All models use Pydantic for runtime validation; request and record models
are frozen so they cannot change once handed across a component boundary.
"""

from .audit_record import AuditClassification, AuditEvent, AuditRecord
from .batch_job import BatchJob, BatchStatus, ChunkResult, ItemError
from .download_token import DownloadToken
from .field_permission import FieldPermission, FieldResolution
from .operation import AnomalyFlag, AnomalyKind, OperationRecord
from .principal import Principal
from .record_validation import RecordValidation
from .rate_limit import OperationClass, RateLimitCounter, RateLimitDecision
from .requests import ExportFormat, ExportRequest, IngestRequest

__all__ = [
    "Principal",
    "RecordValidation",
    "FieldPermission",
    "FieldResolution",
    "ExportFormat",
    "ExportRequest",
    "IngestRequest",
    "BatchJob",
    "BatchStatus",
    "ChunkResult",
    "ItemError",
    "AuditClassification",
    "AuditEvent",
    "AuditRecord",
    "RateLimitCounter",
    "RateLimitDecision",
    "OperationClass",
    "DownloadToken",
    "OperationRecord",
    "AnomalyFlag",
    "AnomalyKind",
]
