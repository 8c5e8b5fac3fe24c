"""
Storage adapters: collaborator interfaces, in-memory and PostgreSQL
implementations, the audit recorder and the download token issuer.
"""

from .artifacts import SecureArtifactIssuer
from .audit import AuditRecorder, InMemoryAuditStore
from .interfaces import IdentityProvider, InsertResult, ObjectStorage, OperationHistory, RecordRepository
from .memory import (
    InMemoryObjectStorage,
    InMemoryOperationHistory,
    InMemoryRecordRepository,
    StaticIdentityProvider,
)

__all__ = [
    "SecureArtifactIssuer",
    "AuditRecorder",
    "InMemoryAuditStore",
    "IdentityProvider",
    "InsertResult",
    "ObjectStorage",
    "OperationHistory",
    "RecordRepository",
    "InMemoryObjectStorage",
    "InMemoryOperationHistory",
    "InMemoryRecordRepository",
    "StaticIdentityProvider",
]
