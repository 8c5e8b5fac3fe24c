"""
Operation history entries and the advisory flags derived from them.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class OperationRecord(BaseModel):
    """One past export or ingest performed by a principal."""

    principal_id: str
    operation: str
    record_count: int = Field(0, ge=0)
    occurred_at: datetime

    class Config:
        frozen = True


class AnomalyKind(str, Enum):
    BULK_PATTERN = "bulk_pattern"
    BURST_PATTERN = "burst_pattern"


class AnomalyFlag(BaseModel):
    """Advisory finding; annotates the audit trail, never blocks."""

    kind: AnomalyKind
    observed: int
    threshold: int
    message: str

    class Config:
        frozen = True
