"""
Rate limit models: the per-principal daily counter and the gate decision.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class OperationClass(str, Enum):
    """Operation classes with independent daily limits."""
    EXPORT = "export"
    INGEST = "ingest"


class RateLimitCounter(BaseModel):
    """
    Count of operations a principal performed in the current window.

    A new window replaces the whole record; counters never carry over.
    """

    principal_id: str
    operation_class: OperationClass
    count: int = Field(0, ge=0)
    reset_at: datetime

    class Config:
        frozen = True


class RateLimitDecision(BaseModel):
    """Result of check-and-consume."""

    allowed: bool
    operation_class: OperationClass
    limit: int
    count: int
    reset_at: datetime
    reason: str | None = None

    class Config:
        frozen = True

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)
