"""
BatchJob model and the ephemeral per-chunk outcome aggregated into it.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from secure_batch.core.clock import utc_now


class BatchStatus(str, Enum):
    """Lifecycle states of a batch job."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not BatchStatus.PROCESSING


class ItemError(BaseModel):
    """Why the item at `index` (position in the input sequence) failed."""

    index: int = Field(..., ge=0)
    reason: str

    class Config:
        frozen = True


class ChunkResult(BaseModel):
    """
    Outcome of one bounded slice of the record set (ephemeral).

    Attributes:
        chunk_index: Position of the chunk in the split
        start_index: Item index of the chunk's first element
        succeeded: Items whose worker call returned normally
        failed: Items whose worker call raised or were skipped
        errors: One entry per failed item
    """

    chunk_index: int = Field(..., ge=0)
    start_index: int = Field(..., ge=0)
    succeeded: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    errors: list[ItemError] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_error_count(self) -> "ChunkResult":
        if len(self.errors) != self.failed:
            raise ValueError(
                f"errors length ({len(self.errors)}) must match failed count ({self.failed})"
            )
        return self

    @property
    def size(self) -> int:
        return self.succeeded + self.failed


class BatchJob(BaseModel):
    """
    Snapshot of a batch operation.

    Instances handed to callers are frozen copies; only the job tracker
    holds the live state.

    Attributes:
        job_id: Unique job identifier
        owner_id: Principal that started the job
        operation: "ingest" or "export"
        total: Number of items accepted into the job
        successful: Items that succeeded so far
        failed: Items that failed so far
        status: Lifecycle state
        errors: Per-item failures, ordered by item index
        reason: Pre-flight failure reason, if any
        created_at: When the job was accepted
        completed_at: When the job reached a terminal state
    """

    job_id: str
    owner_id: str
    operation: str = "ingest"
    total: int = Field(..., ge=0)
    successful: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    status: BatchStatus = BatchStatus.PROCESSING
    errors: list[ItemError] = Field(default_factory=list)
    reason: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "job_id": "4b1d0c1e-2a43-4b52-9a55-2f0e7d1f1c11",
                "owner_id": "user-7f3a",
                "operation": "ingest",
                "total": 120,
                "successful": 119,
                "failed": 1,
                "status": "completed",
                "errors": [{"index": 75, "reason": "email: value does not match pattern"}]
            }
        }

    @property
    def processed(self) -> int:
        return self.successful + self.failed

    @property
    def has_failures(self) -> bool:
        """Partial failure: the job ran to the end but some items failed."""
        return self.failed > 0
