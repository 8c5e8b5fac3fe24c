"""
Batch job lifecycle tracking.

State machine:
    processing -> completed   all chunks done, at least one success (or no items)
    processing -> failed      every item failed, or a pre-flight failure
    processing -> cancelled   cancel requested while processing; applied when
                              the job is sealed

The tracker is the only writer of job state. Chunk tallies are accumulated
under a per-job lock so concurrent chunk completions never lose counts.
Once a job reaches a terminal status its snapshot never changes again.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from secure_batch.core.clock import Clock, SystemClock
from secure_batch.core.errors import JobNotFoundError
from secure_batch.core.models import BatchJob, BatchStatus, ChunkResult, ItemError
from secure_batch.observability.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _JobState:
    job: BatchJob
    errors: list[ItemError] = field(default_factory=list)
    successful: int = 0
    failed: int = 0
    reported: set[int] = field(default_factory=set)
    cancel_requested: bool = False
    sealed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)


class BatchJobTracker:
    """
    Owns every BatchJob and hands out frozen snapshots.

    Cancelling only raises a flag: the job stays `processing` and keeps
    accepting tallies from chunks already in flight until `finalize` seals it
    as `cancelled`, so `total == successful + failed` holds for every
    terminal job.

    Args:
        clock: Source of created_at/completed_at
        retention: When set, terminal jobs that completed longer ago than
            this are dropped each time a new job starts
    """

    def __init__(self, clock: Clock | None = None, retention: timedelta | None = None):
        self.clock = clock or SystemClock()
        self.retention = retention
        self._jobs: dict[str, _JobState] = {}
        self._jobs_guard = threading.Lock()

    def _state(self, job_id: str) -> _JobState:
        with self._jobs_guard:
            state = self._jobs.get(job_id)
        if state is None:
            raise JobNotFoundError(job_id)
        return state

    def _snapshot(self, state: _JobState, **changes) -> BatchJob:
        """Replace the stored job with a new frozen copy reflecting the tallies."""
        state.job = state.job.model_copy(update={
            "successful": state.successful,
            "failed": state.failed,
            "errors": sorted(state.errors, key=lambda e: e.index),
            **changes,
        })
        return state.job

    def _seal(self, state: _JobState, **changes) -> BatchJob:
        state.sealed = True
        job = self._snapshot(state, completed_at=self.clock.now(), **changes)
        state.reported = set()
        state.errors = []
        return job

    @staticmethod
    def _fail_unreported(state: _JobState, reason: str) -> None:
        """Count every item no chunk reported on as failed."""
        missing = [i for i in range(state.job.total) if i not in state.reported]
        state.errors.extend(ItemError(index=i, reason=reason) for i in missing)
        state.failed += len(missing)
        state.reported.update(missing)

    def start(self, owner_id: str, total: int, operation: str = "ingest") -> BatchJob:
        """Create a job in the processing state."""
        if self.retention is not None:
            self.purge_finished(self.retention)

        job = BatchJob(
            job_id=str(uuid.uuid4()),
            owner_id=owner_id,
            operation=operation,
            total=total,
            created_at=self.clock.now(),
        )
        with self._jobs_guard:
            self._jobs[job.job_id] = _JobState(job=job)

        logger.info(
            "Batch job started",
            extra={"job_id": job.job_id, "owner_id": owner_id, "operation": operation, "total": total}
        )
        return job

    def record_chunk(self, job_id: str, result: ChunkResult) -> BatchJob:
        """
        Accumulate one chunk's outcome.

        Safe to call concurrently for different chunks of the same job.
        Tallies arriving after the job is sealed are ignored.
        """
        state = self._state(job_id)
        with state.lock:
            if state.sealed:
                logger.warning(
                    "Ignoring chunk result for sealed job",
                    extra={"job_id": job_id, "chunk_index": result.chunk_index}
                )
                return state.job

            if state.successful + state.failed + result.size > state.job.total:
                raise ValueError(
                    f"Chunk {result.chunk_index} would push job {job_id} past its total of {state.job.total}"
                )

            state.successful += result.succeeded
            state.failed += result.failed
            state.errors.extend(result.errors)
            state.reported.update(range(result.start_index, result.start_index + result.size))
            return self._snapshot(state)

    def finalize(self, job_id: str) -> BatchJob:
        """
        Seal the job and compute its terminal status from the tallies.

        A job with a pending cancel request is sealed as cancelled. Any item
        that never reported is counted as failed so the totals always add up.
        """
        state = self._state(job_id)
        with state.lock:
            if state.sealed:
                return state.job

            self._fail_unreported(state, "not processed")

            if state.cancel_requested:
                status = BatchStatus.CANCELLED
            elif state.job.total > 0 and state.successful == 0:
                status = BatchStatus.FAILED
            else:
                status = BatchStatus.COMPLETED

            job = self._seal(state, status=status)

        logger.info(
            "Batch job finalized",
            extra={
                "job_id": job_id,
                "status": job.status.value,
                "successful": job.successful,
                "failed": job.failed,
            }
        )
        return job

    def fail(self, job_id: str, reason: str) -> BatchJob:
        """
        Pre-flight failure: no chunk ran (or the run could not be completed).

        Every item not yet reported is marked failed with `reason`.
        """
        state = self._state(job_id)
        with state.lock:
            if state.sealed:
                return state.job

            self._fail_unreported(state, reason)
            job = self._seal(state, status=BatchStatus.FAILED, reason=reason)

        logger.error("Batch job failed", extra={"job_id": job_id, "reason": reason})
        return job

    def cancel(self, job_id: str) -> bool:
        """
        Request cancellation of a processing job.

        The job keeps its `processing` status until `finalize` seals it.

        Returns:
            True if this call requested the cancel; False (no change) if the
            job was already terminal or already had a cancel pending
        """
        state = self._state(job_id)
        with state.lock:
            if state.sealed or state.cancel_requested:
                return False
            state.cancel_requested = True

        logger.info("Batch job cancel requested", extra={"job_id": job_id})
        return True

    def is_cancelled(self, job_id: str) -> bool:
        """True once a cancel was requested, before and after sealing."""
        return self._state(job_id).cancel_requested

    def get(self, job_id: str) -> BatchJob:
        """Current snapshot; reading never mutates the job."""
        return self._state(job_id).job

    def jobs_for(self, owner_id: str) -> list[BatchJob]:
        with self._jobs_guard:
            states = list(self._jobs.values())
        return sorted(
            (s.job for s in states if s.job.owner_id == owner_id),
            key=lambda j: j.created_at,
        )

    def purge_finished(self, older_than: timedelta) -> int:
        """
        Forget terminal jobs completed more than `older_than` ago.

        Jobs still processing are never purged.

        Returns:
            Number of jobs removed
        """
        cutoff = self.clock.now() - older_than
        with self._jobs_guard:
            expired = [
                job_id for job_id, state in self._jobs.items()
                if state.sealed and state.job.completed_at is not None and state.job.completed_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info("Purged finished batch jobs", extra={"count": len(expired)})
        return len(expired)

    def __len__(self) -> int:
        with self._jobs_guard:
            return len(self._jobs)
