"""
Anomaly detection for bulk data access.

Flags suspicious patterns in a principal's recent operation history.

Rules:
- bulk_pattern: more than `bulk_operation_threshold` large operations
  (record_count > `bulk_record_cutoff`) in the trailing 24 hours
- burst_pattern: more than `burst_operation_threshold` operations in the
  trailing 5 minutes

Flags are advisory. They annotate the audit trail; blocking belongs to the
rate limiter and field authorization.
"""

from datetime import datetime, timedelta
from typing import Iterable

from secure_batch.core.models import AnomalyFlag, AnomalyKind, OperationRecord, Principal


BULK_WINDOW = timedelta(hours=24)
BURST_WINDOW = timedelta(minutes=5)


class AnomalyDetector:
    """
    Pure heuristics over caller-supplied history.

    Args:
        bulk_record_cutoff: Record count above which an operation is "large"
        bulk_operation_threshold: Large operations tolerated per 24h
        burst_operation_threshold: Operations tolerated per 5 minutes
    """

    def __init__(
        self,
        bulk_record_cutoff: int = 1000,
        bulk_operation_threshold: int = 3,
        burst_operation_threshold: int = 10,
    ):
        self.bulk_record_cutoff = bulk_record_cutoff
        self.bulk_operation_threshold = bulk_operation_threshold
        self.burst_operation_threshold = burst_operation_threshold

    def evaluate(
        self,
        principal: Principal,
        recent_operations: Iterable[OperationRecord],
        now: datetime,
    ) -> list[AnomalyFlag]:
        """
        Evaluate a principal's history.

        Args:
            principal: The principal being evaluated
            recent_operations: History entries; other principals' entries are ignored
            now: End of both trailing windows

        Returns:
            List of flags (empty if nothing suspicious)
        """
        own = [
            op for op in recent_operations
            if op.principal_id == principal.principal_id and op.occurred_at <= now
        ]

        large_ops = sum(
            1 for op in own
            if op.occurred_at > now - BULK_WINDOW and op.record_count > self.bulk_record_cutoff
        )
        burst_ops = sum(1 for op in own if op.occurred_at > now - BURST_WINDOW)

        flags: list[AnomalyFlag] = []

        if large_ops > self.bulk_operation_threshold:
            flags.append(AnomalyFlag(
                kind=AnomalyKind.BULK_PATTERN,
                observed=large_ops,
                threshold=self.bulk_operation_threshold,
                message=(
                    f"{large_ops} operations over {self.bulk_record_cutoff} records in 24h "
                    f"(threshold {self.bulk_operation_threshold})"
                ),
            ))

        if burst_ops > self.burst_operation_threshold:
            flags.append(AnomalyFlag(
                kind=AnomalyKind.BURST_PATTERN,
                observed=burst_ops,
                threshold=self.burst_operation_threshold,
                message=(
                    f"{burst_ops} operations in 5 minutes "
                    f"(threshold {self.burst_operation_threshold})"
                ),
            ))

        return flags
