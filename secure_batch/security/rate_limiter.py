"""
Per-principal daily rate limiting for export and ingest.

The limiter owns the policy (limits, UTC day windows); a counter store owns
the state and performs check-and-increment as one atomic step per key.
"""

import threading
from datetime import datetime, time, timedelta
from typing import Protocol

from secure_batch.core.clock import Clock, SystemClock
from secure_batch.core.errors import RateLimitExceeded
from secure_batch.core.models import OperationClass, Principal, RateLimitCounter, RateLimitDecision
from secure_batch.observability import metrics
from secure_batch.observability.logger import get_logger

logger = get_logger(__name__)


def next_window_reset(now: datetime) -> datetime:
    """Midnight at the start of the next day, in the clock's timezone."""
    tomorrow = now.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=now.tzinfo)


class CounterStore(Protocol):
    def consume(
        self,
        principal_id: str,
        operation_class: OperationClass,
        limit: int,
        now: datetime,
        window_reset_at: datetime,
    ) -> tuple[bool, RateLimitCounter]:
        """Atomically reset-if-expired, compare against limit and increment on allow."""
        ...

    def get(self, principal_id: str, operation_class: OperationClass) -> RateLimitCounter | None:
        ...


class InMemoryCounterStore:
    """
    Process-wide counter store.

    One lock per (principal, operation class) key; distinct principals never
    wait on each other beyond the short lock-table lookup.
    """

    def __init__(self):
        self._counters: dict[tuple[str, OperationClass], RateLimitCounter] = {}
        self._locks: dict[tuple[str, OperationClass], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: tuple[str, OperationClass]) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def consume(
        self,
        principal_id: str,
        operation_class: OperationClass,
        limit: int,
        now: datetime,
        window_reset_at: datetime,
    ) -> tuple[bool, RateLimitCounter]:
        key = (principal_id, operation_class)
        with self._lock_for(key):
            current = self._counters.get(key)
            if current is None or now >= current.reset_at:
                # New window: replace the record, never carry the old count over
                current = RateLimitCounter(
                    principal_id=principal_id,
                    operation_class=operation_class,
                    count=0,
                    reset_at=window_reset_at,
                )
                self._counters[key] = current

            if current.count >= limit:
                return False, current

            updated = current.model_copy(update={"count": current.count + 1})
            self._counters[key] = updated
            return True, updated

    def get(self, principal_id: str, operation_class: OperationClass) -> RateLimitCounter | None:
        return self._counters.get((principal_id, operation_class))


class RateLimiter:
    """
    Gatekeeper for both entry points.

    Args:
        limits: Daily limit per operation class
        store: Counter store (in-memory by default)
        clock: Time source deciding the current UTC day
    """

    def __init__(
        self,
        limits: dict[OperationClass, int],
        store: CounterStore | None = None,
        clock: Clock | None = None,
    ):
        for operation_class, limit in limits.items():
            if limit <= 0:
                raise ValueError(f"Daily limit for {operation_class.value} must be positive")
        self.limits = dict(limits)
        self.store = store or InMemoryCounterStore()
        self.clock = clock or SystemClock()

    def check_and_consume(self, principal: Principal, operation_class: OperationClass) -> RateLimitDecision:
        """
        Allow and count the operation, or reject it without counting.

        Returns:
            RateLimitDecision; `allowed` is False when the daily limit is reached
        """
        limit = self.limits.get(operation_class)
        if limit is None:
            raise ValueError(f"No daily limit configured for {operation_class.value}")

        now = self.clock.now()
        allowed, counter = self.store.consume(
            principal.principal_id,
            operation_class,
            limit,
            now,
            next_window_reset(now),
        )

        if not allowed:
            metrics.increment_counter(
                metrics.rate_limit_rejections_total, operation_class=operation_class.value
            )
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "principal_id": principal.principal_id,
                    "operation_class": operation_class.value,
                    "limit": limit,
                    "reset_at": counter.reset_at.isoformat(),
                }
            )

        return RateLimitDecision(
            allowed=allowed,
            operation_class=operation_class,
            limit=limit,
            count=counter.count,
            reset_at=counter.reset_at,
            reason=None if allowed else f"daily {operation_class.value} limit of {limit} reached",
        )

    def enforce(self, principal: Principal, operation_class: OperationClass) -> RateLimitDecision:
        """
        check_and_consume, raising on rejection.

        Raises:
            RateLimitExceeded: If the principal's quota for the class is used up
        """
        decision = self.check_and_consume(principal, operation_class)
        if not decision.allowed:
            raise RateLimitExceeded(operation_class.value, decision.limit, decision.reset_at)
        return decision
