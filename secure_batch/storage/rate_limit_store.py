"""
PostgreSQL counter store for the rate limiter.

Reset, compare and increment happen in a single upsert statement, so the
row lock PostgreSQL takes on conflict is the only synchronization needed
across engine processes.
"""

from datetime import datetime

from secure_batch.core.models import OperationClass, RateLimitCounter
from secure_batch.storage.connection import DatabaseConnectionPool

CONSUME_SQL = """
    INSERT INTO rate_limit_counter AS c (principal_id, operation_class, count, reset_at)
    VALUES (%(principal_id)s, %(operation_class)s, 1, %(window_reset_at)s)
    ON CONFLICT (principal_id, operation_class) DO UPDATE SET
        count = CASE WHEN c.reset_at <= %(now)s THEN 1 ELSE c.count + 1 END,
        reset_at = CASE WHEN c.reset_at <= %(now)s THEN EXCLUDED.reset_at ELSE c.reset_at END
    WHERE c.reset_at <= %(now)s OR c.count < %(limit)s
    RETURNING count, reset_at
"""

SELECT_SQL = """
    SELECT principal_id, operation_class, count, reset_at
    FROM rate_limit_counter
    WHERE principal_id = %(principal_id)s AND operation_class = %(operation_class)s
"""


class PostgresCounterStore:
    """Counter store backed by the rate_limit_counter table."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def consume(
        self,
        principal_id: str,
        operation_class: OperationClass,
        limit: int,
        now: datetime,
        window_reset_at: datetime,
    ) -> tuple[bool, RateLimitCounter]:
        params = {
            "principal_id": principal_id,
            "operation_class": operation_class.value,
            "window_reset_at": window_reset_at,
            "now": now,
            "limit": limit,
        }
        row = self.pool.execute_returning(CONSUME_SQL, params)

        if row is not None:
            return True, RateLimitCounter(
                principal_id=principal_id,
                operation_class=operation_class,
                count=row["count"],
                reset_at=row["reset_at"],
            )

        # The WHERE clause suppressed the update: limit reached in the current window
        current = self.get(principal_id, operation_class)
        if current is None:
            raise RuntimeError(f"Counter row for {principal_id}/{operation_class.value} vanished")
        return False, current

    def get(self, principal_id: str, operation_class: OperationClass) -> RateLimitCounter | None:
        rows = self.pool.execute_query(
            SELECT_SQL,
            {"principal_id": principal_id, "operation_class": operation_class.value},
        )
        if not rows:
            return None
        return RateLimitCounter(**rows[0])
