"""
PostgreSQL record repository.

Records are stored as JSONB documents; equality filters are evaluated with
JSONB containment so any top-level field can be filtered on without schema
changes.
"""

import uuid
from typing import Any

import psycopg
from psycopg.types.json import Jsonb

from secure_batch.core.errors import SystemFailureError
from secure_batch.observability.logger import get_logger
from secure_batch.storage.connection import DatabaseConnectionPool
from secure_batch.storage.interfaces import InsertResult

logger = get_logger(__name__)


class PostgresRecordRepository:
    """
    RecordRepository over the `records` table.

    Args:
        pool: Open connection pool
        source_label: Stored with every inserted row
        id_field: Record field used as the primary key when present
    """

    def __init__(self, pool: DatabaseConnectionPool, source_label: str | None = None, id_field: str = "id"):
        self.pool = pool
        self.source_label = source_label
        self.id_field = id_field

    def fetch(self, filters: dict[str, Any], limit: int) -> list[dict[str, Any]]:
        query = """
            SELECT data
            FROM records
            WHERE data @> %(filters)s
            ORDER BY created_at, record_id
            LIMIT %(limit)s
        """
        try:
            rows = self.pool.execute_query(query, {"filters": Jsonb(filters or {}), "limit": limit})
        except psycopg.OperationalError as e:
            logger.error("Record fetch failed", extra={"error": str(e)})
            raise SystemFailureError(f"Record store unavailable: {e}") from e

        return [row["data"] for row in rows]

    def insert_many(self, records: list[dict[str, Any]]) -> list[InsertResult]:
        """
        Insert records in one transaction.

        A record whose id already exists is reported as not inserted rather
        than overwriting the stored row.
        """
        if not records:
            return []

        command = """
            INSERT INTO records (record_id, data, source_label)
            VALUES (%(record_id)s, %(data)s, %(source_label)s)
            ON CONFLICT (record_id) DO NOTHING
            RETURNING record_id
        """

        results: list[InsertResult] = []
        try:
            with self.pool.get_connection() as conn:
                with conn.cursor() as cur:
                    for record in records:
                        record_id = str(record.get(self.id_field) or uuid.uuid4())
                        cur.execute(command, {
                            "record_id": record_id,
                            "data": Jsonb(record),
                            "source_label": self.source_label,
                        })
                        inserted = cur.fetchone() is not None
                        results.append(InsertResult(
                            record_id=record_id,
                            inserted=inserted,
                            error=None if inserted else "duplicate record id",
                        ))
                conn.commit()
        except psycopg.OperationalError as e:
            logger.error("Record insert failed", extra={"error": str(e), "batch_size": len(records)})
            raise SystemFailureError(f"Record store unavailable: {e}") from e

        return results
