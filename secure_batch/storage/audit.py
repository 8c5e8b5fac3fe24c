"""
Append-only audit trail for export and ingest attempts.

The recorder turns engine events into AuditRecords and persists them.
Records are never updated or deleted once written.
"""

import threading
import time
import uuid
from typing import Any, Protocol

import psycopg
from psycopg.types.json import Jsonb

from secure_batch.core.clock import Clock, SystemClock
from secure_batch.core.errors import AuditWriteError
from secure_batch.core.models import AuditClassification, AuditEvent, AuditRecord
from secure_batch.observability import metrics
from secure_batch.observability.logger import get_logger
from secure_batch.storage.connection import DatabaseConnectionPool

logger = get_logger(__name__)


class AuditStore(Protocol):
    def append(self, record: AuditRecord) -> None:
        ...

    def for_principal(self, principal_id: str, limit: int = 100) -> list[AuditRecord]:
        ...

    def by_classification(self, classification: AuditClassification, limit: int = 1000) -> list[AuditRecord]:
        ...


class InMemoryAuditStore:
    """List-backed audit store, newest last."""

    def __init__(self):
        self._records: list[AuditRecord] = []
        self._ids: set[str] = set()
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> None:
        with self._lock:
            if record.audit_id in self._ids:
                raise ValueError(f"Audit record {record.audit_id} already exists")
            self._ids.add(record.audit_id)
            self._records.append(record)

    def get(self, audit_id: str) -> AuditRecord | None:
        with self._lock:
            return next((r for r in self._records if r.audit_id == audit_id), None)

    def all(self) -> list[AuditRecord]:
        with self._lock:
            return list(self._records)

    def for_principal(self, principal_id: str, limit: int = 100) -> list[AuditRecord]:
        """Most recent records of a principal, newest first."""
        with self._lock:
            matched = [r for r in self._records if r.principal_id == principal_id]
        return list(reversed(matched))[:limit]

    def by_classification(self, classification: AuditClassification, limit: int = 1000) -> list[AuditRecord]:
        with self._lock:
            matched = [r for r in self._records if r.classification is classification]
        return list(reversed(matched))[:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


AUDIT_COLUMNS = (
    "audit_id", "principal_id", "role", "operation", "classification", "fields",
    "field_count", "record_count", "artifact_size", "failure_summary",
    "anomaly_flags", "job_id", "source_label", "download_token", "token_expires_at",
    "reason", "created_at",
)


class PostgresAuditStore:
    """Audit store over the append-only `audit_record` table."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    def append(self, record: AuditRecord) -> None:
        columns = ", ".join(AUDIT_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in AUDIT_COLUMNS)
        params: dict[str, Any] = record.model_dump()
        params["classification"] = record.classification.value
        params["fields"] = Jsonb(record.fields)
        params["anomaly_flags"] = Jsonb(record.anomaly_flags)

        try:
            self.pool.execute_command(f"INSERT INTO audit_record ({columns}) VALUES ({placeholders})", params)
        except psycopg.DatabaseError as e:
            logger.error("Failed to insert audit record", extra={"audit_id": record.audit_id, "error": str(e)})
            raise

    def _select(self, where: str, params: dict[str, Any]) -> list[AuditRecord]:
        query = f"""
            SELECT {", ".join(AUDIT_COLUMNS)}
            FROM audit_record
            WHERE {where}
            ORDER BY created_at DESC, audit_id DESC
            LIMIT %(limit)s
        """
        rows = self.pool.execute_query(query, params)
        return [AuditRecord(**row) for row in rows]

    def for_principal(self, principal_id: str, limit: int = 100) -> list[AuditRecord]:
        return self._select("principal_id = %(principal_id)s", {"principal_id": principal_id, "limit": limit})

    def by_classification(self, classification: AuditClassification, limit: int = 1000) -> list[AuditRecord]:
        return self._select(
            "classification = %(classification)s",
            {"classification": classification.value, "limit": limit},
        )


class AuditRecorder:
    """
    Persists one AuditRecord per attempt.

    Write failures are handled by classification:
    - denied, approval_required, rate_limited: the record is the security
      control, so the write is retried and then escalated as AuditWriteError
    - everything else: retried, then logged and counted; the operation's own
      outcome stands

    Args:
        store: Where records go
        write_retries: Extra attempts after the first failed write
        retry_delay: Seconds to sleep between attempts
        clock: Source of created_at
    """

    def __init__(
        self,
        store: AuditStore | None = None,
        write_retries: int = 3,
        retry_delay: float = 0.0,
        clock: Clock | None = None,
    ):
        self.store = store if store is not None else InMemoryAuditStore()
        self.write_retries = write_retries
        self.retry_delay = retry_delay
        self.clock = clock or SystemClock()

    def record(self, event: AuditEvent, required: bool = False) -> AuditRecord:
        """
        Build and persist the audit record for an event.

        Args:
            event: What happened
            required: Escalate write failures even for a non-security
                classification (a successful export must not outlive its record)

        Returns:
            The AuditRecord (also when a non-security write was given up on)

        Raises:
            AuditWriteError: A security-relevant or required record could not be written
        """
        data = event.model_dump()
        data["audit_id"] = event.audit_id or str(uuid.uuid4())
        record = AuditRecord(**data, created_at=self.clock.now())

        attempts = self.write_retries + 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                self.store.append(record)
                logger.info(
                    "Audit record written",
                    extra={
                        "audit_id": record.audit_id,
                        "principal_id": record.principal_id,
                        "operation": record.operation,
                        "classification": record.classification.value,
                    }
                )
                return record
            except Exception as e:
                last_error = e
                logger.warning(
                    "Audit write attempt failed",
                    extra={"audit_id": record.audit_id, "attempt": attempt, "error": str(e)}
                )
                if attempt < attempts and self.retry_delay > 0:
                    time.sleep(self.retry_delay)

        metrics.increment_counter(
            metrics.audit_write_failures_total, classification=record.classification.value
        )

        if required or record.classification.is_security_relevant:
            logger.error(
                "Security audit record could not be written",
                extra={"audit_id": record.audit_id, "classification": record.classification.value}
            )
            raise AuditWriteError(
                f"Audit record for {record.operation} ({record.classification.value}) "
                f"not written after {attempts} attempts: {last_error}"
            ) from last_error

        logger.error(
            "Audit record dropped",
            extra={"audit_id": record.audit_id, "classification": record.classification.value}
        )
        return record

    def for_principal(self, principal_id: str, limit: int = 100) -> list[AuditRecord]:
        return self.store.for_principal(principal_id, limit)

    def by_classification(self, classification: AuditClassification, limit: int = 1000) -> list[AuditRecord]:
        return self.store.by_classification(classification, limit)
