"""
In-memory adapters for the storage interfaces.

Used by the test suite and by the CLI when no database is configured.
All of them are safe to share between chunk worker threads.
"""

import copy
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable

from secure_batch.core.errors import SystemFailureError
from secure_batch.core.models import OperationRecord, Principal
from secure_batch.observability.logger import get_logger
from secure_batch.storage.interfaces import InsertResult

logger = get_logger(__name__)


class InMemoryRecordRepository:
    """
    List-backed record store.

    Args:
        records: Initial rows
        fail_on: Optional predicate; inserting a record for which it returns
            True raises SystemFailureError (simulates a storage outage)
    """

    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        fail_on: Callable[[dict[str, Any]], bool] | None = None,
    ):
        self._records: list[dict[str, Any]] = [dict(r) for r in (records or [])]
        self._lock = threading.Lock()
        self.fail_on = fail_on
        self.fetch_calls = 0
        self.insert_calls = 0

    @property
    def records(self) -> list[dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._records)

    def fetch(self, filters: dict[str, Any], limit: int) -> list[dict[str, Any]]:
        """Rows whose values equal every filter, in insertion order, at most `limit`."""
        with self._lock:
            self.fetch_calls += 1
            matched = [
                copy.deepcopy(r) for r in self._records
                if all(r.get(k) == v for k, v in filters.items())
            ]
        return matched[:limit]

    def insert_many(self, records: list[dict[str, Any]]) -> list[InsertResult]:
        results = []
        for record in records:
            with self._lock:
                self.insert_calls += 1
            if self.fail_on is not None and self.fail_on(record):
                raise SystemFailureError("Record store unavailable")

            record_id = str(record.get("id") or uuid.uuid4())
            with self._lock:
                self._records.append(dict(record))
            results.append(InsertResult(record_id=record_id))
        return results


class StaticIdentityProvider:
    """Always resolves to the principal it was built with."""

    def __init__(self, principal: Principal):
        self.principal = principal

    def current_principal(self) -> Principal:
        return self.principal


class InMemoryObjectStorage:
    """Dictionary of opaque handle -> bytes."""

    def __init__(self):
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def store(self, data: bytes) -> str:
        handle = f"mem://{uuid.uuid4()}"
        with self._lock:
            self._objects[handle] = bytes(data)
        logger.debug("Stored object", extra={"handle": handle, "size": len(data)})
        return handle

    def load(self, handle: str) -> bytes:
        with self._lock:
            try:
                return self._objects[handle]
            except KeyError:
                raise SystemFailureError(f"Object not found: {handle}") from None

    def delete(self, handle: str) -> None:
        with self._lock:
            self._objects.pop(handle, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)


class InMemoryOperationHistory:
    """
    Per-principal list of past operations, oldest first.

    Args:
        retention: Entries older than this, measured from the newest
            appended operation, are dropped on append
    """

    def __init__(self, retention: timedelta = timedelta(hours=24)):
        self.retention = retention
        self._operations: dict[str, list[OperationRecord]] = {}
        self._lock = threading.Lock()

    def recent(self, principal_id: str, since: datetime) -> list[OperationRecord]:
        with self._lock:
            operations = list(self._operations.get(principal_id, []))
        return [op for op in operations if op.occurred_at >= since]

    def append(self, operation: OperationRecord) -> None:
        cutoff = operation.occurred_at - self.retention
        with self._lock:
            for principal_id in list(self._operations):
                kept = [op for op in self._operations[principal_id] if op.occurred_at >= cutoff]
                if kept:
                    self._operations[principal_id] = kept
                else:
                    del self._operations[principal_id]
            self._operations.setdefault(operation.principal_id, []).append(operation)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(ops) for ops in self._operations.values())
