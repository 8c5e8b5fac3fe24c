"""
Collaborator interfaces the engine depends on.

The engine never talks to a database, an identity service or a blob store
directly; it is handed objects satisfying these protocols.
"""

from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel

from secure_batch.core.models import OperationRecord, Principal


class InsertResult(BaseModel):
    """Outcome of inserting one record."""

    record_id: str | None = None
    inserted: bool = True
    error: str | None = None

    class Config:
        frozen = True


class RecordRepository(Protocol):
    def fetch(self, filters: dict[str, Any], limit: int) -> list[dict[str, Any]]:
        ...

    def insert_many(self, records: list[dict[str, Any]]) -> list[InsertResult]:
        ...


class IdentityProvider(Protocol):
    def current_principal(self) -> Principal:
        ...


class ObjectStorage(Protocol):
    def store(self, data: bytes) -> str:
        ...

    def load(self, handle: str) -> bytes:
        ...

    def delete(self, handle: str) -> None:
        ...


class OperationHistory(Protocol):
    def recent(self, principal_id: str, since: datetime) -> list[OperationRecord]:
        ...

    def append(self, operation: OperationRecord) -> None:
        ...
