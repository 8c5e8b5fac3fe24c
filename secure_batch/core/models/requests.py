"""
Immutable request models for the two public flows.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ExportFormat(str, Enum):
    """Serialization of an export artifact."""
    CSV = "csv"
    JSON = "json"


class ExportRequest(BaseModel):
    """
    Bulk export of selected fields.

    Attributes:
        fields: Requested field names, in output column order
        filters: Equality filters passed through to the record repository
        format: Artifact serialization
        max_records: Cap on the number of records fetched
    """

    fields: list[str] = Field(..., min_length=1)
    filters: dict[str, Any] = Field(default_factory=dict)
    format: ExportFormat = ExportFormat.JSON
    max_records: int = Field(1000, gt=0)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "fields": ["name", "email"],
                "filters": {"status": "active"},
                "format": "csv",
                "max_records": 500
            }
        }


class IngestRequest(BaseModel):
    """
    Bulk ingestion of records.

    Attributes:
        records: Ordered input records; the index in this list is the item index
        source_label: Free-form label of where the batch came from
    """

    records: list[dict[str, Any]]
    source_label: str | None = None

    class Config:
        frozen = True
