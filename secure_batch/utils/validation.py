"""
Request validation utilities.

Checks the shape of export and ingest requests before any quota is consumed
or any record is touched. Every function raises ValidationError on bad input
and returns the cleaned value otherwise.
"""

import re
from typing import Any

from secure_batch.core.errors import ValidationError
from secure_batch.core.models import ExportFormat

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.]+$")
FIELD_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_identifier(value: str, field_name: str = "identifier") -> str:
    """
    Validate an identifier such as a principal id or job id.

    Identifiers must be non-empty strings of alphanumerics, hyphens,
    underscores and dots, at most 255 characters.

    Examples:
        >>> validate_identifier("user-123")
        'user-123'
        >>> validate_identifier("  job_9  ")
        'job_9'
    """
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a non-empty string", field_name)

    value = value.strip()
    if not value:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only", field_name)

    if not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric, hyphens, underscores, and dots are allowed.",
            field_name,
        )

    if len(value) > 255:
        raise ValidationError(f"{field_name} exceeds maximum length of 255 characters", field_name)

    return value


def validate_field_names(fields: Any, field_name: str = "fields", max_fields: int = 100) -> list[str]:
    """
    Validate the list of requested export fields.

    Field names must look like SQL column names; duplicates are removed
    keeping the first occurrence so the output column order is stable.

    Examples:
        >>> validate_field_names(["name", "email", "name"])
        ['name', 'email']
    """
    if not isinstance(fields, (list, tuple)):
        raise ValidationError(f"{field_name} must be a list", field_name)

    if not fields:
        raise ValidationError(f"{field_name} must contain at least one field", field_name)

    if len(fields) > max_fields:
        raise ValidationError(f"{field_name} exceeds maximum of {max_fields} fields", field_name)

    cleaned: list[str] = []
    for i, name in enumerate(fields):
        if not isinstance(name, str) or not FIELD_NAME_PATTERN.match(name.strip()):
            raise ValidationError(f"{field_name}[{i}] is not a valid field name: {name!r}", field_name)
        name = name.strip()
        if name not in cleaned:
            cleaned.append(name)

    return cleaned


def validate_max_records(max_records: Any, limit: int, field_name: str = "max_records") -> int:
    """
    Validate the export record cap.

    Examples:
        >>> validate_max_records(100, limit=1000)
        100
    """
    if isinstance(max_records, bool) or not isinstance(max_records, int):
        raise ValidationError(
            f"{field_name} must be an integer, got {type(max_records).__name__}", field_name
        )

    if max_records <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {max_records}", field_name)

    if max_records > limit:
        raise ValidationError(f"{field_name} exceeds maximum of {limit}", field_name)

    return max_records


def validate_export_format(export_format: Any, field_name: str = "format") -> ExportFormat:
    """
    Validate the export serialization format.

    Examples:
        >>> validate_export_format("CSV").value
        'csv'
    """
    if isinstance(export_format, ExportFormat):
        return export_format

    if not isinstance(export_format, str):
        raise ValidationError(f"{field_name} must be a string", field_name)

    try:
        return ExportFormat(export_format.strip().lower())
    except ValueError:
        allowed = ", ".join(f.value for f in ExportFormat)
        raise ValidationError(f"{field_name} must be one of: {allowed}", field_name)


def validate_filters(filters: Any, field_name: str = "filters") -> dict[str, Any]:
    """Filters must be a mapping of field name to a scalar value."""
    if filters is None:
        return {}

    if not isinstance(filters, dict):
        raise ValidationError(f"{field_name} must be a mapping", field_name)

    for key, value in filters.items():
        if not isinstance(key, str) or not FIELD_NAME_PATTERN.match(key):
            raise ValidationError(f"{field_name} key is not a valid field name: {key!r}", field_name)
        if isinstance(value, (dict, list, set, tuple)):
            raise ValidationError(f"{field_name}[{key}] must be a scalar value", field_name)

    return dict(filters)


def validate_records(records: Any, limit: int, field_name: str = "records") -> list[dict[str, Any]]:
    """
    Validate the shape of an ingest batch.

    Only the envelope is checked here (a non-empty list of mappings within the
    batch size limit); field-level rules run per item inside the chunks.
    """
    if not isinstance(records, list):
        raise ValidationError(f"{field_name} must be a list", field_name)

    if not records:
        raise ValidationError(f"{field_name} must contain at least one record", field_name)

    if len(records) > limit:
        raise ValidationError(
            f"{field_name} exceeds maximum length of {limit} items. "
            "Split the batch into smaller requests.",
            field_name,
        )

    for i, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValidationError(
                f"{field_name}[{i}] must be a mapping, got {type(record).__name__}", field_name
            )

    return records
