"""
Serialization of export payloads.

Rows arrive already projected onto the allowed fields and sanitized; the
serializers only decide the byte layout.
"""

import csv
import io
import json
from typing import Any

from secure_batch.core.models import ExportFormat

# Spreadsheet applications evaluate cells starting with these as formulas
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


def to_csv(rows: list[dict[str, Any]], fields: list[str]) -> bytes:
    """
    CSV with a header row of `fields`, in that order.

    Text cells that a spreadsheet would treat as a formula are prefixed
    with a single quote.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(fields)
    for row in rows:
        writer.writerow([_csv_cell(row.get(name)) for name in fields])
    return buffer.getvalue().encode("utf-8")


def to_json(rows: list[dict[str, Any]], fields: list[str]) -> bytes:
    """JSON array of objects holding exactly `fields`."""
    projected = [{name: row.get(name) for name in fields} for row in rows]
    return json.dumps(projected, default=str, ensure_ascii=False).encode("utf-8")


SERIALIZERS = {
    ExportFormat.CSV: to_csv,
    ExportFormat.JSON: to_json,
}


def serialize(rows: list[dict[str, Any]], fields: list[str], export_format: ExportFormat) -> bytes:
    return SERIALIZERS[export_format](rows, fields)
