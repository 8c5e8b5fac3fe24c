"""
Unit tests for request-shape validation utilities.
"""

import pytest

from secure_batch.core.errors import ValidationError
from secure_batch.core.models import ExportFormat
from secure_batch.utils.validation import (
    validate_export_format,
    validate_field_names,
    validate_filters,
    validate_identifier,
    validate_max_records,
    validate_records,
)


class TestValidateIdentifier:
    """Tests for validate_identifier"""

    def test_strips_whitespace(self):
        assert validate_identifier("  job_9  ") == "job_9"

    @pytest.mark.parametrize("value", ["", "   ", None, 42])
    def test_rejects_empty_or_non_string(self, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_identifier(value, "job_id")
        assert exc_info.value.field_name == "job_id"
        assert exc_info.value.kind == "validation"

    def test_rejects_injection_characters(self):
        with pytest.raises(ValidationError, match="invalid characters"):
            validate_identifier("job'; DROP TABLE records;--")

    def test_rejects_overlong(self):
        with pytest.raises(ValidationError, match="255"):
            validate_identifier("a" * 256)


class TestValidateFieldNames:
    """Tests for validate_field_names"""

    def test_dedupes_keeping_order(self):
        assert validate_field_names(["name", "email", "name"]) == ["name", "email"]

    def test_requires_list(self):
        with pytest.raises(ValidationError, match="must be a list"):
            validate_field_names("name,email")

    def test_requires_a_field(self):
        with pytest.raises(ValidationError, match="at least one"):
            validate_field_names([])

    @pytest.mark.parametrize("name", ["1name", "na me", "name;", "", None])
    def test_rejects_bad_names(self, name):
        with pytest.raises(ValidationError):
            validate_field_names([name])

    def test_field_cap(self):
        with pytest.raises(ValidationError, match="maximum of 2"):
            validate_field_names(["a", "b", "c"], max_fields=2)


class TestValidateMaxRecords:
    """Tests for validate_max_records"""

    def test_valid(self):
        assert validate_max_records(100, limit=1000) == 100

    @pytest.mark.parametrize("value", [0, -1])
    def test_must_be_positive(self, value):
        with pytest.raises(ValidationError, match="positive"):
            validate_max_records(value, limit=1000)

    def test_bool_is_not_an_integer(self):
        with pytest.raises(ValidationError, match="integer"):
            validate_max_records(True, limit=1000)

    def test_over_limit(self):
        with pytest.raises(ValidationError, match="exceeds maximum of 10"):
            validate_max_records(11, limit=10)


class TestValidateExportFormat:
    """Tests for validate_export_format"""

    def test_case_insensitive(self):
        assert validate_export_format(" CSV ") is ExportFormat.CSV

    def test_enum_passes_through(self):
        assert validate_export_format(ExportFormat.JSON) is ExportFormat.JSON

    def test_unknown_format(self):
        with pytest.raises(ValidationError, match="csv, json"):
            validate_export_format("xlsx")


class TestValidateFilters:
    """Tests for validate_filters"""

    def test_none_is_empty(self):
        assert validate_filters(None) == {}

    def test_scalar_values(self):
        assert validate_filters({"company": "Acme", "active": True}) == {"company": "Acme", "active": True}

    def test_nested_values_rejected(self):
        with pytest.raises(ValidationError, match="scalar"):
            validate_filters({"company": ["Acme", "Globex"]})

    def test_bad_key_rejected(self):
        with pytest.raises(ValidationError):
            validate_filters({"company OR 1=1": "x"})


class TestValidateRecords:
    """Tests for validate_records"""

    def test_valid_batch(self):
        records = [{"name": "a"}, {"name": "b"}]
        assert validate_records(records, limit=10) == records

    def test_empty_batch(self):
        with pytest.raises(ValidationError, match="at least one"):
            validate_records([], limit=10)

    def test_not_a_list(self):
        with pytest.raises(ValidationError, match="must be a list"):
            validate_records({"name": "a"}, limit=10)

    def test_over_limit(self):
        with pytest.raises(ValidationError, match="Split the batch"):
            validate_records([{}] * 11, limit=10)

    def test_non_mapping_item(self):
        with pytest.raises(ValidationError, match=r"records\[1\]"):
            validate_records([{"name": "a"}, "b"], limit=10)
