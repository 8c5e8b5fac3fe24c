"""
Unit tests for ingestion field validators.

Includes property-based testing with hypothesis for validators.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from secure_batch.core.validators import (
    EmailValidator,
    LengthValidator,
    PhoneValidator,
    RangeValidator,
    RegexValidator,
    RequiredFieldValidator,
    RuleViolation,
    TypeValidator,
)


class TestRequiredFieldValidator:
    """Tests for RequiredFieldValidator"""

    def test_valid_required_field(self):
        """Test validation passes for present field"""
        validator = RequiredFieldValidator("name")
        record = {"name": "Jamie Rivera"}
        validator.validate(record["name"], record)

    def test_missing_field_raises_error(self):
        """Test validation fails for missing field"""
        validator = RequiredFieldValidator("name")
        record = {"email": "a@example.com"}

        with pytest.raises(RuleViolation) as exc_info:
            validator.validate(None, record)

        assert "missing" in str(exc_info.value)
        assert exc_info.value.field_name == "name"
        assert exc_info.value.rule_type == "required_field"

    def test_null_field_raises_error(self):
        validator = RequiredFieldValidator("name")
        with pytest.raises(RuleViolation, match="null"):
            validator.validate(None, {"name": None})

    def test_blank_string_raises_error(self):
        validator = RequiredFieldValidator("name")
        with pytest.raises(RuleViolation, match="empty"):
            validator.validate("   ", {"name": "   "})

    def test_blank_string_allowed_when_configured(self):
        validator = RequiredFieldValidator("name", {"allow_empty_string": True})
        validator.validate("", {"name": ""})

    @given(st.text(min_size=1).filter(lambda s: s.strip() != ""))
    def test_property_any_nonblank_string_passes(self, value):
        """Property test: any non-blank string passes"""
        validator = RequiredFieldValidator("field")
        validator.validate(value, {"field": value})


class TestTypeValidator:
    """Tests for TypeValidator"""

    def test_matching_type_passes(self):
        TypeValidator("deal_value", {"expected_type": "float"}).validate(99.5, {})

    def test_numeric_string_coerced(self):
        TypeValidator("deal_value", {"expected_type": "float"}).validate("12.50", {})

    def test_coercion_can_be_disabled(self):
        validator = TypeValidator("deal_value", {"expected_type": "float", "coerce": False})
        with pytest.raises(RuleViolation):
            validator.validate("12.50", {})

    def test_bool_is_not_an_integer(self):
        """Test True does not slip through as int"""
        with pytest.raises(RuleViolation, match="bool"):
            TypeValidator("count", {"expected_type": "int"}).validate(True, {})

    def test_none_is_left_to_required_field(self):
        TypeValidator("count", {"expected_type": "int"}).validate(None, {})

    def test_unsupported_type_rejected_at_construction(self):
        with pytest.raises(ValueError, match="Unsupported type"):
            TypeValidator("x", {"expected_type": "uuid"})

    def test_missing_expected_type(self):
        with pytest.raises(ValueError):
            TypeValidator("x", {})


class TestRangeValidator:
    """Tests for RangeValidator"""

    def test_within_bounds(self):
        RangeValidator("deal_value", {"min": 0, "max": 100}).validate(50, {})

    def test_bounds_are_inclusive(self):
        validator = RangeValidator("deal_value", {"min": 0, "max": 100})
        validator.validate(0, {})
        validator.validate(100, {})

    def test_below_minimum(self):
        with pytest.raises(RuleViolation, match="less than minimum"):
            RangeValidator("deal_value", {"min": 0}).validate(-1, {})

    def test_above_maximum(self):
        with pytest.raises(RuleViolation, match="exceeds maximum"):
            RangeValidator("deal_value", {"max": 10}).validate(11, {})

    def test_non_numeric_string(self):
        with pytest.raises(RuleViolation, match="not numeric"):
            RangeValidator("deal_value", {"min": 0}).validate("lots", {})

    def test_requires_a_bound(self):
        with pytest.raises(ValueError):
            RangeValidator("deal_value", {})

    @given(st.integers(min_value=0, max_value=1000))
    def test_property_values_in_range_pass(self, value):
        RangeValidator("n", {"min": 0, "max": 1000}).validate(value, {})


class TestLengthValidator:
    """Tests for LengthValidator"""

    def test_default_limit_is_255(self):
        validator = LengthValidator("name")
        validator.validate("x" * 255, {})
        with pytest.raises(RuleViolation):
            validator.validate("x" * 256, {})

    def test_non_strings_ignored(self):
        LengthValidator("name", {"max": 1}).validate(12345, {})


class TestPatternValidators:
    """Tests for RegexValidator, EmailValidator and PhoneValidator"""

    def test_regex_full_match_required(self):
        validator = RegexValidator("code", {"pattern": r"[A-Z]{3}"})
        validator.validate("ABC", {})
        with pytest.raises(RuleViolation):
            validator.validate("ABCD", {})

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValueError, match="Invalid regex"):
            RegexValidator("code", {"pattern": "("})

    def test_regex_requires_pattern(self):
        with pytest.raises(ValueError):
            RegexValidator("code", {})

    @pytest.mark.parametrize("email", ["a@example.com", "first.last+tag@sub.example.org"])
    def test_valid_emails(self, email):
        EmailValidator("email").validate(email, {})

    @pytest.mark.parametrize("email", ["not-an-email", "a@b", "a@@example.com", "a b@example.com"])
    def test_invalid_emails(self, email):
        with pytest.raises(RuleViolation) as exc_info:
            EmailValidator("email").validate(email, {})
        assert exc_info.value.rule_type == "email"

    @pytest.mark.parametrize("phone", ["+1 555 010 1234", "555-010-1234", "5550101234"])
    def test_valid_phones(self, phone):
        PhoneValidator("phone").validate(phone, {})

    @pytest.mark.parametrize("phone", ["call me", "12", "+1 555 abc"])
    def test_invalid_phones(self, phone):
        with pytest.raises(RuleViolation):
            PhoneValidator("phone").validate(phone, {})
