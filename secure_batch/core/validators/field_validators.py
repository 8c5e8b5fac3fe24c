"""
Presence, type and range validators for ingestion records.
"""

from typing import Any

from .base_validator import BaseValidator


class RequiredFieldValidator(BaseValidator):
    """
    Field must be present, non-null and (unless allowed) non-blank.

    Parameters:
    - allow_empty_string: accept "" and whitespace-only strings
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.allow_empty_string = self.parameters.get("allow_empty_string", False)

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if self.field_name not in record:
            raise self.violation("field is missing")
        if value is None:
            raise self.violation("value is null")
        if not self.allow_empty_string and isinstance(value, str) and not value.strip():
            raise self.violation("value is empty")

    @property
    def rule_type(self) -> str:
        return "required_field"


class TypeValidator(BaseValidator):
    """
    Field must be of (or coercible to) the expected type.

    Parameters:
    - expected_type: int, float, str or bool (aliases: integer, decimal, string, boolean)
    - coerce: accept strings that parse as the expected type (default True)
    """

    TYPE_MAPPING = {
        "integer": int,
        "int": int,
        "decimal": float,
        "float": float,
        "double": float,
        "string": str,
        "str": str,
        "boolean": bool,
        "bool": bool,
    }

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        expected_type = self.parameters.get("expected_type")
        if not expected_type:
            raise ValueError("TypeValidator requires 'expected_type' parameter")

        self.expected_type = self.TYPE_MAPPING.get(str(expected_type).lower())
        if self.expected_type is None:
            raise ValueError(f"Unsupported type: {expected_type}")

        self.coerce = self.parameters.get("coerce", True)

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if value is None:
            return

        # bool is an int subclass; do not let True pass as an integer
        if isinstance(value, bool) and self.expected_type is not bool:
            raise self.violation(f"expected {self.expected_type.__name__}, got bool")

        if isinstance(value, self.expected_type):
            return

        if not self.coerce:
            raise self.violation(
                f"expected {self.expected_type.__name__}, got {type(value).__name__}"
            )

        try:
            self._coerce(value)
        except (ValueError, TypeError) as e:
            raise self.violation(
                f"cannot coerce {type(value).__name__} to {self.expected_type.__name__}: {e}"
            )

    def _coerce(self, value: Any) -> Any:
        if self.expected_type is bool:
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in ("true", "1", "yes"):
                    return True
                if lowered in ("false", "0", "no"):
                    return False
                raise ValueError(f"cannot parse '{value}' as boolean")
            return bool(value)
        return self.expected_type(value)

    @property
    def rule_type(self) -> str:
        return "type_check"


class RangeValidator(BaseValidator):
    """
    Numeric field must lie within inclusive bounds.

    Parameters:
    - min: lower bound (inclusive)
    - max: upper bound (inclusive)
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.min_value = self.parameters.get("min")
        self.max_value = self.parameters.get("max")
        if self.min_value is None and self.max_value is None:
            raise ValueError("RangeValidator requires at least one of: min, max")

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if value is None:
            return

        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                raise self.violation(f"value '{value}' is not numeric")
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self.violation(f"value must be numeric, got {type(value).__name__}")

        if self.min_value is not None and value < self.min_value:
            raise self.violation(f"value {value} is less than minimum {self.min_value}")
        if self.max_value is not None and value > self.max_value:
            raise self.violation(f"value {value} exceeds maximum {self.max_value}")

    @property
    def rule_type(self) -> str:
        return "range"


class LengthValidator(BaseValidator):
    """
    String field length must not exceed `max` characters.

    Parameters:
    - max: maximum length (default 255)
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.max_length = int(self.parameters.get("max", 255))

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if isinstance(value, str) and len(value) > self.max_length:
            raise self.violation(f"length {len(value)} exceeds maximum {self.max_length}")

    @property
    def rule_type(self) -> str:
        return "max_length"
