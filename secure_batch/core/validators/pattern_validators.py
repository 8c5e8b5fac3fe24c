"""
Pattern validators: free regex plus the email and phone shapes used by contacts.
"""

import re
from re import Pattern
from typing import Any

from .base_validator import BaseValidator

EMAIL_PATTERN = r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$"
PHONE_PATTERN = r"^\+?[0-9][0-9 ().\-]{5,19}$"


class RegexValidator(BaseValidator):
    """
    String value must fully match a pattern.

    Parameters:
    - pattern: regular expression (string or compiled)
    - flags: optional re flags
    """

    default_pattern: str | None = None

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

        pattern = self.parameters.get("pattern", self.default_pattern)
        if not pattern:
            raise ValueError(f"{self.__class__.__name__} requires 'pattern' parameter")

        if isinstance(pattern, Pattern):
            self.pattern = pattern
        else:
            try:
                self.pattern = re.compile(pattern, self.parameters.get("flags", 0))
            except re.error as e:
                raise ValueError(f"Invalid regex pattern: {e}")

    def validate(self, value: Any, record: dict[str, Any]) -> None:
        if value is None:
            return
        if not self.pattern.fullmatch(str(value).strip()):
            raise self.violation("value does not match pattern")

    @property
    def rule_type(self) -> str:
        return "regex"


class EmailValidator(RegexValidator):
    """Value must look like a single email address."""

    default_pattern = EMAIL_PATTERN

    @property
    def rule_type(self) -> str:
        return "email"


class PhoneValidator(RegexValidator):
    """Value must look like a phone number (digits with common separators)."""

    default_pattern = PHONE_PATTERN

    @property
    def rule_type(self) -> str:
        return "phone"
