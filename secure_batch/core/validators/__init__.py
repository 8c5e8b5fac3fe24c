"""
Field validators applied to inbound records before they are written.
"""

from .base_validator import BaseValidator, RuleViolation
from .field_validators import LengthValidator, RangeValidator, RequiredFieldValidator, TypeValidator
from .pattern_validators import EmailValidator, PhoneValidator, RegexValidator

__all__ = [
    "BaseValidator",
    "RuleViolation",
    "RequiredFieldValidator",
    "TypeValidator",
    "RangeValidator",
    "LengthValidator",
    "RegexValidator",
    "EmailValidator",
    "PhoneValidator",
]
