"""
Base interface for ingestion field validators.

A validator checks one field of an inbound record and raises RuleViolation
when the value is unacceptable. Validators hold no mutable state after
construction, so one instance is shared by every chunk worker.
"""

from abc import ABC, abstractmethod
from typing import Any


class RuleViolation(Exception):
    """Raised when a field value breaks a validation rule."""

    def __init__(self, rule_type: str, field_name: str, message: str):
        self.rule_type = rule_type
        self.field_name = field_name
        self.message = message
        super().__init__(f"{field_name}: {message}")


class BaseValidator(ABC):
    """
    Abstract base class for all validators.

    Args:
        field_name: Name of the record field to check
        parameters: Rule-specific parameters (e.g. min/max for range)
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        self.field_name = field_name
        self.parameters = parameters or {}

    @abstractmethod
    def validate(self, value: Any, record: dict[str, Any]) -> None:
        """
        Check a value.

        Args:
            value: The field value (None when missing)
            record: The whole record, for context-dependent rules

        Raises:
            RuleViolation: If the value is rejected
        """

    @property
    @abstractmethod
    def rule_type(self) -> str:
        """Rule type identifier used in configuration."""

    def violation(self, message: str) -> RuleViolation:
        return RuleViolation(self.rule_type, self.field_name, message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(field={self.field_name}, params={self.parameters})"
