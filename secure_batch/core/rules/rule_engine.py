"""
Rule engine applying ingestion validators to inbound records.

Built once from configuration and shared read-only by every chunk worker.
"""

from typing import Any

from secure_batch.core.models import RecordValidation
from secure_batch.core.validators import (
    BaseValidator,
    EmailValidator,
    LengthValidator,
    PhoneValidator,
    RangeValidator,
    RegexValidator,
    RequiredFieldValidator,
    RuleViolation,
    TypeValidator,
)


class RuleEngine:
    """
    Runs every enabled rule against a record and collects the failures.

    Rules are dictionaries as produced by RuleConfigLoader / RuleConfigBuilder:
    rule_name, rule_type, field_name, parameters, severity, enabled.
    """

    VALIDATOR_REGISTRY = {
        "required_field": RequiredFieldValidator,
        "type_check": TypeValidator,
        "range": RangeValidator,
        "max_length": LengthValidator,
        "regex": RegexValidator,
        "email": EmailValidator,
        "phone": PhoneValidator,
    }

    def __init__(self, rules: list[dict[str, Any]] | None = None):
        self.rules = rules or []
        self.validators: list[tuple[str, str, BaseValidator]] = []
        self._build_validators()

    def _build_validators(self) -> None:
        for rule in self.rules:
            if not rule.get("enabled", True):
                continue

            rule_name = rule["rule_name"]
            validator_class = self.VALIDATOR_REGISTRY.get(rule["rule_type"])
            if not validator_class:
                raise ValueError(f"Unknown rule type: {rule['rule_type']}")

            try:
                validator = validator_class(rule["field_name"], rule.get("parameters", {}))
            except ValueError as e:
                raise ValueError(f"Failed to create validator for rule '{rule_name}': {e}") from e

            self.validators.append((rule_name, rule.get("severity", "error"), validator))

    def validate_record(self, record: dict[str, Any]) -> RecordValidation:
        """
        Validate one record against all rules.

        Args:
            record: The inbound record

        Returns:
            RecordValidation with the failed rule names and their messages
        """
        failed_rules: list[str] = []
        messages: list[str] = []
        warnings: list[str] = []

        for rule_name, severity, validator in self.validators:
            try:
                validator.validate(record.get(validator.field_name), record)
            except RuleViolation as violation:
                if severity == "error":
                    failed_rules.append(rule_name)
                    messages.append(str(violation))
                else:
                    warnings.append(rule_name)

        return RecordValidation(
            passed=not failed_rules,
            failed_rules=failed_rules,
            messages=messages,
            warnings=warnings,
        )

    def get_rule_summary(self) -> dict[str, Any]:
        """Rule counts by type, for the CLI and startup logs."""
        by_type: dict[str, int] = {}
        for _, _, validator in self.validators:
            by_type[validator.rule_type] = by_type.get(validator.rule_type, 0) + 1
        return {"total_rules": len(self.validators), "rules_by_type": by_type}
