"""
Ingestion rule configuration.

Loads validation rules from YAML, or builds them in code for tests.
"""

from pathlib import Path
from typing import Any

import yaml


class RuleConfigLoader:
    """
    Loads ingestion validation rules from a YAML file.

    Expected YAML format:
    ```yaml
    rules:
      email:
        - type: required_field
        - type: email
      phone:
        - type: phone
          severity: warning
      deal_value:
        - type: range
          params:
            min: 0
    ```
    """

    def __init__(self, config_path: str | Path):
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Rule configuration file not found: {config_path}")

    def load_rules(self) -> list[dict[str, Any]]:
        """
        Parse the rules section.

        Raises:
            ValueError: If the file has no rules section or a rule is malformed
        """
        with open(self.config_path) as f:
            config = yaml.safe_load(f)

        if not config or "rules" not in config:
            raise ValueError("Configuration file must contain 'rules' section")

        rules = []
        for field_name, field_rules in (config["rules"] or {}).items():
            if not isinstance(field_rules, list):
                raise ValueError(f"Rules for field '{field_name}' must be a list")
            for idx, rule_def in enumerate(field_rules):
                rules.append(self._parse_rule(field_name, rule_def, idx))

        return rules

    def _parse_rule(self, field_name: str, rule_def: dict[str, Any], idx: int) -> dict[str, Any]:
        if not isinstance(rule_def, dict) or "type" not in rule_def:
            raise ValueError(f"Rule for field '{field_name}' is missing 'type'")

        rule_type = rule_def["type"]
        rule_name = rule_def.get("name", f"{field_name}_{rule_type}_{idx}")

        severity = rule_def.get("severity", "error")
        if severity not in ("error", "warning"):
            raise ValueError(
                f"Invalid severity '{severity}' for rule '{rule_name}'. Must be 'error' or 'warning'"
            )

        return {
            "rule_name": rule_name,
            "rule_type": rule_type,
            "field_name": field_name,
            "parameters": rule_def.get("params", rule_def.get("parameters", {})) or {},
            "severity": severity,
            "enabled": rule_def.get("enabled", True),
        }


class RuleConfigBuilder:
    """Build rule configurations in code."""

    def __init__(self):
        self.rules: list[dict[str, Any]] = []

    def _add(self, field_name: str, rule_type: str, parameters: dict[str, Any] | None = None,
             severity: str = "error") -> "RuleConfigBuilder":
        self.rules.append({
            "rule_name": f"{field_name}_{rule_type}",
            "rule_type": rule_type,
            "field_name": field_name,
            "parameters": parameters or {},
            "severity": severity,
            "enabled": True,
        })
        return self

    def add_required_field(self, field_name: str, allow_empty_string: bool = False) -> "RuleConfigBuilder":
        return self._add(field_name, "required_field", {"allow_empty_string": allow_empty_string})

    def add_type_check(self, field_name: str, expected_type: str, coerce: bool = True) -> "RuleConfigBuilder":
        return self._add(field_name, "type_check", {"expected_type": expected_type, "coerce": coerce})

    def add_range(self, field_name: str, min_value: float | None = None,
                  max_value: float | None = None) -> "RuleConfigBuilder":
        params = {}
        if min_value is not None:
            params["min"] = min_value
        if max_value is not None:
            params["max"] = max_value
        return self._add(field_name, "range", params)

    def add_regex(self, field_name: str, pattern: str) -> "RuleConfigBuilder":
        return self._add(field_name, "regex", {"pattern": pattern})

    def add_email(self, field_name: str, severity: str = "error") -> "RuleConfigBuilder":
        return self._add(field_name, "email", severity=severity)

    def add_phone(self, field_name: str, severity: str = "error") -> "RuleConfigBuilder":
        return self._add(field_name, "phone", severity=severity)

    def build(self) -> list[dict[str, Any]]:
        return list(self.rules)
