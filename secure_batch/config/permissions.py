"""
Field permission matrix loading.

Expected YAML format:
```yaml
permissions:
  viewer:
    name: {exportable: true}
    email: {exportable: true}
    ssn: {exportable: false}
  manager:
    name: true                     # shorthand for {exportable: true}
    ssn: {exportable: true, requires_approval: true}
```
"""

from pathlib import Path
from typing import Any

import yaml

from secure_batch.core.models import FieldPermission


class FieldPermissionLoader:
    """Loads FieldPermission entries from a YAML file."""

    def __init__(self, config_path: str | Path):
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Permission configuration file not found: {config_path}")

    def load(self) -> list[FieldPermission]:
        """
        Parse the permissions section.

        Raises:
            ValueError: If the section is missing or an entry is malformed
        """
        with open(self.config_path) as f:
            config = yaml.safe_load(f)

        if not config or "permissions" not in config:
            raise ValueError("Configuration file must contain 'permissions' section")

        return parse_permissions(config["permissions"] or {})


def parse_permissions(matrix: dict[str, Any]) -> list[FieldPermission]:
    """Turn a role -> field -> rule mapping into FieldPermission entries."""
    if not isinstance(matrix, dict):
        raise ValueError("'permissions' must map role names to field rules")

    permissions = []
    for role, fields in matrix.items():
        if not isinstance(fields, dict):
            raise ValueError(f"Permissions for role '{role}' must be a mapping")
        for field_name, rule in fields.items():
            if isinstance(rule, bool):
                rule = {"exportable": rule}
            if not isinstance(rule, dict):
                raise ValueError(f"Permission for '{role}.{field_name}' must be a mapping or boolean")
            permissions.append(FieldPermission(
                role=str(role),
                field_name=str(field_name),
                exportable=bool(rule.get("exportable", False)),
                requires_approval=bool(rule.get("requires_approval", False)),
            ))
    return permissions
