"""
Field authorization: which requested fields a role may export.

Lookups are fail-closed: a role or field with no FieldPermission entry
is denied.
"""

from typing import Iterable

from secure_batch.core.errors import ApprovalRequiredError, AuthorizationError
from secure_batch.core.models import FieldPermission, FieldResolution
from secure_batch.observability import metrics
from secure_batch.observability.logger import get_logger

logger = get_logger(__name__)


class FieldAuthorizationResolver:
    """
    Pure lookup against a static permission matrix.

    The matrix is indexed once at construction and never mutated, so a
    single resolver is shared across requests without locking.
    """

    def __init__(self, permissions: Iterable[FieldPermission]):
        self._permissions: dict[tuple[str, str], FieldPermission] = {}
        for permission in permissions:
            self._permissions[(permission.role, permission.field_name)] = permission

    @property
    def roles(self) -> list[str]:
        return sorted({role for role, _ in self._permissions})

    def permission_for(self, role: str, field_name: str) -> FieldPermission | None:
        return self._permissions.get((role, field_name))

    def resolve(self, role: str, fields: list[str]) -> FieldResolution:
        """
        Split requested fields into allowed, denied and approval-required.

        Args:
            role: Role of the requesting principal
            fields: Requested field names

        Returns:
            FieldResolution preserving request order within each list
        """
        allowed: list[str] = []
        denied: list[str] = []
        approval_required: list[str] = []

        for field_name in fields:
            permission = self._permissions.get((role, field_name))
            if permission is None or not permission.exportable:
                denied.append(field_name)
            elif permission.requires_approval:
                approval_required.append(field_name)
            else:
                allowed.append(field_name)

        return FieldResolution(allowed=allowed, denied=denied, approval_required=approval_required)

    def authorize(self, role: str, fields: list[str]) -> FieldResolution:
        """
        Resolve and enforce: the whole request fails if any field is not plainly allowed.

        Raises:
            AuthorizationError: If any field is denied
            ApprovalRequiredError: If no field is denied but some need approval
        """
        resolution = self.resolve(role, fields)

        if resolution.denied:
            metrics.increment_counter(metrics.authorization_denials_total, reason="denied")
            logger.warning(
                "Export denied: fields not exportable for role",
                extra={"role": role, "denied_fields": resolution.denied}
            )
            raise AuthorizationError(resolution.denied)

        if resolution.approval_required:
            metrics.increment_counter(metrics.authorization_denials_total, reason="approval_required")
            logger.warning(
                "Export needs approval",
                extra={"role": role, "approval_fields": resolution.approval_required}
            )
            raise ApprovalRequiredError(resolution.approval_required)

        return resolution

    def exportable_fields(self, role: str) -> list[str]:
        """Fields a role may export without approval."""
        return sorted(
            field_name
            for (r, field_name), p in self._permissions.items()
            if r == role and p.exportable and not p.requires_approval
        )

    def permissions_for_role(self, role: str) -> list[FieldPermission]:
        """Every permission entry of a role, sorted by field name."""
        return sorted(
            (p for (r, _), p in self._permissions.items() if r == role),
            key=lambda p: p.field_name,
        )
