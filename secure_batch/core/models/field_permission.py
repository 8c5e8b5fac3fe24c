"""
FieldPermission model: static per-role export rules for a single field.
"""

from pydantic import BaseModel, Field


class FieldPermission(BaseModel):
    """
    Whether a role may export a field.

    Attributes:
        role: Role the rule applies to
        field_name: Record field the rule applies to
        exportable: Field may leave the system for this role
        requires_approval: Export must go through an approval workflow first
    """

    role: str = Field(..., min_length=1)
    field_name: str = Field(..., min_length=1)
    exportable: bool = False
    requires_approval: bool = False

    class Config:
        frozen = True


class FieldResolution(BaseModel):
    """
    Outcome of resolving a list of requested fields for one role.

    Every requested field lands in exactly one of the three lists,
    in request order.
    """

    allowed: list[str] = Field(default_factory=list)
    denied: list[str] = Field(default_factory=list)
    approval_required: list[str] = Field(default_factory=list)

    class Config:
        frozen = True

    @property
    def is_clean(self) -> bool:
        return not self.denied and not self.approval_required
