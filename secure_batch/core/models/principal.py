"""
Principal model representing the actor an operation runs on behalf of.
"""

from pydantic import BaseModel, Field


class Principal(BaseModel):
    """
    Authenticated actor, resolved once per request and read-only afterwards.

    Attributes:
        principal_id: Stable identity key (rate limits and audit are keyed on it)
        role: Role name used for field authorization
        display_name: Optional human-readable name for logs
    """

    principal_id: str = Field(..., min_length=1, max_length=255)
    role: str = Field(..., min_length=1, max_length=64)
    display_name: str | None = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "principal_id": "user-7f3a",
                "role": "viewer",
                "display_name": "Jamie Rivera"
            }
        }
