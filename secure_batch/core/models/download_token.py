"""
DownloadToken model: opaque handle to a finished export artifact.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class DownloadToken(BaseModel):
    """
    Unguessable, time-boxed download handle.

    Attributes:
        token: URL-safe random value
        audit_id: The audit record of the export it belongs to
        expires_at: Fixed at issuance, never extended
    """

    token: str = Field(..., min_length=32)
    audit_id: str
    expires_at: datetime

    class Config:
        frozen = True

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
