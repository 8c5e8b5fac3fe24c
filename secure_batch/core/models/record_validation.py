"""
RecordValidation model: outcome of running ingestion rules over one record (ephemeral).
"""

from pydantic import BaseModel, Field, field_validator


class RecordValidation(BaseModel):
    """
    Outcome of validating a record.

    Attributes:
        passed: No error-severity rule failed
        failed_rules: Names of error-severity rules that failed
        messages: Human-readable reason per failed rule, same order
        warnings: Names of warning-severity rules that failed (non-blocking)
    """

    passed: bool
    failed_rules: list[str] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @field_validator("failed_rules")
    @classmethod
    def check_passed_consistency(cls, v, info):
        if info.data.get("passed") and v:
            raise ValueError("passed=True but failed_rules is not empty")
        return v

    @property
    def reason(self) -> str:
        return "; ".join(self.messages)
