"""
Validation result models.

Validators never raise on the first problem; they collect every issue so a
caller can show the whole list at once.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'not_allowed')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of validating one piece of user input.

    ``values`` holds the normalized input (enums resolved, amounts as
    Decimal, dates parsed) for every field that passed.
    """

    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    subject: str = Field(
        ...,
        description="What was validated (e.g., 'transaction', 'recurring_template')"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)
    values: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        """Valid when there are no error-level issues."""
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def summary(self) -> Optional[str]:
        """One-line description of all errors, or None when valid."""
        errors = [i.message for i in self.issues if i.severity == "error"]
        return "; ".join(errors) if errors else None
