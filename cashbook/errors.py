"""
Error taxonomy for the cashbook core.

Every failure the ledger or the schedule engine surfaces to a caller is one
of these types. Callers branch on the type, never on message text.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from cashbook.models.recurring import RunHistory
    from cashbook.models.validation import ValidationIssue


class CashbookError(Exception):
    """Base exception for the cashbook core."""
    pass


class ValidationError(CashbookError):
    """
    Bad input: non-positive amount, unknown type, missing required field.

    Always surfaced, never retried.
    """

    def __init__(self, message: str, issues: Optional[list["ValidationIssue"]] = None):
        super().__init__(message)
        self.issues = issues or []

    @property
    def fields(self) -> list[str]:
        """Fields with error-level issues."""
        return [issue.field for issue in self.issues if issue.severity == "error"]


class NotFoundError(CashbookError):
    """Unknown reference code or template id."""
    pass


class InvalidStateError(CashbookError):
    """Illegal transition from the entity's current state."""
    pass


class ForbiddenError(CashbookError):
    """The actor lacks the capability required for the operation."""
    pass


class StorageError(CashbookError):
    """Base exception for storage operations."""
    pass


class TransientPersistenceError(StorageError):
    """A persistence failure that is worth retrying."""
    pass


class UniqueConstraintViolation(TransientPersistenceError):
    """
    A uniqueness constraint rejected the write.

    Raised by storage implementations instead of leaking driver-specific
    error text.
    """

    def __init__(self, constraint: str, value: str):
        super().__init__(f"Unique constraint '{constraint}' violated by {value!r}")
        self.constraint = constraint
        self.value = value


class ReferenceAllocationError(CashbookError):
    """Every reference code attempt collided; allocation gave up."""

    def __init__(self, attempts: int):
        super().__init__(f"Could not allocate a unique reference code after {attempts} attempts")
        self.attempts = attempts


class MaterializationError(CashbookError):
    """
    A recurring template could not produce its transaction.

    The failed run has already been recorded; ``run`` is that record.
    """

    def __init__(self, message: str, run: Optional["RunHistory"] = None):
        super().__init__(message)
        self.run = run
