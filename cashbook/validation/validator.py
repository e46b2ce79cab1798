"""
Input Validation

DESIGN DECISION: Validation collects every issue before reporting.
A caller creating an entry from a chat message gets the full list of
problems in one reply instead of fixing them one round-trip at a time.

Validators normalize as they go: enum names become enum members, amounts
become two-place Decimals, ISO strings become dates. The normalized values
are returned on the ValidationResult for the caller to build models from.

IMPORTANT: Validation NEVER silently fixes issues. An amount with three
decimal places is an error, not something to round.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, TypeVar

from cashbook.errors import ValidationError
from cashbook.models.recurring import Frequency, Weekday
from cashbook.models.transaction import TransactionType
from cashbook.models.validation import ValidationIssue, ValidationResult


E = TypeVar("E", bound=Enum)

MAX_DESCRIPTION_LENGTH = 500
MAX_COUNTERPARTY_LENGTH = 100
MAX_INTERVAL = 365


def raise_for_errors(result: ValidationResult) -> ValidationResult:
    """Raise ValidationError when the result carries error-level issues."""
    if result.has_errors:
        raise ValidationError(
            f"Invalid {result.subject}: {result.summary()}",
            issues=result.issues,
        )
    return result


class _IssueCollector:
    """Accumulates issues and normalized values for one validation pass."""

    def __init__(self, subject: str):
        self.subject = subject
        self.issues: list[ValidationIssue] = []
        self.values: dict[str, Any] = {}

    def error(self, field: str, issue_type: str, message: str) -> None:
        self.issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=message,
            severity="error",
        ))

    def result(self) -> ValidationResult:
        return ValidationResult(
            subject=self.subject,
            issues=self.issues,
            values=self.values,
        )

    def enum(self, field: str, enum_cls: type[E], raw: Any, required: bool = True) -> Optional[E]:
        if raw is None or raw == "":
            if required:
                self.error(field, "missing", f"{field} is required")
            return None
        try:
            value = enum_cls(raw.lower() if isinstance(raw, str) else raw)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            self.error(field, "invalid_value", f"Unknown {field} {raw!r} (allowed: {allowed})")
            return None
        self.values[field] = value
        return value

    def amount(self, field: str, raw: Any) -> Optional[Decimal]:
        if raw is None or raw == "":
            self.error(field, "missing", f"{field} is required")
            return None
        if isinstance(raw, bool):
            self.error(field, "invalid_format", f"{field} must be a number")
            return None
        try:
            value = raw if isinstance(raw, Decimal) else Decimal(str(raw))
        except InvalidOperation:
            self.error(field, "invalid_format", f"{field} must be a number, got {raw!r}")
            return None
        if not value.is_finite():
            self.error(field, "invalid_format", f"{field} must be a finite number")
            return None
        if value <= 0:
            self.error(field, "invalid_value", f"{field} must be greater than zero")
            return None
        if value.as_tuple().exponent < -2:
            self.error(field, "invalid_value", f"{field} cannot have more than 2 decimal places")
            return None
        value = value.quantize(Decimal("0.01"))
        self.values[field] = value
        return value

    def text(
        self,
        field: str,
        raw: Any,
        max_length: int,
        required: bool = True,
    ) -> Optional[str]:
        value = raw.strip() if isinstance(raw, str) else raw
        if not value:
            if required:
                self.error(field, "missing", f"{field} is required")
            return None
        if not isinstance(value, str):
            self.error(field, "invalid_format", f"{field} must be text")
            return None
        if len(value) > max_length:
            self.error(field, "too_long", f"{field} must be at most {max_length} characters")
            return None
        self.values[field] = value
        return value

    def day(self, field: str, raw: Any, required: bool = True) -> Optional[date]:
        if raw is None or raw == "":
            if required:
                self.error(field, "missing", f"{field} is required")
            return None
        if isinstance(raw, date):
            value = raw
        else:
            try:
                value = date.fromisoformat(str(raw))
            except ValueError:
                self.error(field, "invalid_format", f"{field} must be an ISO date (YYYY-MM-DD)")
                return None
        self.values[field] = value
        return value

    def integer(
        self,
        field: str,
        raw: Any,
        minimum: int,
        maximum: Optional[int] = None,
        required: bool = True,
    ) -> Optional[int]:
        if raw is None or raw == "":
            if required:
                self.error(field, "missing", f"{field} is required")
            return None
        if isinstance(raw, bool) or not isinstance(raw, int):
            self.error(field, "invalid_format", f"{field} must be a whole number")
            return None
        if raw < minimum or (maximum is not None and raw > maximum):
            bounds = f"between {minimum}-{maximum}" if maximum is not None else f"at least {minimum}"
            self.error(field, "out_of_range", f"{field} must be {bounds}")
            return None
        self.values[field] = raw
        return raw


class TransactionValidator:
    """Validates input for a new ledger entry."""

    def validate(
        self,
        owner_id: Any,
        type: Any,
        amount: Any,
        description: Any,
        counterparty_name: Any = None,
    ) -> ValidationResult:
        checks = _IssueCollector("transaction")

        checks.text("owner_id", owner_id, max_length=100)
        txn_type = checks.enum("type", TransactionType, type)
        checks.amount("amount", amount)
        checks.text("description", description, max_length=MAX_DESCRIPTION_LENGTH)
        counterparty = checks.text(
            "counterparty_name",
            counterparty_name,
            max_length=MAX_COUNTERPARTY_LENGTH,
            required=False,
        )

        if txn_type is TransactionType.RECEIVABLE and counterparty is None:
            if not any(i.field == "counterparty_name" for i in checks.issues):
                checks.error(
                    "counterparty_name",
                    "missing",
                    "counterparty_name is required for receivables",
                )

        return checks.result()


class TemplateValidator:
    """
    Validates input for a new recurring template.

    Checks the materialized fields the same way ``TransactionValidator``
    does, so a template that validates here can always produce a valid
    transaction.
    """

    def __init__(self):
        self._transaction_validator = TransactionValidator()

    def validate(self, data: Mapping[str, Any]) -> ValidationResult:
        base = self._transaction_validator.validate(
            owner_id=data.get("owner_id"),
            type=data.get("type"),
            amount=data.get("amount"),
            description=data.get("description"),
            counterparty_name=data.get("counterparty_name"),
        )
        checks = _IssueCollector("recurring_template")
        checks.issues.extend(base.issues)
        checks.values.update(base.values)

        frequency = checks.enum("frequency", Frequency, data.get("frequency"))
        checks.integer("interval", data.get("interval", 1), minimum=1, maximum=MAX_INTERVAL)
        start = checks.day("start_date", data.get("start_date"))
        end = checks.day("end_date", data.get("end_date"), required=False)
        checks.integer(
            "max_occurrences", data.get("max_occurrences"), minimum=1, required=False
        )
        checks.text("name", data.get("name"), max_length=100, required=False)
        checks.integer(
            "notify_days_before", data.get("notify_days_before", 1), minimum=0, maximum=31
        )
        checks.values["notify_before"] = bool(data.get("notify_before", True))

        day_of_week = data.get("day_of_week")
        if day_of_week not in (None, ""):
            if frequency is not None and frequency is not Frequency.WEEKLY:
                checks.error("day_of_week", "not_allowed", "day_of_week only applies to weekly templates")
            else:
                checks.enum("day_of_week", Weekday, day_of_week)

        day_of_month = data.get("day_of_month")
        if day_of_month not in (None, ""):
            if frequency is not None and frequency is not Frequency.MONTHLY:
                checks.error("day_of_month", "not_allowed", "day_of_month only applies to monthly templates")
            else:
                checks.integer("day_of_month", day_of_month, minimum=1, maximum=31)

        if start and end and end < start:
            checks.error("end_date", "inconsistent", "end_date cannot be before start_date")

        return checks.result()
