"""
Data Models Package

This package contains all Pydantic models used in the cashbook core.
All data crossing a component boundary must conform to these schemas.
"""

from cashbook.models.transaction import (
    DailySummary,
    OwnerSummary,
    OwnerTotal,
    Transaction,
    TransactionStatus,
    TransactionType,
    TypeTotal,
)
from cashbook.models.recurring import (
    BatchError,
    BatchSummary,
    Frequency,
    MaterializationResult,
    RecurringTemplate,
    RecurringTemplateSpec,
    ReminderSummary,
    RunHistory,
    RunOutcome,
    ScheduleStatistics,
    TemplateStatistics,
    TemplateStatus,
    Weekday,
)
from cashbook.models.validation import ValidationIssue, ValidationResult
from cashbook.models.audit import AuditEvent, AuditEventType, AuditSeverity

__all__ = [
    # Transaction models
    "DailySummary",
    "OwnerSummary",
    "OwnerTotal",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "TypeTotal",
    # Recurring models
    "BatchError",
    "BatchSummary",
    "Frequency",
    "MaterializationResult",
    "RecurringTemplate",
    "RecurringTemplateSpec",
    "ReminderSummary",
    "RunHistory",
    "RunOutcome",
    "ScheduleStatistics",
    "TemplateStatistics",
    "TemplateStatus",
    "Weekday",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventType",
    "AuditSeverity",
]
