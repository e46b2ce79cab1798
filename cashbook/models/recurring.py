"""
Recurring Schedule Models

A RecurringTemplate describes an entry that repeats on a calendar rule.
Every time it comes due the schedule engine materializes it into a
Transaction and appends a RunHistory row.

DESIGN DECISION: Templates are never deleted. COMPLETED and CANCELLED are
terminal, soft states that keep the template and its history around.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cashbook.models.transaction import Transaction, TransactionType


class Frequency(str, Enum):
    """Calendar unit a template repeats in."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Weekday(str, Enum):
    """Day-of-week constraint for weekly templates (ISO order)."""
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def iso_index(self) -> int:
        """0 for Monday through 6 for Sunday, matching ``date.weekday()``."""
        return list(Weekday).index(self)


class TemplateStatus(str, Enum):
    """
    Template lifecycle.

    ACTIVE <-> PAUSED, either -> CANCELLED, ACTIVE -> COMPLETED.

    PAUSED -> COMPLETED also happens: on resume when the skipped dates run
    past ``end_date``, and when a run that was in flight during a pause
    turns out to be the last one.
    """
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TemplateStatus.COMPLETED, TemplateStatus.CANCELLED)


class RunOutcome(str, Enum):
    """Result of one scheduled occurrence."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RecurringTemplateSpec(BaseModel):
    """
    Input for creating a template.

    Only shape is enforced here; business rules live in
    ``TemplateValidator`` so every problem is reported at once.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: str
    type: str
    amount: Decimal
    description: str
    frequency: str
    start_date: date
    interval: int = 1
    day_of_week: Optional[str] = None
    day_of_month: Optional[int] = None
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = None
    name: Optional[str] = None
    counterparty_name: Optional[str] = None
    notify_before: bool = True
    notify_days_before: int = 1


class RecurringTemplate(BaseModel):
    """A stored recurring template."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, max_length=100)

    # What gets materialized
    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    counterparty_name: Optional[str] = Field(default=None, max_length=100)

    # Recurrence rule
    frequency: Frequency
    interval: int = Field(default=1, ge=1, le=365)
    day_of_week: Optional[Weekday] = None
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(default=None, ge=1)

    # State
    status: TemplateStatus = TemplateStatus.ACTIVE
    next_run_date: date
    last_run_date: Optional[date] = None
    total_runs: int = Field(default=0, ge=0)
    claimed_at: Optional[datetime] = None

    # Reminders
    notify_before: bool = True
    notify_days_before: int = Field(default=1, ge=0, le=31)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def label(self) -> str:
        """Name for messages; falls back to the description."""
        return self.name or self.description

    @property
    def occurrences_exhausted(self) -> bool:
        return self.max_occurrences is not None and self.total_runs >= self.max_occurrences

    @model_validator(mode='after')
    def validate_rule(self) -> 'RecurringTemplate':
        """Validate that constraints match the frequency."""
        if self.day_of_week is not None and self.frequency is not Frequency.WEEKLY:
            raise ValueError("day_of_week only applies to weekly templates")
        if self.day_of_month is not None and self.frequency is not Frequency.MONTHLY:
            raise ValueError("day_of_month only applies to monthly templates")
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class RunHistory(BaseModel):
    """
    One row of a template's run history.

    A SUCCESS row references exactly one transaction; FAILED and SKIPPED
    rows reference none.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    template_id: UUID
    transaction_id: Optional[UUID] = None
    scheduled_date: date
    processed_date: date
    outcome: RunOutcome
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode='after')
    def validate_link(self) -> 'RunHistory':
        if self.outcome is RunOutcome.SUCCESS and self.transaction_id is None:
            raise ValueError("Successful runs must reference a transaction")
        if self.outcome is not RunOutcome.SUCCESS and self.transaction_id is not None:
            raise ValueError("Only successful runs reference a transaction")
        return self


class MaterializationResult(BaseModel):
    """A successful materialization: the run, the new entry and the template after the run."""
    run: RunHistory
    transaction: Transaction
    template: RecurringTemplate

    @property
    def completed(self) -> bool:
        return self.template.status is TemplateStatus.COMPLETED


class BatchError(BaseModel):
    """A template that failed during a polling pass."""
    template_id: UUID
    error: str


class BatchSummary(BaseModel):
    """
    Outcome of one polling pass over due templates.

    ``processed`` counts templates this pass actually worked on;
    ``skipped`` counts due templates another worker already held.
    """
    as_of: date
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    completed: int = 0
    skipped: int = 0
    errors: list[BatchError] = Field(default_factory=list)


class ReminderSummary(BaseModel):
    """Outcome of one upcoming-run reminder pass."""
    sent: int = 0
    failed: int = 0
    errors: list[BatchError] = Field(default_factory=list)


class TemplateStatistics(BaseModel):
    """Run counters for a single template."""
    template_id: UUID
    total_runs: int
    successful: int
    failed: int
    skipped: int
    next_run_date: date
    last_run_date: Optional[date] = None
    total_amount: Decimal


class ScheduleStatistics(BaseModel):
    """Template counts per status."""
    active: int = 0
    paused: int = 0
    completed: int = 0
    cancelled: int = 0

    @property
    def total(self) -> int:
        return self.active + self.paused + self.completed + self.cancelled
