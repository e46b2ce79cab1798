"""
Transaction Models

A Transaction is one cashbook entry: a sale, a receivable or an expense.
Records are immutable; the ledger produces a new copy for every
status transition.

DESIGN DECISION: Status only ever moves Pending -> Approved or
Pending -> Rejected. There is no path back and no delete.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TransactionType(str, Enum):
    """Kinds of cashbook entries."""
    SALE = "sale"
    RECEIVABLE = "receivable"  # Money owed to the business; needs a counterparty
    EXPENSE = "expense"

    @property
    def category(self) -> str:
        """Reporting category for this type."""
        return _CATEGORIES[self]

    @property
    def is_income(self) -> bool:
        return self is not TransactionType.EXPENSE


_CATEGORIES = {
    TransactionType.SALE: "Sales",
    TransactionType.RECEIVABLE: "Receivables",
    TransactionType.EXPENSE: "Expenses",
}


class TransactionStatus(str, Enum):
    """
    Approval status.

    PENDING is the only non-terminal state.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class Transaction(BaseModel):
    """
    A persisted cashbook entry.

    ``approver_id`` and ``approved_at`` record who decided and when, for
    both approvals and rejections. Auto-approved entries carry the owner
    as approver.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    reference_code: str = Field(
        ...,
        pattern=r"^[A-Z0-9]+-\d{8}-[0-9A-F]{8}$",
        description="Human-readable unique code, PREFIX-YYYYMMDD-XXXXXXXX"
    )
    owner_id: str = Field(..., min_length=1)
    type: TransactionType
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    counterparty_name: Optional[str] = Field(default=None, max_length=100)

    status: TransactionStatus = TransactionStatus.PENDING
    approver_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def category(self) -> str:
        return self.type.category

    @property
    def created_date(self) -> date:
        return self.created_at.date()

    @model_validator(mode='after')
    def validate_decision(self) -> 'Transaction':
        """Decided entries carry an approver; pending ones never do."""
        if self.type is TransactionType.RECEIVABLE and not self.counterparty_name:
            raise ValueError("Receivable transactions require a counterparty name")
        if self.status is TransactionStatus.PENDING and self.approver_id is not None:
            raise ValueError("Pending transactions cannot have an approver")
        if self.status.is_terminal and self.approver_id is None:
            raise ValueError(f"{self.status.value} transactions require an approver")
        if self.rejection_reason and self.status is not TransactionStatus.REJECTED:
            raise ValueError("Only rejected transactions carry a rejection reason")
        return self


class TypeTotal(BaseModel):
    """Count and sum of one transaction type."""
    count: int = 0
    total: Decimal = Decimal("0")


class OwnerTotal(BaseModel):
    """Count and sum of one owner's transactions."""
    owner_id: str
    count: int = 0
    total: Decimal = Decimal("0")


class DailySummary(BaseModel):
    """Approved activity for a single day."""

    day: date
    total_transactions: int = 0
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    by_type: dict[TransactionType, TypeTotal] = Field(default_factory=dict)
    by_owner: dict[str, OwnerTotal] = Field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class OwnerSummary(BaseModel):
    """Approved activity for one owner over a date range."""

    owner_id: str
    date_from: date
    date_to: date
    total_transactions: int = 0
    total_amount: Decimal = Decimal("0")
    by_type: dict[TransactionType, TypeTotal] = Field(default_factory=dict)
