"""
Summary Queries

DESIGN DECISION: Summaries are computed from stored APPROVED entries only.
Pending and rejected entries never count toward income or expense, so a
report always matches what an approver has signed off on.

Sales and receivables are income; expenses are expense.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from cashbook.errors import ValidationError
from cashbook.models.transaction import (
    DailySummary,
    OwnerSummary,
    OwnerTotal,
    Transaction,
    TransactionStatus,
    TransactionType,
    TypeTotal,
)
from cashbook.services.storage import TransactionStorageInterface


class SummaryExecutor:
    """
    Builds report summaries from transaction storage.

    GUARANTEES:
    - Only returns real data from storage
    - Empty periods produce zero totals, not errors
    """

    def __init__(self, storage: TransactionStorageInterface):
        self._storage = storage

    async def daily_summary(self, day: date) -> DailySummary:
        """Approved activity for ``day``, broken down by type and owner."""
        transactions = await self._storage.list_by_date_range(
            day, day, status=TransactionStatus.APPROVED
        )

        summary = DailySummary(day=day, by_type=_type_totals(transactions))
        for txn in transactions:
            summary.total_transactions += 1
            if txn.type.is_income:
                summary.income += txn.amount
            else:
                summary.expense += txn.amount

            owner = summary.by_owner.setdefault(txn.owner_id, OwnerTotal(owner_id=txn.owner_id))
            owner.count += 1
            owner.total += txn.amount

        return summary

    async def owner_summary(
        self,
        owner_id: str,
        date_from: date,
        date_to: Optional[date] = None,
    ) -> OwnerSummary:
        """Approved activity for one owner over an inclusive date range."""
        date_to = date_to or date_from
        if date_to < date_from:
            raise ValidationError("date_to cannot be before date_from")

        transactions = await self._storage.list_by_owner(
            owner_id,
            status=TransactionStatus.APPROVED,
            date_from=date_from,
            date_to=date_to,
        )

        return OwnerSummary(
            owner_id=owner_id,
            date_from=date_from,
            date_to=date_to,
            total_transactions=len(transactions),
            total_amount=sum((t.amount for t in transactions), Decimal("0")),
            by_type=_type_totals(transactions),
        )


def _type_totals(transactions: Iterable[Transaction]) -> dict[TransactionType, TypeTotal]:
    totals = {t: TypeTotal() for t in TransactionType}
    for txn in transactions:
        totals[txn.type].count += 1
        totals[txn.type].total += txn.amount
    return totals
