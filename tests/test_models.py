"""
Tests for Cashbook models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for the ledger and schedule engine with in-memory storage
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from cashbook.models import (
    DailySummary,
    Frequency,
    RecurringTemplate,
    RunHistory,
    RunOutcome,
    ScheduleStatistics,
    TemplateStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    Weekday,
)


NOW = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


def make_transaction(**overrides):
    fields = dict(
        reference_code="TRX-20260101-0A1B2C3D",
        owner_id="owner-1",
        type=TransactionType.SALE,
        amount=Decimal("100.00"),
        description="Catering",
        created_at=NOW,
    )
    fields.update(overrides)
    return Transaction(**fields)


class TestTransactionModels:
    """Tests for Transaction and its enums."""

    def test_transaction_creation(self):
        """Test Transaction model creation."""
        txn = make_transaction()
        assert txn.status == TransactionStatus.PENDING
        assert txn.category == "Sales"
        assert txn.created_date == date(2026, 1, 1)

    def test_transaction_is_frozen(self):
        txn = make_transaction()
        with pytest.raises(ValueError):
            txn.status = TransactionStatus.APPROVED

    def test_reference_code_pattern(self):
        with pytest.raises(ValueError):
            make_transaction(reference_code="TRX-2026-01-01-abc")

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError):
            make_transaction(amount=Decimal("-1"))

    def test_receivable_requires_counterparty(self):
        with pytest.raises(ValueError):
            make_transaction(type=TransactionType.RECEIVABLE)

    def test_pending_has_no_approver(self):
        with pytest.raises(ValueError):
            make_transaction(approver_id="approver-1")

    def test_decided_requires_approver(self):
        with pytest.raises(ValueError):
            make_transaction(status=TransactionStatus.APPROVED)

    def test_rejection_reason_only_when_rejected(self):
        with pytest.raises(ValueError):
            make_transaction(
                status=TransactionStatus.APPROVED,
                approver_id="approver-1",
                approved_at=NOW,
                rejection_reason="No",
            )

    def test_type_categories(self):
        assert TransactionType.RECEIVABLE.category == "Receivables"
        assert TransactionType.EXPENSE.category == "Expenses"
        assert TransactionType.SALE.is_income
        assert not TransactionType.EXPENSE.is_income

    def test_daily_summary_net(self):
        summary = DailySummary(day=date(2026, 1, 1), income=Decimal("10"), expense=Decimal("4"))
        assert summary.net == Decimal("6")


class TestRecurringModels:
    """Tests for recurring template models."""

    def make_template(self, **overrides):
        fields = dict(
            owner_id="owner-1",
            type=TransactionType.EXPENSE,
            amount=Decimal("300.00"),
            description="Internet",
            frequency=Frequency.WEEKLY,
            start_date=date(2026, 1, 5),
            next_run_date=date(2026, 1, 5),
        )
        fields.update(overrides)
        return RecurringTemplate(**fields)

    def test_template_defaults(self):
        template = self.make_template()
        assert template.status == TemplateStatus.ACTIVE
        assert template.interval == 1
        assert template.notify_before is True
        assert template.label == "Internet"

    def test_day_of_month_rejected_for_weekly(self):
        with pytest.raises(ValueError):
            self.make_template(day_of_month=5)

    def test_day_of_week_rejected_for_monthly(self):
        with pytest.raises(ValueError):
            self.make_template(frequency=Frequency.MONTHLY, day_of_week=Weekday.MONDAY)

    def test_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            self.make_template(end_date=date(2026, 1, 4))

    def test_occurrences_exhausted(self):
        assert self.make_template(max_occurrences=2, total_runs=2).occurrences_exhausted
        assert not self.make_template(max_occurrences=2, total_runs=1).occurrences_exhausted
        assert not self.make_template(total_runs=50).occurrences_exhausted

    def test_weekday_iso_index(self):
        assert Weekday.MONDAY.iso_index == 0
        assert Weekday.SUNDAY.iso_index == 6

    def test_terminal_statuses(self):
        assert TemplateStatus.COMPLETED.is_terminal
        assert TemplateStatus.CANCELLED.is_terminal
        assert not TemplateStatus.PAUSED.is_terminal

    def test_success_run_requires_transaction(self):
        with pytest.raises(ValueError):
            RunHistory(
                template_id=uuid4(),
                scheduled_date=date(2026, 1, 1),
                processed_date=date(2026, 1, 1),
                outcome=RunOutcome.SUCCESS,
            )

    def test_skipped_run_has_no_transaction(self):
        with pytest.raises(ValueError):
            RunHistory(
                template_id=uuid4(),
                transaction_id=uuid4(),
                scheduled_date=date(2026, 1, 1),
                processed_date=date(2026, 1, 1),
                outcome=RunOutcome.SKIPPED,
            )

    def test_schedule_statistics_total(self):
        assert ScheduleStatistics(active=2, paused=1, cancelled=1).total == 4


class TestValidationResult:
    """Tests for ValidationResult."""

    def test_validation_result_has_errors(self):
        """Test ValidationResult error detection."""
        result = ValidationResult(
            subject="transaction",
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="amount must be greater than zero",
                    severity="error",
                ),
                ValidationIssue(
                    field="description",
                    issue_type="suspicious",
                    message="Looks like a duplicate",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors
        assert not result.is_valid
        assert result.error_count == 1
        assert result.summary() == "amount must be greater than zero"

    def test_validation_result_warnings_only(self):
        """Test ValidationResult with only warnings."""
        result = ValidationResult(
            subject="transaction",
            issues=[
                ValidationIssue(
                    field="description",
                    issue_type="suspicious",
                    message="Looks like a duplicate",
                    severity="warning",
                ),
            ],
        )
        assert not result.has_errors
        assert result.is_valid
        assert result.summary() is None
