"""
Tests for the Recurring Schedule Engine.

Test strategy:
1. Lifecycle transitions and their error cases
2. Materialization success/failure and completion rules
3. Batch processing: failure isolation and claims
4. Reminders and statistics
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from cashbook.errors import (
    InvalidStateError,
    MaterializationError,
    NotFoundError,
    TransientPersistenceError,
    ValidationError,
)
from cashbook.ledger import LedgerCore
from cashbook.models import (
    AuditEventType,
    RecurringTemplateSpec,
    RunOutcome,
    TemplateStatus,
    TransactionStatus,
)
from cashbook.scheduling import ScheduleEngine
from cashbook.services.notifications import NotificationDispatcherInterface, NotificationError
from cashbook.services.storage import InMemoryTransactionStorage


class FlakyLedger(LedgerCore):
    """Fails every create for the owners in ``failing_owners``."""

    failing_owners: set = set()
    on_create = None

    async def create(self, owner_id, **kwargs):
        if self.on_create is not None:
            await self.on_create()
        if owner_id in self.failing_owners:
            raise TransientPersistenceError("database unavailable")
        return await super().create(owner_id, **kwargs)


class BrokenDispatcher(NotificationDispatcherInterface):
    async def notify(self, owner_id, message):
        raise NotificationError("chat transport offline")


class UnreachableTransactionStorage(InMemoryTransactionStorage):
    async def insert_transaction(self, transaction):
        raise ConnectionError("db connection reset")


@pytest.fixture
def flaky_ledger(transaction_storage, authorization, audit_logger, clock, ledger_settings):
    ledger = FlakyLedger(
        transaction_storage,
        authorization,
        audit=audit_logger,
        clock=clock,
        settings=ledger_settings,
    )
    ledger.failing_owners = set()
    return ledger


@pytest.fixture
def flaky_engine(recurring_storage, flaky_ledger, audit_logger, clock, notifications, scheduler_settings):
    return ScheduleEngine(
        recurring_storage,
        flaky_ledger,
        audit=audit_logger,
        clock=clock,
        notifications=notifications,
        settings=scheduler_settings,
    )


class TestCreate:
    """Tests for template creation."""

    def test_first_run_is_start_date_verbatim(self, engine, make_spec):
        """Weekday constraints do not move the first run."""
        monday = date(2026, 1, 5)
        template = asyncio.run(engine.create(make_spec(
            frequency="weekly", day_of_week="friday", start_date=monday
        )))

        assert template.next_run_date == monday
        assert template.status == TemplateStatus.ACTIVE
        assert template.total_runs == 0

    def test_accepts_spec_model(self, engine):
        spec = RecurringTemplateSpec(
            owner_id="owner-1",
            type="sale",
            amount=Decimal("20"),
            description="Catering contract",
            frequency="monthly",
            day_of_month=15,
            start_date=date(2026, 1, 15),
            name="Catering",
        )
        template = asyncio.run(engine.create(spec))

        assert template.day_of_month == 15
        assert template.label == "Catering"

    def test_unknown_frequency_rejected(self, engine, make_spec):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(engine.create(make_spec(frequency="fortnightly")))
        assert exc_info.value.fields == ["frequency"]

    def test_day_of_month_only_for_monthly(self, engine, make_spec):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(engine.create(make_spec(frequency="weekly", day_of_month=3)))
        assert "day_of_month" in exc_info.value.fields

    def test_end_before_start_rejected(self, engine, make_spec):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(engine.create(make_spec(end_date=date(2025, 12, 31))))
        assert exc_info.value.fields == ["end_date"]

    @pytest.mark.parametrize("interval", [0, 366])
    def test_interval_bounds(self, engine, make_spec, interval):
        with pytest.raises(ValidationError):
            asyncio.run(engine.create(make_spec(interval=interval)))

    def test_receivable_template_needs_counterparty(self, engine, make_spec):
        with pytest.raises(ValidationError):
            asyncio.run(engine.create(make_spec(type="receivable")))

    def test_creation_is_audited(self, engine, make_spec, audit_storage):
        template = asyncio.run(engine.create(make_spec()))
        events = asyncio.run(audit_storage.get_events_by_entity("recurring_template", str(template.id)))
        assert [e.event_type for e in events] == [AuditEventType.TEMPLATE_CREATED]


class TestMaterialize:
    """Tests for materialization of a single template."""

    def test_success_records_run_and_advances(self, engine, make_spec, ledger, notifications):
        template = asyncio.run(engine.create(make_spec()))

        result = asyncio.run(engine.materialize(template))

        assert result.run.outcome == RunOutcome.SUCCESS
        assert result.run.transaction_id == result.transaction.id
        assert result.run.scheduled_date == date(2026, 1, 1)
        assert result.template.total_runs == 1
        assert result.template.last_run_date == date(2026, 1, 1)
        assert result.template.next_run_date == date(2026, 1, 2)
        assert result.template.status == TemplateStatus.ACTIVE

        txn = asyncio.run(ledger.by_reference(result.transaction.reference_code))
        assert txn.metadata["recurring_template_id"] == str(template.id)
        assert txn.status == TransactionStatus.APPROVED

        assert notifications.sent[-1][0] == "owner-1"
        assert result.transaction.reference_code in notifications.sent[-1][1]

    def test_large_amount_produces_pending_entry(self, engine, make_spec):
        template = asyncio.run(engine.create(make_spec(amount="5000000")))
        result = asyncio.run(engine.materialize(template))
        assert result.transaction.status == TransactionStatus.PENDING

    def test_failure_records_run_and_keeps_date(self, flaky_engine, flaky_ledger, make_spec):
        template = asyncio.run(flaky_engine.create(make_spec()))
        flaky_ledger.failing_owners = {"owner-1"}

        with pytest.raises(MaterializationError) as exc_info:
            asyncio.run(flaky_engine.materialize(template))

        run = exc_info.value.run
        assert run.outcome == RunOutcome.FAILED
        assert run.transaction_id is None
        assert "database unavailable" in run.notes

        stored = asyncio.run(flaky_engine.get_template(template.id))
        assert stored.next_run_date == date(2026, 1, 1)
        assert stored.total_runs == 0

    def test_max_occurrences_completes(self, engine, make_spec, clock):
        """A template limited to 3 runs completes on the third."""
        template = asyncio.run(engine.create(make_spec(max_occurrences=3)))

        summaries = []
        for _ in range(3):
            summaries.append(asyncio.run(engine.process_due()))
            clock.advance(days=1)

        stored = asyncio.run(engine.get_template(template.id))
        assert stored.status == TemplateStatus.COMPLETED
        assert stored.total_runs == 3
        assert [s.completed for s in summaries] == [0, 0, 1]
        assert asyncio.run(engine.find_due(date(2026, 12, 31))) == []

    def test_end_date_completes(self, engine, make_spec, clock):
        template = asyncio.run(engine.create(make_spec(end_date=date(2026, 1, 2))))

        asyncio.run(engine.process_due())
        assert asyncio.run(engine.get_template(template.id)).next_run_date == date(2026, 1, 2)

        clock.advance(days=1)
        asyncio.run(engine.process_due())

        stored = asyncio.run(engine.get_template(template.id))
        assert stored.status == TemplateStatus.COMPLETED
        assert stored.total_runs == 2

    def test_cancel_mid_flight_is_not_undone(self, flaky_engine, flaky_ledger, make_spec):
        """A cancel that lands during materialization sticks."""
        template = asyncio.run(flaky_engine.create(make_spec()))

        async def cancel_now():
            flaky_ledger.on_create = None
            await flaky_engine.cancel(template.id)

        flaky_ledger.on_create = cancel_now
        result = asyncio.run(flaky_engine.materialize(template))

        assert result.run.outcome == RunOutcome.SUCCESS
        assert result.template.status == TemplateStatus.CANCELLED
        assert result.template.total_runs == 1
        assert result.template.next_run_date == date(2026, 1, 1)

    def test_pause_mid_flight_on_last_run_completes(self, flaky_engine, flaky_ledger, make_spec):
        """A template paused during its final run goes straight to COMPLETED."""
        template = asyncio.run(flaky_engine.create(make_spec(max_occurrences=1)))

        async def pause_now():
            flaky_ledger.on_create = None
            await flaky_engine.pause(template.id)

        flaky_ledger.on_create = pause_now
        result = asyncio.run(flaky_engine.materialize(template))

        assert result.template.status == TemplateStatus.COMPLETED
        assert result.template.total_runs == 1
        assert result.completed


class TestProcessDue:
    """Tests for batch processing."""

    def test_failure_is_isolated(self, flaky_engine, flaky_ledger, make_spec):
        """A fails, B succeeds, in the same batch."""
        a = asyncio.run(flaky_engine.create(make_spec(owner_id="owner-2", description="A")))
        b = asyncio.run(flaky_engine.create(make_spec(owner_id="owner-1", description="B")))
        flaky_ledger.failing_owners = {"owner-2"}

        summary = asyncio.run(flaky_engine.process_due())

        assert summary.processed == 2
        assert summary.succeeded == 1
        assert summary.failed == 1
        assert [e.template_id for e in summary.errors] == [a.id]

        a_after = asyncio.run(flaky_engine.get_template(a.id))
        b_after = asyncio.run(flaky_engine.get_template(b.id))
        assert a_after.next_run_date == date(2026, 1, 1)
        assert b_after.next_run_date == date(2026, 1, 2)

        assert asyncio.run(flaky_engine.history(a.id))[0].outcome == RunOutcome.FAILED
        assert asyncio.run(flaky_engine.history(b.id))[0].outcome == RunOutcome.SUCCESS

    def test_failed_template_retried_next_poll(self, flaky_engine, flaky_ledger, make_spec):
        template = asyncio.run(flaky_engine.create(make_spec()))
        flaky_ledger.failing_owners = {"owner-1"}
        asyncio.run(flaky_engine.process_due())

        flaky_ledger.failing_owners = set()
        summary = asyncio.run(flaky_engine.process_due())

        assert summary.succeeded == 1
        runs = asyncio.run(flaky_engine.history(template.id))
        assert [r.outcome for r in runs] == [RunOutcome.SUCCESS, RunOutcome.FAILED]
        assert runs[0].scheduled_date == runs[1].scheduled_date

    def test_storage_outage_records_failed_run(
        self, recurring_storage, authorization, audit_logger, audit_storage, clock,
        notifications, ledger_settings, scheduler_settings, make_spec,
    ):
        """Errors from outside the cashbook taxonomy still leave a FAILED run."""
        ledger = LedgerCore(
            UnreachableTransactionStorage(),
            authorization,
            audit=audit_logger,
            clock=clock,
            settings=ledger_settings,
        )
        engine = ScheduleEngine(
            recurring_storage,
            ledger,
            audit=audit_logger,
            clock=clock,
            notifications=notifications,
            settings=scheduler_settings,
        )
        template = asyncio.run(engine.create(make_spec()))

        with pytest.raises(MaterializationError) as exc_info:
            asyncio.run(engine.materialize(template))
        assert isinstance(exc_info.value.__cause__, ConnectionError)

        summary = asyncio.run(engine.process_due())
        assert summary.failed == 1

        runs = asyncio.run(engine.history(template.id))
        assert [r.outcome for r in runs] == [RunOutcome.FAILED, RunOutcome.FAILED]
        assert "db connection reset" in runs[0].notes

        stored = asyncio.run(engine.get_template(template.id))
        assert stored.next_run_date == date(2026, 1, 1)

        events = asyncio.run(audit_storage.get_events_by_entity("recurring_template", str(template.id)))
        assert AuditEventType.TEMPLATE_MATERIALIZATION_FAILED in [e.event_type for e in events]
        assert "failed" in notifications.sent[-1][1]

    def test_only_due_active_templates(self, engine, make_spec):
        due = asyncio.run(engine.create(make_spec()))
        asyncio.run(engine.create(make_spec(start_date=date(2026, 1, 5))))
        paused = asyncio.run(engine.create(make_spec()))
        asyncio.run(engine.pause(paused.id))

        assert [t.id for t in asyncio.run(engine.find_due())] == [due.id]

        summary = asyncio.run(engine.process_due())
        assert summary.processed == 1

    def test_empty_batch(self, engine):
        summary = asyncio.run(engine.process_due())
        assert summary.processed == 0
        assert summary.errors == []

    def test_claimed_template_is_skipped(self, engine, make_spec, recurring_storage, clock):
        template = asyncio.run(engine.create(make_spec()))
        now = clock.now()
        asyncio.run(recurring_storage.claim_template(template.id, now, now - timedelta(minutes=15)))

        summary = asyncio.run(engine.process_due())

        assert summary.skipped == 1
        assert summary.processed == 0
        assert asyncio.run(engine.history(template.id)) == []

    def test_stale_claim_is_taken_over(self, engine, make_spec, recurring_storage, clock):
        template = asyncio.run(engine.create(make_spec()))
        then = clock.now()
        asyncio.run(recurring_storage.claim_template(template.id, then, then - timedelta(minutes=15)))
        clock.advance(seconds=3600)

        summary = asyncio.run(engine.process_due(as_of=date(2026, 1, 1)))

        assert summary.succeeded == 1
        stored = asyncio.run(engine.get_template(template.id))
        assert stored.claimed_at is None

    def test_worker_limit(self, engine, make_spec):
        for i in range(10):
            asyncio.run(engine.create(make_spec(description=f"Rent {i}")))

        summary = asyncio.run(engine.process_due(max_workers=2))
        assert summary.succeeded == 10


class TestLifecycle:
    """Tests for pause/resume/cancel."""

    def test_resume_skips_missed_days(self, engine, make_spec, clock, ledger):
        """Paused across 3 missed days: no backfill, total_runs unchanged."""
        template = asyncio.run(engine.create(make_spec()))
        asyncio.run(engine.pause(template.id))
        clock.advance(days=3)

        resumed = asyncio.run(engine.resume(template.id))

        assert resumed.status == TemplateStatus.ACTIVE
        assert resumed.next_run_date >= clock.today()
        assert resumed.next_run_date == date(2026, 1, 4)
        assert resumed.total_runs == 0
        assert asyncio.run(ledger.by_owner("owner-1")) == []

        runs = asyncio.run(engine.history(template.id))
        assert {r.outcome for r in runs} == {RunOutcome.SKIPPED}
        assert sorted(r.scheduled_date for r in runs) == [
            date(2026, 1, 1), date(2026, 1, 2), date(2026, 1, 3),
        ]

    def test_resume_past_end_date_completes(self, engine, make_spec, clock):
        template = asyncio.run(engine.create(make_spec(end_date=date(2026, 1, 2))))
        asyncio.run(engine.pause(template.id))
        clock.advance(days=5)

        resumed = asyncio.run(engine.resume(template.id))

        assert resumed.status == TemplateStatus.COMPLETED

    def test_resume_without_missed_days(self, engine, make_spec):
        template = asyncio.run(engine.create(make_spec(start_date=date(2026, 1, 10))))
        asyncio.run(engine.pause(template.id))
        resumed = asyncio.run(engine.resume(template.id))
        assert resumed.next_run_date == date(2026, 1, 10)
        assert asyncio.run(engine.history(template.id)) == []

    def test_pause_requires_active(self, engine, make_spec):
        template = asyncio.run(engine.create(make_spec()))
        asyncio.run(engine.pause(template.id))
        with pytest.raises(InvalidStateError):
            asyncio.run(engine.pause(template.id))

    def test_resume_requires_paused(self, engine, make_spec):
        template = asyncio.run(engine.create(make_spec()))
        with pytest.raises(InvalidStateError):
            asyncio.run(engine.resume(template.id))

    def test_cancel_twice_fails(self, engine, make_spec):
        template = asyncio.run(engine.create(make_spec()))
        cancelled = asyncio.run(engine.cancel(template.id))
        assert cancelled.status == TemplateStatus.CANCELLED

        with pytest.raises(InvalidStateError):
            asyncio.run(engine.cancel(template.id))

    def test_cancel_paused(self, engine, make_spec):
        template = asyncio.run(engine.create(make_spec()))
        asyncio.run(engine.pause(template.id))
        assert asyncio.run(engine.cancel(template.id)).status == TemplateStatus.CANCELLED

    def test_cancelled_cannot_resume(self, engine, make_spec):
        template = asyncio.run(engine.create(make_spec()))
        asyncio.run(engine.cancel(template.id))
        with pytest.raises(InvalidStateError):
            asyncio.run(engine.resume(template.id))

    @pytest.mark.parametrize("template_id", [
        "00000000-0000-0000-0000-000000000000",
        "not-a-uuid",
    ])
    def test_unknown_template(self, engine, template_id):
        with pytest.raises(NotFoundError):
            asyncio.run(engine.pause(template_id))

    def test_lifecycle_is_audited(self, engine, make_spec, audit_storage):
        template = asyncio.run(engine.create(make_spec()))
        asyncio.run(engine.pause(template.id, actor_id="admin-1"))
        asyncio.run(engine.resume(template.id))
        asyncio.run(engine.cancel(template.id))

        events = asyncio.run(audit_storage.get_events_by_entity("recurring_template", str(template.id)))
        assert [e.event_type for e in events] == [
            AuditEventType.TEMPLATE_CREATED,
            AuditEventType.TEMPLATE_PAUSED,
            AuditEventType.TEMPLATE_RESUMED,
            AuditEventType.TEMPLATE_CANCELLED,
        ]
        assert events[1].actor_id == "admin-1"


class TestReminders:
    """Tests for upcoming-run reminders."""

    def test_reminders_respect_notify_window(self, engine, make_spec, notifications):
        due_soon = asyncio.run(engine.create(make_spec(
            start_date=date(2026, 1, 3), notify_days_before=2, name="Rent"
        )))
        asyncio.run(engine.create(make_spec(start_date=date(2026, 1, 4), notify_days_before=1)))
        asyncio.run(engine.create(make_spec(start_date=date(2026, 1, 2), notify_before=False)))
        asyncio.run(engine.create(make_spec(start_date=date(2026, 1, 20), notify_days_before=31)))

        summary = asyncio.run(engine.send_upcoming_reminders(days_ahead=3))

        assert summary.sent == 1
        assert summary.failed == 0
        owner, message = notifications.sent[0]
        assert owner == due_soon.owner_id
        assert '"Rent"' in message
        assert "2 day(s)" in message

    def test_reminder_failures_are_counted(
        self, recurring_storage, ledger, audit_logger, clock, scheduler_settings, make_spec
    ):
        engine = ScheduleEngine(
            recurring_storage,
            ledger,
            audit=audit_logger,
            clock=clock,
            notifications=BrokenDispatcher(),
            settings=scheduler_settings,
        )
        template = asyncio.run(engine.create(make_spec(start_date=date(2026, 1, 2))))

        summary = asyncio.run(engine.send_upcoming_reminders())

        assert summary.sent == 0
        assert summary.failed == 1
        assert summary.errors[0].template_id == template.id

    def test_broken_dispatcher_does_not_fail_materialize(
        self, recurring_storage, ledger, audit_logger, clock, scheduler_settings, make_spec
    ):
        engine = ScheduleEngine(
            recurring_storage,
            ledger,
            audit=audit_logger,
            clock=clock,
            notifications=BrokenDispatcher(),
            settings=scheduler_settings,
        )
        template = asyncio.run(engine.create(make_spec()))
        result = asyncio.run(engine.materialize(template))
        assert result.run.outcome == RunOutcome.SUCCESS


class TestStatistics:
    """Tests for history and statistics queries."""

    def test_history_newest_first_with_limit(self, engine, make_spec, clock):
        template = asyncio.run(engine.create(make_spec()))
        for _ in range(4):
            asyncio.run(engine.process_due())
            clock.advance(days=1)

        runs = asyncio.run(engine.history(template.id, limit=2))
        assert [r.scheduled_date for r in runs] == [date(2026, 1, 4), date(2026, 1, 3)]

    def test_template_stats(self, engine, make_spec, clock):
        template = asyncio.run(engine.create(make_spec(amount="100.00")))
        asyncio.run(engine.process_due())
        clock.advance(days=1)
        asyncio.run(engine.process_due())
        asyncio.run(engine.pause(template.id))
        clock.advance(days=2)
        asyncio.run(engine.resume(template.id))

        stats = asyncio.run(engine.template_stats(template.id))

        assert stats.total_runs == 2
        assert stats.successful == 2
        assert stats.skipped == 1
        assert stats.failed == 0
        assert stats.total_amount == Decimal("200.00")
        assert stats.next_run_date == date(2026, 1, 4)

    def test_statistics_counts_by_status(self, engine, make_spec):
        asyncio.run(engine.create(make_spec()))
        paused = asyncio.run(engine.create(make_spec()))
        cancelled = asyncio.run(engine.create(make_spec(owner_id="owner-2")))
        asyncio.run(engine.pause(paused.id))
        asyncio.run(engine.cancel(cancelled.id))

        stats = asyncio.run(engine.statistics())
        assert (stats.active, stats.paused, stats.cancelled, stats.completed) == (1, 1, 1, 0)
        assert stats.total == 3

        mine = asyncio.run(engine.statistics(owner_id="owner-1"))
        assert mine.total == 2

    def test_list_templates_filters(self, engine, make_spec):
        asyncio.run(engine.create(make_spec()))
        other = asyncio.run(engine.create(make_spec(owner_id="owner-2")))
        asyncio.run(engine.pause(other.id))

        assert len(asyncio.run(engine.list_templates(owner_id="owner-1"))) == 1
        assert [t.id for t in asyncio.run(engine.list_templates(status="paused"))] == [other.id]

    def test_list_templates_unknown_status(self, engine):
        with pytest.raises(ValidationError):
            asyncio.run(engine.list_templates(status="archived"))
