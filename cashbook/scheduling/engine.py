"""
Recurring Schedule Engine

Owns RecurringTemplates and their run history, and turns due templates into
ledger entries.

DESIGN DECISIONS:
- A failed materialization does not advance the template. The same due
  date is retried on the next poll.
- Resuming a paused template skips missed occurrences instead of
  backfilling them. Each skipped date still gets a SKIPPED history row.
- Batch processing claims each template before touching it, so two
  pollers never materialize the same occurrence twice.
"""

import asyncio
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from cashbook.audit import AuditLogger, AuditSink
from cashbook.clock import Clock, SystemClock
from cashbook.config import SchedulerSettings, get_settings
from cashbook.errors import (
    InvalidStateError,
    MaterializationError,
    NotFoundError,
    ValidationError,
)
from cashbook.ledger import LedgerCore
from cashbook.models.audit import AuditEventType
from cashbook.models.recurring import (
    BatchError,
    BatchSummary,
    MaterializationResult,
    RecurringTemplate,
    RecurringTemplateSpec,
    ReminderSummary,
    RunHistory,
    RunOutcome,
    ScheduleStatistics,
    TemplateStatistics,
    TemplateStatus,
)
from cashbook.scheduling.dates import advance_date
from cashbook.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcherInterface,
)
from cashbook.services.storage import RecurringStorageInterface
from cashbook.validation import TemplateValidator, raise_for_errors


logger = structlog.get_logger(__name__)

ENTITY_TYPE = "recurring_template"

# Conditional updates that lose to a concurrent pause/cancel are re-read
# and retried this many times before giving up.
MARK_RUN_ATTEMPTS = 3

TemplateRef = Union[UUID, str]


class ScheduleEngine:
    """
    Recurring template lifecycle and materialization.

    All dates come from the injected Clock; the engine never reads the
    system time directly.
    """

    def __init__(
        self,
        storage: RecurringStorageInterface,
        ledger: LedgerCore,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        notifications: Optional[NotificationDispatcherInterface] = None,
        settings: Optional[SchedulerSettings] = None,
    ):
        self._storage = storage
        self._ledger = ledger
        self._audit = audit or AuditLogger()
        self._clock = clock or SystemClock()
        self._notifications = notifications or LoggingNotificationDispatcher()
        self._settings = settings or get_settings().scheduler
        self._validator = TemplateValidator()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create(
        self,
        spec: Union[RecurringTemplateSpec, Mapping[str, Any]],
    ) -> RecurringTemplate:
        """
        Create an ACTIVE template.

        The first run happens on ``start_date`` exactly; day-of-week and
        day-of-month only shape the dates computed after it.

        Raises:
            ValidationError: Any invalid field, including an unknown frequency
        """
        data = spec.model_dump() if isinstance(spec, RecurringTemplateSpec) else dict(spec)
        result = raise_for_errors(self._validator.validate(data))
        values = result.values
        now = self._clock.now()

        template = RecurringTemplate(
            owner_id=values["owner_id"],
            name=values.get("name"),
            type=values["type"],
            amount=values["amount"],
            description=values["description"],
            counterparty_name=values.get("counterparty_name"),
            frequency=values["frequency"],
            interval=values["interval"],
            day_of_week=values.get("day_of_week"),
            day_of_month=values.get("day_of_month"),
            start_date=values["start_date"],
            end_date=values.get("end_date"),
            max_occurrences=values.get("max_occurrences"),
            status=TemplateStatus.ACTIVE,
            next_run_date=values["start_date"],
            notify_before=values["notify_before"],
            notify_days_before=values["notify_days_before"],
            created_at=now,
            updated_at=now,
        )
        template = await self._storage.insert_template(template)

        await self._audit.record(
            template.owner_id,
            AuditEventType.TEMPLATE_CREATED.value,
            ENTITY_TYPE,
            template.id,
            {
                "frequency": template.frequency.value,
                "interval": template.interval,
                "amount": str(template.amount),
                "next_run_date": template.next_run_date.isoformat(),
            },
        )
        logger.info(
            "template_created",
            template_id=str(template.id),
            owner_id=template.owner_id,
            frequency=template.frequency.value,
            next_run_date=template.next_run_date.isoformat(),
        )
        return template

    async def pause(self, template_id: TemplateRef, actor_id: Optional[str] = None) -> RecurringTemplate:
        """ACTIVE -> PAUSED. Takes effect from the next poll."""
        template = await self._require(template_id)
        if template.status is not TemplateStatus.ACTIVE:
            raise InvalidStateError(
                f"Only active templates can be paused (template is {template.status.value})"
            )

        paused = await self._transition(template, TemplateStatus.PAUSED)
        await self._record(paused, AuditEventType.TEMPLATE_PAUSED, actor_id)
        logger.info("template_paused", template_id=str(paused.id))
        return paused

    async def resume(self, template_id: TemplateRef, actor_id: Optional[str] = None) -> RecurringTemplate:
        """
        PAUSED -> ACTIVE, skipping occurrences missed while paused.

        Every date before today is stepped over without creating an entry
        and recorded as SKIPPED. If stepping passes ``end_date`` the
        template completes instead of reactivating.
        """
        template = await self._require(template_id)
        if template.status is not TemplateStatus.PAUSED:
            raise InvalidStateError(
                f"Only paused templates can be resumed (template is {template.status.value})"
            )

        today = self._clock.today()
        next_run = template.next_run_date
        skipped: list[date] = []
        while next_run < today and not _past_end(template, next_run):
            skipped.append(next_run)
            next_run = advance_date(template, next_run)

        if _past_end(template, next_run):
            resumed = await self._transition(template, TemplateStatus.COMPLETED)
        else:
            resumed = await self._transition(
                template, TemplateStatus.ACTIVE, next_run_date=next_run
            )

        for scheduled in skipped:
            await self._storage.append_run(RunHistory(
                template_id=template.id,
                scheduled_date=scheduled,
                processed_date=today,
                outcome=RunOutcome.SKIPPED,
                notes="Skipped while paused",
                created_at=self._clock.now(),
            ))

        await self._record(
            resumed,
            AuditEventType.TEMPLATE_RESUMED,
            actor_id,
            {"skipped": len(skipped), "next_run_date": resumed.next_run_date.isoformat()},
        )
        if resumed.status is TemplateStatus.COMPLETED:
            await self._record(resumed, AuditEventType.TEMPLATE_COMPLETED, actor_id, {"reason": "end_date"})

        logger.info(
            "template_resumed",
            template_id=str(resumed.id),
            skipped=len(skipped),
            status=resumed.status.value,
            next_run_date=resumed.next_run_date.isoformat(),
        )
        return resumed

    async def cancel(self, template_id: TemplateRef, actor_id: Optional[str] = None) -> RecurringTemplate:
        """ACTIVE or PAUSED -> CANCELLED. Terminal."""
        template = await self._require(template_id)
        if template.status.is_terminal:
            raise InvalidStateError(
                f"Template is already {template.status.value}"
            )

        cancelled = await self._transition(template, TemplateStatus.CANCELLED)
        await self._record(cancelled, AuditEventType.TEMPLATE_CANCELLED, actor_id)
        logger.info("template_cancelled", template_id=str(cancelled.id))
        return cancelled

    async def _transition(
        self,
        template: RecurringTemplate,
        status: TemplateStatus,
        **changes: Any,
    ) -> RecurringTemplate:
        updated = template.model_copy(update={
            "status": status,
            "updated_at": self._clock.now(),
            **changes,
        })
        stored = await self._storage.update_template_if(updated, expected_status=template.status)
        if stored is None:
            raise InvalidStateError(
                f"Template {template.id} changed concurrently; retry the request"
            )
        return stored

    # =========================================================================
    # Materialization
    # =========================================================================

    async def find_due(self, as_of: Optional[date] = None) -> list[RecurringTemplate]:
        """ACTIVE templates with ``next_run_date <= as_of``, oldest first."""
        as_of = as_of or self._clock.today()
        return await self._storage.list_active_between(None, as_of)

    async def materialize(self, template: RecurringTemplate) -> MaterializationResult:
        """
        Create the ledger entry for the template's current due date.

        On success the run is recorded and the template advanced (or
        completed). On any failure from the ledger a FAILED run is recorded,
        the template is left untouched, and MaterializationError is raised.
        """
        today = self._clock.today()
        scheduled = template.next_run_date

        try:
            transaction = await self._ledger.create(
                owner_id=template.owner_id,
                type=template.type,
                amount=template.amount,
                description=template.description,
                counterparty_name=template.counterparty_name,
                metadata={
                    "recurring_template_id": str(template.id),
                    "scheduled_date": scheduled.isoformat(),
                },
            )
        except Exception as e:
            run = await self._storage.append_run(RunHistory(
                template_id=template.id,
                scheduled_date=scheduled,
                processed_date=today,
                outcome=RunOutcome.FAILED,
                notes=str(e)[:1000],
                created_at=self._clock.now(),
            ))
            await self._record(
                template,
                AuditEventType.TEMPLATE_MATERIALIZATION_FAILED,
                details={"scheduled_date": scheduled.isoformat(), "error": str(e)},
            )
            logger.error(
                "template_materialization_failed",
                template_id=str(template.id),
                scheduled_date=scheduled.isoformat(),
                error=str(e),
            )
            await self._notify(
                template.owner_id,
                f'Recurring entry "{template.label}" for {scheduled.isoformat()} failed: {e}',
            )
            raise MaterializationError(
                f"Template {template.id} failed for {scheduled.isoformat()}: {e}",
                run=run,
            ) from e

        run = await self._storage.append_run(RunHistory(
            template_id=template.id,
            transaction_id=transaction.id,
            scheduled_date=scheduled,
            processed_date=today,
            outcome=RunOutcome.SUCCESS,
            created_at=self._clock.now(),
        ))
        updated = await self._mark_run(template.id, today)

        await self._record(
            updated,
            AuditEventType.TEMPLATE_MATERIALIZED,
            details={
                "scheduled_date": scheduled.isoformat(),
                "reference_code": transaction.reference_code,
                "total_runs": updated.total_runs,
            },
        )
        if updated.status is TemplateStatus.COMPLETED and template.status is not TemplateStatus.COMPLETED:
            await self._record(updated, AuditEventType.TEMPLATE_COMPLETED, details={"total_runs": updated.total_runs})
            logger.info("template_completed", template_id=str(updated.id), total_runs=updated.total_runs)

        logger.info(
            "template_materialized",
            template_id=str(template.id),
            reference_code=transaction.reference_code,
            scheduled_date=scheduled.isoformat(),
            status=updated.status.value,
            next_run_date=updated.next_run_date.isoformat(),
        )
        await self._notify(
            template.owner_id,
            f'Recurring entry "{template.label}" recorded as {transaction.reference_code}'
            f" ({transaction.status.value})",
        )
        return MaterializationResult(run=run, transaction=transaction, template=updated)

    async def _mark_run(self, template_id: UUID, today: date) -> RecurringTemplate:
        """
        Count a successful run against the stored template.

        Re-reads the template so a pause or cancel that landed while the
        entry was being created is kept. Only ACTIVE and PAUSED templates
        are advanced or completed; a CANCELLED one just gets its counters.
        """
        for _ in range(MARK_RUN_ATTEMPTS):
            current = await self._storage.get_template(template_id)
            if current is None:
                raise NotFoundError(f"Template {template_id} not found")

            changes: dict[str, Any] = {
                "total_runs": current.total_runs + 1,
                "last_run_date": today,
                "updated_at": self._clock.now(),
            }
            if current.status in (TemplateStatus.ACTIVE, TemplateStatus.PAUSED):
                candidate = advance_date(current, current.next_run_date)
                exhausted = (
                    current.max_occurrences is not None
                    and changes["total_runs"] >= current.max_occurrences
                )
                if exhausted or _past_end(current, candidate):
                    changes["status"] = TemplateStatus.COMPLETED
                else:
                    changes["next_run_date"] = candidate

            stored = await self._storage.update_template_if(
                current.model_copy(update=changes),
                expected_status=current.status,
                expected_total_runs=current.total_runs,
            )
            if stored is not None:
                return stored
            logger.warning("template_mark_run_conflict", template_id=str(template_id))

        raise InvalidStateError(f"Template {template_id} kept changing while recording a run")

    async def process_due(
        self,
        as_of: Optional[date] = None,
        max_workers: Optional[int] = None,
    ) -> BatchSummary:
        """
        Materialize every due template once.

        Templates run concurrently, at most ``max_workers`` at a time. A
        failing template is recorded in the summary and never stops its
        siblings.
        """
        as_of = as_of or self._clock.today()
        summary = BatchSummary(as_of=as_of)
        due = await self.find_due(as_of)
        if not due:
            logger.info("recurring_batch_empty", as_of=as_of.isoformat())
            return summary

        semaphore = asyncio.Semaphore(max_workers or self._settings.max_workers)
        outcomes = await asyncio.gather(
            *(self._process_one(template, as_of, semaphore) for template in due)
        )

        for template, outcome in zip(due, outcomes):
            if outcome is None:
                summary.skipped += 1
            elif isinstance(outcome, MaterializationResult):
                summary.processed += 1
                summary.succeeded += 1
                if outcome.completed:
                    summary.completed += 1
            else:
                summary.processed += 1
                summary.failed += 1
                summary.errors.append(BatchError(template_id=template.id, error=outcome))

        logger.info(
            "recurring_batch_processed",
            as_of=as_of.isoformat(),
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            completed=summary.completed,
            skipped=summary.skipped,
        )
        return summary

    async def _process_one(
        self,
        template: RecurringTemplate,
        as_of: date,
        semaphore: asyncio.Semaphore,
    ) -> Union[MaterializationResult, str, None]:
        """Returns the result, an error message, or None when skipped."""
        async with semaphore:
            now = self._clock.now()
            stale_before = now - timedelta(seconds=self._settings.claim_timeout_seconds)
            claimed = await self._storage.claim_template(template.id, now, stale_before)
            if claimed is None:
                logger.info("template_claim_skipped", template_id=str(template.id))
                return None

            try:
                if claimed.next_run_date > as_of:
                    # Another worker ran this occurrence between the scan and the claim
                    return None
                return await self.materialize(claimed)
            except MaterializationError as e:
                return str(e)
            except Exception as e:
                logger.exception("template_processing_error", template_id=str(template.id))
                return f"{type(e).__name__}: {e}"
            finally:
                await self._storage.release_claim(template.id)

    # =========================================================================
    # Reminders
    # =========================================================================

    async def send_upcoming_reminders(self, days_ahead: Optional[int] = None) -> ReminderSummary:
        """
        Remind owners of runs coming up within ``days_ahead`` days.

        Only templates with ``notify_before`` set, and only once the run is
        at most ``notify_days_before`` days away. Delivery failures are
        counted, never raised.
        """
        if days_ahead is None:
            days_ahead = self._settings.reminder_days_ahead
        today = self._clock.today()
        summary = ReminderSummary()

        upcoming = await self._storage.list_active_between(today, today + timedelta(days=days_ahead))
        for template in upcoming:
            if not template.notify_before:
                continue
            days_until = (template.next_run_date - today).days
            if days_until > template.notify_days_before:
                continue

            message = (
                f'Reminder: "{template.label}" runs in {days_until} day(s) '
                f"({template.next_run_date.isoformat()})"
            )
            try:
                await self._notifications.notify(template.owner_id, message)
            except Exception as e:
                summary.failed += 1
                summary.errors.append(BatchError(template_id=template.id, error=str(e)))
                logger.error("reminder_failed", template_id=str(template.id), error=str(e))
                continue

            summary.sent += 1
            logger.info("reminder_sent", template_id=str(template.id), days_until=days_until)

        logger.info("reminders_sent", sent=summary.sent, failed=summary.failed)
        return summary

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_template(self, template_id: TemplateRef) -> Optional[RecurringTemplate]:
        key = _as_uuid(template_id)
        if key is None:
            return None
        return await self._storage.get_template(key)

    async def list_templates(
        self,
        owner_id: Optional[str] = None,
        status: Union[TemplateStatus, str, None] = None,
    ) -> list[RecurringTemplate]:
        try:
            status = TemplateStatus(status) if status is not None else None
        except ValueError as e:
            raise ValidationError(str(e))
        return await self._storage.list_templates(owner_id=owner_id, status=status)

    async def history(self, template_id: TemplateRef, limit: int = 10) -> list[RunHistory]:
        """Most recent runs first."""
        template = await self._require(template_id)
        return await self._storage.list_runs(template.id, limit=limit)

    async def statistics(self, owner_id: Optional[str] = None) -> ScheduleStatistics:
        """Template counts per status."""
        stats = ScheduleStatistics()
        for template in await self._storage.list_templates(owner_id=owner_id, status=None):
            setattr(stats, template.status.value, getattr(stats, template.status.value) + 1)
        return stats

    async def template_stats(self, template_id: TemplateRef) -> TemplateStatistics:
        template = await self._require(template_id)
        runs = await self._storage.list_runs(template.id)
        return TemplateStatistics(
            template_id=template.id,
            total_runs=template.total_runs,
            successful=sum(1 for r in runs if r.outcome is RunOutcome.SUCCESS),
            failed=sum(1 for r in runs if r.outcome is RunOutcome.FAILED),
            skipped=sum(1 for r in runs if r.outcome is RunOutcome.SKIPPED),
            next_run_date=template.next_run_date,
            last_run_date=template.last_run_date,
            total_amount=template.amount * template.total_runs,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require(self, template_id: TemplateRef) -> RecurringTemplate:
        template = await self.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template

    async def _record(
        self,
        template: RecurringTemplate,
        event_type: AuditEventType,
        actor_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        await self._audit.record(
            actor_id or template.owner_id,
            event_type.value,
            ENTITY_TYPE,
            template.id,
            {"status": template.status.value, **(details or {})},
        )

    async def _notify(self, owner_id: str, message: str) -> None:
        try:
            await self._notifications.notify(owner_id, message)
        except Exception as e:
            logger.warning("notification_failed", owner_id=owner_id, error=str(e))


def _past_end(template: RecurringTemplate, day: date) -> bool:
    return template.end_date is not None and day > template.end_date


def _as_uuid(value: TemplateRef) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None
