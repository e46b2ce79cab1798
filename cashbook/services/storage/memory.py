"""
In-Memory Storage Implementation

DESIGN DECISION: The reference backend keeps everything in process memory.
It is what the tests run against and what a single-process deployment
uses until a database backend is plugged in.

Every method does its whole read-check-write under one lock and never
awaits inside it, so each call is atomic with respect to other tasks and
threads. Records are immutable, so they are stored and returned as-is.
"""

import threading
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from cashbook.errors import UniqueConstraintViolation
from cashbook.models.audit import AuditEvent
from cashbook.models.recurring import RecurringTemplate, RunHistory, TemplateStatus
from cashbook.models.transaction import Transaction, TransactionStatus, TransactionType
from cashbook.services.storage.interface import (
    AuditStorageInterface,
    RecurringStorageInterface,
    TransactionStorageInterface,
)


def _in_range(day: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Ledger storage with a unique index on reference_code."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_reference: dict[str, Transaction] = {}

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            if transaction.reference_code in self._by_reference:
                raise UniqueConstraintViolation("reference_code", transaction.reference_code)
            self._by_reference[transaction.reference_code] = transaction
        return transaction

    async def get_by_reference(self, reference_code: str) -> Optional[Transaction]:
        return self._by_reference.get(reference_code)

    async def list_by_owner(
        self,
        owner_id: str,
        type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        with self._lock:
            rows = list(self._by_reference.values())

        results = [
            t for t in rows
            if t.owner_id == owner_id
            and (type is None or t.type == type)
            and (status is None or t.status == status)
            and _in_range(t.created_date, date_from, date_to)
        ]
        results.sort(key=lambda t: t.created_at, reverse=True)
        return results[:limit] if limit else results

    async def list_by_status(self, status: TransactionStatus) -> list[Transaction]:
        with self._lock:
            rows = [t for t in self._by_reference.values() if t.status == status]
        rows.sort(key=lambda t: t.created_at)
        return rows

    async def list_by_date_range(
        self,
        date_from: date,
        date_to: date,
        status: Optional[TransactionStatus] = None,
    ) -> list[Transaction]:
        with self._lock:
            rows = list(self._by_reference.values())

        results = [
            t for t in rows
            if _in_range(t.created_date, date_from, date_to)
            and (status is None or t.status == status)
        ]
        results.sort(key=lambda t: t.created_at)
        return results

    async def update_if_pending(self, transaction: Transaction) -> Optional[Transaction]:
        with self._lock:
            stored = self._by_reference.get(transaction.reference_code)
            if stored is None or stored.status != TransactionStatus.PENDING:
                return None
            self._by_reference[transaction.reference_code] = transaction
        return transaction


class InMemoryRecurringStorage(RecurringStorageInterface):
    """Template and run-history storage."""

    def __init__(self):
        self._lock = threading.Lock()
        self._templates: dict[UUID, RecurringTemplate] = {}
        self._runs: list[RunHistory] = []

    async def insert_template(self, template: RecurringTemplate) -> RecurringTemplate:
        with self._lock:
            if template.id in self._templates:
                raise UniqueConstraintViolation("recurring_template_id", str(template.id))
            self._templates[template.id] = template
        return template

    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        return self._templates.get(template_id)

    async def list_templates(
        self,
        owner_id: Optional[str] = None,
        status: Optional[TemplateStatus] = None,
    ) -> list[RecurringTemplate]:
        with self._lock:
            rows = list(self._templates.values())

        results = [
            t for t in rows
            if (owner_id is None or t.owner_id == owner_id)
            and (status is None or t.status == status)
        ]
        results.sort(key=lambda t: t.created_at, reverse=True)
        return results

    async def list_active_between(
        self,
        date_from: Optional[date],
        date_to: date,
    ) -> list[RecurringTemplate]:
        with self._lock:
            rows = [
                t for t in self._templates.values()
                if t.status == TemplateStatus.ACTIVE
                and _in_range(t.next_run_date, date_from, date_to)
            ]
        rows.sort(key=lambda t: (t.next_run_date, t.created_at))
        return rows

    async def update_template_if(
        self,
        template: RecurringTemplate,
        expected_status: TemplateStatus,
        expected_total_runs: Optional[int] = None,
    ) -> Optional[RecurringTemplate]:
        with self._lock:
            stored = self._templates.get(template.id)
            if stored is None or stored.status != expected_status:
                return None
            if expected_total_runs is not None and stored.total_runs != expected_total_runs:
                return None
            # Claims are owned by claim_template/release_claim
            template = template.model_copy(update={"claimed_at": stored.claimed_at})
            self._templates[template.id] = template
        return template

    async def claim_template(
        self,
        template_id: UUID,
        claimed_at: datetime,
        stale_before: datetime,
    ) -> Optional[RecurringTemplate]:
        with self._lock:
            stored = self._templates.get(template_id)
            if stored is None or stored.status != TemplateStatus.ACTIVE:
                return None
            if stored.claimed_at is not None and stored.claimed_at >= stale_before:
                return None
            claimed = stored.model_copy(update={"claimed_at": claimed_at})
            self._templates[template_id] = claimed
        return claimed

    async def release_claim(self, template_id: UUID) -> None:
        with self._lock:
            stored = self._templates.get(template_id)
            if stored is not None and stored.claimed_at is not None:
                self._templates[template_id] = stored.model_copy(update={"claimed_at": None})

    async def append_run(self, run: RunHistory) -> RunHistory:
        with self._lock:
            self._runs.append(run)
        return run

    async def list_runs(
        self,
        template_id: UUID,
        limit: Optional[int] = None,
    ) -> list[RunHistory]:
        with self._lock:
            # Newest first; append order breaks timestamp ties
            runs = [r for r in reversed(self._runs) if r.template_id == template_id]
        return runs[:limit] if limit else runs


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == str(entity_id)
            ]
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._lock:
            events = list(reversed(self._events))
        return events[:limit]
