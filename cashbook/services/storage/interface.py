"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger and the schedule engine free of driver details
2. Use in-memory storage for testing
3. Swap in a real database without touching business logic

The interface is intentionally small. Every write that races another
writer is a conditional update that reports whether it applied, so the
callers never need a lock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from cashbook.models.audit import AuditEvent
from cashbook.models.recurring import RecurringTemplate, RunHistory, TemplateStatus
from cashbook.models.transaction import Transaction, TransactionStatus, TransactionType


class TransactionStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Implementations must enforce uniqueness of ``reference_code`` for
    the lifetime of the store.
    """

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Raises:
            UniqueConstraintViolation: If the reference code is taken
        """
        pass

    @abstractmethod
    async def get_by_reference(self, reference_code: str) -> Optional[Transaction]:
        """Return the transaction with this reference code, or None."""
        pass

    @abstractmethod
    async def list_by_owner(
        self,
        owner_id: str,
        type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """
        List an owner's transactions, newest first.

        ``date_from``/``date_to`` are inclusive and apply to the creation date.
        """
        pass

    @abstractmethod
    async def list_by_status(self, status: TransactionStatus) -> list[Transaction]:
        """List transactions in a status, oldest first."""
        pass

    @abstractmethod
    async def list_by_date_range(
        self,
        date_from: date,
        date_to: date,
        status: Optional[TransactionStatus] = None,
    ) -> list[Transaction]:
        """List transactions created within an inclusive date range."""
        pass

    @abstractmethod
    async def update_if_pending(self, transaction: Transaction) -> Optional[Transaction]:
        """
        Replace a stored transaction only while its stored status is PENDING.

        Returns:
            The stored record, or None if the status had already moved on
        """
        pass


class RecurringStorageInterface(ABC):
    """
    Abstract interface for recurring templates and their run history.

    Implementations should index templates on (status, next_run_date).
    """

    @abstractmethod
    async def insert_template(self, template: RecurringTemplate) -> RecurringTemplate:
        """Persist a new template."""
        pass

    @abstractmethod
    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        """Return the template, or None."""
        pass

    @abstractmethod
    async def list_templates(
        self,
        owner_id: Optional[str] = None,
        status: Optional[TemplateStatus] = None,
    ) -> list[RecurringTemplate]:
        """List templates, newest first."""
        pass

    @abstractmethod
    async def list_active_between(
        self,
        date_from: Optional[date],
        date_to: date,
    ) -> list[RecurringTemplate]:
        """
        List ACTIVE templates whose next_run_date lies in the inclusive range,
        ordered by next_run_date ascending. ``date_from=None`` means unbounded.
        """
        pass

    @abstractmethod
    async def update_template_if(
        self,
        template: RecurringTemplate,
        expected_status: TemplateStatus,
        expected_total_runs: Optional[int] = None,
    ) -> Optional[RecurringTemplate]:
        """
        Replace a stored template only if its stored status (and, when
        given, total_runs) still match.

        Returns:
            The stored record, or None if the guard did not hold
        """
        pass

    @abstractmethod
    async def claim_template(
        self,
        template_id: UUID,
        claimed_at: datetime,
        stale_before: datetime,
    ) -> Optional[RecurringTemplate]:
        """
        Atomically mark an ACTIVE template as being processed.

        The claim succeeds when the template is ACTIVE and is either
        unclaimed or holds a claim older than ``stale_before``.

        Returns:
            The claimed template, or None if someone else holds it
        """
        pass

    @abstractmethod
    async def release_claim(self, template_id: UUID) -> None:
        """Clear the processing marker."""
        pass

    @abstractmethod
    async def append_run(self, run: RunHistory) -> RunHistory:
        """Append a run-history row."""
        pass

    @abstractmethod
    async def list_runs(
        self,
        template_id: UUID,
        limit: Optional[int] = None,
    ) -> list[RunHistory]:
        """List a template's runs, newest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass
