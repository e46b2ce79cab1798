"""
Ledger Core

Owns Transaction records: creation with validation, auto-approval below a
threshold, collision-resistant reference codes, and the one-way
Pending -> Approved / Pending -> Rejected transition.

CONCURRENCY: There is no lock anywhere in this module.
- ``create`` relies on the storage's unique index on reference_code plus a
  bounded retry with a fresh random suffix.
- ``approve``/``reject`` use a conditional update that only applies while
  the stored status is still PENDING; whoever loses the race gets
  InvalidStateError.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from cashbook.audit import AuditLogger, AuditSink
from cashbook.clock import Clock, SystemClock
from cashbook.config import LedgerSettings, get_settings
from cashbook.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ReferenceAllocationError,
    UniqueConstraintViolation,
    ValidationError,
)
from cashbook.ledger.reference import generate_reference_code
from cashbook.models.audit import AuditEventType
from cashbook.models.transaction import Transaction, TransactionStatus, TransactionType
from cashbook.services.auth import AuthorizationInterface, Capability
from cashbook.services.storage import TransactionStorageInterface
from cashbook.validation import TransactionValidator, raise_for_errors


logger = structlog.get_logger(__name__)

ENTITY_TYPE = "transaction"


class LedgerCore:
    """
    The transaction ledger.

    Returns immutable Transaction records; every mutation goes through
    ``approve`` or ``reject``.
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        authorization: AuthorizationInterface,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._authorization = authorization
        self._audit = audit or AuditLogger()
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings().ledger
        self._validator = TransactionValidator()

    @property
    def auto_approval_threshold(self) -> Decimal:
        return self._settings.auto_approval_threshold

    def should_auto_approve(self, amount: Decimal) -> bool:
        """Strictly below the threshold; an amount equal to it needs review."""
        return amount < self._settings.auto_approval_threshold

    # =========================================================================
    # Commands
    # =========================================================================

    async def create(
        self,
        owner_id: str,
        type: Union[TransactionType, str],
        amount: Union[Decimal, int, str],
        description: str,
        counterparty_name: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Transaction:
        """
        Record a new entry.

        Raises:
            ValidationError: Bad amount, unknown type, missing field
            ReferenceAllocationError: Every reference code attempt collided
        """
        result = self._validator.validate(
            owner_id=owner_id,
            type=type,
            amount=amount,
            description=description,
            counterparty_name=counterparty_name,
        )
        try:
            raise_for_errors(result)
        except ValidationError as e:
            logger.info("transaction_rejected_invalid", owner_id=owner_id, fields=e.fields)
            raise

        values = result.values
        amount = values["amount"]
        now = self._clock.now()
        auto_approve = self.should_auto_approve(amount)

        fields = dict(
            owner_id=values["owner_id"],
            type=values["type"],
            amount=amount,
            description=values["description"],
            counterparty_name=values.get("counterparty_name"),
            status=TransactionStatus.APPROVED if auto_approve else TransactionStatus.PENDING,
            approver_id=values["owner_id"] if auto_approve else None,
            approved_at=now if auto_approve else None,
            created_at=now,
            metadata=dict(metadata or {}),
        )

        transaction = await self._insert_with_fresh_reference(fields, now.date())

        await self._audit.record(
            transaction.owner_id,
            AuditEventType.TRANSACTION_CREATED.value,
            ENTITY_TYPE,
            transaction.id,
            {
                "reference_code": transaction.reference_code,
                "type": transaction.type.value,
                "amount": str(transaction.amount),
                "status": transaction.status.value,
            },
        )
        logger.info(
            "transaction_created",
            reference_code=transaction.reference_code,
            owner_id=transaction.owner_id,
            type=transaction.type.value,
            amount=str(transaction.amount),
            status=transaction.status.value,
        )
        return transaction

    async def _insert_with_fresh_reference(self, fields: dict, day: date) -> Transaction:
        attempts = self._settings.reference_allocation_attempts
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self._settings.reference_allocation_wait_seconds),
            retry=retry_if_exception_type(UniqueConstraintViolation),
            before_sleep=_log_reference_collision,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    candidate = Transaction(
                        reference_code=generate_reference_code(self._settings.reference_prefix, day),
                        **fields,
                    )
                    return await self._storage.insert_transaction(candidate)
        except RetryError as e:
            logger.error("reference_allocation_exhausted", attempts=attempts, owner_id=fields["owner_id"])
            raise ReferenceAllocationError(attempts) from e.last_attempt.exception()

    async def approve(self, reference_code: str, approver_id: str) -> Transaction:
        """
        Approve a pending entry.

        Raises:
            NotFoundError: Unknown reference code
            InvalidStateError: Not pending (including losing a race)
            ForbiddenError: Approver lacks the capability
        """
        return await self._decide(
            reference_code,
            approver_id,
            TransactionStatus.APPROVED,
            AuditEventType.TRANSACTION_APPROVED,
        )

    async def reject(self, reference_code: str, approver_id: str, reason: Optional[str] = None) -> Transaction:
        """
        Reject a pending entry.

        Same preconditions as ``approve``.
        """
        if reason is not None and len(reason) > 500:
            raise ValidationError("Rejection reason must be at most 500 characters")
        return await self._decide(
            reference_code,
            approver_id,
            TransactionStatus.REJECTED,
            AuditEventType.TRANSACTION_REJECTED,
            reason=reason or None,
        )

    async def _decide(
        self,
        reference_code: str,
        approver_id: str,
        new_status: TransactionStatus,
        event_type: AuditEventType,
        reason: Optional[str] = None,
    ) -> Transaction:
        transaction = await self._storage.get_by_reference(reference_code)
        if transaction is None:
            raise NotFoundError(f"Transaction {reference_code} not found")

        if transaction.status is not TransactionStatus.PENDING:
            raise InvalidStateError(
                f"Transaction {reference_code} is already {transaction.status.value}"
            )

        if not await self._authorization.check_role(approver_id, Capability.APPROVE_TRANSACTIONS):
            raise ForbiddenError(f"{approver_id} may not approve or reject transactions")

        decided = transaction.model_copy(update={
            "status": new_status,
            "approver_id": approver_id,
            "approved_at": self._clock.now(),
            "rejection_reason": reason,
        })
        stored = await self._storage.update_if_pending(decided)
        if stored is None:
            current = await self._storage.get_by_reference(reference_code)
            logger.warning(
                "transaction_decision_lost_race",
                reference_code=reference_code,
                approver_id=approver_id,
                attempted=new_status.value,
                current=current.status.value if current else None,
            )
            raise InvalidStateError(
                f"Transaction {reference_code} was decided concurrently"
                + (f" ({current.status.value})" if current else "")
            )

        details = {"reference_code": reference_code, "amount": str(stored.amount)}
        if reason:
            details["reason"] = reason
        await self._audit.record(approver_id, event_type.value, ENTITY_TYPE, stored.id, details)
        logger.info(
            event_type.value,
            reference_code=reference_code,
            approver_id=approver_id,
        )
        return stored

    # =========================================================================
    # Queries
    # =========================================================================

    async def by_reference(self, reference_code: str) -> Optional[Transaction]:
        """Look up one entry; None when the code is unknown."""
        return await self._storage.get_by_reference(reference_code)

    async def by_owner(
        self,
        owner_id: str,
        type: Union[TransactionType, str, None] = None,
        status: Union[TransactionStatus, str, None] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """An owner's entries, newest first, optionally filtered."""
        try:
            type = TransactionType(type) if type is not None else None
            status = TransactionStatus(status) if status is not None else None
        except ValueError as e:
            raise ValidationError(str(e))

        return await self._storage.list_by_owner(
            owner_id,
            type=type,
            status=status,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
        )

    async def pending(self) -> list[Transaction]:
        """Entries awaiting a decision, oldest first."""
        return await self._storage.list_by_status(TransactionStatus.PENDING)


def _log_reference_collision(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "reference_code_collision",
        attempt=retry_state.attempt_number,
        reference_code=getattr(exc, "value", None),
    )
