"""
Component wiring for the cashbook core.

The chat-command layer builds one ``CashbookApp`` at startup and talks only
to the objects it holds:
1. ``ledger`` for one-off entries and approvals
2. ``engine`` for recurring templates
3. ``summaries`` for reports
4. ``scheduler`` to drive recurring materialization

DESIGN DECISION: Every component shares one Clock and one AuditLogger, so
tests can pin time and inspect the trail across the whole system.
"""

from collections.abc import Mapping
from typing import Callable, Optional, Union

import structlog

from cashbook.audit import AuditLogger
from cashbook.clock import Clock, SystemClock
from cashbook.config import get_settings
from cashbook.ledger import LedgerCore
from cashbook.queries import SummaryExecutor
from cashbook.scheduling import ScheduleEngine, Scheduler
from cashbook.services.auth import Role, RoleBasedAuthorization
from cashbook.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcherInterface,
)
from cashbook.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
    InMemoryTransactionStorage,
)


logger = structlog.get_logger(__name__)


class CashbookApp:
    """Holds the wired components of one running cashbook."""

    def __init__(
        self,
        ledger: LedgerCore,
        engine: ScheduleEngine,
        scheduler: Scheduler,
        summaries: SummaryExecutor,
        audit_logger: AuditLogger,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.ledger = ledger
        self.engine = engine
        self.scheduler = scheduler
        self.summaries = summaries
        self.audit_logger = audit_logger
        self.sheets_client = sheets_client


def create_app_components(
    roles: Union[Mapping[str, Role], Callable[[str], Optional[Role]], None] = None,
    use_sheets_audit: bool = True,
    clock: Optional[Clock] = None,
    notifications: Optional[NotificationDispatcherInterface] = None,
) -> CashbookApp:
    """
    Factory function to create all application components.

    Args:
        roles: Actor -> Role lookup used for approvals.
        use_sheets_audit: Mirror the audit trail to Google Sheets.
                    Falls back to in-memory audit storage when Sheets
                    is not configured.
        clock: Shared clock; the system clock by default.
        notifications: Outbound message transport; log-only by default.
    """
    settings = get_settings()
    clock = clock or SystemClock()

    sheets_client = None
    audit_storage: AuditStorageInterface
    if use_sheets_audit:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Sheets not configured - keep the trail in memory
            logger.warning("sheets_audit_unavailable", error=str(e))
            sheets_client = None
            audit_storage = InMemoryAuditStorage()
    else:
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    authorization = RoleBasedAuthorization(roles or {})
    transaction_storage = InMemoryTransactionStorage()

    ledger = LedgerCore(
        transaction_storage,
        authorization,
        audit=audit_logger,
        clock=clock,
        settings=settings.ledger,
    )
    engine = ScheduleEngine(
        InMemoryRecurringStorage(),
        ledger,
        audit=audit_logger,
        clock=clock,
        notifications=notifications or LoggingNotificationDispatcher(),
        settings=settings.scheduler,
    )
    scheduler = Scheduler(engine, clock=clock, settings=settings.scheduler)

    return CashbookApp(
        ledger=ledger,
        engine=engine,
        scheduler=scheduler,
        summaries=SummaryExecutor(transaction_storage),
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
