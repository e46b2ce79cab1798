"""
Shared fixtures.

Everything runs against in-memory storage and a FixedClock pinned to
2026-01-01 09:00 UTC. No network calls.
"""

from datetime import date

import pytest

from cashbook.audit import AuditLogger
from cashbook.clock import FixedClock
from cashbook.config import LedgerSettings, SchedulerSettings
from cashbook.ledger import LedgerCore
from cashbook.queries import SummaryExecutor
from cashbook.scheduling import ScheduleEngine
from cashbook.services.auth import Role, RoleBasedAuthorization
from cashbook.services.notifications import LoggingNotificationDispatcher
from cashbook.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
    InMemoryTransactionStorage,
)


ROLES = {
    "owner-1": Role.OWNER,
    "owner-2": Role.OWNER,
    "approver-1": Role.APPROVER,
    "admin-1": Role.SUPERADMIN,
}


def template_spec(**overrides) -> dict:
    """A valid daily template starting on the clock's date."""
    spec = {
        "owner_id": "owner-1",
        "type": "expense",
        "amount": "150000.00",
        "description": "Shop rent",
        "frequency": "daily",
        "start_date": date(2026, 1, 1),
    }
    spec.update(overrides)
    return spec


@pytest.fixture
def make_spec():
    return template_spec


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def ledger_settings():
    return LedgerSettings(reference_allocation_wait_seconds=0)


@pytest.fixture
def scheduler_settings():
    return SchedulerSettings()


@pytest.fixture
def transaction_storage():
    return InMemoryTransactionStorage()


@pytest.fixture
def recurring_storage():
    return InMemoryRecurringStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def authorization():
    return RoleBasedAuthorization(ROLES)


@pytest.fixture
def notifications():
    return LoggingNotificationDispatcher()


@pytest.fixture
def ledger(transaction_storage, authorization, audit_logger, clock, ledger_settings):
    return LedgerCore(
        transaction_storage,
        authorization,
        audit=audit_logger,
        clock=clock,
        settings=ledger_settings,
    )


@pytest.fixture
def engine(recurring_storage, ledger, audit_logger, clock, notifications, scheduler_settings):
    return ScheduleEngine(
        recurring_storage,
        ledger,
        audit=audit_logger,
        clock=clock,
        notifications=notifications,
        settings=scheduler_settings,
    )


@pytest.fixture
def summaries(transaction_storage):
    return SummaryExecutor(transaction_storage)
