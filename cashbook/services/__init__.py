"""Services package."""

from cashbook.services.auth import (
    AuthorizationInterface,
    Capability,
    Role,
    RoleBasedAuthorization,
)
from cashbook.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcherInterface,
    NotificationError,
)
from cashbook.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryRecurringStorage,
    InMemoryTransactionStorage,
    RecurringStorageInterface,
    SheetsConnectionError,
    TransactionStorageInterface,
)

__all__ = [
    # Authorization
    "AuthorizationInterface",
    "Capability",
    "Role",
    "RoleBasedAuthorization",
    # Notifications
    "LoggingNotificationDispatcher",
    "NotificationDispatcherInterface",
    "NotificationError",
    # Storage
    "AuditStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryRecurringStorage",
    "InMemoryTransactionStorage",
    "RecurringStorageInterface",
    "SheetsConnectionError",
    "TransactionStorageInterface",
]
