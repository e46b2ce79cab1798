"""
Audit Logger

DESIGN DECISION: Every state change in the ledger and the schedule engine
is recorded. This provides:
1. Complete traceability
2. Debugging capability
3. Accountability for approvals and rejections

The audit logger:
- Is fire-and-forget: ``record`` never raises into the caller
- Always logs locally, and persists to storage when configured
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog

from cashbook.models.audit import AuditEvent, AuditEventType, AuditSeverity
from cashbook.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging (and therefore structlog) to stderr at ``level``."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


class AuditSink(ABC):
    """Append-only receiver of audit events."""

    @abstractmethod
    async def record(
        self,
        actor_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: Any,
        details: Optional[dict] = None,
    ) -> None:
        """Record one event. Must never raise."""
        pass


class AuditLogger(AuditSink):
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def record(
        self,
        actor_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: Any,
        details: Optional[dict] = None,
    ) -> None:
        """Build an event from its parts and log it."""
        try:
            event = AuditEvent.from_record(actor_id, action, entity_type, entity_id, details)
        except ValueError as e:
            self._logger.error("audit_event_invalid", action=action, error=str(e))
            return
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a system error that is not tied to one entity."""
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
        await self.log(event)
