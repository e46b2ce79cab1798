"""
Audit Models for Cashbook

Every state change in the ledger and the schedule engine is logged for
audit purposes. This provides:
1. Complete traceability of who approved or rejected what
2. Debugging information when a recurring run fails
3. Ability to reconstruct a template's lifecycle

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Values double as the ``action`` passed to ``AuditSink.record``.
    """
    # Ledger
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_APPROVED = "transaction_approved"
    TRANSACTION_REJECTED = "transaction_rejected"

    # Recurring templates
    TEMPLATE_CREATED = "template_created"
    TEMPLATE_PAUSED = "template_paused"
    TEMPLATE_RESUMED = "template_resumed"
    TEMPLATE_CANCELLED = "template_cancelled"
    TEMPLATE_COMPLETED = "template_completed"
    TEMPLATE_MATERIALIZED = "template_materialized"
    TEMPLATE_MATERIALIZATION_FAILED = "template_materialization_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_SEVERITY_BY_TYPE = {
    AuditEventType.TRANSACTION_REJECTED: AuditSeverity.WARNING,
    AuditEventType.TEMPLATE_MATERIALIZATION_FAILED: AuditSeverity.ERROR,
    AuditEventType.SYSTEM_ERROR: AuditSeverity.ERROR,
}


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every state change creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who did it
    actor_id: Optional[str] = Field(
        default=None,
        description="User (or system component) that caused the event"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'recurring_template')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    @classmethod
    def from_record(
        cls,
        actor_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: Any,
        details: Optional[dict] = None,
    ) -> "AuditEvent":
        """Build an event from the ``AuditSink.record`` arguments."""
        event_type = AuditEventType(action)
        details = dict(details or {})
        return cls(
            event_type=event_type,
            severity=_SEVERITY_BY_TYPE.get(event_type, AuditSeverity.INFO),
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=event_type.value.replace("_", " ").capitalize(),
            details=details,
            error_message=details.get("error"),
        )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor_id": self.actor_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, actor_id, entity_type,
         entity_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.actor_id or "",
            self.entity_type or "",
            self.entity_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]
