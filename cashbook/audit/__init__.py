"""Audit logging package."""

from cashbook.audit.logger import AuditLogger, AuditSink, configure_logging

__all__ = ["AuditLogger", "AuditSink", "configure_logging"]
