"""
Notification Dispatcher

Outbound messages to owners are best-effort: the chat transport that
actually delivers them lives outside the core. Callers must treat every
failure here as non-fatal.
"""

from abc import ABC, abstractmethod

import structlog

from cashbook.errors import CashbookError


logger = structlog.get_logger(__name__)


class NotificationError(CashbookError):
    """A message could not be handed to the transport."""
    pass


class NotificationDispatcherInterface(ABC):
    """Sends a plain-text message to an owner."""

    @abstractmethod
    async def notify(self, owner_id: str, message: str) -> None:
        """
        Deliver ``message`` to ``owner_id``.

        Raises:
            NotificationError: If the transport refused the message
        """
        pass


class LoggingNotificationDispatcher(NotificationDispatcherInterface):
    """
    Dispatcher that only writes messages to the structured log.

    Used when no chat transport is wired in; also keeps a record of
    what was sent for inspection.
    """

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def notify(self, owner_id: str, message: str) -> None:
        self.sent.append((owner_id, message))
        logger.info("notification_sent", owner_id=owner_id, message=message)
