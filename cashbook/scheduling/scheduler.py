"""
Scheduler -- the periodic driver for the schedule engine.

Contract:
    - ``run_once()`` processes every due template and, at most once per
      calendar day, sends upcoming-run reminders.
    - ``start()`` / ``stop()`` run ``run_once()`` on a fixed interval as an
      asyncio task. ``stop()`` lets the current pass finish.

Only one Scheduler should drive a given store; concurrent drivers are still
safe because templates are claimed before they are processed.
"""

import asyncio
from datetime import date
from typing import Optional

import structlog

from cashbook.clock import Clock, SystemClock
from cashbook.config import SchedulerSettings, get_settings
from cashbook.models.recurring import BatchSummary
from cashbook.scheduling.engine import ScheduleEngine


logger = structlog.get_logger(__name__)


class Scheduler:
    """In-process polling scheduler."""

    def __init__(
        self,
        engine: ScheduleEngine,
        clock: Optional[Clock] = None,
        settings: Optional[SchedulerSettings] = None,
    ):
        self._engine = engine
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings().scheduler
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._last_reminder_date: Optional[date] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def run_once(self) -> BatchSummary:
        """One polling pass (public for testing)."""
        today = self._clock.today()
        summary = await self._engine.process_due(as_of=today, max_workers=self._settings.max_workers)

        if self._last_reminder_date != today:
            await self._engine.send_upcoming_reminders(self._settings.reminder_days_ahead)
            self._last_reminder_date = today

        return summary

    def start(self) -> None:
        """Start polling in a background task on the running loop."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="cashbook-scheduler")
        logger.info("scheduler_started", poll_interval=self._settings.poll_interval_seconds)

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current pass to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("scheduler_stop_timeout", timeout=timeout)
            self._task.cancel()
        finally:
            self._task = None
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("scheduler_pass_failed")
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._settings.poll_interval_seconds,
                )
            except asyncio.TimeoutError:
                pass
