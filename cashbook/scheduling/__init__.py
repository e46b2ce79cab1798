"""Recurring schedules: date arithmetic, the engine and its periodic driver."""

from cashbook.scheduling.dates import add_months, add_years, advance_date
from cashbook.scheduling.engine import ScheduleEngine
from cashbook.scheduling.scheduler import Scheduler

__all__ = [
    "ScheduleEngine",
    "Scheduler",
    "add_months",
    "add_years",
    "advance_date",
]
