"""
Recurrence date arithmetic.

Pure functions only: nothing here reads the clock or touches storage, so the
same template and start date always give the same answer.
"""

import calendar
from datetime import date, timedelta
from typing import Optional

import structlog

from cashbook.models.recurring import Frequency, RecurringTemplate, Weekday


logger = structlog.get_logger(__name__)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(day: date, months: int) -> date:
    """Add calendar months, clamping the day to the end of the target month."""
    total = day.month - 1 + months
    year = day.year + total // 12
    month = total % 12 + 1
    return date(year, month, min(day.day, days_in_month(year, month)))


def add_years(day: date, years: int) -> date:
    """Add calendar years; Feb 29 lands on Feb 28 in non-leap years."""
    year = day.year + years
    return date(year, day.month, min(day.day, days_in_month(year, day.month)))


def snap_to_weekday(day: date, weekday: Weekday) -> date:
    """Move ``day`` to ``weekday`` within the same Monday-start week."""
    monday = day - timedelta(days=day.weekday())
    return monday + timedelta(days=weekday.iso_index)


def advance_date(template: RecurringTemplate, from_date: date) -> date:
    """
    Compute the occurrence after ``from_date`` for ``template``.

    - DAILY: ``interval`` days later
    - WEEKLY: ``interval`` weeks later, then snapped to ``day_of_week``
      inside that ISO week when one is set
    - MONTHLY: ``interval`` months later (clamped to month end), then
      moved to ``day_of_month`` clamped to the month's length
    - YEARLY: ``interval`` years later

    Records loaded with ``model_construct`` can carry a frequency this
    version does not know; those are advanced one month.
    """
    interval = template.interval or 1
    frequency = _frequency(template.frequency)

    if frequency is None:
        logger.warning(
            "unknown_frequency_fallback",
            template_id=str(template.id),
            frequency=str(template.frequency),
        )
        return add_months(from_date, 1)

    if frequency is Frequency.DAILY:
        return from_date + timedelta(days=interval)

    if frequency is Frequency.WEEKLY:
        result = from_date + timedelta(weeks=interval)
        if template.day_of_week:
            result = snap_to_weekday(result, Weekday(template.day_of_week))
        return result

    if frequency is Frequency.MONTHLY:
        result = add_months(from_date, interval)
        if template.day_of_month:
            result = result.replace(
                day=min(template.day_of_month, days_in_month(result.year, result.month))
            )
        return result

    return add_years(from_date, interval)


def _frequency(value) -> Optional[Frequency]:
    try:
        return Frequency(value)
    except ValueError:
        return None
