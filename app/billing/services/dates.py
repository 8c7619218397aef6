"""
Due-date helpers shared by recurring bills and virtual card requests.
"""

from __future__ import annotations

import calendar
from datetime import date


def clamp_day(year: int, month: int, day: int) -> date:
    """Return ``year-month-day``, clamped to the last day of short months."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def due_date_for(reference: date, due_day: int) -> date:
    """
    Next due date on ``due_day`` at or after ``reference``.

    A due day earlier in the month than ``reference`` rolls over to the
    following month; day 31 becomes the last day of shorter months.

        >>> due_date_for(date(2025, 1, 1), 10)
        datetime.date(2025, 1, 10)
        >>> due_date_for(date(2025, 1, 25), 5)
        datetime.date(2025, 2, 5)
        >>> due_date_for(date(2025, 2, 1), 31)
        datetime.date(2025, 2, 28)
    """
    candidate = clamp_day(reference.year, reference.month, due_day)
    if candidate >= reference:
        return candidate
    if reference.month == 12:
        return clamp_day(reference.year + 1, 1, due_day)
    return clamp_day(reference.year, reference.month + 1, due_day)


def is_scheduled_day(today: date, day_of_month: int) -> bool:
    """
    Whether a monthly job keyed on ``day_of_month`` runs ``today``.

    Days past the end of a short month run on its last day.
    """
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.day == min(day_of_month, last_day)
