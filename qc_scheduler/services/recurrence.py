"""
Recurrence generation for QC worksheets.

Turns a (frequency, start date, horizon) triple into the ordered calendar
dates on which a worksheet occurrence is owed. Every tier is anchored to a
calendar boundary:

- daily: every day (weekdays only when weekends are skipped)
- weekly: Mondays
- monthly: the 1st of each month
- quarterly: the 1st of January, April, July and October
- annual: January 1st

A start date that falls between boundaries schedules its first occurrence on
the next boundary, so a monthly worksheet starting on the 19th is first due
on the 1st of the following month.

All functions here are pure. Invalid input raises a SchedulingError subclass.
"""

import datetime as dt
from collections.abc import Iterator
from typing import Any

from qc_scheduler.errors import InvalidStartDate, SchedulingError
from qc_scheduler.models.schedule_models import DueDate, Frequency, Worksheet

QUARTER_START_MONTHS = (1, 4, 7, 10)


def coerce_date(value: Any) -> dt.date:
    """
    Convert a date, datetime or ISO string into a calendar date.

    A time suffix on ISO strings ("2025-08-01T09:30:00Z") is dropped.

    Raises:
        InvalidStartDate: If the value is missing or unparseable.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip().split("T", 1)[0]
        try:
            return dt.date.fromisoformat(text)
        except ValueError:
            raise InvalidStartDate(value) from None
    raise InvalidStartDate(value)


def is_weekend(day: dt.date) -> bool:
    return day.weekday() >= 5


def _first_of_month(year: int, month: int) -> dt.date:
    return dt.date(year, month, 1)


def _add_months(day: dt.date, months: int) -> dt.date:
    """Shift a first-of-month date by a number of months."""
    years, month_index = divmod(day.month - 1 + months, 12)
    return _first_of_month(day.year + years, month_index + 1)


def next_occurrence(
    frequency: Frequency | str,
    on_or_after: dt.date,
    *,
    skip_weekends: bool = True,
) -> dt.date:
    """
    Return the first occurrence boundary on or after a date.

    Args:
        frequency: Recurrence tier.
        on_or_after: Earliest acceptable date.
        skip_weekends: Daily only; roll Saturdays and Sundays to Monday.
    """
    frequency = Frequency.parse(frequency)
    day = on_or_after

    if frequency is Frequency.DAILY:
        if skip_weekends and is_weekend(day):
            day += dt.timedelta(days=7 - day.weekday())
        return day
    if frequency is Frequency.WEEKLY:
        return day + dt.timedelta(days=(7 - day.weekday()) % 7)
    if frequency is Frequency.MONTHLY:
        if day.day == 1:
            return day
        return _add_months(_first_of_month(day.year, day.month), 1)
    if frequency is Frequency.QUARTERLY:
        candidate = _first_of_month(day.year, day.month)
        if candidate < day:
            candidate = _add_months(candidate, 1)
        while candidate.month not in QUARTER_START_MONTHS:
            candidate = _add_months(candidate, 1)
        return candidate
    if frequency is Frequency.ANNUAL:
        if day.month == 1 and day.day == 1:
            return day
        return dt.date(day.year + 1, 1, 1)
    raise SchedulingError(f"Unhandled frequency: {frequency}")


def _following(frequency: Frequency, occurrence: dt.date, skip_weekends: bool) -> dt.date:
    """Occurrence immediately after an aligned occurrence."""
    if frequency is Frequency.DAILY:
        return next_occurrence(
            frequency, occurrence + dt.timedelta(days=1), skip_weekends=skip_weekends
        )
    if frequency is Frequency.WEEKLY:
        return occurrence + dt.timedelta(days=7)
    if frequency is Frequency.MONTHLY:
        return _add_months(occurrence, 1)
    if frequency is Frequency.QUARTERLY:
        return _add_months(occurrence, 3)
    if frequency is Frequency.ANNUAL:
        return dt.date(occurrence.year + 1, 1, 1)
    raise SchedulingError(f"Unhandled frequency: {frequency}")


def iter_occurrences(
    frequency: Frequency | str,
    start_date: Any,
    horizon_date: Any,
    *,
    skip_weekends: bool = True,
) -> Iterator[dt.date]:
    """Lazily yield occurrences from start_date up to and including horizon_date."""
    frequency = Frequency.parse(frequency)
    start = coerce_date(start_date)
    try:
        horizon = coerce_date(horizon_date)
    except InvalidStartDate:
        raise SchedulingError(f"Invalid horizon date: {horizon_date!r}") from None

    current = next_occurrence(frequency, start, skip_weekends=skip_weekends)
    while current <= horizon:
        yield current
        current = _following(frequency, current, skip_weekends)


def generate(
    frequency: Frequency | str,
    start_date: Any,
    horizon_date: Any = None,
    *,
    skip_weekends: bool = True,
) -> list[dt.date]:
    """
    Generate the due-dates of a recurrence.

    The result is strictly ascending and duplicate-free. A horizon before the
    start date yields an empty list. Extending the horizon only appends dates.

    Args:
        frequency: Recurrence tier (enum member or string).
        start_date: First day the obligation applies.
        horizon_date: Last day to include; defaults to today.
        skip_weekends: Exclude Saturdays and Sundays from daily schedules.
            Ignored for every other tier.

    Returns:
        Ascending list of due-dates.

    Raises:
        InvalidFrequency: If the frequency is not a known tier.
        InvalidStartDate: If the start date is missing or unparseable.
    """
    if horizon_date is None:
        horizon_date = dt.date.today()
    return list(
        iter_occurrences(frequency, start_date, horizon_date, skip_weekends=skip_weekends)
    )


def generate_for_worksheet(
    worksheet: Worksheet,
    machine_id: str,
    horizon_date: dt.date,
    *,
    skip_weekends: bool = True,
) -> list[DueDate]:
    """
    Generate the due-dates a machine owes for one worksheet.

    The horizon is capped at the worksheet's end date when it has one.
    """
    if worksheet.end_date is not None and worksheet.end_date < horizon_date:
        horizon_date = worksheet.end_date
    return [
        DueDate(date=day, worksheet_id=worksheet.id, machine_id=machine_id)
        for day in iter_occurrences(
            worksheet.frequency,
            worksheet.start_date,
            horizon_date,
            skip_weekends=skip_weekends,
        )
    ]


def period_bounds(frequency: Frequency | str, day: dt.date) -> tuple[dt.date, dt.date]:
    """
    Return the first and last day of the period containing a date.

    The period is a single day for daily, Monday-Sunday for weekly, and the
    calendar month, quarter or year for the remaining tiers.
    """
    frequency = Frequency.parse(frequency)

    if frequency is Frequency.DAILY:
        return day, day
    if frequency is Frequency.WEEKLY:
        start = day - dt.timedelta(days=day.weekday())
        return start, start + dt.timedelta(days=6)
    if frequency is Frequency.MONTHLY:
        start = _first_of_month(day.year, day.month)
        return start, _add_months(start, 1) - dt.timedelta(days=1)
    if frequency is Frequency.QUARTERLY:
        start = _first_of_month(day.year, QUARTER_START_MONTHS[(day.month - 1) // 3])
        return start, _add_months(start, 3) - dt.timedelta(days=1)
    if frequency is Frequency.ANNUAL:
        return dt.date(day.year, 1, 1), dt.date(day.year, 12, 31)
    raise SchedulingError(f"Unhandled frequency: {frequency}")
