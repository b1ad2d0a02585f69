"""
Compliance classification of due-dates.

Each due-date is labelled against the merged completion view:

- completed: a completion with the same identity key exists
- dueToday: not completed and the date is today
- overdue: not completed and the date has passed
- upcoming: not completed and the date is still ahead

Priority is a presentation heuristic for sorting and badging on dashboards.
It is not a safety classification:

- critical: daily QC that is overdue
- high: weekly or monthly QC that is overdue, or anything due today
- medium: everything else
"""

import datetime as dt
from collections.abc import Iterable

from qc_scheduler.models.schedule_models import (
    CompletionRecord,
    CompletionView,
    DueDate,
    Frequency,
    Priority,
    ScheduleSummary,
    Task,
    TaskStatus,
    Worksheet,
)
from qc_scheduler.services.recurrence import (
    coerce_date,
    generate_for_worksheet,
    next_occurrence,
)


def assign_priority(frequency: Frequency, status: TaskStatus) -> Priority:
    """Map a (frequency, status) pair to its dashboard priority."""
    if status is TaskStatus.OVERDUE:
        if frequency is Frequency.DAILY:
            return Priority.CRITICAL
        if frequency in (Frequency.WEEKLY, Frequency.MONTHLY):
            return Priority.HIGH
        return Priority.MEDIUM
    if status is TaskStatus.DUE_TODAY:
        return Priority.HIGH
    return Priority.MEDIUM


def _status_for(due: dt.date, completed: bool, today: dt.date) -> TaskStatus:
    if completed:
        return TaskStatus.COMPLETED
    if due == today:
        return TaskStatus.DUE_TODAY
    if due < today:
        return TaskStatus.OVERDUE
    return TaskStatus.UPCOMING


def classify(
    due_dates: Iterable[DueDate],
    completions: CompletionView | Iterable[CompletionRecord],
    today: dt.date,
    frequency: Frequency,
) -> list[Task]:
    """
    Label each due-date with its compliance status.

    Args:
        due_dates: Due-dates to classify, typically one worksheet on one machine.
        completions: Completion records or a merged completion view.
        today: Reference date.
        frequency: Recurrence tier of the worksheet (drives priority).

    Returns:
        One Task per due-date, in input order.
    """
    records = completions.records if isinstance(completions, CompletionView) else completions
    completed_keys = {record.identity_key for record in records}

    tasks = []
    for due in due_dates:
        status = _status_for(
            due.date,
            (due.machine_id, due.worksheet_id, due.date) in completed_keys,
            today,
        )
        days_overdue = (today - due.date).days if status is TaskStatus.OVERDUE else 0
        tasks.append(
            Task(
                machine_id=due.machine_id,
                worksheet_id=due.worksheet_id,
                frequency=frequency,
                due_date=due.date,
                status=status,
                days_overdue=days_overdue,
                priority=assign_priority(frequency, status),
            )
        )
    return tasks


def missed(tasks: Iterable[Task]) -> list[Task]:
    """Overdue tasks, oldest first."""
    return sorted(
        (t for t in tasks if t.status is TaskStatus.OVERDUE),
        key=lambda t: t.due_date,
    )


def next_due(
    worksheet: Worksheet,
    tasks: list[Task],
    today: dt.date,
    *,
    skip_weekends: bool = True,
) -> dt.date | None:
    """
    The date the worksheet should next be performed.

    The oldest outstanding due-date when one exists, otherwise the first
    occurrence after today. None when the worksheet has ended.
    """
    for task in sorted(tasks, key=lambda t: t.due_date):
        if task.status is not TaskStatus.COMPLETED:
            return task.due_date

    earliest = max(today + dt.timedelta(days=1), coerce_date(worksheet.start_date))
    candidate = next_occurrence(
        worksheet.frequency,
        earliest,
        skip_weekends=skip_weekends,
    )
    if worksheet.end_date is not None and candidate > worksheet.end_date:
        return None
    return candidate


def summarize(
    worksheet: Worksheet,
    machine_id: str,
    completions: CompletionView,
    today: dt.date,
    *,
    skip_weekends: bool = True,
) -> ScheduleSummary:
    """
    Roll up one worksheet's compliance on one machine as of today.

    Raises:
        SchedulingError: If the worksheet's start date is invalid.
    """
    due_dates = generate_for_worksheet(
        worksheet, machine_id, today, skip_weekends=skip_weekends
    )
    tasks = classify(due_dates, completions, today, worksheet.frequency)
    overdue = missed(tasks)
    completed = sum(1 for t in tasks if t.status is TaskStatus.COMPLETED)

    return ScheduleSummary(
        machine_id=machine_id,
        worksheet_id=worksheet.id,
        worksheet_title=worksheet.title,
        frequency=worksheet.frequency,
        due_to_date=len(tasks),
        completed=completed,
        overdue=len(overdue),
        next_due=next_due(worksheet, tasks, today, skip_weekends=skip_weekends),
        overdue_dates=tuple(t.due_date for t in overdue),
    )
