"""
Task aggregation across machines and worksheets.

This is the single computation path for due/overdue state. Dashboards and
calendars read its output; they never re-derive due logic themselves.

For every (machine, worksheet) pair the aggregator generates due-dates up to
today (plus an optional lookahead), classifies them against the machine's
merged completions, and places each outstanding task in exactly one bucket:

- <tier>Overdue: due-dates that have passed without a completion
- <tier>DueThis<Period>: the current period's due-date when it falls today
  (dailyDueToday for the daily tier)
- upcoming: due-dates inside the lookahead window

Completed tasks are not bucketed.

Every tier's due-date sits on the first day of its period, so a
due-this-period bucket is only filled on that first day. For the rest of the
period an open obligation is already overdue, and the monthly, quarterly and
annual due-this-period buckets are empty almost all of the time.
"""

import datetime as dt
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from qc_scheduler.config.logging_config import get_logger
from qc_scheduler.errors import SchedulingError
from qc_scheduler.models.schedule_models import (
    CompletionView,
    Frequency,
    Machine,
    ScheduleSummary,
    Task,
    TaskStatus,
    Worksheet,
)
from qc_scheduler.services.classifier import classify, summarize
from qc_scheduler.services.completion_store import MergingCompletionStore
from qc_scheduler.services.recurrence import generate_for_worksheet, period_bounds

logger = get_logger(__name__)


@dataclass(frozen=True)
class DashboardTask:
    """A classified task with the machine and worksheet it belongs to."""
    task: Task
    machine: Machine
    worksheet: Worksheet

    @property
    def sort_key(self) -> tuple[dt.date, str, str]:
        return (self.task.due_date, self.task.machine_id, self.task.worksheet_id)


# (overdue bucket, due-this-period bucket) per frequency tier
BUCKETS: dict[Frequency, tuple[str, str]] = {
    Frequency.DAILY: ("daily_overdue", "daily_due_today"),
    Frequency.WEEKLY: ("weekly_overdue", "weekly_due_this_week"),
    Frequency.MONTHLY: ("monthly_overdue", "monthly_due_this_month"),
    Frequency.QUARTERLY: ("quarterly_overdue", "quarterly_due_this_quarter"),
    Frequency.ANNUAL: ("annual_overdue", "annual_due_this_year"),
}


@dataclass
class DueTasks:
    """Grouped, sorted dashboard output of one aggregation pass."""
    today: dt.date
    daily_overdue: list[DashboardTask] = field(default_factory=list)
    daily_due_today: list[DashboardTask] = field(default_factory=list)
    weekly_overdue: list[DashboardTask] = field(default_factory=list)
    weekly_due_this_week: list[DashboardTask] = field(default_factory=list)
    monthly_overdue: list[DashboardTask] = field(default_factory=list)
    monthly_due_this_month: list[DashboardTask] = field(default_factory=list)
    quarterly_overdue: list[DashboardTask] = field(default_factory=list)
    quarterly_due_this_quarter: list[DashboardTask] = field(default_factory=list)
    annual_overdue: list[DashboardTask] = field(default_factory=list)
    annual_due_this_year: list[DashboardTask] = field(default_factory=list)
    upcoming: list[DashboardTask] = field(default_factory=list)
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)

    def bucket(self, name: str) -> list[DashboardTask]:
        return getattr(self, name)

    def bucket_names(self) -> list[str]:
        names = [name for pair in BUCKETS.values() for name in pair]
        return names + ["upcoming"]

    def sort(self) -> None:
        for name in self.bucket_names():
            self.bucket(name).sort(key=lambda t: t.sort_key)

    def all_tasks(self) -> list[DashboardTask]:
        return [t for name in self.bucket_names() for t in self.bucket(name)]


@dataclass
class CalendarView:
    """All classified tasks of one machine inside a date window."""
    machine: Machine
    start: dt.date
    end: dt.date
    tasks: list[DashboardTask] = field(default_factory=list)
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)


def _current_period_task(tasks: list[Task], today: dt.date) -> Task | None:
    """
    The most recent outstanding task whose period contains today.

    Only returned when it is due today; a current-period due-date already in
    the past stays overdue.
    """
    if not tasks:
        return None
    period_start, _ = period_bounds(tasks[0].frequency, today)
    in_period = [
        t for t in tasks
        if period_start <= t.due_date <= today and t.status is not TaskStatus.COMPLETED
    ]
    if not in_period:
        return None
    latest = max(in_period, key=lambda t: t.due_date)
    return latest if latest.due_date == today else None


class TaskAggregator:
    """
    Runs generation and classification across machines and buckets the results.

    Args:
        store: Merged completion store.
        skip_weekends: Weekend policy for daily worksheets.
        lookahead_days: Days past today reported as upcoming.
    """

    def __init__(
        self,
        store: MergingCompletionStore,
        *,
        skip_weekends: bool = True,
        lookahead_days: int = 0,
    ):
        self.store = store
        self.skip_weekends = skip_weekends
        self.lookahead_days = lookahead_days

    async def aggregate(
        self,
        machines: Iterable[Machine],
        worksheets_by_machine: Mapping[str, list[Worksheet]],
        today: dt.date,
    ) -> DueTasks:
        """
        Build the grouped due-task lists for a set of machines.

        Each machine's completions are fetched once and shared by all its
        worksheets. A degraded read on any machine marks the whole result
        degraded. A machine or assignment listed more than once is processed
        once. Worksheets with an invalid schedule are skipped and noted in
        the warnings.
        """
        result = DueTasks(today=today)
        horizon = today + dt.timedelta(days=self.lookahead_days)
        views: dict[str, CompletionView] = {}
        seen: set[tuple[str, str]] = set()

        for machine in machines:
            worksheets = worksheets_by_machine.get(machine.machine_id, [])
            if not worksheets:
                continue

            view = views.get(machine.machine_id)
            if view is None:
                view = await self.store.merged_completions(machine.machine_id)
                views[machine.machine_id] = view
                if view.degraded:
                    result.degraded = True
                for warning in view.warnings:
                    if warning not in result.warnings:
                        result.warnings.append(warning)

            for worksheet in worksheets:
                pair = (machine.machine_id, worksheet.id)
                if pair in seen:
                    logger.debug(
                        "Skipping repeated assignment",
                        machine_id=machine.machine_id,
                        worksheet_id=worksheet.id,
                    )
                    continue
                seen.add(pair)

                try:
                    due_dates = generate_for_worksheet(
                        worksheet,
                        machine.machine_id,
                        horizon,
                        skip_weekends=self.skip_weekends,
                    )
                except SchedulingError as e:
                    logger.warning(
                        "Skipping worksheet with invalid schedule",
                        machine_id=machine.machine_id,
                        worksheet_id=worksheet.id,
                        error=str(e),
                    )
                    result.warnings.append(f"Worksheet {worksheet.id} skipped: {e}")
                    continue

                tasks = classify(due_dates, view, today, worksheet.frequency)
                self._place(result, machine, worksheet, tasks, today)

        result.sort()
        logger.info(
            "Due tasks aggregated",
            machines=len(views),
            overdue=sum(len(result.bucket(o)) for o, _ in BUCKETS.values()),
            due_this_period=sum(len(result.bucket(d)) for _, d in BUCKETS.values()),
            upcoming=len(result.upcoming),
            degraded=result.degraded,
        )
        return result

    def _place(
        self,
        result: DueTasks,
        machine: Machine,
        worksheet: Worksheet,
        tasks: list[Task],
        today: dt.date,
    ) -> None:
        """Put every outstanding task into exactly one bucket."""
        overdue_bucket, current_bucket = BUCKETS[worksheet.frequency]
        current = _current_period_task(tasks, today)

        for task in tasks:
            if task.status is TaskStatus.COMPLETED:
                continue
            entry = DashboardTask(task=task, machine=machine, worksheet=worksheet)
            if task is current:
                result.bucket(current_bucket).append(entry)
            elif task.status is TaskStatus.OVERDUE:
                result.bucket(overdue_bucket).append(entry)
            elif task.status is TaskStatus.UPCOMING:
                result.upcoming.append(entry)
            elif task.status is TaskStatus.DUE_TODAY:
                result.bucket(current_bucket).append(entry)
            else:
                raise SchedulingError(f"Unhandled task status: {task.status}")

    async def calendar(
        self,
        machine: Machine,
        worksheets: list[Worksheet],
        start: dt.date,
        end: dt.date,
        today: dt.date,
    ) -> CalendarView:
        """
        Classify every due-date of a machine's worksheets inside [start, end].

        Completed and upcoming dates are included.
        """
        view = CalendarView(machine=machine, start=start, end=end)
        if end < start:
            return view

        completions = await self.store.merged_completions(machine.machine_id)
        view.degraded = completions.degraded
        view.warnings.extend(completions.warnings)

        for worksheet in worksheets:
            try:
                due_dates = generate_for_worksheet(
                    worksheet, machine.machine_id, end, skip_weekends=self.skip_weekends
                )
            except SchedulingError as e:
                logger.warning(
                    "Skipping worksheet with invalid schedule",
                    machine_id=machine.machine_id,
                    worksheet_id=worksheet.id,
                    error=str(e),
                )
                view.warnings.append(f"Worksheet {worksheet.id} skipped: {e}")
                continue

            in_window = [d for d in due_dates if d.date >= start]
            for task in classify(in_window, completions, today, worksheet.frequency):
                view.tasks.append(DashboardTask(task=task, machine=machine, worksheet=worksheet))

        view.tasks.sort(key=lambda t: t.sort_key)
        return view

    async def schedule_status(
        self,
        machine: Machine,
        worksheets: list[Worksheet],
        today: dt.date,
    ) -> tuple[list[ScheduleSummary], CompletionView]:
        """Per-worksheet compliance roll-up for one machine."""
        completions = await self.store.merged_completions(machine.machine_id)
        summaries = []
        for worksheet in worksheets:
            try:
                summaries.append(
                    summarize(
                        worksheet,
                        machine.machine_id,
                        completions,
                        today,
                        skip_weekends=self.skip_weekends,
                    )
                )
            except SchedulingError as e:
                logger.warning(
                    "Skipping worksheet with invalid schedule",
                    machine_id=machine.machine_id,
                    worksheet_id=worksheet.id,
                    error=str(e),
                )
                completions.warnings.append(f"Worksheet {worksheet.id} skipped: {e}")
        return summaries, completions
