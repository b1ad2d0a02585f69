"""
Pydantic models for API request/response validation.

Responses use camelCase field names on the wire, matching what the
dashboard and calendar clients consume. Invalid inputs fail closed with
descriptive error messages.
"""

import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from qc_scheduler.models.schedule_models import (
    CompletionRecord,
    CompletionSourceKind,
    Frequency,
    Priority,
    ScheduleSummary,
    TaskStatus,
)
from qc_scheduler.services.task_aggregator import CalendarView, DashboardTask, DueTasks


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ApiModel(BaseModel):
    """Base for API models serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScheduleResponse(ApiModel):
    """
    Due-dates generated for a frequency and start date.

    Attributes:
        frequency: Recurrence tier.
        start_date: Requested start date.
        end_date: Last date considered (defaults to today).
        due_dates: Generated due-dates, ascending.
        completed_dates: Echo of the caller's completed dates.
    """
    frequency: Frequency = Field(..., description="Recurrence tier")
    start_date: dt.date = Field(..., description="Schedule start date")
    end_date: dt.date = Field(..., description="Schedule horizon")
    due_dates: list[dt.date] = Field(default_factory=list, description="Generated due-dates")
    completed_dates: list[str] = Field(
        default_factory=list,
        description="Completed dates supplied by the caller, echoed unchanged"
    )


class DueTaskEntry(ApiModel):
    """
    One outstanding QC task on the dashboard.

    Attributes:
        machine_id: Machine identifier.
        machine_name: Machine display name.
        type: Machine modality type.
        location: Machine location.
        worksheet_id: Worksheet identifier.
        worksheet_title: Worksheet title.
        frequency: Recurrence tier.
        due_date: The owed due-date.
        status: Compliance status.
        days_overdue: Days since the due-date (0 unless overdue).
        priority: Presentation priority.
    """
    machine_id: str = Field(..., description="Machine identifier")
    machine_name: str = Field(default="", description="Machine display name")
    type: str = Field(default="", description="Machine type")
    location: str = Field(default="", description="Machine location")
    worksheet_id: str = Field(..., description="Worksheet identifier")
    worksheet_title: str = Field(default="", description="Worksheet title")
    frequency: Frequency = Field(..., description="Recurrence tier")
    due_date: dt.date = Field(..., description="Due-date")
    status: TaskStatus = Field(..., description="Compliance status")
    days_overdue: int = Field(default=0, ge=0, description="Days overdue")
    priority: Priority = Field(..., description="Presentation priority")

    @classmethod
    def from_task(cls, item: DashboardTask) -> "DueTaskEntry":
        task = item.task
        return cls(
            machine_id=task.machine_id,
            machine_name=item.machine.name,
            type=item.machine.type,
            location=item.machine.location,
            worksheet_id=task.worksheet_id,
            worksheet_title=item.worksheet.title,
            frequency=task.frequency,
            due_date=task.due_date,
            status=task.status,
            days_overdue=task.days_overdue,
            priority=task.priority,
        )


def _entries(items: list[DashboardTask]) -> list[DueTaskEntry]:
    return [DueTaskEntry.from_task(item) for item in items]


class DueTasksResponse(ApiModel):
    """Grouped due tasks for the dashboard, one list per bucket per tier."""
    daily_overdue: list[DueTaskEntry] = Field(default_factory=list)
    daily_due_today: list[DueTaskEntry] = Field(default_factory=list)
    weekly_overdue: list[DueTaskEntry] = Field(default_factory=list)
    weekly_due_this_week: list[DueTaskEntry] = Field(default_factory=list)
    monthly_overdue: list[DueTaskEntry] = Field(default_factory=list)
    monthly_due_this_month: list[DueTaskEntry] = Field(default_factory=list)
    quarterly_overdue: list[DueTaskEntry] = Field(default_factory=list)
    quarterly_due_this_quarter: list[DueTaskEntry] = Field(default_factory=list)
    annual_overdue: list[DueTaskEntry] = Field(default_factory=list)
    annual_due_this_year: list[DueTaskEntry] = Field(default_factory=list)
    upcoming: list[DueTaskEntry] = Field(default_factory=list)
    today: dt.date = Field(..., description="Reference date of the computation")
    degraded: bool = Field(
        default=False,
        description="True when completion status may be stale (remote store unavailable)"
    )
    warnings: list[str] = Field(default_factory=list, description="Non-fatal issues")

    @classmethod
    def from_due_tasks(cls, result: DueTasks) -> "DueTasksResponse":
        buckets = {name: _entries(result.bucket(name)) for name in result.bucket_names()}
        return cls(
            **buckets,
            today=result.today,
            degraded=result.degraded,
            warnings=result.warnings,
        )


class WorksheetScheduleStatus(ApiModel):
    """Compliance roll-up of one worksheet on one machine."""
    worksheet_id: str
    worksheet_title: str = ""
    frequency: Frequency
    due_to_date: int = Field(..., ge=0, description="Due-dates up to today")
    completed: int = Field(..., ge=0, description="Completed due-dates")
    overdue: int = Field(..., ge=0, description="Missed due-dates")
    completion_rate: float = Field(..., ge=0, description="Completed / due, in percent")
    next_due: dt.date | None = Field(default=None, description="Next date to perform the QC")
    overdue_dates: list[dt.date] = Field(default_factory=list, description="Missed due-dates")

    @classmethod
    def from_summary(cls, summary: ScheduleSummary) -> "WorksheetScheduleStatus":
        return cls(
            worksheet_id=summary.worksheet_id,
            worksheet_title=summary.worksheet_title,
            frequency=summary.frequency,
            due_to_date=summary.due_to_date,
            completed=summary.completed,
            overdue=summary.overdue,
            completion_rate=summary.completion_rate,
            next_due=summary.next_due,
            overdue_dates=list(summary.overdue_dates),
        )


class ScheduleStatusResponse(ApiModel):
    """Schedule status panel for one machine."""
    machine_id: str
    worksheets: list[WorksheetScheduleStatus] = Field(default_factory=list)
    total_due: int = 0
    total_completed: int = 0
    total_overdue: int = 0
    degraded: bool = False
    warnings: list[str] = Field(default_factory=list)


class CalendarResponse(ApiModel):
    """Classified due-dates of one machine inside a window."""
    machine_id: str
    start: dt.date
    end: dt.date
    tasks: list[DueTaskEntry] = Field(default_factory=list)
    degraded: bool = False
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: CalendarView) -> "CalendarResponse":
        return cls(
            machine_id=view.machine.machine_id,
            start=view.start,
            end=view.end,
            tasks=_entries(view.tasks),
            degraded=view.degraded,
            warnings=view.warnings,
        )


class CompletionSubmission(ApiModel):
    """
    A QC completion submitted from a form, stored in the local cache.

    Attributes:
        machine_id: Machine identifier.
        worksheet_id: Worksheet identifier.
        date: Due-date the completion satisfies.
        frequency: Recurrence tier.
        overall_result: pass / fail / conditional.
        performed_by: Technologist.
    """
    machine_id: str = Field(..., min_length=1, description="Machine identifier")
    worksheet_id: str = Field(..., min_length=1, description="Worksheet identifier")
    date: dt.date = Field(..., description="Due-date the completion satisfies")
    frequency: Frequency | None = Field(default=None, description="Recurrence tier")
    overall_result: str | None = Field(default=None, max_length=50, description="Overall result")
    performed_by: str | None = Field(default=None, max_length=200, description="Technologist")

    def to_record(self) -> CompletionRecord:
        return CompletionRecord(
            machine_id=self.machine_id,
            worksheet_id=self.worksheet_id,
            date=self.date,
            frequency=self.frequency,
            overall_result=self.overall_result,
            performed_by=self.performed_by,
            source=CompletionSourceKind.LOCAL,
        )


class CompletionResponse(ApiModel):
    """A stored completion record."""
    machine_id: str
    worksheet_id: str
    date: dt.date
    frequency: Frequency | None = None
    overall_result: str | None = None
    performed_by: str | None = None
    source: CompletionSourceKind

    @classmethod
    def from_record(cls, record: CompletionRecord) -> "CompletionResponse":
        return cls.model_validate(record.model_dump())


class HealthStatus(str, Enum):
    """System health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Health check response for monitoring.

    Attributes:
        status: Overall system health status.
        version: Application version.
        environment: Deployment environment.
        checks: Individual component health checks.
    """
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: dt.datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Component health checks")


class ErrorResponse(BaseModel):
    """
    Standardized error response.

    Attributes:
        error: Error type/code.
        message: Human-readable error message.
        details: Additional error details.
        request_id: Request ID for tracing.
    """
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict | None = Field(default=None, description="Additional details")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: dt.datetime = Field(default_factory=_utcnow, description="Error timestamp")
