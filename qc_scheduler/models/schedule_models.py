"""
Domain models for QC scheduling and compliance.

Records that arrive from collaborators (worksheets, machines, completion
records) are pydantic models so malformed entries fail validation at the
boundary. Values derived on every request (due-dates, tasks, summaries) are
plain frozen dataclasses.
"""

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from qc_scheduler.errors import InvalidFrequency


# ============================================================================
# Enumerations
# ============================================================================

class Frequency(str, Enum):
    """Recurrence tiers for QC worksheets."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"

    @classmethod
    def parse(cls, value: Any) -> "Frequency":
        """
        Parse a frequency value, rejecting anything outside the closed set.

        Matching is case-insensitive and accepts "annually" for annual.

        Raises:
            InvalidFrequency: If the value is not a known frequency.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidFrequency(value)
        normalized = value.strip().lower()
        normalized = _FREQUENCY_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidFrequency(value) from None


_FREQUENCY_ALIASES = {"annually": "annual", "yearly": "annual"}


class TaskStatus(str, Enum):
    """Compliance status of a single due-date."""
    COMPLETED = "completed"
    DUE_TODAY = "dueToday"
    OVERDUE = "overdue"
    UPCOMING = "upcoming"


class Priority(str, Enum):
    """Presentation priority used for sorting and badging."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class CompletionSourceKind(str, Enum):
    """Which store a completion record was read from."""
    REMOTE = "remote"
    LOCAL = "local"


# ============================================================================
# Collaborator records
# ============================================================================

def _strip_time(value: Any) -> Any:
    """Reduce ISO timestamps and datetimes to their calendar date."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


class _CamelModel(BaseModel):
    """Base for records exchanged with collaborators in camelCase JSON."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Machine(_CamelModel):
    """
    An imaging machine as reported by the machine registry.

    Only the identity and display fields are consumed here.
    """
    model_config = ConfigDict(frozen=True)

    machine_id: str = Field(..., min_length=1, description="Machine identifier")
    name: str = Field(default="", description="Display name")
    type: str = Field(default="", description="Modality type, e.g. CT, MRI")
    location: str = Field(default="", description="Display location")

    @field_validator("location", mode="before")
    @classmethod
    def flatten_location(cls, v: Any) -> Any:
        """Render structured {building, floor, room} locations as one line."""
        if v is None:
            return ""
        if isinstance(v, dict):
            parts = [str(v[k]) for k in ("building", "room") if v.get(k)]
            return " - ".join(parts)
        return v


class Worksheet(_CamelModel):
    """
    A QC test protocol with a recurrence frequency, assigned to machines.

    Attributes:
        id: Worksheet identifier.
        title: Human-readable title.
        modality: Modality the protocol applies to.
        frequency: Recurrence tier.
        start_date: First day the obligation applies. Kept as received;
            the recurrence generator validates it.
        end_date: Optional last day the obligation applies.
        assigned_machine_ids: Machines this worksheet is assigned to.
        is_worksheet: False for templates, which are never scheduled.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Worksheet identifier")
    title: str = Field(default="", description="Worksheet title")
    modality: str = Field(default="", description="Modality")
    frequency: Frequency = Field(..., description="Recurrence tier")
    start_date: dt.date | str | None = Field(default=None, description="Schedule start date")
    end_date: dt.date | None = Field(default=None, description="Schedule end date")
    assigned_machine_ids: frozenset[str] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices(
            "assignedMachines", "assignedMachineIds", "assigned_machine_ids"
        ),
        description="Assigned machine identifiers",
    )
    is_worksheet: bool = Field(default=True, description="False for templates")

    @field_validator("frequency", mode="before")
    @classmethod
    def parse_frequency(cls, v: Any) -> Frequency:
        return Frequency.parse(v)

    @field_validator("start_date", mode="before")
    @classmethod
    def normalize_start_date(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return _strip_time(v)

    @field_validator("end_date", mode="before")
    @classmethod
    def normalize_end_date(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return _strip_time(v)


class CompletionRecord(_CamelModel):
    """
    Evidence that one due-date of a worksheet was addressed on a machine.

    Identity key is (machine_id, worksheet_id, date). Records are never
    mutated; the same occurrence may be present in both stores.
    """
    model_config = ConfigDict(frozen=True)

    machine_id: str = Field(..., min_length=1, description="Machine identifier")
    worksheet_id: str = Field(..., min_length=1, description="Worksheet identifier")
    date: dt.date = Field(..., description="Due-date the completion satisfies")
    frequency: Frequency | None = Field(default=None, description="Recurrence tier")
    overall_result: str | None = Field(default=None, description="pass / fail / conditional")
    performed_by: str | None = Field(default=None, description="Technologist")
    source: CompletionSourceKind = Field(
        default=CompletionSourceKind.REMOTE,
        description="Store the record was read from",
    )

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _strip_time(v)

    @field_validator("frequency", mode="before")
    @classmethod
    def parse_frequency(cls, v: Any) -> Frequency | None:
        if v is None:
            return None
        return Frequency.parse(v)

    @property
    def identity_key(self) -> tuple[str, str, dt.date]:
        return (self.machine_id, self.worksheet_id, self.date)

    def with_source(self, source: CompletionSourceKind) -> "CompletionRecord":
        """Return a copy tagged with the given source."""
        if self.source == source:
            return self
        return self.model_copy(update={"source": source})


# ============================================================================
# Derived values
# ============================================================================

@dataclass(frozen=True, order=True)
class DueDate:
    """A calendar date on which a worksheet occurrence is owed by a machine."""
    date: dt.date
    worksheet_id: str
    machine_id: str


@dataclass(frozen=True)
class Task:
    """A classified due-date. Recomputed on every request, never stored."""
    machine_id: str
    worksheet_id: str
    frequency: Frequency
    due_date: dt.date
    status: TaskStatus
    days_overdue: int
    priority: Priority

    @property
    def identity_key(self) -> tuple[str, str, dt.date]:
        return (self.machine_id, self.worksheet_id, self.due_date)


@dataclass
class CompletionView:
    """
    Merged completion records for one machine.

    Attributes:
        machine_id: Machine the records belong to.
        records: At most one record per identity key, ordered by date.
        degraded: True when the remote store could not be read and the
            records come from the local cache only.
        warnings: Human-readable notes about the read (e.g. stale data).
    """
    machine_id: str
    records: list[CompletionRecord] = field(default_factory=list)
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)

    def for_worksheet(self, worksheet_id: str) -> list[CompletionRecord]:
        return [r for r in self.records if r.worksheet_id == worksheet_id]

    def completed_dates(self, worksheet_id: str) -> list[dt.date]:
        return sorted(r.date for r in self.for_worksheet(worksheet_id))


@dataclass(frozen=True)
class ScheduleSummary:
    """Compliance roll-up of one worksheet on one machine up to a date."""
    machine_id: str
    worksheet_id: str
    worksheet_title: str
    frequency: Frequency
    due_to_date: int
    completed: int
    overdue: int
    next_due: dt.date | None
    overdue_dates: tuple[dt.date, ...] = ()

    @property
    def completion_rate(self) -> float:
        """Percentage of due-dates to date that were completed."""
        if self.due_to_date == 0:
            return 0.0
        return round(self.completed / self.due_to_date * 100, 1)
