"""
QC schedule service.

Wires the collaborators (remote QC API, local cache) to the scheduling engine
and exposes the query operations used by the HTTP layer.
"""

import datetime as dt
from typing import Any

from qc_scheduler.config.config import Settings, get_settings
from qc_scheduler.config.logging_config import get_logger
from qc_scheduler.database.local_cache import KeyValueStore, get_local_cache
from qc_scheduler.errors import CompletionSourceError
from qc_scheduler.models.schedule_models import CompletionRecord, Frequency, Machine, Worksheet
from qc_scheduler.services.completion_sources import LocalCacheSource, RemoteSource
from qc_scheduler.services.completion_store import MergingCompletionStore
from qc_scheduler.services.directories import (
    LocalWorksheetDirectory,
    MachineDirectory,
    RemoteMachineDirectory,
    WorksheetDirectory,
)
from qc_scheduler.services.recurrence import coerce_date, generate
from qc_scheduler.services.task_aggregator import CalendarView, DueTasks, TaskAggregator

logger = get_logger(__name__)


class QCScheduleService:
    """
    Entry point for schedule, due-task, calendar and status queries.

    Every collaborator can be injected; anything omitted is built from
    settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: KeyValueStore | None = None,
        remote: RemoteSource | None = None,
        machines: MachineDirectory | None = None,
        worksheets: WorksheetDirectory | None = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else get_local_cache()
        self.remote = remote or RemoteSource.from_settings(self.settings)
        self.local = LocalCacheSource(self.cache, key=self.settings.completions_cache_key)
        self.machines = machines or RemoteMachineDirectory(self.remote)
        self.worksheets = worksheets or LocalWorksheetDirectory(
            self.cache, key=self.settings.worksheets_cache_key
        )
        self.store = MergingCompletionStore(remote=self.remote, local=self.local)
        self.aggregator = TaskAggregator(
            self.store,
            skip_weekends=self.settings.skip_weekends_daily,
            lookahead_days=self.settings.upcoming_lookahead_days,
        )

    def schedule(
        self,
        frequency: Frequency | str,
        start_date: Any,
        end_date: Any = None,
        completed_dates: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Generate a schedule directly from its parameters.

        completed_dates is echoed back for the caller to cross-reference; it
        does not change which dates are generated.

        Raises:
            SchedulingError: On invalid frequency, start or end date.
        """
        frequency = Frequency.parse(frequency)
        start = coerce_date(start_date)
        horizon = coerce_date(end_date) if end_date else dt.date.today()
        due_dates = generate(
            frequency,
            start,
            horizon,
            skip_weekends=self.settings.skip_weekends_daily,
        )
        return {
            "frequency": frequency,
            "start_date": start,
            "end_date": horizon,
            "due_dates": due_dates,
            "completed_dates": completed_dates or [],
        }

    def _worksheets_by_machine(self, machines: list[Machine]) -> dict[str, list[Worksheet]]:
        worksheets = self.worksheets.list_worksheets()
        return {
            m.machine_id: [w for w in worksheets if m.machine_id in w.assigned_machine_ids]
            for m in machines
        }

    async def due_tasks(self, today: dt.date | None = None) -> DueTasks:
        """
        Grouped due-task lists across every machine.

        Raises:
            CompletionSourceError: If the machine registry cannot be read.
        """
        today = today or dt.date.today()
        machines = await self.machines.list_machines()
        worksheets = self._worksheets_by_machine(machines)
        logger.info(
            "Computing due tasks",
            today=today.isoformat(),
            machines=len(machines),
            assignments=sum(len(w) for w in worksheets.values()),
        )
        return await self.aggregator.aggregate(machines, worksheets, today)

    async def find_machine(self, machine_id: str) -> Machine | None:
        for machine in await self.machines.list_machines():
            if machine.machine_id == machine_id:
                return machine
        return None

    async def schedule_status(self, machine: Machine, today: dt.date | None = None):
        """Per-worksheet compliance summaries for one machine."""
        today = today or dt.date.today()
        worksheets = self.worksheets.list_worksheets_for_machine(machine.machine_id)
        return await self.aggregator.schedule_status(machine, worksheets, today)

    async def calendar(
        self,
        machine: Machine,
        start: dt.date,
        end: dt.date,
        today: dt.date | None = None,
    ) -> CalendarView:
        """Classified due-dates of one machine inside a window."""
        today = today or dt.date.today()
        worksheets = self.worksheets.list_worksheets_for_machine(machine.machine_id)
        return await self.aggregator.calendar(machine, worksheets, start, end, today)

    def record_completion(self, record: CompletionRecord) -> CompletionRecord:
        """Store a submitted completion in the local cache."""
        return self.local.add(record)

    async def remote_available(self) -> bool:
        """Probe the remote QC API."""
        try:
            await self.machines.list_machines()
        except CompletionSourceError:
            return False
        return True

    async def aclose(self) -> None:
        await self.remote.aclose()


_service: QCScheduleService | None = None


def get_qc_service() -> QCScheduleService:
    """Get the singleton QC schedule service instance."""
    global _service
    if _service is None:
        _service = QCScheduleService()
    return _service


async def close_qc_service() -> None:
    """Close the singleton's HTTP client, if one was created, and drop it."""
    global _service
    if _service is not None:
        await _service.aclose()
    _service = None
