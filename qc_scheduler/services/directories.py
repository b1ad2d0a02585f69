"""
Machine and worksheet-assignment directories.

Machines come from the remote QC API's machine registry. Worksheet
assignments are read from the local key-value cache, where worksheet
management stores them as a list under one key.
"""

from typing import Any, Protocol

from pydantic import ValidationError

from qc_scheduler.config.logging_config import get_logger
from qc_scheduler.database.local_cache import KeyValueStore
from qc_scheduler.errors import RemoteSourceUnavailable
from qc_scheduler.models.schedule_models import Machine, Worksheet
from qc_scheduler.services.completion_sources import RemoteSource

logger = get_logger(__name__)


class MachineDirectory(Protocol):
    async def list_machines(self) -> list[Machine]: ...


class WorksheetDirectory(Protocol):
    def list_worksheets(self) -> list[Worksheet]: ...

    def list_worksheets_for_machine(self, machine_id: str) -> list[Worksheet]: ...


class RemoteMachineDirectory:
    """
    Lists machines from the remote QC API.

    Shares the RemoteSource HTTP client. Failures propagate as
    RemoteSourceUnavailable; without a machine list there is nothing to
    schedule, so there is no degraded mode here.
    """

    MACHINES_PATH = "/api/machines"

    def __init__(self, remote: RemoteSource):
        self.remote = remote

    async def list_machines(self) -> list[Machine]:
        payload = await self.remote.get_json(self.MACHINES_PATH)
        if isinstance(payload, dict):
            payload = payload.get("machines")
        if not isinstance(payload, list):
            raise RemoteSourceUnavailable(f"Unexpected machine payload from {self.MACHINES_PATH}")

        machines: list[Machine] = []
        seen: set[str] = set()
        for index, entry in enumerate(payload):
            try:
                machine = Machine.model_validate(entry)
            except ValidationError as e:
                logger.warning("Dropping malformed machine entry", index=index, errors=e.error_count())
                continue
            if machine.machine_id in seen:
                continue
            seen.add(machine.machine_id)
            machines.append(machine)

        logger.debug("Machines fetched", count=len(machines))
        return machines


class LocalWorksheetDirectory:
    """
    Reads worksheet assignments from the local key-value cache.

    Templates (isWorksheet false) and entries that fail validation are
    skipped. When two entries share an id the first one wins.

    Args:
        cache: The key-value store.
        key: Cache key holding the worksheet list.
    """

    def __init__(self, cache: KeyValueStore, key: str = "qcWorksheets"):
        self.cache = cache
        self.key = key

    def list_worksheets(self) -> list[Worksheet]:
        """All schedulable worksheets, in stored order."""
        entries: Any = self.cache.read(self.key, [])
        if not isinstance(entries, list):
            logger.warning("Worksheet cache has wrong shape, ignoring", key=self.key)
            return []

        worksheets: list[Worksheet] = []
        seen: set[str] = set()
        for index, entry in enumerate(entries):
            try:
                worksheet = Worksheet.model_validate(entry)
            except ValidationError as e:
                logger.warning(
                    "Dropping malformed worksheet entry",
                    index=index,
                    worksheet_id=entry.get("id") if isinstance(entry, dict) else None,
                    errors=e.error_count(),
                )
                continue
            if not worksheet.is_worksheet:
                continue
            if worksheet.id in seen:
                logger.warning("Dropping duplicate worksheet entry", index=index, worksheet_id=worksheet.id)
                continue
            seen.add(worksheet.id)
            worksheets.append(worksheet)
        return worksheets

    def list_worksheets_for_machine(self, machine_id: str) -> list[Worksheet]:
        """Worksheets assigned to a machine."""
        return [w for w in self.list_worksheets() if machine_id in w.assigned_machine_ids]
