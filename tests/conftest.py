# tests/conftest.py

from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from qc_scheduler.config.config import Settings
from qc_scheduler.models.schedule_models import CompletionRecord, Machine, Worksheet

from .fakes import completion

# Wednesday
TODAY = dt.date(2025, 8, 6)


@pytest.fixture()
def today() -> dt.date:
    return TODAY


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings isolated from the environment and any .env file.

    The local cache lives in tmp_path so tests never share state.
    """
    return Settings(
        _env_file=None,
        remote_api_base_url="http://qc.test",
        local_cache_path=tmp_path / "local_cache.json",
        log_format="console",
    )


@pytest.fixture()
def machine_entries() -> list[dict]:
    """Machine registry payload as the remote API returns it."""
    return [
        {
            "machineId": "M1",
            "name": "CT Scanner 1",
            "type": "CT",
            "location": {"building": "Main", "floor": "1", "room": "101"},
        },
        {"machineId": "M2", "name": "CT Scanner 2", "type": "CT", "location": "Annex - 4"},
    ]


@pytest.fixture()
def machines(machine_entries: list[dict]) -> list[Machine]:
    return [Machine.model_validate(entry) for entry in machine_entries]


@pytest.fixture()
def worksheet_entries() -> list[dict]:
    """
    Worksheet assignments as stored in the local cache.

    - daily CT QC on both machines, starting Monday 2025-08-04
    - weekly on M1, starting Sunday 2025-07-20 (first due Monday 07-21)
    - monthly on both, starting 2025-07-10 (first due 08-01)
    - a template that must never be scheduled
    """
    return [
        {
            "id": "ws-daily",
            "title": "Daily CT Constancy",
            "modality": "CT",
            "frequency": "daily",
            "startDate": "2025-08-04",
            "assignedMachines": ["M1", "M2"],
            "isWorksheet": True,
        },
        {
            "id": "ws-weekly",
            "title": "Weekly Laser Alignment",
            "modality": "CT",
            "frequency": "weekly",
            "startDate": "2025-07-20T08:00:00Z",
            "assignedMachines": ["M1"],
            "isWorksheet": True,
        },
        {
            "id": "ws-monthly",
            "title": "Monthly Image Quality",
            "modality": "CT",
            "frequency": "Monthly",
            "startDate": "2025-07-10",
            "assignedMachines": ["M1", "M2"],
        },
        {
            "id": "tpl-daily",
            "title": "Daily Template",
            "modality": "CT",
            "frequency": "daily",
            "startDate": "2025-01-01",
            "assignedMachines": ["M1"],
            "isWorksheet": False,
        },
    ]


@pytest.fixture()
def worksheets(worksheet_entries: list[dict]) -> dict[str, Worksheet]:
    parsed = [Worksheet.model_validate(entry) for entry in worksheet_entries]
    return {w.id: w for w in parsed if w.is_worksheet}


@pytest.fixture()
def worksheets_by_machine(worksheets: dict[str, Worksheet]) -> dict[str, list[Worksheet]]:
    return {
        "M1": [worksheets["ws-daily"], worksheets["ws-weekly"], worksheets["ws-monthly"]],
        "M2": [worksheets["ws-daily"], worksheets["ws-monthly"]],
    }


@pytest.fixture()
def remote_records() -> list[CompletionRecord]:
    return [
        completion("M1", "ws-daily", "2025-08-04", performed_by="remote tech"),
        completion("M1", "ws-weekly", "2025-07-21"),
        completion("M2", "ws-monthly", "2025-08-01"),
    ]


@pytest.fixture()
def local_entries() -> list[dict]:
    """Local cache completions: one not yet synced, one shadowed by remote."""
    return [
        {"machineId": "M1", "worksheetId": "ws-weekly", "date": "2025-07-28T16:45:00.000Z"},
        {"machineId": "M1", "worksheetId": "ws-daily", "date": "2025-08-04", "performedBy": "local tech"},
    ]
