# tests/test_completion_store.py

from __future__ import annotations

import datetime as dt

import httpx
import pytest

from qc_scheduler.errors import CompletionSourceError, RemoteSourceUnavailable
from qc_scheduler.models.schedule_models import CompletionRecord, CompletionSourceKind
from qc_scheduler.services.completion_sources import LocalCacheSource, RemoteSource, parse_records
from qc_scheduler.services.completion_store import (
    STALE_WARNING,
    MergingCompletionStore,
    merge_records,
)

from .fakes import FakeCompletionSource, MemoryCache, completion

LOCAL = CompletionSourceKind.LOCAL
REMOTE = CompletionSourceKind.REMOTE


def _remote(handler) -> RemoteSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://qc.test")
    return RemoteSource("http://qc.test", timeout=1.0, client=client)


def _local(local_entries: list[dict]) -> LocalCacheSource:
    return LocalCacheSource(MemoryCache({"qcCompletions": local_entries}))


# ----------------------------------------------------------------------------
# merge_records
# ----------------------------------------------------------------------------

def test_remote_wins_on_shared_identity_key() -> None:
    remote = [completion("M1", "ws-daily", "2025-08-04", performed_by="remote tech")]
    local = [
        completion("M1", "ws-daily", "2025-08-04", performed_by="local tech", source=LOCAL),
        completion("M1", "ws-daily", "2025-08-05", source=LOCAL),
    ]

    merged = merge_records(remote, local)

    assert [(r.date, r.source) for r in merged] == [
        (dt.date(2025, 8, 4), REMOTE),
        (dt.date(2025, 8, 5), LOCAL),
    ]
    assert merged[0].performed_by == "remote tech"


def test_merge_is_idempotent() -> None:
    remote = [completion("M1", "ws-a", "2025-08-04"), completion("M1", "ws-b", "2025-08-04")]
    local = [completion("M1", "ws-a", "2025-08-05", source=LOCAL)]

    once = merge_records(remote, local)
    assert merge_records(remote + remote, local + local) == once
    assert merge_records(remote, once) == once


def test_merge_tags_every_record_with_its_store() -> None:
    # a record read locally but mislabelled as remote is still tagged local
    merged = merge_records([], [completion("M1", "ws-a", "2025-08-04")])
    assert merged[0].source is LOCAL


# ----------------------------------------------------------------------------
# parse_records
# ----------------------------------------------------------------------------

def test_parse_records_drops_malformed_and_duplicates() -> None:
    entries = [
        {"machineId": "M1", "worksheetId": "ws-a", "date": "2025-08-04", "performedBy": "first"},
        {"machineId": "M1", "worksheetId": "ws-a", "date": "2025-08-04T10:00:00Z", "performedBy": "second"},
        {"machineId": "M1", "worksheetId": "ws-a"},
        {"machineId": "M1", "worksheetId": "ws-a", "date": "yesterday"},
        "not an object",
        None,
        {"machineId": "M2", "worksheetId": "ws-a", "date": "2025-08-04"},
    ]

    records = parse_records(entries, REMOTE, machine_id="M1")

    assert len(records) == 1
    assert records[0].performed_by == "first"
    assert records[0].source is REMOTE


# ----------------------------------------------------------------------------
# RemoteSource over HTTP
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_remote_source_lists_machine_completions() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "completions": [
                    {"machineId": "M1", "worksheetId": "ws-a", "date": "2025-08-04", "overallResult": "pass"},
                    {"machineId": "M1", "worksheetId": "ws-a"},
                ]
            },
        )

    records = await _remote(handler).list_completions("M1")

    assert seen[0].url.path == "/api/qc/completions"
    assert seen[0].url.params["machineId"] == "M1"
    assert [(r.date, r.overall_result) for r in records] == [(dt.date(2025, 8, 4), "pass")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, json={"error": "boom"}),
        lambda request: httpx.Response(200, content=b"<html>not json</html>"),
        lambda request: httpx.Response(200, json={"unexpected": True}),
    ],
    ids=["server-error", "invalid-json", "wrong-shape"],
)
async def test_remote_source_bad_responses_raise_unavailable(handler) -> None:
    with pytest.raises(RemoteSourceUnavailable):
        await _remote(handler).list_completions("M1")


@pytest.mark.asyncio
async def test_remote_source_status_code_is_kept() -> None:
    with pytest.raises(RemoteSourceUnavailable) as excinfo:
        await _remote(lambda request: httpx.Response(503)).list_completions("M1")
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [httpx.ConnectError("connection refused"), httpx.ReadTimeout("timed out")],
    ids=["connect", "timeout"],
)
async def test_remote_source_transport_errors_raise_unavailable(error: Exception) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    with pytest.raises(RemoteSourceUnavailable):
        await _remote(handler).list_completions("M1")


# ----------------------------------------------------------------------------
# MergingCompletionStore
# ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_merged_view_remote_and_local(
    remote_records: list[CompletionRecord], local_entries: list[dict]
) -> None:
    store = MergingCompletionStore(FakeCompletionSource(remote_records), _local(local_entries))

    view = await store.merged_completions("M1")

    assert view.degraded is False
    assert view.warnings == []
    assert [(r.worksheet_id, r.date.isoformat(), r.source) for r in view.records] == [
        ("ws-weekly", "2025-07-21", REMOTE),
        ("ws-weekly", "2025-07-28", LOCAL),
        ("ws-daily", "2025-08-04", REMOTE),
    ]
    assert view.records[-1].performed_by == "remote tech"


@pytest.mark.asyncio
async def test_local_only_records_are_tagged_local(local_entries: list[dict]) -> None:
    store = MergingCompletionStore(FakeCompletionSource([]), _local(local_entries))
    view = await store.merged_completions("M1")
    assert {r.source for r in view.records} == {LOCAL}
    assert len(view.records) == 2


@pytest.mark.asyncio
async def test_remote_network_failure_degrades_to_local(local_entries: list[dict]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    store = MergingCompletionStore(_remote(handler), _local(local_entries))

    view = await store.merged_completions("M1")

    assert view.degraded is True
    assert STALE_WARNING in view.warnings
    assert {r.source for r in view.records} == {LOCAL}
    assert view.completed_dates("ws-daily") == [dt.date(2025, 8, 4)]


@pytest.mark.asyncio
async def test_unreadable_local_cache_is_reported(remote_records: list[CompletionRecord]) -> None:
    local = FakeCompletionSource(kind=LOCAL, error=CompletionSourceError("disk gone"))
    store = MergingCompletionStore(FakeCompletionSource(remote_records), local)

    view = await store.merged_completions("M1")

    assert view.degraded is False
    assert view.warnings == ["Local completion cache unreadable"]
    assert len(view.records) == 2
