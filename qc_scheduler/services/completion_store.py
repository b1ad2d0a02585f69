"""
Merged completion view over the remote and local stores.

Precedence rule: the remote store is authoritative. A local record is only
included when no remote record shares its identity key
(machine_id, worksheet_id, date); otherwise the local copy is hidden from the
merged view but left in the local cache.

When the remote store cannot be read the view falls back to local records and
is flagged degraded so dashboards can warn that completion status may be
stale. Neither store failing raises to the caller.
"""

from qc_scheduler.config.logging_config import get_logger
from qc_scheduler.errors import CompletionSourceError
from qc_scheduler.models.schedule_models import (
    CompletionRecord,
    CompletionSourceKind,
    CompletionView,
)
from qc_scheduler.services.completion_sources import CompletionSource

logger = get_logger(__name__)

STALE_WARNING = "Remote completion store unavailable; completion status may be stale"


def merge_records(
    remote: list[CompletionRecord],
    local: list[CompletionRecord],
) -> list[CompletionRecord]:
    """
    Union two record lists with remote precedence on shared identity keys.

    Within each list the first record seen for a key wins. Records are
    tagged with the store they came from. The result is ordered by date,
    then worksheet.
    """
    merged: dict[tuple, CompletionRecord] = {}
    for record in remote:
        merged.setdefault(record.identity_key, record.with_source(CompletionSourceKind.REMOTE))
    remote_keys = set(merged)

    shadowed = 0
    for record in local:
        if record.identity_key in remote_keys:
            shadowed += 1
            continue
        merged.setdefault(record.identity_key, record.with_source(CompletionSourceKind.LOCAL))

    if shadowed:
        logger.debug("Local completions shadowed by remote records", count=shadowed)

    return sorted(merged.values(), key=lambda r: (r.date, r.worksheet_id, r.machine_id))


class MergingCompletionStore:
    """
    Composes a remote and a local CompletionSource into one deduplicated view.

    Args:
        remote: Authoritative source.
        local: Supplementary source for not-yet-synchronized completions.
    """

    def __init__(self, remote: CompletionSource, local: CompletionSource):
        self.remote = remote
        self.local = local

    async def merged_completions(self, machine_id: str) -> CompletionView:
        """
        Build the merged completion view for a machine.

        Returns:
            CompletionView with degraded=True when the remote read failed.
        """
        view = CompletionView(machine_id=machine_id)

        try:
            remote_records = await self.remote.list_completions(machine_id)
        except CompletionSourceError as e:
            logger.warning(
                "Falling back to local completions",
                machine_id=machine_id,
                error=str(e),
            )
            remote_records = []
            view.degraded = True
            view.warnings.append(STALE_WARNING)

        try:
            local_records = await self.local.list_completions(machine_id)
        except CompletionSourceError as e:
            logger.error("Local completion cache unreadable", machine_id=machine_id, error=str(e))
            local_records = []
            view.warnings.append("Local completion cache unreadable")

        view.records = merge_records(remote_records, local_records)
        logger.debug(
            "Completions merged",
            machine_id=machine_id,
            remote=len(remote_records),
            local=len(local_records),
            merged=len(view.records),
            degraded=view.degraded,
        )
        return view
