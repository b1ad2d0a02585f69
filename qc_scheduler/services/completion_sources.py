"""
Completion record sources.

Two independently writable stores hold evidence that QC occurrences were
performed:

- RemoteSource: the authoritative QC API, read over HTTP.
- LocalCacheSource: completions submitted from this installation that may
  not have been synchronized yet, kept in the local key-value cache.

Both implement the CompletionSource protocol. Neither decides precedence;
that is MergingCompletionStore's job.
"""

from collections.abc import Iterable
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from qc_scheduler.config.config import Settings, get_settings
from qc_scheduler.config.logging_config import get_logger
from qc_scheduler.database.local_cache import KeyValueStore
from qc_scheduler.errors import RemoteSourceUnavailable
from qc_scheduler.models.schedule_models import CompletionRecord, CompletionSourceKind

logger = get_logger(__name__)


class CompletionSource(Protocol):
    """A store that can list completion records for a machine."""

    kind: CompletionSourceKind

    async def list_completions(self, machine_id: str) -> list[CompletionRecord]: ...


def parse_records(
    entries: Iterable[Any],
    source: CompletionSourceKind,
    machine_id: str | None = None,
) -> list[CompletionRecord]:
    """
    Validate raw completion entries, dropping malformed ones.

    Entries with the same identity key keep the first one seen. When
    machine_id is given, entries for other machines are skipped.

    Args:
        entries: Raw JSON-like entries.
        source: Source tag applied to every parsed record.
        machine_id: Optional machine filter.

    Returns:
        Parsed records in input order.
    """
    records: list[CompletionRecord] = []
    seen: set[tuple] = set()
    dropped = 0
    duplicates = 0

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            dropped += 1
            logger.warning(
                "Dropping malformed completion entry",
                source=source.value,
                index=index,
                reason=f"expected object, got {type(entry).__name__}",
            )
            continue
        try:
            record = CompletionRecord.model_validate({**entry, "source": source})
        except ValidationError as e:
            dropped += 1
            logger.warning(
                "Dropping malformed completion entry",
                source=source.value,
                index=index,
                reason="; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                ),
            )
            continue

        if machine_id is not None and record.machine_id != machine_id:
            continue
        if record.identity_key in seen:
            duplicates += 1
            continue
        seen.add(record.identity_key)
        records.append(record)

    if dropped or duplicates:
        logger.info(
            "Completion entries filtered",
            source=source.value,
            machine_id=machine_id,
            dropped=dropped,
            duplicates=duplicates,
            kept=len(records),
        )
    return records


class RemoteSource:
    """
    Reads completion records from the remote QC API.

    Any transport failure, timeout, error status or undecodable body is
    raised as RemoteSourceUnavailable.

    Args:
        base_url: Remote API base URL.
        timeout: Per-request timeout in seconds.
        token: Optional bearer token.
        client: Optional preconfigured client (tests inject a MockTransport).
    """

    kind = CompletionSourceKind.REMOTE
    COMPLETIONS_PATH = "/api/qc/completions"

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        token: str = "",
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RemoteSource":
        settings = settings or get_settings()
        return cls(
            base_url=settings.remote_api_base_url,
            timeout=settings.remote_timeout_seconds,
            token=settings.remote_api_token,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET a JSON document from the remote API.

        Raises:
            RemoteSourceUnavailable: On any transport or decoding failure.
        """
        try:
            response = await self.client.get(path, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.warning("Remote QC API timed out", path=path, timeout=self.timeout)
            raise RemoteSourceUnavailable(f"Timed out after {self.timeout}s: {path}") from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Remote QC API returned error status",
                path=path,
                status=e.response.status_code,
            )
            raise RemoteSourceUnavailable(
                f"HTTP {e.response.status_code} from {path}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Remote QC API unreachable", path=path, error=str(e))
            raise RemoteSourceUnavailable(f"Request to {path} failed: {e}") from e
        except ValueError as e:
            logger.warning("Remote QC API returned invalid JSON", path=path, error=str(e))
            raise RemoteSourceUnavailable(f"Invalid JSON from {path}") from e

    async def list_completions(self, machine_id: str) -> list[CompletionRecord]:
        """List the machine's completion records held by the remote store."""
        payload = await self.get_json(self.COMPLETIONS_PATH, params={"machineId": machine_id})

        if isinstance(payload, dict):
            payload = payload.get("completions")
        if not isinstance(payload, list):
            raise RemoteSourceUnavailable(
                f"Unexpected completion payload from {self.COMPLETIONS_PATH}"
            )

        records = parse_records(payload, self.kind, machine_id=machine_id)
        logger.debug("Remote completions fetched", machine_id=machine_id, count=len(records))
        return records


class LocalCacheSource:
    """
    Reads and appends completion records in the local key-value cache.

    All completions live under one well-known key as a JSON list.

    Args:
        cache: The key-value store.
        key: Cache key holding the completion list.
    """

    kind = CompletionSourceKind.LOCAL

    def __init__(self, cache: KeyValueStore, key: str = "qcCompletions"):
        self.cache = cache
        self.key = key

    def _entries(self) -> list[Any]:
        entries = self.cache.read(self.key, [])
        if entries is None:
            return []
        if not isinstance(entries, list):
            logger.warning(
                "Local completion cache has wrong shape, ignoring",
                key=self.key,
                found=type(entries).__name__,
            )
            return []
        return entries

    async def list_completions(self, machine_id: str) -> list[CompletionRecord]:
        """List the machine's completion records held in the local cache."""
        return parse_records(self._entries(), self.kind, machine_id=machine_id)

    def add(self, record: CompletionRecord) -> CompletionRecord:
        """
        Store a completion locally, replacing any entry with the same identity key.

        Entries that cannot be parsed are preserved untouched; they belong
        to whoever wrote them.

        Returns:
            The stored record tagged as local.
        """
        record = record.with_source(self.kind)
        kept = []
        for entry in self._entries():
            if isinstance(entry, dict):
                try:
                    existing = CompletionRecord.model_validate(entry)
                except ValidationError:
                    kept.append(entry)
                    continue
                if existing.identity_key == record.identity_key:
                    continue
            kept.append(entry)

        kept.append(record.model_dump(mode="json", by_alias=True, exclude={"source"}))
        kept.sort(
            key=lambda e: str(e.get("date", "")) if isinstance(e, dict) else "",
            reverse=True,
        )
        self.cache.write(self.key, kept)
        logger.info(
            "Completion cached locally",
            machine_id=record.machine_id,
            worksheet_id=record.worksheet_id,
            date=record.date.isoformat(),
        )
        return record
