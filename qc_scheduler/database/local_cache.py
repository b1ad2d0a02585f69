"""
Local key-value cache backed by a JSON file.

Holds data written by form submissions that may not have reached the remote
store yet (completions) and the worksheet assignment list. Other sessions can
write the file at any time, so reads never trust it: a missing or corrupt file
reads as empty, and writes replace the file atomically.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from qc_scheduler.config.config import get_settings
from qc_scheduler.config.logging_config import get_logger
from qc_scheduler.errors import CompletionSourceError

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Minimal persisted key-value interface consumed by the engine."""

    def read(self, key: str, default: Any = None) -> Any: ...

    def write(self, key: str, value: Any) -> None: ...


class JsonFileCache:
    """
    Key-value store persisted as a single JSON object on disk.

    Args:
        path: File holding the JSON object. Created on first write.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.error("Local cache unreadable", path=str(self.path), error=str(e))
            raise CompletionSourceError(f"Cannot read local cache: {e}") from e

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Local cache is not valid JSON, ignoring", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning(
                "Local cache root is not an object, ignoring",
                path=str(self.path),
                root_type=type(data).__name__,
            )
            return {}
        return data

    def read(self, key: str, default: Any = None) -> Any:
        """
        Read a value by key.

        Args:
            key: Cache key.
            default: Returned when the key is absent.
        """
        return self._load().get(key, default)

    def write(self, key: str, value: Any) -> None:
        """
        Write a value, replacing the file atomically.

        Raises:
            CompletionSourceError: If the file cannot be written.
        """
        with self._lock:
            data = self._load()
            data[key] = value
            tmp_name: str | None = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, default=str)
                os.replace(tmp_name, self.path)
                tmp_name = None
            except OSError as e:
                logger.error("Local cache write failed", path=str(self.path), key=key, error=str(e))
                raise CompletionSourceError(f"Cannot write local cache: {e}") from e
            finally:
                # never leave a partial temp file next to the cache
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)
        logger.debug("Local cache written", path=str(self.path), key=key)


# Singleton cache instance
_cache: JsonFileCache | None = None


def get_local_cache() -> JsonFileCache:
    """Get or create the local cache singleton."""
    global _cache
    if _cache is None:
        settings = get_settings()
        _cache = JsonFileCache(settings.local_cache_path)
        logger.info("Local cache initialized", path=str(settings.local_cache_path))
    return _cache
