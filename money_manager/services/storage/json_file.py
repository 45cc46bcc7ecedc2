"""
Key/Value Store Implementations

DESIGN DECISION: The durable store is one JSON document on disk, which is the
closest match to the browser storage a web client keeps its data in:
1. Survives process restarts
2. Human-readable, easy to inspect or delete
3. No database setup required

TRADEOFFS:
- Every write rewrites the whole file (fine for one user's personal data)
- Single process only; no cross-process locking
"""

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from money_manager.services.storage.interface import KeyValueStore, StorageError


logger = structlog.get_logger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """Non-durable store for tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so tests catch values the file store would reject
        self._data[key] = json.loads(json.dumps(value))

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))


class JsonFileKeyValueStore(KeyValueStore):
    """
    File-backed key/value store.

    The whole document is cached in memory and flushed on every write via a
    temp file and ``os.replace``, so a crash never leaves a half-written file.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read local store {self._path}: {e}")
        if not isinstance(raw, dict):
            raise StorageError(f"Local store {self._path} is not a JSON object")
        return raw

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=self._path.name,
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _flush(self) -> None:
        try:
            self._write(json.dumps(self._data, ensure_ascii=False))
        except (OSError, TypeError, ValueError) as e:
            logger.error("local_store_write_failed", path=str(self._path), error=str(e))
            raise StorageError(f"Failed to write local store {self._path}: {e}")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        previous = self._data.get(key)
        had_key = key in self._data
        self._data[key] = copy.deepcopy(value)
        try:
            self._flush()
        except StorageError:
            # Keep memory consistent with disk
            if had_key:
                self._data[key] = previous
            else:
                self._data.pop(key, None)
            raise

    def remove(self, key: str) -> None:
        if key not in self._data:
            return
        previous = self._data.pop(key)
        try:
            self._flush()
        except StorageError:
            self._data[key] = previous
            raise

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))
