"""Key-value persistence collaborators."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from anglesync.errors import PersistenceError

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """
    Synchronous, fallible key -> string mapping.

    Implementations raise OSError or PersistenceError when the underlying
    storage cannot be used.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string, or None when the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key; removing an absent key is not an error."""
        pass


class MemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed store.

    ``quota`` caps the total number of stored characters, mimicking a
    browser storage quota.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None, quota: Optional[int] = None):
        self.data: dict[str, str] = dict(initial or {})
        self.quota = quota

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota is not None:
            used = sum(len(v) for k, v in self.data.items() if k != key)
            if used + len(value) > self.quota:
                raise PersistenceError(f"Quota of {self.quota} characters exceeded")
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store keeping every key in a single JSON object file.

    The file is read on every access so several processes (e.g. successive
    CLI invocations) see each other's writes.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except UnicodeDecodeError as e:
            raise PersistenceError(f"State file {self.path} is not valid UTF-8: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceError(f"State file {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"State file {self.path} does not hold a JSON object")
        return data

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
