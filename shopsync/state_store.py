"""Local durable key-value state.

Holds the small pieces of per-instance state that must survive a restart
but do not belong in the shared database: cooldown timestamps, the recent
price-check / dropship-order history shown in the admin panel, and the
selected Keystone environment. Not shared across processes.

Fixed keys live next to their owners (rate limiter, services); this module
only stores JSON-serializable values.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from loguru import logger

ENVIRONMENT_KEY = "admin_environment"


class StateStore(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class MemoryStateStore(StateStore):
    """Process-local store. Used by tests and throwaway deployments."""

    def __init__(self, initial: dict | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so callers see the same types the file store gives back
        self._data[key] = json.loads(json.dumps(value, default=str))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStateStore(StateStore):
    """All keys in one JSON document, rewritten atomically on every set()."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, default=str, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


def get_environment(store: StateStore, default: str) -> str:
    """Persisted Keystone environment flag; falls back to ``default`` if unreadable."""
    try:
        value = store.get(ENVIRONMENT_KEY)
    except Exception as e:
        logger.warning("Could not read environment flag from state store: {}", e)
        return default
    return value if value in ("development", "production") else default


def set_environment(store: StateStore, environment: str) -> None:
    if environment not in ("development", "production"):
        raise ValueError(f"Unknown environment: {environment}")
    store.set(ENVIRONMENT_KEY, environment)
    logger.info("Keystone environment switched to {}", environment)
