"""Key-value persistence used for tokens (long-lived) and PKCE state (short-lived)."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from loguru import logger

from niomon.utils.helpers import ensure_dir, get_data_path

LOCAL_STORAGE = "localstorage"
SESSION_STORAGE = "sessionstorage"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStore:
    """Process-local store; the short-lived (per-tab) scope."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore:
    """JSON object on disk; the long-lived scope. Every write replaces the file atomically."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.RLock()
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable storage file {}: {}", self.path, e)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _flush(self) -> None:
        ensure_dir(self.path.parent)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        try:
            self.path.chmod(0o600)
        except OSError:
            # Some filesystems reject chmod; the file is still usable.
            pass

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


_session_store = MemoryStore()
_file_stores: dict[str, JsonFileStore] = {}
_stores_lock = threading.Lock()


def session_store() -> MemoryStore:
    """The process-wide short-lived store."""
    return _session_store


def local_store(directory: Path | None = None) -> JsonFileStore:
    """The process-wide long-lived store for a directory (default ~/.niomon)."""
    base = directory if directory is not None else get_data_path()
    path = (Path(base).expanduser() / "storage.json").resolve()
    with _stores_lock:
        store = _file_stores.get(str(path))
        if store is None:
            store = JsonFileStore(path)
            _file_stores[str(path)] = store
        return store


def resolve_storage(storage: str, *, directory: Path | None = None) -> KeyValueStore:
    """
    Resolve a storage instance by name.

    ``localStorage`` is the long-lived file store, ``sessionStorage`` the in-process
    store. Names are case-insensitive.
    """
    name = storage.lower()
    if name == LOCAL_STORAGE:
        return local_store(directory)
    if name == SESSION_STORAGE:
        return session_store()
    raise ValueError(f"storage {storage} is not available")


def is_storage_supported(store: KeyValueStore) -> bool:
    """Probe a store with a write/remove round trip."""
    probe = "niomon.__storage_probe__"
    try:
        store.set(probe, "1")
        ok = store.get(probe) == "1"
        store.remove(probe)
    except OSError as e:
        logger.warning("Storage is not available: {}", e)
        return False
    if not ok:
        logger.warning("Storage is not available")
    return ok
