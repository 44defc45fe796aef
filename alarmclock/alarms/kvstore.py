"""Durable key/value storage backing the alarm list.

Each key maps to an opaque byte payload. Writes replace the payload
atomically (temp file + rename) and are serialized across processes with an
``fcntl`` lock file, so the out-of-band firing path can update a record while
the UI side is saving.
"""

from __future__ import annotations

import fcntl
import logging
import re
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]
Transform = Callable[[bytes | None], bytes | None]

LOCK_FILE_NAME = ".store.lock"

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> bool: ...

    def update(self, key: str, transform: Transform) -> bool: ...

    def add_listener(self, listener: ChangeListener) -> None: ...

    def remove_listener(self, listener: ChangeListener) -> None: ...


class FileKeyValueStore:
    """Stores each key as ``<directory>/<key>.json``."""

    def __init__(self, directory: Path, logger: logging.Logger | None = None) -> None:
        self._directory = directory
        self._logger = logger or LOGGER
        self._listeners: list[ChangeListener] = []
        self._thread_lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self._directory / f"{key}.json"

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self._directory.mkdir(parents=True, exist_ok=True)
        lock_path = self._directory / LOCK_FILE_NAME
        with self._thread_lock:
            with open(lock_path, "w") as lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read(self, path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            self._logger.warning("[store] Failed to read %s: %s", path, exc)
            return None

    def _write(self, path: Path, value: bytes) -> None:
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(value)
        tmp_path.replace(path)

    def get(self, key: str) -> bytes | None:
        return self._read(self._path(key))

    def set(self, key: str, value: bytes) -> bool:
        path = self._path(key)
        try:
            with self._locked():
                self._write(path, value)
        except OSError as exc:
            self._logger.error("[store] Failed to write %s: %s", path, exc)
            return False
        self._notify(key)
        return True

    def update(self, key: str, transform: Transform) -> bool:
        """Locked read-transform-write. ``transform`` returning None aborts without writing."""
        path = self._path(key)
        try:
            with self._locked():
                updated = transform(self._read(path))
                if updated is None:
                    return False
                self._write(path, updated)
        except OSError as exc:
            self._logger.error("[store] Failed to update %s: %s", path, exc)
            return False
        self._notify(key)
        return True

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception:
                self._logger.exception("[store] Change listener failed for key %s", key)
