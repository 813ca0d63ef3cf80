"""Persistent state stores for task fingerprints."""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Optional

from tasksched.logging import Logger

# Marks a key that had no record at the last save
_ABSENT = object()


class StoreError(Exception):
    """Raised when the state store cannot be read or written."""

    pass


class StateStore(ABC):
    """Key-value store keyed by task name, holding fingerprint records.

    Writes must be visible to subsequent reads in the same process.
    """

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the record stored under ``key``, or None if there is none."""

    @abstractmethod
    def set(self, key: str, value: dict[str, Any]) -> None:
        """Store ``value`` under ``key``, replacing any previous record."""

    @abstractmethod
    def keys(self) -> list[str]:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def flush(self) -> None:
        """Persist any buffered writes."""

    def close(self) -> None:
        self.flush()

    def prune(self, valid_names: Iterable[str]) -> list[str]:
        """
        Remove records for tasks that no longer exist.

        Only ever called on explicit request; the cache never deletes records.

        Returns:
        The removed keys
        """
        valid = set(valid_names)
        removed = [key for key in self.keys() if key not in valid]
        for key in removed:
            self.delete(key)
        return removed

    def __enter__(self) -> "StateStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class MemoryStateStore(StateStore):
    """In-process store, mostly useful for tests and dry runs.

    Records are copied in and out, so callers never share them with the store.
    """

    def __init__(self, data: Optional[dict[str, dict[str, Any]]] = None):
        self._data: dict[str, dict[str, Any]] = copy.deepcopy(data or {})

    def get(self, key: str) -> dict[str, Any] | None:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        return list(self._data)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonStateStore(StateStore):
    """
    Manages the .tasksched-state file.

    The whole file is loaded lazily on first access. Records are written
    back in batches: once ``batch_size`` keys have unsaved changes, and on
    ``flush`` or ``close``. Each write goes through a temporary file and
    ``os.replace``, so the file on disk is always a complete earlier state.
    If the process dies before a flush, the unsaved commits are lost and
    those tasks are simply stale on the next run.
    """

    STATE_FILE = ".tasksched-state"

    def __init__(
        self,
        state_path: Path,
        fsync: bool = False,
        batch_size: int = 1,
        logger: Optional[Logger] = None,
    ):
        """
        Initialize state store.

        Args:
        state_path: Path of the state file (need not exist yet)
        fsync: Flush writes to disk before replacing the state file
        batch_size: Number of changed keys held in memory before the file is rewritten
        logger: Optional logger for diagnostic output
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.state_path = Path(state_path)
        self.fsync = fsync
        self.batch_size = batch_size
        self.logger = logger
        self._state: dict[str, dict[str, Any]] = {}
        # Changed keys not yet on disk, mapped to their last saved record
        self._unsaved: dict[str, Any] = {}
        self._loaded = False
        self._lock = threading.Lock()

    @classmethod
    def for_project(
        cls,
        project_root: Path,
        fsync: bool = False,
        batch_size: int = 1,
        logger: Optional[Logger] = None,
    ) -> "JsonStateStore":
        return cls(
            project_root / cls.STATE_FILE, fsync=fsync, batch_size=batch_size, logger=logger
        )

    def load(self) -> None:
        """
        Load state from file if it exists.

        A corrupted file is discarded (every task becomes stale). An
        unreadable file raises StoreError.
        """
        self._loaded = True
        if not self.state_path.exists():
            if self.logger:
                self.logger.trace(f"No state file found at {self.state_path}")
            self._state = {}
            return

        if self.logger:
            self.logger.trace(f"Loading state from {self.state_path}")
        try:
            with open(self.state_path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            if self.logger:
                self.logger.warn(
                    f"State file {self.state_path} is corrupted, starting fresh"
                )
            self._state = {}
            return
        except OSError as e:
            self._loaded = False
            raise StoreError(f"Error reading state file '{self.state_path}': {e}") from e

        if not isinstance(data, dict):
            if self.logger:
                self.logger.warn(
                    f"State file {self.state_path} is corrupted, starting fresh"
                )
            data = {}
        self._state = data
        if self.logger:
            self.logger.trace(f"Loaded {len(self._state)} task state(s)")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def save(self) -> None:
        """Write the state file atomically."""
        directory = self.state_path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=self.state_path.name, suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(self._state, f, indent=2, sort_keys=True)
                    if self.fsync:
                        f.flush()
                        os.fsync(f.fileno())
                os.replace(tmp_path, self.state_path)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass  # Already moved or never created
                raise
        except OSError as e:
            raise StoreError(f"Error writing state file '{self.state_path}': {e}") from e

        if self.logger:
            self.logger.trace(
                f"Saved state to {self.state_path} ({len(self._state)} task state(s))"
            )

    def _remember_saved(self, key: str) -> None:
        self._unsaved.setdefault(key, self._state.get(key, _ABSENT))

    def _flush(self) -> None:
        if not self._unsaved:
            return
        try:
            self.save()
        except StoreError:
            # Keep memory consistent with what is on disk
            for key, saved in self._unsaved.items():
                if saved is _ABSENT:
                    self._state.pop(key, None)
                else:
                    self._state[key] = saved
            self._unsaved.clear()
            raise
        self._unsaved.clear()

    def flush(self) -> None:
        """Write any unsaved records to disk.

        Raises:
            StoreError: If the file cannot be written; the unsaved records are dropped
        """
        with self._lock:
            self._flush()

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            self._ensure_loaded()
            return copy.deepcopy(self._state.get(key))

    def set(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._ensure_loaded()
            self._remember_saved(key)
            self._state[key] = copy.deepcopy(value)
            if len(self._unsaved) >= self.batch_size:
                self._flush()

    def keys(self) -> list[str]:
        with self._lock:
            self._ensure_loaded()
            return list(self._state)

    def delete(self, key: str) -> None:
        with self._lock:
            self._ensure_loaded()
            if key in self._state:
                self._remember_saved(key)
                del self._state[key]
                self._flush()

    def clear(self) -> None:
        """Remove the state file and forget all records."""
        with self._lock:
            self._state = {}
            self._unsaved.clear()
            self._loaded = True
            try:
                self.state_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StoreError(f"Error removing state file '{self.state_path}': {e}") from e
