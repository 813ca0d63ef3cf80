"""Incremental build cache: fingerprinting and staleness detection."""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from tasksched.hasher import Fingerprint, FingerprintReadError, digest_file
from tasksched.logging import Logger
from tasksched.state import StateStore, StoreError
from tasksched.task import Task


@dataclass
class TaskStatus:
    """Staleness classification of a task for one run."""

    task_name: str
    stale: bool
    reason: str  # "fresh", "never_run", "inputs_changed", "inputs_missing",
    # "outputs_missing", "dependency_triggered", "store_error", "fingerprint_error"
    changed_files: list[str] = field(default_factory=list)
    error: Exception | None = None


class BuildCache:
    """Decides which tasks must rerun and records the ones that did.

    Records are read from the store while classifying and only written by
    ``commit``, after the caller has actually executed the task.
    """

    def __init__(
        self,
        store: StateStore,
        base_dir: Optional[Path] = None,
        jobs: int = 1,
        logger: Optional[Logger] = None,
    ):
        """Initialize the cache.

        Args:
            store: State store holding one fingerprint record per task name
            base_dir: Directory relative paths are resolved against (default: cwd)
            jobs: Number of threads used to fingerprint tasks in ``evaluate``
            logger: Optional logger for diagnostic output
        """
        if jobs < 1:
            raise ValueError("jobs must be at least 1")
        self.store = store
        self.base_dir = base_dir if base_dir is not None else Path.cwd()
        self.jobs = jobs
        self.logger = logger
        self._commit_lock = threading.Lock()

    def _path(self, path: str) -> Path:
        return self.base_dir / path

    def fingerprint(self, task: Task) -> Fingerprint:
        """Digest every file dependency of a task as it is on disk now.

        Raises:
            FingerprintReadError: If an existing file cannot be read
        """
        return Fingerprint(
            task_name=task.name,
            file_hashes={path: digest_file(self._path(path)) for path in sorted(task.file_dep)},
        )

    def last_fingerprint(self, task: Task) -> Fingerprint | None:
        """Fingerprint recorded by the last commit, or None if never committed.

        Raises:
            StoreError: If the store cannot be read or the record is malformed
        """
        record = self.store.get(task.name)
        if record is None:
            return None
        try:
            return Fingerprint.from_dict(task.name, record)
        except ValueError as e:
            raise StoreError(str(e)) from e

    def _missing(self, paths: Iterable[str]) -> list[str]:
        return sorted(p for p in paths if not os.path.exists(self._path(p)))

    def check_task_status(
        self, task: Task, current: Fingerprint | None = None
    ) -> TaskStatus:
        """Check if a task needs to run.

        A task is stale if ANY of these hold:
        1. No record exists for it (or the record cannot be read)
        2. Its current fingerprint differs from the recorded one
        3. Any file dependency is missing
        4. Any target is missing

        Args:
            task: Task to check
            current: Precomputed current fingerprint (computed if omitted)

        Returns:
            TaskStatus; per-task read failures are attached, never raised
        """
        try:
            previous = self.last_fingerprint(task)
        except StoreError as e:
            return TaskStatus(task.name, stale=True, reason="store_error", error=e)

        # Unreadable inputs are reported even for tasks that never ran
        if current is None:
            try:
                current = self.fingerprint(task)
            except FingerprintReadError as e:
                return TaskStatus(
                    task.name,
                    stale=True,
                    reason="fingerprint_error",
                    changed_files=[e.path],
                    error=e,
                )

        if previous is None:
            return TaskStatus(task.name, stale=True, reason="never_run")

        if current != previous:
            return TaskStatus(
                task.name,
                stale=True,
                reason="inputs_changed",
                changed_files=current.changed_paths(previous),
            )

        missing_inputs = self._missing(task.file_dep)
        if missing_inputs:
            return TaskStatus(
                task.name, stale=True, reason="inputs_missing", changed_files=missing_inputs
            )

        missing_outputs = self._missing(task.targets)
        if missing_outputs:
            return TaskStatus(
                task.name, stale=True, reason="outputs_missing", changed_files=missing_outputs
            )

        return TaskStatus(task.name, stale=False, reason="fresh")

    def is_stale(self, task: Task) -> bool:
        return self.check_task_status(task).stale

    def _safe_fingerprint(self, task: Task) -> Fingerprint | FingerprintReadError:
        try:
            return self.fingerprint(task)
        except FingerprintReadError as e:
            return e

    def evaluate(self, tasks: Iterable[Task]) -> list[TaskStatus]:
        """Classify every task, preserving the given order.

        ``tasks`` must be in execution order. A task that reads a target
        of a task already found stale is stale too (``dependency_triggered``),
        since its input is about to be regenerated. Explicit ``task_dep``
        ordering does not propagate staleness.

        With ``jobs > 1`` fingerprints are computed on a thread pool; the
        store is still consulted sequentially.
        """
        task_list = list(tasks)
        if self.jobs > 1 and len(task_list) > 1:
            with ThreadPoolExecutor(max_workers=self.jobs) as pool:
                fingerprints = list(pool.map(self._safe_fingerprint, task_list))
        else:
            fingerprints = [None] * len(task_list)

        statuses = []
        # Targets of tasks already classified stale; consumers of these
        # files must rerun once their producer has.
        pending_targets: set[str] = set()
        for task, current in zip(task_list, fingerprints):
            triggered = sorted(task.file_dep & pending_targets)
            if isinstance(current, FingerprintReadError):
                status = TaskStatus(
                    task.name,
                    stale=True,
                    reason="fingerprint_error",
                    changed_files=[current.path],
                    error=current,
                )
            else:
                status = self.check_task_status(task, current)
            if not status.stale and triggered:
                status = TaskStatus(
                    task.name, stale=True, reason="dependency_triggered", changed_files=triggered
                )
            if status.stale:
                pending_targets.update(task.targets)
            if self.logger:
                if status.error is not None:
                    self.logger.warn(f"Task '{task.name}' treated as stale: {status.error}")
                else:
                    detail = f" ({', '.join(status.changed_files)})" if status.changed_files else ""
                    self.logger.debug(f"{task.name}: {status.reason}{detail}")
            statuses.append(status)
        return statuses

    def filter_tasks(self, tasks: Iterable[Task]) -> list[Task]:
        """Return the stale tasks, keeping their relative order."""
        task_list = list(tasks)
        statuses = self.evaluate(task_list)
        return [task for task, status in zip(task_list, statuses) if status.stale]

    def commit(self, task: Task) -> Fingerprint:
        """Record the current fingerprint of a task that has just been executed.

        Raises:
            FingerprintReadError: If a file dependency cannot be read
            StoreError: If the record cannot be written
        """
        current = self.fingerprint(task)
        with self._commit_lock:
            self.store.set(task.name, current.to_dict())
        if self.logger:
            self.logger.trace(f"Committed fingerprint for task '{task.name}'")
        return current
