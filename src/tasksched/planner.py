"""Compose graph building, ordering and staleness checks into a plan."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from tasksched.cache import BuildCache, TaskStatus
from tasksched.graph import ROOT, DependencyGraph, build_graph
from tasksched.logging import Logger
from tasksched.scheduler import resolve_execution_order
from tasksched.state import StateStore
from tasksched.task import Task, TaskRegistry


@dataclass
class Plan:
    """Result of scheduling one run."""

    graph: DependencyGraph
    order: list[Task]
    statuses: list[TaskStatus]

    @property
    def stale(self) -> list[Task]:
        """Tasks the caller must execute, in execution order."""
        return [task for task, status in zip(self.order, self.statuses) if status.stale]

    def status_of(self, task_name: str) -> TaskStatus | None:
        return next((s for s in self.statuses if s.task_name == task_name), None)


def schedule_tasks(
    tasks: Iterable[Task],
    store: StateStore,
    base_dir: Optional[Path] = None,
    target: Optional[str] = None,
    jobs: int = 1,
    logger: Optional[Logger] = None,
) -> Plan:
    """Sort tasks in execution order and classify which of them are stale.

    Args:
        tasks: Declared tasks, in declaration order
        store: State store with the records of previous runs
        base_dir: Directory relative paths are resolved against (default: cwd)
        target: Only plan this task and its prerequisites (default: every task)
        jobs: Threads used for fingerprinting
        logger: Optional logger for diagnostic output

    Returns:
        Plan with the full order and per-task statuses

    Raises:
        ConfigurationError: If the task set is invalid or cyclic; nothing
            has been read from or written to the store at that point
    """
    registry = tasks if isinstance(tasks, TaskRegistry) else TaskRegistry(tasks)
    graph = build_graph(registry, base_dir=base_dir, logger=logger)
    names = resolve_execution_order(graph, root=target or ROOT, logger=logger)
    order = registry.tasks_for(names)

    cache = BuildCache(store, base_dir=base_dir, jobs=jobs, logger=logger)
    statuses = cache.evaluate(order)
    if logger:
        stale_count = sum(1 for s in statuses if s.stale)
        logger.debug(f"{stale_count} of {len(order)} task(s) need to run")
    return Plan(graph=graph, order=order, statuses=statuses)
