"""Task definitions and the task registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator


def _as_frozenset(value) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset([value])
    return frozenset(value)


@dataclass(frozen=True)
class Task:
    """Represents a task definition.

    ``file_dep`` are the files read by the task, ``targets`` the files it
    produces and ``task_dep`` the names of tasks that must run before it.
    """

    name: str
    file_dep: frozenset[str] = field(default_factory=frozenset)
    targets: frozenset[str] = field(default_factory=frozenset)
    task_dep: frozenset[str] = field(default_factory=frozenset)
    action: str = ""
    desc: str = ""

    def __post_init__(self):
        """Accept any iterable (or a single string) for the path and name sets."""
        object.__setattr__(self, "file_dep", _as_frozenset(self.file_dep))
        object.__setattr__(self, "targets", _as_frozenset(self.targets))
        object.__setattr__(self, "task_dep", _as_frozenset(self.task_dep))


class TaskRegistry:
    """Ordered, read-only collection of the tasks declared for one run.

    Declaration order is kept and used as the scheduling tie-break.
    Duplicate names are stored as given; rejecting them is the graph
    builder's job.
    """

    def __init__(self, tasks: Iterable[Task] = ()):
        self._tasks: tuple[Task, ...] = tuple(tasks)
        self._by_name: dict[str, Task] = {}
        for task in self._tasks:
            self._by_name.setdefault(task.name, task)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Task | None:
        return self._by_name.get(name)

    def task_names(self) -> list[str]:
        return [task.name for task in self._tasks]

    def tasks_for(self, names: Iterable[str]) -> list[Task]:
        """Map task names (e.g. a computed execution order) back to tasks."""
        return [self._by_name[name] for name in names]
