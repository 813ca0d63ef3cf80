"""Dependency graph construction and validation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional, Union

from tasksched.logging import Logger
from tasksched.task import Task


class _Root:
    """Synthetic node that depends on every task. Never equal to a task name."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<root>"


ROOT = _Root()

# A graph node is a task name or ROOT
Node = Union[str, _Root]


class ConfigurationError(Exception):
    """Base class for errors in the declared task set."""

    pass


class InvalidTaskError(ConfigurationError):
    """Raised when a task definition is malformed (e.g. an empty name)."""

    pass


class DuplicateTaskError(ConfigurationError):
    """Raised when two tasks share a name."""

    def __init__(self, name: str):
        super().__init__(f"Duplicate task name: {name}")
        self.name = name


class TargetConflictError(ConfigurationError):
    """Raised when two tasks declare the same target."""

    def __init__(self, first: str, second: str, paths: Iterable[str]):
        self.first = first
        self.second = second
        self.paths = sorted(paths)
        super().__init__(
            f"Tasks {first} and {second} share target: {', '.join(self.paths)}"
        )


class MissingDependencyError(ConfigurationError):
    """Raised when a file dependency is neither produced by a task nor on disk."""

    def __init__(self, task_name: str, path: str):
        super().__init__(
            f"Path {path} is a dependency of task {task_name} and is missing."
        )
        self.task_name = task_name
        self.path = path


class TaskNotFoundError(ConfigurationError):
    """Raised when a task dependency doesn't exist."""

    pass


class CycleError(ConfigurationError):
    """Raised when a dependency cycle is detected."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


class DependencyGraph:
    """Directed graph over task names plus ROOT.

    An edge ``a -> b`` means ``a`` depends on ``b``: ``b`` must run first.
    Nodes and edges are kept in insertion order so that traversals are
    deterministic.
    """

    def __init__(self) -> None:
        self._edges: dict[Node, dict[Node, None]] = {}

    def add_node(self, node: Node) -> None:
        self._edges.setdefault(node, {})

    def add_edge(self, node: Node, dependency: Node) -> None:
        self.add_node(node)
        self.add_node(dependency)
        self._edges[node][dependency] = None

    @property
    def nodes(self) -> list[Node]:
        return list(self._edges)

    def dependencies(self, node: Node) -> list[Node]:
        """Direct dependencies of a node, in insertion order."""
        return list(self._edges[node])

    def has_edge(self, node: Node, dependency: Node) -> bool:
        return dependency in self._edges.get(node, {})

    def edges(self) -> list[tuple[Node, Node]]:
        return [(node, dep) for node, deps in self._edges.items() for dep in deps]

    def __contains__(self, node: object) -> bool:
        return node in self._edges

    def __len__(self) -> int:
        return len(self._edges)


def _exists(path: str, base_dir: Path) -> bool:
    return os.path.exists(base_dir / path)


def build_graph(
    tasks: Iterable[Task],
    base_dir: Optional[Path] = None,
    logger: Optional[Logger] = None,
) -> DependencyGraph:
    """Validate a task set and build its dependency graph.

    Validation fails fast, in this order: task names, target ownership,
    file dependency resolvability, task dependency resolvability.

    Args:
        tasks: Declared tasks (a TaskRegistry or any iterable), in declaration order
        base_dir: Directory that relative paths are checked against (default: cwd)
        logger: Optional logger for diagnostic output

    Returns:
        Graph with ROOT -> every task, explicit task_dep edges and file edges

    Raises:
        InvalidTaskError: If a task has an empty name
        DuplicateTaskError: If two tasks share a name
        TargetConflictError: If two tasks declare a common target
        MissingDependencyError: If a file dependency is unproduced and absent
        TaskNotFoundError: If a task_dep names an undeclared task
    """
    task_list = list(tasks)
    if base_dir is None:
        base_dir = Path.cwd()

    seen: set[str] = set()
    for task in task_list:
        if not task.name:
            raise InvalidTaskError("Task name must be a non-empty string")
        if task.name in seen:
            raise DuplicateTaskError(task.name)
        seen.add(task.name)

    # Ownership: target path -> owning task name
    owners: dict[str, str] = {}
    for task in task_list:
        conflicts: dict[str, list[str]] = {}
        for target in sorted(task.targets):
            owner = owners.get(target)
            if owner is not None:
                conflicts.setdefault(owner, []).append(target)
        if conflicts:
            owner, paths = next(iter(conflicts.items()))
            raise TargetConflictError(owner, task.name, paths)
        for target in task.targets:
            owners[target] = task.name

    for task in task_list:
        for path in sorted(task.file_dep - owners.keys()):
            if not _exists(path, base_dir):
                raise MissingDependencyError(task.name, path)

    for task in task_list:
        for dep in sorted(task.task_dep):
            if dep not in seen:
                raise TaskNotFoundError(
                    f"Task not found: {dep} (required by task {task.name})"
                )

    graph = DependencyGraph()
    graph.add_node(ROOT)
    for task in task_list:
        graph.add_edge(ROOT, task.name)

    for task in task_list:
        for dep in sorted(task.task_dep):
            graph.add_edge(task.name, dep)
        for path in sorted(task.file_dep):
            producer = owners.get(path)
            if producer is not None:
                graph.add_edge(task.name, producer)

    if logger:
        logger.trace(
            f"Built dependency graph: {len(task_list)} task(s), "
            f"{len(graph.edges()) - len(task_list)} dependency edge(s)"
        )
    return graph


def build_dependency_tree(graph: DependencyGraph, target_task: str) -> dict:
    """Build a tree structure representing dependencies for visualization.

    Args:
        graph: Dependency graph built by build_graph
        target_task: Name of the task to build tree for

    Returns:
        Nested dictionary representing the dependency tree
    """
    if target_task not in graph:
        raise TaskNotFoundError(f"Task not found: {target_task}")

    visited = set()

    def build_tree(task_name: str) -> dict:
        # Prevent infinite recursion on cycles
        if task_name in visited:
            return {"name": task_name, "deps": [], "cycle": True}

        visited.add(task_name)
        tree = {
            "name": task_name,
            "deps": [build_tree(dep) for dep in graph.dependencies(task_name)],
        }
        visited.remove(task_name)
        return tree

    return build_tree(target_task)
