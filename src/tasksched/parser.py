"""Parse task definition YAML files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from tasksched.task import Task, TaskRegistry

TASK_FILE_NAMES = ["tasksched.yaml", "ts.yaml"]

_TASK_FIELDS = {"name", "desc", "file_dep", "targets", "task_dep", "action"}


class TaskFileError(Exception):
    """Raised when a task file is structurally invalid."""

    pass


@dataclass
class TaskFile:
    """Represents a parsed task file."""

    registry: TaskRegistry
    project_root: Path
    path: Path


def find_task_file(start_dir: Path | None = None) -> Path | None:
    """Find a task file (tasksched.yaml or ts.yaml) in current or parent directories.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to task file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        for filename in TASK_FILE_NAMES:
            task_path = current / filename
            if task_path.exists():
                return task_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _string_list(task_name: str, key: str, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    raise TaskFileError(f"Task '{task_name}': '{key}' must be a string or a list of strings")


def _parse_task(name: Any, data: Any) -> Task:
    if not isinstance(name, str):
        raise TaskFileError(f"Task name must be a string, got {name!r}")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TaskFileError(f"Task '{name}' must be a dictionary")

    unknown = sorted(set(data) - _TASK_FIELDS)
    if unknown:
        raise TaskFileError(f"Task '{name}' has unknown field(s): {', '.join(unknown)}")

    for key in ("action", "desc"):
        if not isinstance(data.get(key, ""), str):
            raise TaskFileError(f"Task '{name}': '{key}' must be a string")

    return Task(
        name=name,
        file_dep=_string_list(name, "file_dep", data.get("file_dep")),
        targets=_string_list(name, "targets", data.get("targets")),
        task_dep=_string_list(name, "task_dep", data.get("task_dep")),
        action=data.get("action", ""),
        desc=data.get("desc", ""),
    )


def parse_tasks(data: Any) -> list[Task]:
    """Build tasks from loaded YAML.

    Tasks live under a ``tasks`` key, either as a mapping of name to
    definition or as a list of definitions carrying a ``name`` field.
    The list form keeps duplicate names so the graph builder can report
    them.

    Raises:
        TaskFileError: If the structure is invalid
    """
    if data is None:
        return []
    if not isinstance(data, dict):
        raise TaskFileError("Task file must contain a mapping")

    tasks_data = data.get("tasks", {})
    if tasks_data is None:
        return []

    if isinstance(tasks_data, dict):
        return [_parse_task(name, task_data) for name, task_data in tasks_data.items()]

    if isinstance(tasks_data, list):
        tasks = []
        for index, task_data in enumerate(tasks_data):
            if not isinstance(task_data, dict) or "name" not in task_data:
                raise TaskFileError(f"Task entry {index} must be a dictionary with a 'name'")
            tasks.append(_parse_task(task_data["name"], task_data))
        return tasks

    raise TaskFileError("'tasks' must be a dictionary or a list")


def parse_task_file(task_path: Path) -> TaskFile:
    """Parse a task file.

    Args:
        task_path: Path to the task file

    Returns:
        TaskFile with the tasks in declaration order

    Raises:
        FileNotFoundError: If the task file doesn't exist
        TaskFileError: If YAML is invalid or the structure is wrong
    """
    if not task_path.exists():
        raise FileNotFoundError(f"Task file not found: {task_path}")

    with open(task_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise TaskFileError(f"Error parsing YAML in '{task_path}': {e}") from e

    return TaskFile(
        registry=TaskRegistry(parse_tasks(data)),
        project_root=task_path.parent,
        path=task_path,
    )
