"""Run task actions and record successful executions."""

from __future__ import annotations

import platform
import subprocess
from pathlib import Path
from typing import Iterable, Optional

from tasksched.cache import BuildCache
from tasksched.logging import Logger
from tasksched.task import Task


class ExecutionError(Exception):
    """Raised when task execution fails."""

    pass


class TaskRunner:
    """Executes task actions through the platform shell."""

    def __init__(self, working_dir: Path, logger: Optional[Logger] = None):
        """Initialize runner.

        Args:
            working_dir: Directory actions run in
            logger: Optional logger for progress output
        """
        self.working_dir = working_dir
        self.logger = logger

    def _get_platform_default_environment(self) -> tuple[str, list[str]]:
        """Get default shell and args for current platform.

        Returns:
            Tuple of (shell, args) for platform default
        """
        if platform.system() == "Windows":
            return ("cmd", ["/c"])
        return ("bash", ["-c"])

    def run(self, task: Task) -> None:
        """Execute a single task's action.

        Tasks without an action only order or group other tasks and
        succeed immediately.

        Raises:
            ExecutionError: If the action exits with a non-zero status
        """
        if self.logger:
            self.logger.info(f"Running: [cyan]{task.name}[/cyan]")
        if not task.action:
            return

        shell, shell_args = self._get_platform_default_environment()
        try:
            subprocess.run(
                [shell] + shell_args + [task.action],
                cwd=self.working_dir,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise ExecutionError(
                f"Task '{task.name}' failed with exit code {e.returncode}"
            ) from e
        except OSError as e:
            raise ExecutionError(f"Task '{task.name}' could not be started: {e}") from e


def execute_tasks(
    tasks: Iterable[Task], runner: TaskRunner, cache: BuildCache
) -> list[str]:
    """Run stale tasks in order, committing each one after it succeeds.

    Stops at the first failure; tasks not yet committed stay stale for the
    next run.

    Returns:
        Names of the tasks that ran and were committed

    Raises:
        ExecutionError: If a task fails
    """
    done = []
    for task in tasks:
        runner.run(task)
        cache.commit(task)
        done.append(task.name)
    return done
