"""tasksched - dependency-ordered task scheduling with incremental rebuilds."""

__version__ = "0.1.0"

from tasksched.cache import BuildCache, TaskStatus
from tasksched.graph import (
    ROOT,
    ConfigurationError,
    CycleError,
    DependencyGraph,
    DuplicateTaskError,
    InvalidTaskError,
    MissingDependencyError,
    TargetConflictError,
    TaskNotFoundError,
    build_graph,
)
from tasksched.hasher import ABSENT_DIGEST, Fingerprint, FingerprintReadError, digest_file
from tasksched.planner import Plan, schedule_tasks
from tasksched.scheduler import resolve_execution_order
from tasksched.state import JsonStateStore, MemoryStateStore, StateStore, StoreError
from tasksched.task import Task, TaskRegistry

__all__ = [
    "__version__",
    "BuildCache",
    "TaskStatus",
    "ROOT",
    "ConfigurationError",
    "CycleError",
    "DependencyGraph",
    "DuplicateTaskError",
    "InvalidTaskError",
    "MissingDependencyError",
    "TargetConflictError",
    "TaskNotFoundError",
    "build_graph",
    "ABSENT_DIGEST",
    "Fingerprint",
    "FingerprintReadError",
    "digest_file",
    "Plan",
    "schedule_tasks",
    "resolve_execution_order",
    "JsonStateStore",
    "MemoryStateStore",
    "StateStore",
    "StoreError",
    "Task",
    "TaskRegistry",
]
