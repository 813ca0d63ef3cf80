"""Command-line interface for tasksched."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from tasksched import __version__
from tasksched.cache import BuildCache, TaskStatus
from tasksched.config import ConfigError, Settings, load_settings
from tasksched.console_logger import ConsoleLogger
from tasksched.executor import ExecutionError, TaskRunner, execute_tasks
from tasksched.graph import ROOT, ConfigurationError, build_dependency_tree, build_graph
from tasksched.hasher import FingerprintReadError
from tasksched.logging import Logger, LogLevel
from tasksched.parser import TaskFile, TaskFileError, find_task_file, parse_task_file
from tasksched.planner import Plan, schedule_tasks
from tasksched.scheduler import resolve_execution_order
from tasksched.state import JsonStateStore, StoreError

app = typer.Typer(
    help="tasksched - dependency-ordered, incremental task scheduling",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


@dataclass
class _Options:
    tasks_file: Optional[str]
    log_level: Optional[str]


@dataclass
class _Session:
    task_file: TaskFile
    settings: Settings
    logger: Logger

    def open_store(self) -> JsonStateStore:
        return JsonStateStore(
            self.task_file.project_root / self.settings.state_file,
            fsync=self.settings.fsync,
            batch_size=self.settings.batch_size,
            logger=self.logger,
        )


def _fail(logger: Logger, message: str) -> None:
    logger.error(message)
    raise typer.Exit(1)


def _load_session(ctx: typer.Context) -> _Session:
    """Find and parse the task file, then merge configuration."""
    options: _Options = ctx.obj
    logger = ConsoleLogger(console, LogLevel.INFO)

    if options.tasks_file:
        task_path = Path(options.tasks_file)
        if not task_path.exists():
            _fail(logger, f"Task file not found: {options.tasks_file}")
    else:
        task_path = find_task_file()
        if task_path is None:
            _fail(logger, "No task file found (tasksched.yaml or ts.yaml)")

    try:
        task_file = parse_task_file(task_path)
        settings = load_settings(task_file.project_root)
    except (TaskFileError, ConfigError) as e:
        _fail(logger, str(e))

    level = settings.log_level
    if options.log_level:
        try:
            level = LogLevel.from_name(options.log_level)
        except ValueError as e:
            _fail(logger, str(e))
    logger.push_level(level)
    logger.trace(f"Using task file {task_file.path}")
    return _Session(task_file=task_file, settings=settings, logger=logger)


def _plan(session: _Session, store: JsonStateStore, target: Optional[str]) -> Plan:
    try:
        return schedule_tasks(
            session.task_file.registry,
            store,
            base_dir=session.task_file.project_root,
            target=target,
            jobs=session.settings.jobs,
            logger=session.logger,
        )
    except (ConfigurationError, StoreError) as e:
        _fail(session.logger, str(e))


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"tasksched version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True,
        help="Show version and exit",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", "-L",
        help="Log verbosity: fatal, error, warn, info, debug, trace",
    ),
    tasks_file: Optional[str] = typer.Option(
        None, "--tasks", "-T", help="Task file to use instead of searching for one",
    ),
) -> None:
    """Schedule tasks in dependency order and rerun only what is stale."""
    ctx.obj = _Options(tasks_file=tasks_file, log_level=log_level)


@app.command("list")
def list_tasks(ctx: typer.Context) -> None:
    """List all declared tasks with descriptions."""
    session = _load_session(ctx)

    table = Table(title="Available Tasks")
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Description", style="white")
    for task in session.task_file.registry:
        table.add_row(task.name, task.desc)
    session.logger.info(table)


@app.command("order")
def show_order(
    ctx: typer.Context,
    task_name: Optional[str] = typer.Argument(None, help="Only this task and its prerequisites"),
) -> None:
    """Show the execution order."""
    session = _load_session(ctx)
    try:
        graph = build_graph(
            session.task_file.registry,
            base_dir=session.task_file.project_root,
            logger=session.logger,
        )
        order = resolve_execution_order(graph, root=task_name or ROOT, logger=session.logger)
    except ConfigurationError as e:
        _fail(session.logger, str(e))

    for i, name in enumerate(order, 1):
        session.logger.info(f"{i}. [cyan]{name}[/cyan]")


def _describe(status: TaskStatus) -> str:
    detail = status.reason
    if status.changed_files:
        detail += f": {', '.join(status.changed_files)}"
    if status.error is not None:
        detail += f" ({status.error})"
    return detail


@app.command("status")
def show_status(
    ctx: typer.Context,
    task_name: Optional[str] = typer.Argument(None, help="Only this task and its prerequisites"),
) -> None:
    """Show which tasks are stale and why."""
    session = _load_session(ctx)
    with session.open_store() as store:
        plan = _plan(session, store, task_name)

    table = Table(title="Task Status")
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("State")
    table.add_column("Reason")
    for status in plan.statuses:
        state = "[red]stale[/red]" if status.stale else "[green]fresh[/green]"
        table.add_row(status.task_name, state, _describe(status))
    session.logger.info(table)


def _build_rich_tree(dep_tree: dict, plan: Plan) -> Tree:
    """Build a Rich Tree from dependency tree and statuses."""
    task_name = dep_tree["name"]
    status = plan.status_of(task_name)

    if status is None:
        color, label = "white", task_name
    elif not status.stale:
        color, label = "green", f"{task_name} (fresh)"
    elif status.reason == "dependency_triggered":
        color, label = "yellow", f"{task_name} (triggered by dependency)"
    else:
        color, label = "red", f"{task_name} (stale: {status.reason})"

    tree = Tree(f"[{color}]{label}[/{color}]")
    for dep in dep_tree.get("deps", []):
        tree.add(_build_rich_tree(dep, plan))
    return tree


@app.command("tree")
def show_tree(
    ctx: typer.Context,
    task_name: str = typer.Argument(..., help="Task to show the dependency tree of"),
) -> None:
    """Show a task's dependency tree with freshness indicators."""
    session = _load_session(ctx)
    with session.open_store() as store:
        plan = _plan(session, store, task_name)
    session.logger.info(_build_rich_tree(build_dependency_tree(plan.graph, task_name), plan))


@app.command("run")
def run_tasks(
    ctx: typer.Context,
    task_name: Optional[str] = typer.Argument(None, help="Only this task and its prerequisites"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would run"),
    force: bool = typer.Option(False, "--force", "-f", help="Run every task regardless of state"),
) -> None:
    """Run stale tasks in order, recording each one that succeeds."""
    session = _load_session(ctx)
    logger = session.logger
    root = session.task_file.project_root

    with session.open_store() as store:
        plan = _plan(session, store, task_name)
        to_run = plan.order if force else plan.stale

        if not to_run:
            logger.info("[green]All tasks are up to date[/green]")
            return

        if dry_run:
            logger.info(f"[yellow]Will execute ({len(to_run)} tasks):[/yellow]")
            for i, task in enumerate(to_run, 1):
                status = plan.status_of(task.name)
                reason = "forced" if force and not status.stale else _describe(status)
                logger.info(f"  {i}. [cyan]{task.name}[/cyan] - {reason}")
            return

        for status in plan.statuses:
            if status.stale and status.reason == "outputs_missing":
                logger.warn(
                    f"Re-running task '{status.task_name}' because declared "
                    "outputs are missing"
                )

        cache = BuildCache(store, base_dir=root, jobs=session.settings.jobs, logger=logger)
        try:
            done = execute_tasks(to_run, TaskRunner(root, logger=logger), cache)
            store.flush()
        except (ExecutionError, FingerprintReadError, StoreError) as e:
            _fail(logger, str(e))

    logger.info(f"[green]{len(done)} task(s) completed successfully[/green]")


@app.command("commit")
def commit_tasks(
    ctx: typer.Context,
    task_names: List[str] = typer.Argument(..., help="Tasks to record as executed"),
) -> None:
    """Record tasks as executed without running them."""
    session = _load_session(ctx)
    registry = session.task_file.registry
    root = session.task_file.project_root

    try:
        build_graph(registry, base_dir=root, logger=session.logger)
    except ConfigurationError as e:
        _fail(session.logger, str(e))

    unknown = [name for name in task_names if name not in registry]
    if unknown:
        _fail(session.logger, f"Task not found: {', '.join(unknown)}")

    with session.open_store() as store:
        cache = BuildCache(store, base_dir=root, logger=session.logger)
        for task in registry.tasks_for(task_names):
            try:
                cache.commit(task)
            except (FingerprintReadError, StoreError) as e:
                _fail(session.logger, str(e))
            session.logger.info(f"[green]Committed {task.name}[/green]")
        try:
            store.flush()
        except StoreError as e:
            _fail(session.logger, str(e))


@app.command("clean")
def clean_state(ctx: typer.Context) -> None:
    """Remove the state file so every task runs fresh."""
    session = _load_session(ctx)
    store = session.open_store()
    if not store.state_path.exists():
        session.logger.info(f"[yellow]No state file found at {store.state_path}[/yellow]")
        return
    try:
        store.clear()
    except StoreError as e:
        _fail(session.logger, str(e))
    session.logger.info(f"[green]Removed {store.state_path}[/green]")
    session.logger.info("All tasks will run fresh on next execution")


@app.command("prune")
def prune_state(ctx: typer.Context) -> None:
    """Drop recorded state of tasks that are no longer declared."""
    session = _load_session(ctx)
    with session.open_store() as store:
        try:
            removed = store.prune(session.task_file.registry.task_names())
        except StoreError as e:
            _fail(session.logger, str(e))
    if removed:
        session.logger.info(f"[green]Pruned {len(removed)} record(s): {', '.join(removed)}[/green]")
    else:
        session.logger.info("Nothing to prune")


if __name__ == "__main__":
    app()
